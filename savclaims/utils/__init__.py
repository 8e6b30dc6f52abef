"""Utility modules for configuration, logging, errors and retries."""

from .retry import with_retry

__all__ = [
    'with_retry'
]
