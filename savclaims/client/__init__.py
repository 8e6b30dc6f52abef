"""HTTP client for the storage proxy and the SAV webhook."""

from .api_client import SavApiClient

__all__ = ['SavApiClient']
