"""Claim form state and photo intake."""

from .store import ClaimFormStore
from .attachments import AttachmentHandler

__all__ = ['ClaimFormStore', 'AttachmentHandler']
