"""Claim submission orchestration."""

from .submission import SubmissionOrchestrator, SubmissionResult, build_sav_dossier

__all__ = [
    "SubmissionOrchestrator",
    "SubmissionResult",
    "build_sav_dossier"
]
