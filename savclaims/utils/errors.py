"""Error handling utilities for the SAV claim workflow."""

from dataclasses import dataclass
from typing import Optional, Dict, Any, List
from enum import Enum


class ErrorType(Enum):
    """Enumeration of error types in the SAV claim workflow."""

    # Backend / webhook HTTP errors
    CLIENT_FAULT = "CLIENT_FAULT"
    TRANSIENT_FAULT = "TRANSIENT_FAULT"
    LOGICAL_FAILURE = "LOGICAL_FAILURE"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"

    # Local payload errors
    INVALID_UPLOAD_PAYLOAD = "INVALID_UPLOAD_PAYLOAD"

    # Configuration Errors
    CONFIG_MISSING = "CONFIG_MISSING"

    # Submission Errors
    SUBMISSION_FAILED = "SUBMISSION_FAILED"


@dataclass
class ErrorContext:
    """
    Context information for errors in the SAV claim workflow.

    Attributes:
        error_type: Type of error from ErrorType enum
        message: Human-readable error message
        recoverable: Whether a retry may succeed
        status_code: Optional HTTP status returned by the remote endpoint
        details: Optional additional error details
        original_exception: Optional original exception that caused this error
    """

    error_type: ErrorType
    message: str
    recoverable: bool
    status_code: Optional[int] = None
    details: Optional[Dict[str, Any]] = None
    original_exception: Optional[Exception] = None

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error context to dictionary for logging/serialization.

        Returns:
            Dictionary representation of error context
        """
        return {
            "error_type": self.error_type.value,
            "message": self.message,
            "recoverable": self.recoverable,
            "status_code": self.status_code,
            "details": self.details or {},
            "original_exception": str(self.original_exception) if self.original_exception else None
        }


class SavError(Exception):
    """
    Base exception for all SAV claim workflow errors.

    Wraps errors with additional context so the retry executor and the
    submission orchestrator can decide how to react.

    Attributes:
        context: ErrorContext with detailed error information
    """

    def __init__(self, context: ErrorContext):
        """
        Initialize SAV error.

        Args:
            context: ErrorContext with error details
        """
        self.context = context
        super().__init__(context.message)

    def __str__(self) -> str:
        return self.context.message

    @property
    def error_type(self) -> ErrorType:
        return self.context.error_type

    @property
    def recoverable(self) -> bool:
        return self.context.recoverable

    @property
    def status_code(self) -> Optional[int]:
        return self.context.status_code

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error to dictionary for logging/serialization.

        Returns:
            Dictionary representation of error
        """
        return self.context.to_dict()


class ClientFault(SavError):
    """HTTP 4xx returned by a backend call. Never retried."""

    @classmethod
    def from_response(
        cls,
        status_code: int,
        message: str,
        operation: str
    ) -> "ClientFault":
        """
        Create ClientFault from an HTTP 4xx response.

        Args:
            status_code: HTTP status code (400-499)
            message: Error text returned by the backend, kept verbatim
            operation: Description of operation that failed

        Returns:
            ClientFault instance
        """
        context = ErrorContext(
            error_type=ErrorType.CLIENT_FAULT,
            message=message,
            recoverable=False,
            status_code=status_code,
            details={"operation": operation}
        )
        return cls(context)


class TransientFault(SavError):
    """Network error, timeout or 5xx. Retried with exponential backoff."""

    @classmethod
    def from_exception(
        cls,
        error: Exception,
        operation: str,
        status_code: Optional[int] = None
    ) -> "TransientFault":
        """
        Create TransientFault from a transport error or a 5xx response.

        Args:
            error: Original exception
            operation: Description of operation that failed
            status_code: Optional HTTP status (5xx)

        Returns:
            TransientFault instance
        """
        context = ErrorContext(
            error_type=ErrorType.TRANSIENT_FAULT,
            message=f"{operation} failed: {str(error)}",
            recoverable=True,
            status_code=status_code,
            details={"operation": operation},
            original_exception=error
        )
        return cls(context)


class LogicalFailure(SavError):
    """Backend answered 2xx but reported ``success: false``."""

    @classmethod
    def from_backend(
        cls,
        backend_error: Optional[str],
        fallback_message: str,
        operation: str
    ) -> "LogicalFailure":
        """
        Create LogicalFailure from a backend-reported failure.

        Args:
            backend_error: Error text sent by the backend, if any
            fallback_message: Message used when the backend sent none
            operation: Description of operation that failed

        Returns:
            LogicalFailure instance
        """
        context = ErrorContext(
            error_type=ErrorType.LOGICAL_FAILURE,
            message=backend_error or fallback_message,
            recoverable=False,
            details={"operation": operation}
        )
        return cls(context)


class MalformedResponseError(LogicalFailure):
    """Backend response lacks the expected success flag or URL."""

    @classmethod
    def missing_field(cls, field_name: str, operation: str) -> "MalformedResponseError":
        context = ErrorContext(
            error_type=ErrorType.MALFORMED_RESPONSE,
            message=f"Malformed response from {operation}: missing '{field_name}'",
            recoverable=False,
            details={"operation": operation, "field": field_name}
        )
        return cls(context)


class ConfigurationFault(SavError):
    """A required external endpoint is not configured."""

    @classmethod
    def missing(cls, setting_name: str) -> "ConfigurationFault":
        """
        Create error for a missing configuration value.

        Args:
            setting_name: Name of the missing setting (environment variable)

        Returns:
            ConfigurationFault instance
        """
        context = ErrorContext(
            error_type=ErrorType.CONFIG_MISSING,
            message=f"{setting_name} is not configured",
            recoverable=False,
            details={"setting": setting_name}
        )
        return cls(context)


class UploadPayloadError(SavError):
    """An encoded upload payload could not be decoded."""

    @classmethod
    def undecodable(cls, filename: str, error: Exception) -> "UploadPayloadError":
        context = ErrorContext(
            error_type=ErrorType.INVALID_UPLOAD_PAYLOAD,
            message=f"Invalid base64 content for '{filename}': {str(error)}",
            recoverable=False,
            details={"filename": filename},
            original_exception=error
        )
        return cls(context)


class SubmissionError(SavError):
    """
    Fatal failure of the claim submission.

    ``phase`` names the step that failed: ``validation``, ``upload``,
    ``share_link`` or ``webhook``.
    """

    PHASES = ("validation", "upload", "share_link", "webhook")

    @property
    def phase(self) -> str:
        return (self.context.details or {}).get("phase", "unknown")

    @classmethod
    def for_phase(
        cls,
        phase: str,
        message: str,
        error: Optional[Exception] = None,
        **details: Any
    ) -> "SubmissionError":
        """
        Create error for a failed submission phase.

        Args:
            phase: Failing phase (one of PHASES)
            message: Human-readable error message
            error: Optional original exception
            **details: Extra details (failed counts, file names...)

        Returns:
            SubmissionError instance
        """
        if phase not in cls.PHASES:
            raise ValueError(f"Unknown submission phase: {phase}")

        context = ErrorContext(
            error_type=ErrorType.SUBMISSION_FAILED,
            message=message,
            recoverable=False,
            status_code=getattr(error, "status_code", None) if isinstance(error, SavError) else None,
            details={"phase": phase, **details},
            original_exception=error
        )
        return cls(context)

    @classmethod
    def upload_failed(cls, failed_names: List[str], total: int) -> "SubmissionError":
        return cls.for_phase(
            "upload",
            f"Échec de l'envoi de {len(failed_names)} fichier(s) sur {total}: "
            f"{', '.join(failed_names)}",
            failed_count=len(failed_names),
            total=total,
            failed_files=list(failed_names)
        )


def extract_status_code(error: BaseException) -> Optional[int]:
    """
    Read the HTTP status carried by an error, if any.

    Looks at SavError contexts, httpx-style ``error.response.status_code``
    and plain ``status_code`` / ``status`` attributes.

    Args:
        error: Exception raised by an operation

    Returns:
        Integer HTTP status, or None when the error has no classifiable status
    """
    if isinstance(error, SavError):
        return error.status_code

    response = getattr(error, "response", None)
    if response is not None:
        status = getattr(response, "status_code", None)
        if status is None:
            status = getattr(response, "status", None)
        if isinstance(status, int):
            return status

    for attr in ("status_code", "status"):
        status = getattr(error, attr, None)
        if isinstance(status, int):
            return status

    return None


def is_client_error(error: BaseException) -> bool:
    """Return True when the error carries an HTTP status in [400, 500)."""
    status = extract_status_code(error)
    return status is not None and 400 <= status < 500


def is_retryable(error: BaseException) -> bool:
    """
    Classify an error as retryable or terminal.

    Client faults (4xx) and SavErrors flagged non-recoverable are terminal.
    Anything else (network failure, 5xx, timeout, unclassified) is retryable.

    Args:
        error: Exception raised by an operation

    Returns:
        True if another attempt may succeed
    """
    if is_client_error(error):
        return False
    if isinstance(error, SavError):
        return error.recoverable
    return True
