"""Upload payload and outcome data models."""

from dataclasses import dataclass
from typing import Optional, Union

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@dataclass
class RawFile:
    """
    A binary file selected by the customer.

    Attributes:
        content: File bytes
        filename: Name used for storage
        content_type: MIME type
    """
    content: bytes
    filename: str
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class EncodedPayload:
    """
    A generated report file carried as base64 text.

    Attributes:
        content: Base64-encoded file content
        filename: Name used for storage
        content_type: MIME type of the decoded file
    """
    content: str
    filename: str
    content_type: str = XLSX_CONTENT_TYPE


UploadPayload = Union[RawFile, EncodedPayload]


@dataclass
class UploadDescriptor:
    """One entry of a parallel upload batch."""
    payload: UploadPayload

    @property
    def is_base64(self) -> bool:
        return isinstance(self.payload, EncodedPayload)

    @property
    def file_name(self) -> str:
        return self.payload.filename


@dataclass
class UploadOutcome:
    """
    Result of one file of a parallel upload batch.

    Exactly one of ``url`` / ``error_message`` is set, matching ``succeeded``.

    Attributes:
        succeeded: Upload finished with a URL
        file_name: Name of the uploaded file
        url: Storage URL on success
        error_message: Failure message on error
    """
    succeeded: bool
    file_name: str
    url: Optional[str] = None
    error_message: Optional[str] = None

    def __post_init__(self):
        if self.succeeded and (self.url is None or self.error_message is not None):
            raise ValueError("A successful upload outcome needs a url and no error message")
        if not self.succeeded and (self.error_message is None or self.url is not None):
            raise ValueError("A failed upload outcome needs an error message and no url")

    @classmethod
    def success(cls, file_name: str, url: str) -> "UploadOutcome":
        return cls(succeeded=True, file_name=file_name, url=url)

    @classmethod
    def failure(cls, file_name: str, error_message: str) -> "UploadOutcome":
        return cls(succeeded=False, file_name=file_name, error_message=error_message)

    def to_dict(self):
        return {
            "success": self.succeeded,
            "fileName": self.file_name,
            "url": self.url,
            "error": self.error_message,
        }
