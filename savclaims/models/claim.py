"""Claim form data models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Union

from .upload import RawFile

# Field-level validation messages
QUANTITY_REQUIRED = "La quantité est requise"
QUANTITY_NOT_POSITIVE = "La quantité doit être supérieure à 0"
UNIT_REQUIRED = "Veuillez sélectionner une unité"
REASON_REQUIRED = "Veuillez sélectionner un motif"
IMAGES_REQUIRED = "Veuillez ajouter au moins une photo du produit abimé"

VALIDATED_FIELDS = ("quantity", "unit", "reason", "images")


class ClaimReason(str, Enum):
    """Cause code of a claim line."""

    ABIME = "abime"
    CASSE = "casse"
    MANQUANT = "manquant"
    ERREUR = "erreur"

    @property
    def label(self) -> str:
        """Upper-case label used in exported summaries."""
        return {
            ClaimReason.ABIME: "ABIME",
            ClaimReason.CASSE: "CASSE",
            ClaimReason.MANQUANT: "MANQUANT",
            ClaimReason.ERREUR: "ERREUR DE PREPARATION",
        }[self]

    @classmethod
    def values(cls) -> List[str]:
        return [reason.value for reason in cls]


def empty_errors() -> Dict[str, str]:
    """Error mapping with one empty entry per validated field."""
    return {name: "" for name in VALIDATED_FIELDS}


@dataclass
class ImageAttachment:
    """
    A photo attached to a claim line.

    Attributes:
        source_file: File as it will be stored (already renamed with the
            invoice special mention when one applies)
        preview_data_uri: Locally rendered preview, never sent to the backend
        original_name: Filename as selected by the customer
        uploaded_url: Storage URL, set only after a successful upload
    """
    source_file: RawFile
    preview_data_uri: str
    original_name: str
    uploaded_url: Optional[str] = None

    @property
    def name(self) -> str:
        return self.source_file.filename

    @property
    def content_type(self) -> str:
        return self.source_file.content_type

    @property
    def is_uploaded(self) -> bool:
        return bool(self.uploaded_url)


@dataclass
class ClaimForm:
    """
    Claim form state for one invoice line item.

    ``quantity``, ``unit`` and ``reason`` use ``''`` for "not set yet", the
    same value the UI binds to its inputs.

    Attributes:
        shown: Form is open for this item
        filled: Form passed validation and is locked for submission
        quantity: Claimed quantity
        unit: Unit of measure
        reason: ClaimReason value
        comment: Optional free text
        images: Attached photos, mutated in place by the attachment helpers
        errors: Last validation result, one entry per validated field
        loading: Guards re-entrant validation of this form
        is_dragging: A drag of files is hovering the drop zone
    """
    shown: bool = False
    filled: bool = False
    quantity: Union[float, int, str, None] = ""
    unit: str = ""
    reason: str = ""
    comment: str = ""
    images: List[ImageAttachment] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=empty_errors)
    loading: bool = False
    is_dragging: bool = False

    def reset(self) -> None:
        """Return every field to its initial empty value, keeping identity."""
        self.shown = False
        self.filled = False
        self.quantity = ""
        self.unit = ""
        self.reason = ""
        self.comment = ""
        self.images = []
        self.is_dragging = False
        self.errors = empty_errors()

    @property
    def has_errors(self) -> bool:
        return any(self.errors.values())

    def uploaded_urls(self) -> List[str]:
        return [image.uploaded_url for image in self.images if image.uploaded_url]


@dataclass
class FilledForm:
    """A filled, shown claim form with its invoice line index."""
    form: ClaimForm
    index: int
