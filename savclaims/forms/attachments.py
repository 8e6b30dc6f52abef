"""Photo intake for claim forms: type/size checks, renaming and previews."""

import base64
import io
import logging
from typing import Iterable, List, Optional

from PIL import Image, UnidentifiedImageError

from ..models.claim import ClaimForm, ImageAttachment
from ..models.upload import RawFile
from ..utils.config import DEFAULT_ACCEPTED_IMAGE_TYPES, AttachmentConfig

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 10 * 1024 * 1024
PREVIEW_SIZE = (320, 320)

INVALID_FILES_MESSAGE = (
    "Certains fichiers ne sont pas valides "
    "(formats acceptés: JPEG, PNG, GIF, WebP, SVG, HEIC - taille max 10Mo)"
)
INVALID_FILES_TOAST = "Certains fichiers ne sont pas valides"


def rename_with_special_mention(file: RawFile, special_mention: str) -> RawFile:
    """
    Prefix a file name with the invoice special mention.

    ``photo.jpg`` with mention ``585_25S30_94_1`` becomes
    ``585_25S30_94_1_photo.jpg``.

    Args:
        file: Selected file
        special_mention: Invoice special mention

    Returns:
        New RawFile with the same content and type
    """
    name = file.filename
    if "." in name:
        base_name, ext = name.rsplit(".", 1)
        new_name = f"{special_mention}_{base_name}.{ext}"
    else:
        new_name = f"{special_mention}_{name}"
    return RawFile(content=file.content, filename=new_name, content_type=file.content_type)


def _data_uri(data: bytes, content_type: str) -> str:
    b64 = base64.b64encode(data).decode("utf-8")
    return f"data:{content_type};base64,{b64}"


def build_preview(file: RawFile) -> str:
    """
    Render a small preview data URI for a photo.

    Raster formats Pillow can open are thumbnailed to PNG. Anything else
    (SVG, HEIC without a plugin, images over Pillow's pixel limit) falls back
    to the raw file as a data URI.
    """
    try:
        with Image.open(io.BytesIO(file.content)) as img:
            preview = img.convert("RGBA")
            preview.thumbnail(PREVIEW_SIZE)
            buffer = io.BytesIO()
            preview.save(buffer, format="PNG")
        return _data_uri(buffer.getvalue(), "image/png")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError):
        return _data_uri(file.content, file.content_type)


class AttachmentHandler:
    """
    Validates selected photos and attaches them to claim forms.

    Attributes:
        accepted_types: Accepted MIME types
        max_file_size: Maximum size of one file, in bytes
    """

    def __init__(
        self,
        accepted_types: Optional[Iterable[str]] = None,
        max_file_size: int = MAX_FILE_SIZE
    ):
        self.accepted_types = list(accepted_types or DEFAULT_ACCEPTED_IMAGE_TYPES)
        self.max_file_size = max_file_size

    @classmethod
    def from_config(cls, config: AttachmentConfig) -> "AttachmentHandler":
        return cls(config.accepted_types, config.max_file_mb * 1024 * 1024)

    def is_valid(self, file: RawFile) -> bool:
        return file.content_type in self.accepted_types and file.size <= self.max_file_size

    def add_images(
        self,
        form: ClaimForm,
        files: List[RawFile],
        special_mention: str = "",
        notify=None
    ) -> List[ImageAttachment]:
        """
        Attach photos to a form.

        If any file has an unsupported type or is too large, none is attached
        and ``form.errors['images']`` explains why.

        Args:
            form: Target claim form
            files: Selected files
            special_mention: Optional invoice special mention used as prefix
            notify: Optional callback receiving (message, level) toasts

        Returns:
            The attachments appended to ``form.images``
        """
        form.errors["images"] = ""
        form.is_dragging = False

        if not files:
            return []

        invalid = [f for f in files if not self.is_valid(f)]
        if invalid:
            form.errors["images"] = INVALID_FILES_MESSAGE
            logger.warning(
                f"Rejected {len(invalid)} file(s): "
                f"{', '.join(f'{f.filename} ({f.content_type}, {f.size} bytes)' for f in invalid)}"
            )
            if notify:
                notify(INVALID_FILES_TOAST, "error")
            return []

        added = []
        for file in files:
            stored = rename_with_special_mention(file, special_mention) if special_mention else file
            attachment = ImageAttachment(
                source_file=stored,
                preview_data_uri=build_preview(file),
                original_name=file.filename,
            )
            form.images.append(attachment)
            added.append(attachment)

        logger.debug(f"Attached {len(added)} image(s), form now has {len(form.images)}")
        return added

    def drop_images(
        self,
        form: ClaimForm,
        files: List[RawFile],
        special_mention: str = "",
        notify=None
    ) -> List[ImageAttachment]:
        """Attach dropped photos; ignored while the form is filled."""
        if form.filled:
            return []
        form.is_dragging = False
        return self.add_images(form, files, special_mention=special_mention, notify=notify)

    @staticmethod
    def remove_image(form: ClaimForm, image_index: int) -> None:
        """Remove one attached photo by position; out-of-range positions are ignored."""
        if 0 <= image_index < len(form.images):
            del form.images[image_index]
