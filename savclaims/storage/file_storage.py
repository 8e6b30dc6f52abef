"""File storage backends for SAV claim uploads."""

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Protocol
from urllib.parse import quote

logger = logging.getLogger(__name__)


@dataclass
class StoredFile:
    """Metadata of a file written to the storage backend."""
    id: str
    name: str
    url: str
    size: int
    last_modified: str


@dataclass
class FolderShareLink:
    """Share link created for a storage folder."""
    id: str
    url: str


class StorageBackend(Protocol):
    """Contract used by the storage proxy: store bytes, share folders."""

    def upload(self, content: bytes, name: str, folder: str, content_type: str = "application/octet-stream") -> StoredFile:
        ...

    def share_link(self, folder: str) -> FolderShareLink:
        ...


def _item_id(relative_path: str) -> str:
    return hashlib.sha1(relative_path.encode("utf-8")).hexdigest()[:16]


class LocalFileStorage:
    """
    Local filesystem storage backend.

    Files live under ``root_dir/<folder>/<name>`` and are exposed through
    ``public_base_url``, which the proxy server mounts read-only.

    Provides methods for:
    - Creating destination folders on demand
    - Writing uploads (an existing file with the same name is replaced)
    - Building folder share links
    """

    def __init__(
        self,
        root_dir: str = "data/storage",
        public_base_url: str = "http://localhost:3000/files"
    ):
        """
        Initialize LocalFileStorage.

        Args:
            root_dir: Directory holding every stored folder
            public_base_url: Base URL under which ``root_dir`` is served
        """
        self.root_dir = Path(root_dir)
        self.public_base_url = public_base_url.rstrip("/")

        self.root_dir.mkdir(parents=True, exist_ok=True)

        logger.info(
            f"Initialized LocalFileStorage: "
            f"root_dir={self.root_dir}, "
            f"public_base_url={self.public_base_url}"
        )

    def _folder_path(self, folder: str) -> Path:
        parts = [p for p in folder.split("/") if p]
        if any(p in (".", "..") for p in parts):
            raise ValueError(f"Invalid folder path: {folder}")
        return self.root_dir.joinpath(*parts)

    def _public_url(self, relative_path: str) -> str:
        return f"{self.public_base_url}/{quote(relative_path)}"

    def ensure_folder(self, folder: str) -> Path:
        """
        Create a folder (and its parents) if it doesn't exist.

        Args:
            folder: Folder path relative to the storage root

        Returns:
            Absolute Path of the folder
        """
        path = self._folder_path(folder)
        path.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Ensured folder exists: {path}")
        return path

    def upload(
        self,
        content: bytes,
        name: str,
        folder: str,
        content_type: str = "application/octet-stream"
    ) -> StoredFile:
        """
        Store a file in a folder.

        Args:
            content: File content as bytes
            name: File name (already sanitized)
            folder: Destination folder relative to the storage root
            content_type: MIME type, logged only

        Returns:
            StoredFile metadata with the public URL

        Raises:
            IOError: If the file cannot be written
        """
        if not name or "/" in name or name in (".", ".."):
            raise ValueError(f"Invalid file name: {name!r}")

        folder_path = self.ensure_folder(folder)
        file_path = folder_path / name

        try:
            with open(file_path, 'wb') as f:
                f.write(content)
        except OSError as e:
            logger.error(f"Failed to store {name} in {folder}: {str(e)}")
            raise IOError(f"Failed to store file: {str(e)}") from e

        relative = file_path.relative_to(self.root_dir).as_posix()
        modified = datetime.fromtimestamp(file_path.stat().st_mtime, tz=timezone.utc)

        logger.info(f"Stored file: {relative} ({len(content)} bytes, {content_type})")

        return StoredFile(
            id=_item_id(relative),
            name=name,
            url=self._public_url(relative),
            size=len(content),
            last_modified=modified.isoformat()
        )

    def share_link(self, folder: str) -> FolderShareLink:
        """
        Build a share link for an existing folder.

        Args:
            folder: Folder path relative to the storage root

        Returns:
            FolderShareLink with the folder id and URL

        Raises:
            FileNotFoundError: If the folder doesn't exist
        """
        path = self._folder_path(folder)
        if not path.is_dir():
            raise FileNotFoundError(f"Dossier non trouvé au chemin : {folder}")

        relative = path.relative_to(self.root_dir).as_posix()
        return FolderShareLink(id=_item_id(relative), url=self._public_url(relative) + "/")

    def get_storage_stats(self) -> Dict[str, Any]:
        """
        Get statistics about file storage.

        Returns:
            Dict with storage statistics
        """
        files = [item for item in self.root_dir.rglob('*') if item.is_file()]
        return {
            'path': str(self.root_dir),
            'exists': self.root_dir.exists(),
            'file_count': len(files),
            'size_bytes': sum(item.stat().st_size for item in files)
        }
