"""Storage backends for uploaded claim files."""

from .file_storage import LocalFileStorage, StorageBackend, StoredFile, FolderShareLink

__all__ = ['LocalFileStorage', 'StorageBackend', 'StoredFile', 'FolderShareLink']
