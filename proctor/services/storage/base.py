"""
Abstract base class for the object store holding segments and markers.

The API routes and the merge job depend on this interface only, so the
Google Drive implementation can be swapped for an in-memory one in tests.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class StoredFile:
    """Metadata of one stored object."""

    id: str
    name: str
    mime_type: str = ""
    created_time: str = ""
    web_view_link: str = ""
    parent_id: str = ""


class BaseObjectStore(ABC):
    """Interface that every storage backend must implement."""

    @property
    @abstractmethod
    def root_folder_id(self) -> str:
        """Folder under which participant folders are created."""

    @abstractmethod
    async def ensure_folder(self, name: str, parent_id: str | None = None) -> str:
        """Return the id of folder ``name`` under ``parent_id``, creating it if needed."""

    @abstractmethod
    async def find_folder(self, name: str, parent_id: str | None = None) -> str | None:
        """Return the id of folder ``name`` under ``parent_id``, or None."""

    @abstractmethod
    async def find_files(
        self,
        name_contains: list[str] | tuple[str, ...] = (),
        parent_id: str | None = None,
        mime_type: str | None = None,
    ) -> list[StoredFile]:
        """List files matching every filter, oldest first.

        Args:
            name_contains: Substrings that must all appear in the name.
            parent_id: Restrict to direct children of this folder.
            mime_type: Exact MIME type to match.
        """

    @abstractmethod
    async def upload_file(
        self, path: Path, name: str, parent_id: str, mime_type: str
    ) -> StoredFile:
        """Stream a local file into the store."""

    @abstractmethod
    async def upload_bytes(
        self, data: bytes, name: str, parent_id: str, mime_type: str
    ) -> StoredFile:
        """Store an in-memory payload."""

    @abstractmethod
    async def download_file(self, file_id: str, dest: Path) -> Path:
        """Write the object's content to ``dest`` and return it."""

    @abstractmethod
    async def download_bytes(self, file_id: str) -> bytes:
        """Return the object's content."""

    @abstractmethod
    async def delete_file(self, file_id: str) -> None:
        """Delete an object permanently."""
