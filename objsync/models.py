"""Data models for object store responses."""

from dataclasses import dataclass
from typing import Any, Optional

from .utils import normalize_md5

DIRECTORY_CONTENT_TYPE = "application/json; type=directory"


@dataclass
class RemoteObjectInfo:
    """Metadata returned by a HEAD request on a remote path."""

    path: str
    """Remote path that was looked up"""

    size: Optional[int] = None
    """Object size in bytes, None if the store did not report one"""

    md5: Optional[str] = None
    """Content MD5 as lowercase hex, None if the store did not report one"""

    content_type: Optional[str] = None
    """Content type reported by the store"""

    @property
    def is_directory(self) -> bool:
        """Whether the path is a directory rather than an object."""
        return bool(self.content_type) and "type=directory" in self.content_type

    @classmethod
    def from_headers(cls, path: str, headers: Any) -> "RemoteObjectInfo":
        """Build from HEAD response headers.

        Args:
            path: Remote path that was looked up
            headers: Mapping of response headers (case-insensitive)

        Returns:
            RemoteObjectInfo instance
        """
        size: Optional[int] = None
        raw_size = headers.get("Content-Length")
        if raw_size is not None:
            try:
                size = int(raw_size)
            except ValueError:
                size = None

        return cls(
            path=path,
            size=size,
            md5=normalize_md5(headers.get("Content-MD5")),
            content_type=headers.get("Content-Type"),
        )


@dataclass
class DirectoryEntry:
    """One child returned by a directory listing."""

    name: str
    type: str
    """Either "object" or "directory" """

    size: Optional[int] = None
    mtime: Optional[str] = None

    @property
    def is_directory(self) -> bool:
        return self.type == "directory"

    @classmethod
    def from_api_response(cls, data: dict) -> "DirectoryEntry":
        """Create a DirectoryEntry from one line of a listing response."""
        size = data.get("size")
        return cls(
            name=data["name"],
            type=data.get("type", "object"),
            size=int(size) if size is not None else None,
            mtime=data.get("mtime"),
        )
