"""Utility functions for objsync."""

import base64
import binascii
import hashlib
import posixpath
import re
from pathlib import Path
from typing import Optional

# =============================================================================
# Constants
# =============================================================================

# Default number of concurrent HEAD, PUT or DELETE requests per queue
DEFAULT_CONCURRENCY: int = 30

# Read size when streaming local files through a digest
HASH_CHUNK_SIZE: int = 1024 * 1024

# MD5 of an empty payload; stores omit Content-MD5 for zero-byte objects
EMPTY_MD5: str = "d41d8cd98f00b204e9800998ecf8427e"

# Retry configuration for transient errors
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_DELAY: float = 1.0  # seconds

_HEX_MD5 = re.compile(r"^[0-9a-fA-F]{32}$")


# =============================================================================
# Remote path utilities
# =============================================================================


def remote_path_for(remote_root: str, relative_path: str) -> str:
    """Rebase a local relative path under the remote sync root.

    Args:
        remote_root: Remote directory the local tree is synced into
        relative_path: POSIX path relative to the local sync root

    Returns:
        Remote path of the object

    Examples:
        >>> remote_path_for("/user/stor/foo", "sub/b.txt")
        '/user/stor/foo/sub/b.txt'
        >>> remote_path_for("/user/stor/foo/", "a.txt")
        '/user/stor/foo/a.txt'
    """
    return posixpath.join(remote_root.rstrip("/") or "/", relative_path.lstrip("/"))


def join_remote(parent: str, name: str) -> str:
    """Join a directory entry name onto its parent directory."""
    return posixpath.join(parent.rstrip("/") or "/", name)


# =============================================================================
# Size formatting utilities
# =============================================================================


def format_size(size_bytes: int) -> str:
    """Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB", "256 B")
    """
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / 1024 / 1024:.1f} MB"
    else:
        return f"{size_bytes / 1024 / 1024 / 1024:.1f} GB"


# =============================================================================
# Hash utilities
# =============================================================================


def md5_file(path: Path, chunk_size: int = HASH_CHUNK_SIZE) -> str:
    """Stream a file through MD5 and return the hex digest.

    Raises:
        OSError: If the file cannot be opened or read
    """
    digest = hashlib.md5()
    with open(path, "rb") as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            digest.update(chunk)
    return digest.hexdigest()


def normalize_md5(value: Optional[str]) -> Optional[str]:
    """Normalize a content hash to lowercase hex.

    Stores report ``Content-MD5`` base64 encoded (RFC 1864), some report
    plain hex. Both forms are accepted.

    Args:
        value: Hash as reported by the store, or None

    Returns:
        Lowercase hex digest, or None if the value is missing or unreadable

    Examples:
        >>> normalize_md5("1B2M2Y8AsgTpgAmY7PhCfg==")
        'd41d8cd98f00b204e9800998ecf8427e'
        >>> normalize_md5("D41D8CD98F00B204E9800998ECF8427E")
        'd41d8cd98f00b204e9800998ecf8427e'
    """
    if not value:
        return None
    value = value.strip()
    if _HEX_MD5.match(value):
        return value.lower()
    try:
        raw = base64.b64decode(value, validate=True)
    except (binascii.Error, ValueError):
        return None
    if len(raw) != 16:
        return None
    return raw.hex()
