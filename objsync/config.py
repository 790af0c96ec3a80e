"""Configuration loaded from the environment."""

import os
from typing import Optional

from .utils import DEFAULT_CONCURRENCY


class Config:
    """Settings for the store client and the sync engine.

    Values are read from the environment each time they are accessed, so
    tests and the CLI can override them with ``os.environ`` or
    ``monkeypatch.setenv``.
    """

    @property
    def url(self) -> str:
        """Base URL of the object store (``OBJSYNC_URL``), empty if unset."""
        return os.environ.get("OBJSYNC_URL", "").rstrip("/")

    @property
    def token(self) -> Optional[str]:
        """Bearer token for the object store (``OBJSYNC_TOKEN``)."""
        return os.environ.get("OBJSYNC_TOKEN") or None

    @property
    def concurrency(self) -> int:
        """Default concurrency ceiling per queue (``OBJSYNC_CONCURRENCY``)."""
        raw = os.environ.get("OBJSYNC_CONCURRENCY")
        if not raw:
            return DEFAULT_CONCURRENCY
        try:
            value = int(raw)
        except ValueError:
            return DEFAULT_CONCURRENCY
        return value if value > 0 else DEFAULT_CONCURRENCY

    def is_configured(self) -> bool:
        """Check whether a store URL is available."""
        return bool(os.environ.get("OBJSYNC_URL"))


config = Config()
