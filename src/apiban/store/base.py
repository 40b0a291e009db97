"""Store protocol shared by the remote feed and the caches in front of it."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from apiban.errors import UnsupportedOperationError
from apiban.schemas import IPAddress, Listing


class Store(ABC):
    """Abstract base for all blocklist backends.

    Read operations are mandatory.  Mutations default to raising
    :class:`UnsupportedOperationError` so read-only backends (the upstream
    feed) only implement what they can actually serve.
    """

    @abstractmethod
    def exists(self, address: str | IPAddress) -> Listing | None:
        """Return the first listing whose network contains ``address``, or ``None``."""
        ...

    @abstractmethod
    def list(self) -> list[Listing]:
        """Return every listing, ordered by ascending timestamp."""
        ...

    @abstractmethod
    def list_from_time(self, t: datetime) -> list[Listing]:
        """Return the ordered listings whose timestamp is strictly after ``t``."""
        ...

    def add(self, listing: Listing) -> Listing:
        """Insert ``listing`` unless a containing entry exists; return the stored listing."""
        raise UnsupportedOperationError("add", type(self).__name__)

    def remove(self, listing_id: str) -> None:
        """Delete listings with ``listing_id``.  No-op if none match."""
        raise UnsupportedOperationError("remove", type(self).__name__)

    def reset(self) -> None:
        """Drop all state."""
        raise UnsupportedOperationError("reset", type(self).__name__)
