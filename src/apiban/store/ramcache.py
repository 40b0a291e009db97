from __future__ import annotations

import logging
import threading
from bisect import bisect_right
from collections.abc import Callable
from datetime import datetime, timedelta

import requests

from apiban.config import DEFAULT_ROOT_URL
from apiban.errors import InvalidInputError
from apiban.schemas import (
    IPAddress,
    Listing,
    default_start_timestamp,
    ensure_utc,
    now_utc,
    parse_address,
)

from .base import Store
from .official import OfficialStore

logger = logging.getLogger(__name__)

DEFAULT_MIN_UPSTREAM_CHECK_INTERVAL = timedelta(minutes=3)


class RAMCacheStore(Store):
    """In-memory cache of an upstream Store, refreshed at most once per interval.

    All shared state lives in three attributes that are replaced together
    under ``_lock``: the listing tuple and the two upstream bookkeeping
    timestamps.  Refreshes hold the lock across the upstream call, so
    concurrent readers wait for the in-flight refresh and then serve its
    result instead of issuing their own.
    """

    def __init__(
        self,
        upstream: Store,
        *,
        min_upstream_check_interval: timedelta | None = None,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        if min_upstream_check_interval is None:
            min_upstream_check_interval = DEFAULT_MIN_UPSTREAM_CHECK_INTERVAL
        if min_upstream_check_interval < timedelta(0):
            raise ValueError("min_upstream_check_interval must be >= 0")

        self.upstream = upstream
        self.min_upstream_check_interval = min_upstream_check_interval
        self._clock = clock
        self._lock = threading.Lock()

        try:
            seed = upstream.list()
        except Exception:
            logger.exception("failed initial cache fill upstream=%s", type(upstream).__name__)
            raise

        now = self._now()
        working: list[Listing] = []
        watermark = default_start_timestamp(now)
        for listing in seed:
            if listing.is_unspecified:
                logger.warning("skipping unspecified upstream listing id=%s", listing.id)
            else:
                self._insert(working, listing, now=now)
            if listing.timestamp is not None:
                watermark = max(watermark, listing.timestamp)

        self._listings: tuple[Listing, ...] = tuple(working)
        self._last_upstream_timestamp = watermark
        self._last_upstream_check_time = now
        logger.info("ram cache seeded listings=%d", len(self._listings))

    @classmethod
    def from_api_key(
        cls,
        api_key: str,
        *,
        root_url: str = DEFAULT_ROOT_URL,
        session: requests.Session | None = None,
        timeout_seconds: float = 10.0,
        min_upstream_check_interval: timedelta | None = None,
    ) -> RAMCacheStore:
        upstream = OfficialStore(
            api_key,
            root_url=root_url,
            session=session,
            timeout_seconds=timeout_seconds,
        )
        return cls(upstream, min_upstream_check_interval=min_upstream_check_interval)

    @property
    def last_upstream_timestamp(self) -> datetime:
        return self._last_upstream_timestamp

    @property
    def last_upstream_check_time(self) -> datetime:
        return self._last_upstream_check_time

    def refresh(self) -> None:
        with self._lock:
            self._refresh_locked()

    def exists(self, address: str | IPAddress) -> Listing | None:
        ip = parse_address(address)
        for listing in self._snapshot():
            if listing.contains(ip):
                return listing
        return None

    def list(self) -> list[Listing]:
        return list(self._snapshot())

    def list_from_time(self, t: datetime) -> list[Listing]:
        if t is None:
            raise InvalidInputError("list_from_time requires a timestamp")
        snapshot = self._snapshot()
        index = bisect_right(snapshot, ensure_utc(t), key=_timestamp_key)
        return list(snapshot[index:])

    def add(self, listing: Listing) -> Listing:
        with self._lock:
            working = list(self._listings)
            stored = self._insert(working, listing, now=self._now())
            self._listings = tuple(working)
        return stored

    def remove(self, listing_id: str) -> None:
        with self._lock:
            self._listings = tuple(
                listing for listing in self._listings if listing.id != listing_id
            )

    def reset(self) -> None:
        with self._lock:
            rewind = default_start_timestamp(self._now())
            self._listings = ()
            self._last_upstream_timestamp = rewind
            self._last_upstream_check_time = rewind
        logger.info("ram cache reset")

    def _now(self) -> datetime:
        return ensure_utc(self._clock())

    def _snapshot(self) -> tuple[Listing, ...]:
        with self._lock:
            self._refresh_locked()
            return self._listings

    def _refresh_locked(self) -> None:
        now = self._now()
        if now - self._last_upstream_check_time < self.min_upstream_check_interval:
            return

        try:
            fetched = self.upstream.list_from_time(self._last_upstream_timestamp)
        except Exception:
            logger.warning(
                "upstream refresh failed since=%s",
                self._last_upstream_timestamp.isoformat(),
                exc_info=True,
            )
            raise

        working = list(self._listings)
        watermark = self._last_upstream_timestamp
        for listing in fetched:
            if listing.is_unspecified:
                logger.warning("skipping unspecified upstream listing id=%s", listing.id)
            else:
                self._insert(working, listing, now=now)
            if listing.timestamp is not None:
                watermark = max(watermark, listing.timestamp)

        new_count = len(working) - len(self._listings)
        self._listings = tuple(working)
        self._last_upstream_timestamp = watermark
        self._last_upstream_check_time = now
        logger.info(
            "ram cache refreshed fetched=%d added=%d since=%s",
            len(fetched),
            new_count,
            watermark.isoformat(),
        )

    @staticmethod
    def _insert(working: list[Listing], listing: Listing, *, now: datetime) -> Listing:
        if listing.is_unspecified:
            raise InvalidInputError(f"invalid IP address: {listing.network}")

        address = listing.network.network_address
        for existing in working:
            if existing.contains(address):
                return existing

        updates: dict[str, object] = {}
        if not listing.id:
            updates["id"] = str(listing.network)
        if listing.timestamp is None:
            updates["timestamp"] = now
        stored = listing.model_copy(update=updates) if updates else listing

        index = bisect_right(working, stored.timestamp, key=_timestamp_key)
        working.insert(index, stored)
        return stored


def _timestamp_key(listing: Listing) -> datetime:
    # Stored listings always carry a timestamp; _insert fills it in.
    return listing.timestamp  # type: ignore[return-value]
