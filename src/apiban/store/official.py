from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

import requests
from pydantic import ValidationError

from apiban.config import DEFAULT_ROOT_URL, DEFAULT_START_ID
from apiban.errors import (
    InvalidInputError,
    ProtocolError,
    RateLimitedError,
    UnauthorizedError,
    UpstreamError,
)
from apiban.schemas import (
    FeedPage,
    IPAddress,
    Listing,
    default_start_timestamp,
    ensure_utc,
    host_network,
    parse_address,
)

from .base import Store

logger = logging.getLogger(__name__)

NO_MORE_DATA = "none"


class Outcome(StrEnum):
    PAGE = "page"
    END_OF_LIST = "end_of_list"
    NOT_BLOCKED = "not_blocked"
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    UPSTREAM_ERROR = "upstream_error"


@dataclass(frozen=True, slots=True)
class ResponseRule:
    """One row of the (status code, body marker) -> outcome table.

    ``None`` fields match anything.  ``cursor`` is compared with the body's
    ``ID`` and ``address`` with the first ``ipaddress`` entry.
    """

    outcome: Outcome
    statuses: frozenset[int] | None = None
    cursor: str | None = None
    address: str | None = None

    def matches(self, status_code: int, cursor: str, address: str) -> bool:
        if self.statuses is not None and status_code not in self.statuses:
            return False
        if self.cursor is not None and cursor != self.cursor:
            return False
        if self.address is not None and address != self.address:
            return False
        return True


# The feed reuses these codes for "not blocked" and "no new bans".
SENTINEL_STATUS_CODES = frozenset({400, 403, 404, 408})
CLIENT_ERROR_CODES = frozenset(range(400, 500))
SUCCESS_CODES = frozenset(range(200, 300))

DEFAULT_RESPONSE_RULES: tuple[ResponseRule, ...] = (
    ResponseRule(
        Outcome.NOT_BLOCKED,
        statuses=frozenset({200}) | SENTINEL_STATUS_CODES,
        address="not blocked",
    ),
    ResponseRule(Outcome.END_OF_LIST, statuses=frozenset({200}), cursor=NO_MORE_DATA),
    ResponseRule(
        Outcome.END_OF_LIST,
        statuses=SENTINEL_STATUS_CODES,
        cursor=NO_MORE_DATA,
        address="no new bans",
    ),
    ResponseRule(Outcome.UNAUTHORIZED, statuses=CLIENT_ERROR_CODES, cursor="unauthorized"),
    ResponseRule(
        Outcome.RATE_LIMITED,
        statuses=CLIENT_ERROR_CODES,
        address="rate limit exceeded",
    ),
    ResponseRule(Outcome.UNAUTHORIZED, statuses=frozenset({401})),
    ResponseRule(Outcome.RATE_LIMITED, statuses=frozenset({429})),
    ResponseRule(Outcome.PAGE, statuses=SUCCESS_CODES),
)


def classify_response(
    status_code: int,
    payload: object,
    rules: Sequence[ResponseRule] = DEFAULT_RESPONSE_RULES,
) -> Outcome:
    cursor, address = _body_markers(payload)
    for rule in rules:
        if rule.matches(status_code, cursor, address):
            return rule.outcome
    return Outcome.UPSTREAM_ERROR


class OfficialStore(Store):
    """Read-only Store backed by the apiban.org v1 HTTP API.

    Holds no listing state: every call goes to the network.
    """

    def __init__(
        self,
        api_key: str,
        *,
        root_url: str = DEFAULT_ROOT_URL,
        session: requests.Session | None = None,
        timeout_seconds: float = 10.0,
        rules: Sequence[ResponseRule] = DEFAULT_RESPONSE_RULES,
    ) -> None:
        if not (api_key or "").strip():
            raise InvalidInputError("API key is required")
        if not root_url.strip():
            raise ValueError("root_url must not be empty")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")

        self.api_key = api_key.strip()
        self.root_url = root_url.strip().rstrip("/")
        self.session = session or requests.Session()
        self.timeout_seconds = timeout_seconds
        self.rules = tuple(rules)

        self.session.headers.setdefault("User-Agent", "apiban-python/0.1.0")

    def check(self, address: str | IPAddress) -> bool:
        return self.exists(address) is not None

    def exists(self, address: str | IPAddress) -> Listing | None:
        ip = parse_address(address)
        url = self._url("check", str(ip))
        outcome, page, status_code = self._query(url, endpoint="check")

        if outcome is Outcome.NOT_BLOCKED:
            return None
        if page is None or not self._names_address(page, ip):
            raise UpstreamError(
                f"unrecognized check response ({status_code}) from apiban.org for {url!r}",
                status_code=status_code,
                url=url,
            )

        network = host_network(ip)
        return Listing(
            id=str(network),
            timestamp=_cursor_to_timestamp(page.cursor),
            network=network,
        )

    def banned(self, start_from: str | None = None) -> list[Listing]:
        start: datetime | None = None
        if start_from:
            try:
                start = datetime.fromtimestamp(int(start_from), tz=UTC)
            except (OverflowError, OSError, ValueError) as exc:
                raise InvalidInputError(
                    f"failed to parse start_from timestamp {start_from!r}"
                ) from exc
        return self.list_from_time(start)

    def list(self) -> list[Listing]:
        return self.list_from_time(default_start_timestamp())

    def list_from_time(self, t: datetime | None) -> list[Listing]:
        cursor = DEFAULT_START_ID if t is None else _timestamp_to_cursor(t)
        out: list[Listing] = []
        pages = 0

        while True:
            url = self._url("banned", cursor)
            outcome, page, _ = self._query(url, endpoint="banned")

            if outcome is Outcome.END_OF_LIST:
                break
            if outcome is Outcome.NOT_BLOCKED or page is None:
                raise ProtocolError(f"unexpected {outcome} response while paging {url!r}")
            if not page.cursor:
                raise ProtocolError("empty cursor received")

            timestamp = _cursor_to_timestamp(page.cursor)
            if int(page.cursor) <= int(cursor):
                raise ProtocolError(
                    f"cursor did not advance from {cursor!r} to {page.cursor!r}"
                )

            out.extend(self._page_listings(page, timestamp))
            cursor = page.cursor
            pages += 1

        logger.info("apiban banned pages=%d listings=%d cursor=%s", pages, len(out), cursor)
        return out

    def _url(self, endpoint: str, value: str) -> str:
        return f"{self.root_url}/{self.api_key}/{endpoint}/{value}"

    def _query(
        self, url: str, *, endpoint: str
    ) -> tuple[Outcome, FeedPage | None, int]:
        try:
            response = self.session.get(url, timeout=self.timeout_seconds)
        except requests.RequestException as exc:
            raise UpstreamError(
                f"query error from apiban.org: {exc}",
                url=url,
            ) from exc

        payload = _json_or_none(response)
        outcome = classify_response(response.status_code, payload, self.rules)
        reason = str(getattr(response, "reason", "") or "")
        logger.debug(
            "apiban response endpoint=%s status=%s outcome=%s",
            endpoint,
            response.status_code,
            outcome,
        )

        if outcome is Outcome.UNAUTHORIZED:
            raise UnauthorizedError(
                f"unauthorized ({response.status_code}) from apiban.org: {reason}",
                status_code=response.status_code,
                reason=reason,
                url=url,
            )
        if outcome is Outcome.RATE_LIMITED:
            raise RateLimitedError(
                f"rate limit exceeded ({response.status_code}) from apiban.org: {reason}",
                status_code=response.status_code,
                reason=reason,
                url=url,
            )
        if outcome is Outcome.UPSTREAM_ERROR:
            raise UpstreamError(
                f"{_error_kind(response.status_code)} ({response.status_code}) "
                f"from apiban.org: {reason} from {url!r}",
                status_code=response.status_code,
                reason=reason,
                url=url,
            )
        if outcome is not Outcome.PAGE:
            return outcome, None, response.status_code

        if payload is None:
            raise ProtocolError(f"failed to decode server response from {url!r}")
        try:
            return outcome, FeedPage.model_validate(payload), response.status_code
        except ValidationError as exc:
            raise ProtocolError(f"failed to decode server response: {exc}") from exc

    @staticmethod
    def _page_listings(page: FeedPage, timestamp: datetime) -> list[Listing]:
        listings: list[Listing] = []
        for raw in page.addresses:
            try:
                network = host_network(raw)
            except InvalidInputError:
                logger.warning("skipping unparsable address=%r cursor=%s", raw, page.cursor)
                continue
            if network.network_address.is_unspecified:
                logger.warning("skipping unspecified address=%r cursor=%s", raw, page.cursor)
                continue
            listings.append(Listing(id=str(network), timestamp=timestamp, network=network))
        return listings

    @staticmethod
    def _names_address(page: FeedPage, ip: IPAddress) -> bool:
        for raw in page.addresses:
            try:
                if parse_address(raw) == ip:
                    return True
            except InvalidInputError:
                continue
        return False


def banned(key: str, start_from: str | None = None, **kwargs: Any) -> list[Listing]:
    """Return every listing since ``start_from`` (a decimal Unix timestamp).

    Without ``start_from`` the whole history the feed is willing to serve is pulled.
    """
    return OfficialStore(key, **kwargs).banned(start_from)


def check(key: str, address: str, **kwargs: Any) -> bool:
    """Return ``True`` if apiban.org currently lists ``address``."""
    return OfficialStore(key, **kwargs).check(address)


def _timestamp_to_cursor(t: datetime) -> str:
    return str(int(ensure_utc(t).timestamp()))


def _cursor_to_timestamp(cursor: str) -> datetime:
    if not cursor.isdecimal():
        raise ProtocolError(f"failed to parse cursor {cursor!r} as timestamp")
    try:
        return datetime.fromtimestamp(int(cursor), tz=UTC)
    except (OverflowError, OSError, ValueError) as exc:
        raise ProtocolError(f"failed to parse cursor {cursor!r} as timestamp") from exc


def _json_or_none(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _body_markers(payload: object) -> tuple[str, str]:
    if not isinstance(payload, dict):
        return "", ""
    cursor = payload.get("ID")
    addresses = payload.get("ipaddress")
    first = addresses[0] if isinstance(addresses, list) and addresses else addresses
    return (
        cursor.strip() if isinstance(cursor, str) else "",
        first.strip() if isinstance(first, str) else "",
    )


def _error_kind(status_code: int) -> str:
    if 400 <= status_code < 500:
        return "client error"
    if status_code >= 500:
        return "server error"
    return "unhandled error"
