from __future__ import annotations

from datetime import UTC, datetime, timedelta
from ipaddress import IPv4Address, IPv4Network, IPv6Address, IPv6Network, ip_address, ip_network

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import InvalidInputError

IPNetwork = IPv4Network | IPv6Network
IPAddress = IPv4Address | IPv6Address

DEFAULT_HISTORY_WINDOW = timedelta(days=365)


def now_utc() -> datetime:
    return datetime.now(tz=UTC)


def ensure_utc(value: datetime) -> datetime:
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def default_start_timestamp(now: datetime | None = None) -> datetime:
    """Return the point one year before ``now`` used as the default history start."""
    return ensure_utc(now or now_utc()) - DEFAULT_HISTORY_WINDOW


def parse_address(value: str | IPAddress) -> IPAddress:
    if isinstance(value, IPv4Address | IPv6Address):
        return value
    normalized = str(value or "").strip()
    if not normalized:
        raise InvalidInputError("IP address is required")
    try:
        return ip_address(normalized)
    except ValueError as exc:
        raise InvalidInputError(f"invalid IP address: {normalized!r}") from exc


def host_network(value: str | IPAddress) -> IPNetwork:
    """Expand a single address into its host network (/32 for IPv4, /128 for IPv6)."""
    return ip_network(parse_address(value))


class DTOBase(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class Listing(DTOBase):
    """One blocked address or subnet.

    ``id`` and ``timestamp`` may be left empty when handing a listing to
    ``Store.add``; the store fills them in.
    """

    id: str = ""
    timestamp: datetime | None = None
    network: IPNetwork

    @field_validator("timestamp", mode="after")
    @classmethod
    def validate_timestamp(cls, value: datetime | None) -> datetime | None:
        if value is None:
            return None
        return ensure_utc(value)

    @property
    def is_unspecified(self) -> bool:
        return self.network.network_address.is_unspecified

    def contains(self, address: IPAddress) -> bool:
        return address in self.network


class FeedPage(BaseModel):
    """One page of the upstream feed: ``{"ID": ..., "ipaddress": [...]}``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    cursor: str = Field(default="", alias="ID")
    addresses: list[str] = Field(default_factory=list, alias="ipaddress")

    @field_validator("cursor", mode="before")
    @classmethod
    def normalize_cursor(cls, value: object) -> str:
        if value is None:
            return ""
        return str(value).strip()

    @field_validator("addresses", mode="before")
    @classmethod
    def normalize_addresses(cls, value: object) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value  # type: ignore[return-value]
