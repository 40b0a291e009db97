from __future__ import annotations

from datetime import UTC, datetime, timedelta, timezone
from ipaddress import ip_address, ip_network

import pytest
from pydantic import ValidationError

from apiban.errors import InvalidInputError
from apiban.schemas import (
    FeedPage,
    Listing,
    default_start_timestamp,
    host_network,
    parse_address,
)


def test_listing_normalizes_timestamp_to_utc() -> None:
    naive = Listing(network="1.2.3.4/32", timestamp=datetime(2026, 1, 1, 9, 0))
    shifted = Listing(
        network="1.2.3.4/32",
        timestamp=datetime(2026, 1, 1, 18, 0, tzinfo=timezone(timedelta(hours=9))),
    )

    assert naive.timestamp == datetime(2026, 1, 1, 9, 0, tzinfo=UTC)
    assert shifted.timestamp == datetime(2026, 1, 1, 9, 0, tzinfo=UTC)


def test_listing_is_frozen_and_strict() -> None:
    listing = Listing(network="10.0.0.0/8")

    with pytest.raises(ValidationError):
        listing.id = "changed"  # type: ignore[misc]
    with pytest.raises(ValidationError):
        Listing(network="10.0.0.0/8", unexpected=True)  # type: ignore[call-arg]


def test_listing_contains_and_unspecified() -> None:
    listing = Listing(network="10.0.0.0/8")

    assert listing.contains(ip_address("10.1.2.3"))
    assert not listing.contains(ip_address("11.0.0.1"))
    assert not listing.contains(ip_address("::1"))
    assert Listing(network="0.0.0.0/32").is_unspecified


def test_feed_page_accepts_wire_shapes() -> None:
    page = FeedPage.model_validate({"ID": 150, "ipaddress": ["1.2.3.4"], "extra": 1})
    error_page = FeedPage.model_validate({"ipaddress": "rate limit exceeded"})

    assert page.cursor == "150"
    assert page.addresses == ["1.2.3.4"]
    assert error_page.cursor == ""
    assert error_page.addresses == ["rate limit exceeded"]


def test_host_network_expands_single_addresses() -> None:
    assert host_network("1.2.3.4") == ip_network("1.2.3.4/32")
    assert host_network("2001:db8::1") == ip_network("2001:db8::1/128")


@pytest.mark.parametrize("raw", ["", "   ", "foo.bar", "10.0.0.257"])
def test_parse_address_rejects_bad_input(raw: str) -> None:
    with pytest.raises(InvalidInputError):
        parse_address(raw)


def test_default_start_timestamp_is_one_year_back() -> None:
    now = datetime(2026, 10, 19, tzinfo=UTC)

    assert default_start_timestamp(now) == now - timedelta(days=365)
