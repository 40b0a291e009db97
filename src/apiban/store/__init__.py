"""Blocklist stores: the upstream feed client and the RAM cache in front of it."""

from .base import Store
from .official import (
    DEFAULT_RESPONSE_RULES,
    OfficialStore,
    Outcome,
    ResponseRule,
    banned,
    check,
    classify_response,
)
from .ramcache import DEFAULT_MIN_UPSTREAM_CHECK_INTERVAL, RAMCacheStore

__all__ = [
    "DEFAULT_MIN_UPSTREAM_CHECK_INTERVAL",
    "DEFAULT_RESPONSE_RULES",
    "OfficialStore",
    "Outcome",
    "RAMCacheStore",
    "ResponseRule",
    "Store",
    "banned",
    "check",
    "classify_response",
]
