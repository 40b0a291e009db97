"""apiban: cache-backed access to the APIBAN.org IP blocklist."""

from .config import AppConfig, load_config, save_config
from .errors import (
    ApibanError,
    InvalidInputError,
    ProtocolError,
    RateLimitedError,
    UnauthorizedError,
    UnsupportedOperationError,
    UpstreamError,
)
from .schemas import Listing
from .store import OfficialStore, RAMCacheStore, Store

__all__ = [
    "ApibanError",
    "AppConfig",
    "InvalidInputError",
    "Listing",
    "OfficialStore",
    "ProtocolError",
    "RAMCacheStore",
    "RateLimitedError",
    "Store",
    "UnauthorizedError",
    "UnsupportedOperationError",
    "UpstreamError",
    "load_config",
    "save_config",
]
