from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

DEFAULT_ROOT_URL = "https://apiban.org/api"
DEFAULT_START_ID = "100"


class ClientConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    root_url: str = DEFAULT_ROOT_URL
    timeout_seconds: float = Field(default=10.0, gt=0.0)

    @field_validator("root_url")
    @classmethod
    def validate_root_url(cls, value: str) -> str:
        normalized = value.strip().rstrip("/")
        if not normalized:
            raise ValueError("client.root_url must not be empty")
        return normalized


class CacheConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    min_upstream_check_interval_seconds: int = Field(default=180, ge=0)


class AppConfig(BaseModel):
    """Client configuration; accepts the original ``APIKEY``/``LKID``/``VERSION`` keys."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    api_key: str = Field(alias="APIKEY")
    last_known_id: str = Field(default=DEFAULT_START_ID, alias="LKID")
    version: str = Field(default="", alias="VERSION")
    client: ClientConfig = Field(default_factory=ClientConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)

    @field_validator("api_key")
    @classmethod
    def validate_api_key(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("APIKEY must not be empty")
        return normalized

    @field_validator("last_known_id", mode="before")
    @classmethod
    def default_last_known_id(cls, value: object) -> str:
        normalized = str(value or "").strip()
        return normalized or DEFAULT_START_ID


def load_config(path: str | Path) -> AppConfig:
    raw = Path(path).read_text(encoding="utf-8")
    payload = _parse_yaml_or_json(raw)
    try:
        return AppConfig.model_validate(payload)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc


def save_config(config: AppConfig, path: str | Path) -> None:
    payload = config.model_dump(mode="json", by_alias=True)
    Path(path).write_text(
        json.dumps(payload, ensure_ascii=False, indent=2) + "\n",
        encoding="utf-8",
    )


def _parse_yaml_or_json(raw: str) -> dict[str, Any]:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        parsed = _parse_yaml(raw)
    if not isinstance(parsed, dict):
        raise ValueError("Configuration root must be an object.")
    return parsed


def _parse_yaml(raw: str) -> dict[str, Any]:
    import yaml

    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ValueError("Configuration root must be an object.")
    return parsed
