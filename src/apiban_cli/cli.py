from __future__ import annotations

import json
import logging
from datetime import timedelta
from pathlib import Path

import typer

from apiban import load_config, save_config
from apiban.config import DEFAULT_START_ID, AppConfig
from apiban.errors import ApibanError
from apiban.schemas import Listing, now_utc
from apiban.store import OfficialStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)

app = typer.Typer(help="APIBAN client CLI")
debug_app = typer.Typer(help="Debug commands")
app.add_typer(debug_app, name="debug")

DEFAULT_CONFIG_PATH = Path("/usr/local/bin/apiban/config.json")


def _config_option() -> Path:
    return typer.Option(
        DEFAULT_CONFIG_PATH,
        "--config",
        help="Config file path (JSON or YAML).",
        exists=True,
        dir_okay=False,
        readable=True,
    )


@app.command("check")
def check_address(
    address: str = typer.Argument(..., help="IP address to look up."),
    config_path: Path = _config_option(),
) -> None:
    """Ask apiban.org whether a single address is blocked."""
    config = _load_config_or_exit(config_path)
    store = _build_store(config)
    try:
        blocked = store.check(address)
    except (ApibanError, ValueError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc

    typer.echo(f"{'blocked' if blocked else 'not blocked'} {address}")


@app.command("banned")
def banned_addresses(
    config_path: Path = _config_option(),
    full: bool = typer.Option(
        False,
        "--full",
        help="Ignore LKID and pull the whole list from the start of history.",
    ),
    update_config: bool = typer.Option(
        True,
        "--update-config/--no-update-config",
        help="Write the newest cursor back to LKID in the config file.",
    ),
    json_out: Path | None = typer.Option(
        None,
        "--json-out",
        help="Optional output path for the listings as JSON.",
    ),
) -> None:
    """Pull every listing since the last known ID and print one network per line."""
    config = _load_config_or_exit(config_path)
    start_from = DEFAULT_START_ID if full else config.last_known_id
    if full:
        logging.info("full pull requested, resetting LKID")

    store = _build_store(config)
    try:
        listings = store.banned(start_from)
    except (ApibanError, ValueError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc

    for listing in listings:
        typer.echo(str(listing.network))

    if json_out is not None:
        _write_json(json_out, listings)
        typer.echo(f"json_out={json_out}")

    if not listings:
        typer.echo(f"no new bans since LKID={start_from}")
        return

    newest = _newest_cursor(listings)
    typer.echo(f"listings={len(listings)} lkid={newest}")

    if update_config and newest != config.last_known_id:
        save_config(config.model_copy(update={"last_known_id": newest}), config_path)
        logging.info("updated LKID=%s config=%s", newest, config_path)


@app.command("list")
def list_addresses(
    config_path: Path = _config_option(),
    since_hours: int | None = typer.Option(
        None,
        "--since-hours",
        help="Only list entries newer than N hours (default: one year).",
        min=1,
    ),
) -> None:
    """List blocked networks with their timestamps."""
    config = _load_config_or_exit(config_path)
    store = _build_store(config)
    try:
        if since_hours is None:
            listings = store.list()
        else:
            listings = store.list_from_time(now_utc() - timedelta(hours=since_hours))
    except (ApibanError, ValueError) as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc

    for listing in listings:
        stamp = listing.timestamp.isoformat() if listing.timestamp else "-"
        typer.echo(f"{listing.network} {stamp}")
    typer.echo(f"total={len(listings)}")


@debug_app.command("config")
def debug_config(config_path: Path = _config_option()) -> None:
    """Validate the config file and print a redacted summary."""
    config = _load_config_or_exit(config_path)
    typer.echo(
        "config ok "
        f"lkid={config.last_known_id} "
        f"root_url={config.client.root_url} "
        f"interval={config.cache.min_upstream_check_interval_seconds}s "
        f"key={_redact(config.api_key)}"
    )


def _build_store(config: AppConfig) -> OfficialStore:
    return OfficialStore(
        config.api_key,
        root_url=config.client.root_url,
        timeout_seconds=config.client.timeout_seconds,
    )


def _load_config_or_exit(path: Path) -> AppConfig:
    try:
        return load_config(path)
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from exc


def _newest_cursor(listings: list[Listing]) -> str:
    stamps = [listing.timestamp for listing in listings if listing.timestamp is not None]
    return str(int(max(stamps).timestamp()))


def _write_json(path: Path, listings: list[Listing]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = [listing.model_dump(mode="json") for listing in listings]
    path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")


def _redact(secret: str) -> str:
    if len(secret) <= 4:
        return "****"
    return f"{secret[:2]}...{secret[-2:]}"


def main() -> None:
    """CLI entrypoint."""
    app()


if __name__ == "__main__":
    main()
