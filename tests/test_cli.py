from __future__ import annotations

import json

from typer.testing import CliRunner

import apiban_cli.cli as cli_module
from apiban.config import AppConfig
from apiban.store import OfficialStore
from apiban_cli.cli import app


class _FakeResponse:
    def __init__(self, *, status_code: int = 200, payload: dict[str, object]) -> None:
        self.status_code = status_code
        self.reason = "OK" if status_code == 200 else "Bad Request"
        self._payload = payload

    def json(self) -> dict[str, object]:
        return self._payload


class _FakeSession:
    def __init__(self, responses: list[_FakeResponse]) -> None:
        self.responses = list(responses)
        self.urls: list[str] = []
        self.headers: dict[str, str] = {}

    def get(self, url: str, *, timeout: float) -> _FakeResponse:
        _ = timeout
        self.urls.append(url)
        return self.responses.pop(0)


def _install_session(monkeypatch, session: _FakeSession) -> None:
    def _build_store(config: AppConfig) -> OfficialStore:
        return OfficialStore(
            config.api_key,
            root_url=config.client.root_url,
            session=session,  # type: ignore[arg-type]
        )

    monkeypatch.setattr(cli_module, "_build_store", _build_store)


def _write_config(tmp_path, **extra: object):
    path = tmp_path / "config.json"
    payload: dict[str, object] = {"APIKEY": "testKey", "LKID": "100", "VERSION": "0.7"}
    payload.update(extra)
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_cli_help() -> None:
    runner = CliRunner()
    result = runner.invoke(app, ["--help"])

    assert result.exit_code == 0
    assert "Usage:" in result.output


def test_check_reports_blocked_and_not_blocked(monkeypatch, tmp_path) -> None:
    session = _FakeSession(
        [
            _FakeResponse(payload={"ipaddress": ["1.2.3.251"], "ID": "987654321"}),
            _FakeResponse(
                status_code=400,
                payload={"ipaddress": ["not blocked"], "ID": "none"},
            ),
        ]
    )
    _install_session(monkeypatch, session)
    config_path = _write_config(tmp_path)
    runner = CliRunner()

    blocked = runner.invoke(app, ["check", "1.2.3.251", "--config", str(config_path)])
    clean = runner.invoke(app, ["check", "1.2.3.254", "--config", str(config_path)])

    assert blocked.exit_code == 0
    assert "blocked 1.2.3.251" in blocked.output
    assert clean.exit_code == 0
    assert "not blocked 1.2.3.254" in clean.output


def test_banned_prints_networks_and_updates_lkid(monkeypatch, tmp_path) -> None:
    session = _FakeSession(
        [
            _FakeResponse(payload={"ID": "1600000000", "ipaddress": ["1.2.3.251", "1.2.3.252"]}),
            _FakeResponse(payload={"ID": "none"}),
        ]
    )
    _install_session(monkeypatch, session)
    config_path = _write_config(tmp_path)
    json_out = tmp_path / "out" / "listings.json"

    result = CliRunner().invoke(
        app,
        ["banned", "--config", str(config_path), "--json-out", str(json_out)],
    )

    assert result.exit_code == 0
    assert "1.2.3.251/32" in result.output
    assert "1.2.3.252/32" in result.output
    assert "listings=2 lkid=1600000000" in result.output
    assert json.loads(config_path.read_text(encoding="utf-8"))["LKID"] == "1600000000"
    assert len(json.loads(json_out.read_text(encoding="utf-8"))) == 2
    assert session.urls[0].endswith("/testKey/banned/100")


def test_banned_without_new_data_leaves_config(monkeypatch, tmp_path) -> None:
    session = _FakeSession(
        [_FakeResponse(status_code=400, payload={"ID": "none", "ipaddress": ["no new bans"]})]
    )
    _install_session(monkeypatch, session)
    config_path = _write_config(tmp_path, LKID="1600000000")
    before = config_path.read_text(encoding="utf-8")

    result = CliRunner().invoke(app, ["banned", "--config", str(config_path)])

    assert result.exit_code == 0
    assert "no new bans since LKID=1600000000" in result.output
    assert config_path.read_text(encoding="utf-8") == before


def test_banned_without_new_data_writes_empty_json(monkeypatch, tmp_path) -> None:
    session = _FakeSession([_FakeResponse(payload={"ID": "none"})])
    _install_session(monkeypatch, session)
    config_path = _write_config(tmp_path)
    json_out = tmp_path / "out" / "listings.json"

    result = CliRunner().invoke(
        app,
        ["banned", "--config", str(config_path), "--json-out", str(json_out)],
    )

    assert result.exit_code == 0
    assert "no new bans since LKID=100" in result.output
    assert json.loads(json_out.read_text(encoding="utf-8")) == []
    assert json.loads(config_path.read_text(encoding="utf-8"))["LKID"] == "100"


def test_banned_unauthorized_exits_nonzero(monkeypatch, tmp_path) -> None:
    session = _FakeSession([_FakeResponse(status_code=401, payload={"ID": "unauthorized"})])
    _install_session(monkeypatch, session)
    config_path = _write_config(tmp_path)

    result = CliRunner().invoke(app, ["banned", "--full", "--config", str(config_path)])

    assert result.exit_code == 1
    assert "unauthorized" in result.output


def test_list_prints_listings(monkeypatch, tmp_path) -> None:
    session = _FakeSession(
        [
            _FakeResponse(payload={"ID": "4000000000", "ipaddress": ["5.6.7.8"]}),
            _FakeResponse(payload={"ID": "none"}),
        ]
    )
    _install_session(monkeypatch, session)
    config_path = _write_config(tmp_path)

    result = CliRunner().invoke(app, ["list", "--config", str(config_path), "--since-hours", "2"])

    assert result.exit_code == 0
    assert "5.6.7.8/32" in result.output
    assert "total=1" in result.output


def test_debug_config_redacts_key(tmp_path) -> None:
    config_path = _write_config(tmp_path, APIKEY="supersecretkey")

    result = CliRunner().invoke(app, ["debug", "config", "--config", str(config_path)])

    assert result.exit_code == 0
    assert "config ok" in result.output
    assert "supersecretkey" not in result.output


def test_invalid_config_exits_nonzero(tmp_path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"LKID": "100"}), encoding="utf-8")

    result = CliRunner().invoke(app, ["debug", "config", "--config", str(config_path)])

    assert result.exit_code == 1
