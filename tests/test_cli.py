import json

import pytest
from typer.testing import CliRunner

from tvremote.cli import commands as cli
from tvremote.cli.commands import app
from tvremote.config.schema import Config
from tvremote.protocol import TransportMode
from tvremote.session import SessionOrchestrator
from tvremote.storage import MemoryCredentialStore
from tvremote.transport import MockTV

runner = CliRunner()
ADDRESS = "10.0.0.5"


@pytest.fixture
def tv(monkeypatch, tmp_path):  # type: ignore[no-untyped-def]
    device = MockTV(ADDRESS, pin="482913", responses={"ssap://audio/getVolume": {"returnValue": True, "volume": 11}})
    store = MemoryCredentialStore()
    monkeypatch.setenv("TVREMOTE_CONFIG", str(tmp_path / "missing.json"))
    monkeypatch.setattr(cli, "_make_store", lambda config: store)

    def make_orchestrator(config: Config) -> SessionOrchestrator:
        return SessionOrchestrator(store, config=config.tv, connector=device.connect)

    monkeypatch.setattr(cli, "_make_orchestrator", make_orchestrator)
    device.store = store  # type: ignore[attr-defined]
    return device


def test_version() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert "tvremote v" in result.stdout


def test_connect_with_pin_option_pairs(tv) -> None:  # type: ignore[no-untyped-def]
    result = runner.invoke(app, ["connect", ADDRESS, "--pin", "482913"])

    assert result.exit_code == 0
    assert f"Paired with {ADDRESS} (secure)" in result.stdout
    record = tv.store.get(ADDRESS)
    assert record is not None
    assert record.secret == tv.issued_keys[-1]


def test_connect_prompts_for_pin(tv) -> None:  # type: ignore[no-untyped-def]
    result = runner.invoke(app, ["connect", ADDRESS], input="482913\n")

    assert result.exit_code == 0
    assert "Paired with" in result.stdout


def test_connect_with_wrong_pin_fails(tv) -> None:  # type: ignore[no-untyped-def]
    result = runner.invoke(app, ["connect", ADDRESS, "--pin", "000000"])

    assert result.exit_code == 1
    assert "invalid_pin" in result.stdout
    assert tv.store.get(ADDRESS) is None


def test_connect_with_unknown_mode_fails_cleanly(tv) -> None:  # type: ignore[no-untyped-def]
    result = runner.invoke(app, ["connect", ADDRESS, "--mode", "bogus"])

    assert result.exit_code == 1
    assert "invalid_transport_mode" in result.stdout
    assert tv.connect_attempts == []


def test_commands_reconnect_with_stored_credentials(tv) -> None:  # type: ignore[no-untyped-def]
    tv.valid_keys.add("known-key")
    tv.store.upsert(ADDRESS, "known-key", TransportMode.SECURE)

    volume = runner.invoke(app, ["volume"])
    button = runner.invoke(app, ["button", "ok"])
    status = runner.invoke(app, ["status"])

    assert volume.exit_code == 0
    assert '"volume": 11' in volume.stdout
    assert button.exit_code == 0
    assert tv.buttons == ["ENTER"]
    assert status.exit_code == 0
    assert f"Connected to {ADDRESS}" in status.stdout


def test_commands_without_stored_device_fail(tv) -> None:  # type: ignore[no-untyped-def]
    result = runner.invoke(app, ["volume", "up"])
    status = runner.invoke(app, ["status"])

    assert result.exit_code == 1
    assert "no_stored_device" in result.stdout
    assert "Not connected" in status.stdout


def test_send_validates_payload(tv) -> None:  # type: ignore[no-untyped-def]
    bad = runner.invoke(app, ["send", "ssap://audio/setVolume", "--payload", "{oops"])
    not_object = runner.invoke(app, ["send", "ssap://audio/setVolume", "--payload", "[1]"])

    assert bad.exit_code == 2
    assert "Invalid JSON payload" in bad.stdout
    assert not_object.exit_code == 2


def test_send_raw_request(tv) -> None:  # type: ignore[no-untyped-def]
    tv.valid_keys.add("known-key")
    tv.store.upsert(ADDRESS, "known-key", TransportMode.SECURE)

    result = runner.invoke(app, ["send", "ssap://audio/setVolume", "--payload", json.dumps({"volume": 5})])

    assert result.exit_code == 0
    assert tv.requests[-1]["payload"] == {"volume": 5}


def test_volume_rejects_unknown_operation(tv) -> None:  # type: ignore[no-untyped-def]
    result = runner.invoke(app, ["volume", "louder"])

    assert result.exit_code == 2


def test_credentials_list_and_forget(tv) -> None:  # type: ignore[no-untyped-def]
    tv.store.upsert(ADDRESS, "0123456789abcdef", TransportMode.INSECURE)

    listed = runner.invoke(app, ["credentials", "list"])
    forgot = runner.invoke(app, ["credentials", "forget", ADDRESS])
    again = runner.invoke(app, ["credentials", "forget", ADDRESS])

    assert listed.exit_code == 0
    assert ADDRESS in listed.stdout
    assert "0123456789abcdef" not in listed.stdout
    assert forgot.exit_code == 0
    assert tv.store.get(ADDRESS) is None
    assert again.exit_code == 1


def test_config_check_passes_for_valid_config(tmp_path) -> None:  # type: ignore[no-untyped-def]
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"tv": {"transportMode": "secure", "pairingTimeoutSeconds": 45}}))

    result = runner.invoke(app, ["config", "check", "--config", str(config_path)])

    assert result.exit_code == 0
    assert "Config validation passed" in result.stdout
    assert "mode=secure" in result.stdout


def test_config_check_fails_when_missing(tmp_path) -> None:  # type: ignore[no-untyped-def]
    result = runner.invoke(app, ["config", "check", "--config", str(tmp_path / "missing.json")])

    assert result.exit_code == 2
    assert "Config file not found" in result.stdout


def test_config_check_fails_on_bad_types(tmp_path) -> None:  # type: ignore[no-untyped-def]
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"tv": {"securePort": "not-a-port"}}))

    result = runner.invoke(app, ["config", "check", "--config", str(config_path)])

    assert result.exit_code == 1
    assert "Schema validation failed" in result.stdout
