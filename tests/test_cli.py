import json
import logging
from pathlib import Path

import pytest

from messente_client import cli
from messente_client.sms_api_caller import create_client

from conftest import FakeSession, make_response


@pytest.fixture(autouse=True)
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def config_path(tmp_path: Path, monkeypatch) -> str:
    monkeypatch.delenv("MESSENTE_USERNAME", raising=False)
    monkeypatch.delenv("MESSENTE_PASSWORD", raising=False)
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"username": "user", "password": "secret"}), encoding="utf-8")
    return str(path)


@pytest.fixture
def gateway(monkeypatch):
    """Route the CLI's clients through a fake session answering from `replies`"""
    replies = {}

    def handler(url, data):
        action = url.rstrip("/").rsplit("/", 1)[-1]
        return replies[action](data)

    session = FakeSession(handler)
    monkeypatch.setattr(cli, "create_client", lambda config: create_client(config, session=session))
    return replies, session


def run(*argv):
    return cli.main(["--log-level", "WARNING", *argv])


def test_init_writes_config(tmp_path: Path, capsys):
    config_dir = tmp_path / "messente"
    assert run("init", "--config-dir", str(config_dir), "--username", "user", "--password", "secret") == 0

    data = json.loads((config_dir / "config.json").read_text())
    assert data == {"username": "user", "password": "secret", "secure": True}

    assert run("init", "--config-dir", str(config_dir), "--username", "x", "--password", "y") == 1
    assert "--force" in capsys.readouterr().out

    assert run("init", "--config-dir", str(config_dir), "--username", "x", "--password", "y", "--force") == 0
    assert json.loads((config_dir / "config.json").read_text())["username"] == "x"


def test_send(config_path, gateway, capsys):
    replies, session = gateway
    replies["send_sms"] = lambda data: make_response("OK 9" if data["to"] == "+1" else "ERROR 111")

    assert run("send", "Hello!", "--to", "+1", "--config", config_path) == 0
    assert "+1: sent, message ID 9" in capsys.readouterr().out

    assert run("send", "Hello!", "--to", "+1", "--to", "+2", "--from", "Bad!", "--config", config_path) == 1
    captured = capsys.readouterr()
    assert "+1: sent" in captured.out
    assert "Sender parameter from is invalid." in captured.err
    assert session.calls[-1]["data"]["from"] == "Bad!"


def test_send_without_recipient(config_path, gateway, capsys):
    assert run("send", "Hello!", "--config", config_path) == 1
    assert "no recipient" in capsys.readouterr().err


def test_send_rejects_bad_time(config_path):
    with pytest.raises(SystemExit):
        run("send", "Hello!", "--to", "+1", "--at", "tomorrow", "--config", config_path)


def test_report(config_path, gateway, capsys):
    replies, _ = gateway
    replies["get_dlr_response"] = lambda data: make_response("OK DELIVERED")

    assert run("report", "m1", "m2", "--config", config_path) == 0
    out = capsys.readouterr().out
    assert "m1: DELIVERED" in out
    assert "m2: DELIVERED" in out


def test_balance(config_path, gateway, capsys):
    replies, session = gateway
    replies["get_balance"] = lambda data: make_response("OK 12.5")

    assert run("balance", "--config", config_path, "--insecure") == 0
    assert capsys.readouterr().out.strip() == "12.50 EUR"
    assert session.calls[0]["url"].startswith("http://")


def test_balance_error(config_path, gateway, capsys):
    replies, _ = gateway
    replies["get_balance"] = lambda data: make_response("ERROR 208")

    assert run("balance", "--config", config_path) == 1
    assert "balance undetermined" in capsys.readouterr().err


def test_prices(config_path, gateway, capsys):
    replies, _ = gateway
    replies["prices"] = lambda data: make_response("EE,Estonia,0.05\n", "text/csv")
    replies["pricelist"] = lambda data: make_response('{"EE": 0.05}', "application/json")

    assert run("prices", "--country", "EE", "--format", "csv", "--config", config_path) == 0
    assert capsys.readouterr().out.strip() == "EE,Estonia,0.05"

    assert run("prices", "--config", config_path) == 0
    assert json.loads(capsys.readouterr().out) == {"EE": 0.05}
