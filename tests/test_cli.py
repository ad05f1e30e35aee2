import json
import os
from dataclasses import replace

import pytest
import requests

import cli
from qsr.models import CommandResult, Outcome


def _which(binary):
    return f"/usr/bin/{binary}"


def test_once_reconciles_and_exits_zero(settings, supervisor, write_unit, capsys):
    src = write_unit("web")

    code = cli.main(["--once"], settings=settings, supervisor=supervisor, which=_which)

    assert code == 0
    assert os.readlink(settings.target_dir / "web.container") == str(src)
    assert "1 added" in capsys.readouterr().out


def test_once_reports_failed_pass(settings, supervisor, write_unit):
    write_unit("web")
    supervisor.reload_result = CommandResult(Outcome.FAILED, "boom")

    assert cli.main(["--once"], settings=settings, supervisor=supervisor, which=_which) == 2


def test_missing_binary_exits_one(settings, supervisor, capsys):
    code = cli.main(["--once"], settings=settings, supervisor=supervisor, which=lambda b: None if b == "podman" else _which(b))

    assert code == 1
    assert "podman is not installed" in capsys.readouterr().err


def test_missing_source_tree_exits_one(settings, supervisor, tmp_path, capsys):
    missing = replace(settings, source_root=tmp_path / "nope")

    assert cli.main(["--status"], settings=missing, supervisor=supervisor, which=_which) == 1
    assert "gitops directory not found" in capsys.readouterr().err


def test_status_text_and_json(settings, supervisor, write_unit, capsys):
    write_unit("web")

    assert cli.main(["--status"], settings=settings, supervisor=supervisor, which=_which) == 0
    assert "--- Desired State (gitops) ---" in capsys.readouterr().out

    assert cli.main(["--status", "--json"], settings=settings, supervisor=supervisor, which=_which) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["desired"][0]["name"] == "web"
    assert list(settings.target_dir.iterdir()) == []


def test_modes_are_exclusive(settings):
    with pytest.raises(SystemExit):
        cli.main(["--once", "--status"], settings=settings)


def test_watch_is_default_and_stops_cleanly(settings, supervisor, write_unit, monkeypatch):
    write_unit("web")
    seen = {}

    def fake_run_forever(self, max_cycles=None):
        seen["pass"] = self.run_pass("initial")
        raise KeyboardInterrupt

    monkeypatch.setattr(cli.Reconciler, "run_forever", fake_run_forever)
    monkeypatch.setattr(cli.signal, "signal", lambda *a: None)

    assert cli.main([], settings=settings, supervisor=supervisor, which=_which) == 0
    assert seen["pass"].created == ["web"]


class _Resp:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self.ok = status_code < 400
        self._payload = payload

    def json(self):
        return self._payload


def test_remote_status(settings, monkeypatch, capsys):
    payload = {
        "source_root": "/g",
        "target_dir": "/q",
        "strict_ownership": False,
        "revision": 3,
        "desired": [{"name": "web", "tier": "system", "source_path": "/g/system/web.container", "shadowed": []}],
        "target": [
            {
                "name": "web",
                "filename": "web.container",
                "status": "active",
                "is_symlink": True,
                "link_target": "/g/system/web.container",
                "managed": True,
                "registered": True,
            }
        ],
    }
    calls = []

    def fake_get(url, auth=None, timeout=None):
        calls.append(url)
        return _Resp(200, payload)

    monkeypatch.setattr(cli.requests, "get", fake_get)

    assert cli.main(["--status", "--api", "http://node:8000/"], settings=settings) == 0
    out = capsys.readouterr().out
    assert calls == ["http://node:8000/status"]
    assert "web.container [active] -> /g/system/web.container" in out


def test_remote_status_unreachable(settings, monkeypatch):
    def fake_get(url, auth=None, timeout=None):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(cli.requests, "get", fake_get)

    assert cli.main(["--status", "--api", "http://node:8000"], settings=settings) == 1
