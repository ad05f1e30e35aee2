import sys
from pathlib import Path

import pytest

# Ensure project root is importable (so `import cli` works reliably across environments)
import os as _os
_project_root = _os.path.dirname(_os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from qsr.db import Store  # noqa: E402
from qsr.models import CommandResult, Outcome  # noqa: E402
from qsr.settings import Settings  # noqa: E402


class FakeSupervisor:
    """In-memory stand-in for systemctl --user."""

    def __init__(self):
        self.active: set[str] = set()
        self.calls: list[tuple[str, ...]] = []
        self.reload_result = CommandResult(Outcome.OK)
        self.start_failures: set[str] = set()
        self.stop_outcomes: dict[str, CommandResult] = {}

    def reload(self):
        self.calls.append(("reload",))
        return self.reload_result

    def status(self, unit):
        self.calls.append(("status", unit))
        return "active" if unit in self.active else "inactive"

    def is_active(self, unit):
        return self.status(unit) == "active"

    def start(self, unit):
        self.calls.append(("start", unit))
        if unit in self.start_failures:
            return CommandResult(Outcome.FAILED, "Job failed")
        self.active.add(unit)
        return CommandResult(Outcome.OK)

    def stop(self, unit):
        self.calls.append(("stop", unit))
        if unit in self.stop_outcomes:
            return self.stop_outcomes[unit]
        if unit not in self.active:
            return CommandResult(Outcome.NOT_FOUND, "Unit not loaded")
        self.active.discard(unit)
        return CommandResult(Outcome.OK)

    def commands(self, verb):
        return [c[1] if len(c) > 1 else None for c in self.calls if c[0] == verb]


class FakeSource:
    """Synthetic watch source: events are queued by the test."""

    def __init__(self):
        self.pending = 0
        self.waits: list[float] = []
        self.drained = 0
        self.interrupted = False

    def push(self, n=1):
        self.pending += n

    def wait(self, timeout):
        self.waits.append(timeout)
        return self.pending > 0

    def drain(self):
        n, self.pending = self.pending, 0
        self.drained += n
        return n

    def interrupt(self):
        self.interrupted = True

    def close(self):
        pass


@pytest.fixture
def settings(tmp_path):
    s = Settings(
        source_root=tmp_path / "gitops",
        target_dir=tmp_path / "quadlet",
        db_path=tmp_path / "state" / "qsr.db",
        debounce_s=0.0,
    )
    for tier in s.tiers:
        (s.source_root / tier).mkdir(parents=True)
    s.target_dir.mkdir(parents=True)
    return s


@pytest.fixture
def store(settings):
    st = Store(settings.db_path, echo=False)
    st.init_db()
    return st


@pytest.fixture
def supervisor():
    return FakeSupervisor()


@pytest.fixture
def write_unit(settings):
    def _write(name, tier="system", content="[Container]\nImage=docker.io/library/nginx\n") -> Path:
        path = settings.source_root / tier / f"{name}{settings.descriptor_suffix}"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        return path

    return _write


@pytest.fixture
def source():
    return FakeSource()
