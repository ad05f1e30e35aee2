from __future__ import annotations

import re
import subprocess
from typing import Callable, Protocol

from .models import CommandResult, Outcome


UNIT_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9@_.\-:]{0,250}$")

# systemctl: "unit not loaded" / "no such unit"
_EXIT_NOT_FOUND = {4, 5}


def validate_unit_name(unit: str) -> None:
    # Keep unit names from being read as systemctl options.
    if not UNIT_NAME_RE.match(unit):
        raise ValueError(f"Invalid unit name: {unit!r}")


class Supervisor(Protocol):
    def reload(self) -> CommandResult: ...

    def status(self, unit: str) -> str: ...

    def is_active(self, unit: str) -> bool: ...

    def start(self, unit: str) -> CommandResult: ...

    def stop(self, unit: str) -> CommandResult: ...


Runner = Callable[..., subprocess.CompletedProcess]


class SystemctlSupervisor:
    """Talks to the user's systemd instance through ``systemctl --user``."""

    def __init__(self, binary: str = "systemctl", user: bool = True, runner: Runner = subprocess.run) -> None:
        self.binary = binary
        self.user = user
        self._run = runner

    def _cmd(self, *args: str) -> list[str]:
        cmd = [self.binary]
        if self.user:
            cmd.append("--user")
        cmd.extend(args)
        return cmd

    def _exec(self, *args: str) -> CommandResult:
        try:
            proc = self._run(self._cmd(*args), capture_output=True, text=True, check=False)
        except (FileNotFoundError, PermissionError) as e:
            return CommandResult(Outcome.FAILED, f"{type(e).__name__}: {e}")
        if proc.returncode == 0:
            return CommandResult(Outcome.OK)
        detail = (proc.stderr or proc.stdout or "").strip() or f"exit code {proc.returncode}"
        if proc.returncode in _EXIT_NOT_FOUND:
            return CommandResult(Outcome.NOT_FOUND, detail)
        return CommandResult(Outcome.FAILED, detail)

    def reload(self) -> CommandResult:
        return self._exec("daemon-reload")

    def status(self, unit: str) -> str:
        """Return the is-active state string (active, inactive, failed, ...)."""
        validate_unit_name(unit)
        try:
            proc = self._run(self._cmd("is-active", unit), capture_output=True, text=True, check=False)
        except (FileNotFoundError, PermissionError):
            return "unknown"
        state = (proc.stdout or "").strip().splitlines()
        return state[0] if state else "inactive"

    def is_active(self, unit: str) -> bool:
        return self.status(unit) == "active"

    def start(self, unit: str) -> CommandResult:
        validate_unit_name(unit)
        return self._exec("start", unit)

    def stop(self, unit: str) -> CommandResult:
        validate_unit_name(unit)
        return self._exec("stop", unit)
