from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path


def utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def safe_text(value: object) -> str:
    """Text that always encodes as UTF-8; undecodable filename bytes become \\xNN."""
    text = str(value)
    try:
        return os.fsencode(text).decode("utf-8", "backslashreplace")
    except UnicodeEncodeError:
        return text.encode("utf-8", "backslashreplace").decode("utf-8")


def is_valid_text(value: str) -> bool:
    try:
        value.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


@dataclass(frozen=True)
class UnitDescriptor:
    name: str
    source_path: Path
    tier: str


@dataclass(frozen=True)
class ManagedLink:
    name: str
    link_path: Path
    resolved_target: Path  # link target, one level deep, made absolute

    def target_exists(self) -> bool:
        return self.resolved_target.is_file()


@dataclass
class DesiredScan:
    units: dict[str, UnitDescriptor] = field(default_factory=dict)
    # name -> descriptors hidden by a later tier
    shadowed: dict[str, list[UnitDescriptor]] = field(default_factory=dict)


@dataclass(frozen=True)
class ReconciliationPlan:
    to_create: frozenset[str] = frozenset()
    to_update: frozenset[str] = frozenset()
    to_remove: frozenset[str] = frozenset()
    # structurally owned but not in the registry; only filled in strict mode
    unowned: frozenset[str] = frozenset()

    def is_empty(self) -> bool:
        return not (self.to_create or self.to_update or self.to_remove)

    def action_count(self) -> int:
        return len(self.to_create) + len(self.to_update) + len(self.to_remove)


class Outcome(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass(frozen=True)
class CommandResult:
    outcome: Outcome
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.OK


class LoopState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    PLANNING = "planning"
    APPLYING = "applying"
    RELOADING = "reloading"


class WakeReason(str, Enum):
    INITIAL = "initial"
    EVENT = "event"
    TIMEOUT = "timeout"
    MANUAL = "manual"
    INTERRUPTED = "interrupted"


@dataclass
class PassResult:
    trigger: str
    plan: ReconciliationPlan = field(default_factory=ReconciliationPlan)
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    conflicts: list[str] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)  # name -> reason
    stop_results: dict[str, CommandResult] = field(default_factory=dict)
    reload: CommandResult | None = None
    started: list[str] = field(default_factory=list)
    start_failures: dict[str, str] = field(default_factory=dict)
    error: str | None = None
    started_at: str = field(default_factory=utc_now)
    finished_at: str | None = None

    @property
    def changed(self) -> bool:
        return bool(self.created or self.updated or self.removed)

    @property
    def reload_failed(self) -> bool:
        return self.reload is not None and not self.reload.ok

    @property
    def ok(self) -> bool:
        return not (self.error or self.reload_failed or self.failures or self.start_failures)

    def summary(self) -> str:
        if self.error:
            return f"Pass failed: {self.error}"
        if self.ok and not self.changed and not self.conflicts:
            return "No changes detected"
        parts = [
            f"{len(self.created)} added",
            f"{len(self.updated)} updated",
            f"{len(self.removed)} removed",
        ]
        if self.conflicts:
            parts.append(f"{len(self.conflicts)} conflicts")
        if self.failures:
            parts.append(f"{len(self.failures)} failed")
        if self.start_failures:
            parts.append(f"{len(self.start_failures)} failed to start")
        if self.reload_failed:
            parts.append("reload failed")
        return ", ".join(parts)
