from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field

from .db import Store
from .models import safe_text
from .scanner import scan_actual, scan_desired, unit_name
from .settings import Settings
from .supervisor import Supervisor


@dataclass(frozen=True)
class DesiredEntry:
    name: str
    tier: str
    source_path: str
    shadowed: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class TargetEntry:
    name: str
    filename: str
    status: str
    is_symlink: bool
    link_target: str | None
    managed: bool
    registered: bool


@dataclass(frozen=True)
class StatusReport:
    source_root: str
    target_dir: str
    strict_ownership: bool
    revision: int
    desired: list[DesiredEntry]
    target: list[TargetEntry]

    @property
    def managed(self) -> list[TargetEntry]:
        return [t for t in self.target if t.managed]

    def to_dict(self) -> dict:
        return asdict(self)


def build_status(settings: Settings, supervisor: Supervisor, store: Store) -> StatusReport:
    """Read-only view of desired state, target dir contents and live unit status."""
    desired_scan = scan_desired(settings)
    actual = scan_actual(settings)
    registered = store.registered_names()

    desired = [
        DesiredEntry(
            name=safe_text(d.name),
            tier=d.tier,
            source_path=safe_text(d.source_path),
            shadowed=[safe_text(s.source_path) for s in desired_scan.shadowed.get(d.name, [])],
        )
        for d in sorted(desired_scan.units.values(), key=lambda d: d.name)
    ]

    target: list[TargetEntry] = []
    if settings.target_dir.is_dir():
        for entry in sorted(settings.target_dir.iterdir()):
            if not entry.name.endswith(settings.descriptor_suffix):
                continue
            is_link = entry.is_symlink()
            if not is_link and not entry.is_file():
                continue
            name = unit_name(entry, settings.descriptor_suffix)
            try:
                status = supervisor.status(settings.service_name(name))
            except ValueError:
                status = "unknown"
            target.append(
                TargetEntry(
                    name=safe_text(name),
                    filename=safe_text(entry.name),
                    status=status,
                    is_symlink=is_link,
                    link_target=safe_text(os.readlink(entry)) if is_link else None,
                    managed=name in actual,
                    registered=name in registered,
                )
            )

    return StatusReport(
        source_root=safe_text(settings.source_root),
        target_dir=safe_text(settings.target_dir),
        strict_ownership=settings.strict_ownership,
        revision=store.revision(),
        desired=desired,
        target=target,
    )


def render_status(report: StatusReport) -> str:
    lines = [
        "=== QSR Status ===",
        "",
        f"Gitops dir:  {report.source_root}",
        f"Quadlet dir: {report.target_dir}",
        f"Registry:    revision {report.revision}, strict ownership {'on' if report.strict_ownership else 'off'}",
        "",
        "--- Desired State (gitops) ---",
    ]
    for d in report.desired:
        line = f"  {d.name} [{d.tier}]"
        if d.shadowed:
            line += f" (shadows {', '.join(d.shadowed)})"
        lines.append(line)

    lines += ["", "--- Actual State (systemd) ---"]
    for t in report.target:
        sym = f" -> {t.link_target}" if t.is_symlink else ""
        lines.append(f"  {t.filename} [{t.status}]{sym}")

    lines += ["", "--- Managed Symlinks ---"]
    for t in report.managed:
        mark = "" if t.registered else " (unregistered)"
        lines.append(f"  {t.filename} -> {t.link_target}{mark}")
    return "\n".join(lines)
