from __future__ import annotations

from pathlib import Path
from typing import Mapping

from .db import Store
from .models import ManagedLink, Outcome, PassResult, ReconciliationPlan, UnitDescriptor, is_valid_text, safe_text
from .settings import Settings
from .supervisor import Supervisor


class Applier:
    """Executes a reconciliation plan against the target dir and the supervisor.

    Failures are isolated per unit: a unit that cannot be linked, stopped or
    started is recorded on the pass result and the remaining units proceed.
    """

    def __init__(self, settings: Settings, supervisor: Supervisor, store: Store) -> None:
        self.settings = settings
        self.supervisor = supervisor
        self.store = store

    def apply(
        self,
        plan: ReconciliationPlan,
        desired: Mapping[str, UnitDescriptor],
        actual: Mapping[str, ManagedLink],
        result: PassResult,
    ) -> None:
        for name in sorted(plan.unowned):
            self.store.log_event("WARN", f"SKIP {name} (managed link not in registry)", unit=name)
            result.conflicts.append(name)

        for name in sorted(plan.to_create | plan.to_update):
            try:
                self._link(name, desired[name], updating=name in plan.to_update, result=result)
            except Exception as e:
                self._unit_failed(name, "link", e, result)

        for name in sorted(plan.to_remove):
            try:
                self._remove(actual[name], result)
            except Exception as e:
                self._unit_failed(name, "remove", e, result)

        self._adopt(desired, actual, plan)
        self._forget_missing()

    def _unit_failed(self, name: str, action: str, exc: Exception, result: PassResult) -> None:
        detail = f"{type(exc).__name__}: {exc}"
        self.store.log_event("ERROR", f"Failed to {action} {safe_text(name)}: {detail}", unit=name)
        result.failures[name] = safe_text(detail)

    def _link(self, name: str, desc: UnitDescriptor, updating: bool, result: PassResult) -> None:
        dest = self.settings.link_path(name)

        if not is_valid_text(name):
            self.store.log_event("WARN", f"SKIP {safe_text(dest.name)} (filename is not valid UTF-8)", unit=name)
            result.failures[name] = "filename is not valid UTF-8"
            return

        if dest.exists() and not dest.is_symlink():
            self.store.log_event("WARN", f"SKIP {dest.name} (non-symlink file exists, not managed by us)", unit=name)
            result.conflicts.append(name)
            return

        if self.settings.strict_ownership and dest.is_symlink() and self.store.get_unit(name) is None:
            self.store.log_event("WARN", f"SKIP {dest.name} (foreign symlink exists, not in registry)", unit=name)
            result.conflicts.append(name)
            return

        if updating:
            self.store.log_event("INFO", f"UPDATE {dest.name} (target changed)", unit=name)
        else:
            self.store.log_event("INFO", f"ADD {dest.name}", unit=name)

        try:
            if dest.is_symlink():
                dest.unlink()
            dest.symlink_to(desc.source_path)
        except OSError as e:
            self.store.log_event("WARN", f"Failed to link {dest.name}: {e}", unit=name)
            result.failures[name] = str(e)
            return

        self.store.register_unit(name, dest, desc.source_path)
        (result.updated if updating else result.created).append(name)

    def _remove(self, link: ManagedLink, result: PassResult) -> None:
        name = link.name
        self.store.log_event("INFO", f"REMOVE {link.link_path.name} (source deleted from gitops)", unit=name)

        service = self.settings.service_name(name)
        try:
            stop = self.supervisor.stop(service)
        except ValueError as e:
            stop = None
            self.store.log_event("WARN", f"Not stopping {service}: {e}", unit=name)
        if stop is not None:
            result.stop_results[name] = stop
            if stop.outcome is Outcome.FAILED:
                self.store.log_event("WARN", f"Failed to stop {service}: {stop.detail}", unit=name)

        try:
            link.link_path.unlink(missing_ok=True)
        except OSError as e:
            self.store.log_event("WARN", f"Failed to remove {link.link_path.name}: {e}", unit=name)
            result.failures[name] = str(e)
            return

        self.store.unregister_unit(name)
        result.removed.append(name)

    def _adopt(
        self,
        desired: Mapping[str, UnitDescriptor],
        actual: Mapping[str, ManagedLink],
        plan: ReconciliationPlan,
    ) -> None:
        # In-sync links from earlier runs (or another install) join the registry.
        if self.settings.strict_ownership:
            return
        registered = self.store.registered_names()
        for name, link in actual.items():
            if name in registered or name in plan.to_remove or name in plan.to_update:
                continue
            if not is_valid_text(name):
                continue
            desc = desired.get(name)
            if desc is not None and link.resolved_target == desc.source_path:
                self.store.register_unit(name, link.link_path, desc.source_path)

    def _forget_missing(self) -> None:
        # Links deleted behind our back leave nothing to own.
        for row in self.store.list_units():
            link = Path(row.link_path)
            if link.is_symlink() or link.exists():
                continue
            self.store.log_event("INFO", f"FORGET {link.name} (link no longer on disk)", unit=row.name)
            self.store.unregister_unit(row.name)

    def activate(self, desired: Mapping[str, UnitDescriptor], result: PassResult) -> None:
        """Reload the supervisor, then start every desired unit that is not active."""
        self.store.log_event("INFO", "Reloading systemd daemon...")
        result.reload = self.supervisor.reload()
        if not result.reload.ok:
            self.store.log_event("ERROR", f"daemon-reload failed: {result.reload.detail}")
            return

        for name in sorted(desired):
            if name in result.failures:
                continue
            service = self.settings.service_name(name)
            try:
                if self.supervisor.is_active(service):
                    continue
                self.store.log_event("INFO", f"Starting {service}...", unit=name)
                started = self.supervisor.start(service)
            except Exception as e:
                self.store.log_event("WARN", f"Failed to start {safe_text(service)}: {e}", unit=name)
                result.start_failures[name] = safe_text(e)
                continue
            if started.ok:
                result.started.append(name)
            else:
                self.store.log_event("WARN", f"Failed to start {service}: {started.detail}", unit=name)
                result.start_failures[name] = started.detail or started.outcome.value
