from __future__ import annotations

from collections import deque

from .alerts import notify_pass
from .applier import Applier
from .db import Store
from .models import LoopState, PassResult, WakeReason, utc_now
from .planner import compute_plan
from .scanner import scan_actual, scan_desired
from .settings import Settings
from .supervisor import Supervisor
from .watcher import Trigger


class Reconciler:
    """Converges the Quadlet directory on the gitops tree.

    One pass walks idle -> scanning -> planning -> applying -> reloading ->
    idle; reloading is only entered when the pass changed something or an
    earlier reload never went through. Passes never overlap: the loop
    finishes a pass before it waits again.
    """

    def __init__(self, settings: Settings, supervisor: Supervisor, store: Store, trigger: Trigger | None = None):
        self.settings = settings
        self.supervisor = supervisor
        self.store = store
        self.trigger = trigger
        self.applier = Applier(settings, supervisor, store)
        self.state = LoopState.IDLE
        self.history: deque[LoopState] = deque(maxlen=64)
        self.last_result: PassResult | None = None
        self._prev_ok: bool | None = None
        # set when links changed but the supervisor never saw a successful reload
        self._reload_pending = False
        self._stop = False

    def _enter(self, state: LoopState) -> None:
        self.state = state
        self.history.append(state)

    def run_pass(self, trigger: WakeReason | str = WakeReason.MANUAL) -> PassResult:
        result = PassResult(trigger=getattr(trigger, "value", str(trigger)))
        try:
            self._run_pass(result)
        except Exception as e:
            result.error = f"{type(e).__name__}: {e}"
            self.store.log_event("ERROR", f"Reconciliation pass failed: {result.error}")
            if result.changed:
                self._reload_pending = True
        finally:
            self._enter(LoopState.IDLE)
            result.finished_at = utc_now()
            self.store.record_pass(result)
            self.last_result = result
        return result

    def _run_pass(self, result: PassResult) -> None:
        self._enter(LoopState.SCANNING)
        desired_scan = scan_desired(self.settings)
        desired = desired_scan.units
        actual = scan_actual(self.settings)
        for name, hidden in desired_scan.shadowed.items():
            for desc in hidden:
                self.store.log_event(
                    "WARN",
                    f"{desc.source_path} shadowed by {desired[name].source_path}",
                    unit=name,
                )

        self._enter(LoopState.PLANNING)
        registered = self.store.registered_names() if self.settings.strict_ownership else None
        plan = compute_plan(desired, actual, registered)
        result.plan = plan

        self._enter(LoopState.APPLYING)
        self.applier.apply(plan, desired, actual, result)

        if result.changed or self._reload_pending:
            self._enter(LoopState.RELOADING)
            self.applier.activate(desired, result)
            self._reload_pending = result.reload_failed
            if result.ok:
                self.store.log_event("INFO", f"Reconciliation complete ({result.summary()})")
            else:
                self.store.log_event("WARN", f"Reconciliation finished with errors ({result.summary()})")
        else:
            self.store.log_event("INFO", "No changes detected")

    def stop(self) -> None:
        self._stop = True
        if self.trigger is not None:
            self.trigger.interrupt()

    def run_forever(self, max_cycles: int | None = None) -> None:
        """Initial pass, then one pass per trigger wake until stopped.

        ``max_cycles`` bounds the number of wakes (tests only).
        """
        if self.trigger is None:
            raise RuntimeError("run_forever needs a trigger")

        self.store.log_event("INFO", f"Watching {self.settings.source_root} for changes...")
        self.store.log_event("INFO", "Initial reconciliation...")
        self._after_pass(self.run_pass(WakeReason.INITIAL))

        cycles = 0
        while not self._stop:
            if max_cycles is not None and cycles >= max_cycles:
                break
            reason = self.trigger.wait()
            cycles += 1
            if self._stop or reason is WakeReason.INTERRUPTED:
                break
            if reason is WakeReason.EVENT:
                self.store.log_event("INFO", "Change detected, reconciling...")
            else:
                self.store.log_event("INFO", "Watch timeout, reconciling...")
            self._after_pass(self.run_pass(reason))

        self.store.log_event("INFO", "Reconciler stopped")

    def _after_pass(self, result: PassResult) -> None:
        prev = self._prev_ok
        self._prev_ok = result.ok
        if prev is None or prev == result.ok:
            return
        notify_pass(self.settings, result)
