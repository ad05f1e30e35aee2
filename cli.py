from __future__ import annotations

import argparse
import json
import signal
import sys

import requests

from qsr.db import Store
from qsr.preflight import PreflightError, preflight
from qsr.reconciler import Reconciler
from qsr.settings import Settings, load_settings
from qsr.status import DesiredEntry, StatusReport, TargetEntry, build_status, render_status
from qsr.supervisor import SystemctlSupervisor
from qsr.watcher import Trigger, WatchdogSource


EXIT_OK = 0
EXIT_PRECONDITION = 1
EXIT_PASS_FAILED = 2


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def _remote_status(settings: Settings, api: str, as_json: bool) -> int:
    base = api.rstrip("/")
    auth = (settings.api_user, settings.api_password) if settings.api_user and settings.api_password else None
    try:
        r = requests.get(f"{base}/status", auth=auth, timeout=settings.api_timeout_s)
    except requests.RequestException as e:
        print(f"[qsr] ERROR cannot reach {base}: {e}", file=sys.stderr)
        return EXIT_PRECONDITION
    if not r.ok:
        print(f"[qsr] ERROR {base}/status returned HTTP {r.status_code}", file=sys.stderr)
        return EXIT_PRECONDITION
    data = r.json()
    if as_json:
        _print(data)
    else:
        _print_remote(data)
    return EXIT_OK


def _print_remote(data: dict) -> None:
    report = StatusReport(
        source_root=data["source_root"],
        target_dir=data["target_dir"],
        strict_ownership=data["strict_ownership"],
        revision=data["revision"],
        desired=[DesiredEntry(**d) for d in data["desired"]],
        target=[TargetEntry(**t) for t in data["target"]],
    )
    print(render_status(report))


def main(argv: list[str] | None = None, settings: Settings | None = None, supervisor=None, which=None) -> int:
    p = argparse.ArgumentParser(
        prog="qsr",
        description="Sync Quadlet .container files from the gitops tree into systemd",
    )
    mode = p.add_mutually_exclusive_group()
    mode.add_argument("--once", dest="mode", action="store_const", const="once", help="One-shot reconciliation")
    mode.add_argument("--watch", dest="mode", action="store_const", const="watch", help="Continuous watch mode (default)")
    mode.add_argument("--status", dest="mode", action="store_const", const="status", help="Show current state")
    p.add_argument("--json", action="store_true", help="With --status: print JSON")
    p.add_argument("--api", default=None, help="With --status: read status from a running API at this base URL")
    p.set_defaults(mode="watch")

    args = p.parse_args(argv)

    settings = settings or load_settings()

    if args.mode == "status" and args.api:
        return _remote_status(settings, args.api, args.json)

    try:
        preflight(settings, which=which)
    except PreflightError as e:
        print(f"[qsr] ERROR {e}", file=sys.stderr)
        return EXIT_PRECONDITION

    supervisor = supervisor or SystemctlSupervisor()
    store = Store(settings.db_path, echo=args.mode != "status")
    store.init_db()

    if args.mode == "status":
        report = build_status(settings, supervisor, store)
        if args.json:
            _print(report.to_dict())
        else:
            print(render_status(report))
        return EXIT_OK

    if args.mode == "once":
        result = Reconciler(settings, supervisor, store).run_pass()
        print(result.summary())
        return EXIT_OK if result.ok else EXIT_PASS_FAILED

    source = WatchdogSource(settings.source_root, settings.tier_dirs())
    trigger = Trigger(source, settings.watch_timeout_s, settings.debounce_s)
    reconciler = Reconciler(settings, supervisor, store, trigger)
    signal.signal(signal.SIGTERM, lambda *_: reconciler.stop())
    source.start()
    try:
        reconciler.run_forever()
    except KeyboardInterrupt:
        reconciler.stop()
    finally:
        source.close()
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
