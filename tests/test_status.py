import os

from qsr.reconciler import Reconciler
from qsr.status import build_status, render_status


def test_status_is_read_only(settings, supervisor, store, write_unit):
    write_unit("web")
    before = sorted(os.listdir(settings.target_dir))

    report = build_status(settings, supervisor, store)

    assert sorted(os.listdir(settings.target_dir)) == before
    assert [d.name for d in report.desired] == ["web"]
    assert report.target == []
    assert not any(c[0] in {"start", "stop", "reload"} for c in supervisor.calls)


def test_status_joins_live_state(settings, supervisor, store, write_unit, tmp_path):
    src = write_unit("web")
    write_unit("web", tier="apps")
    write_unit("db")
    Reconciler(settings, supervisor, store).run_pass()
    supervisor.active.discard("db.service")
    (settings.target_dir / "manual.container").write_text("[Container]")

    report = build_status(settings, supervisor, store)

    by_name = {t.name: t for t in report.target}
    assert by_name["web"].status == "active"
    assert by_name["web"].managed and by_name["web"].registered
    assert by_name["db"].status == "inactive"
    assert not by_name["manual"].is_symlink and not by_name["manual"].managed
    assert [t.name for t in report.managed] == ["db", "web"]
    assert report.revision == store.revision() > 0

    web = next(d for d in report.desired if d.name == "web")
    assert web.tier == "apps"
    assert web.shadowed == [str(src)]


def test_render_status_sections(settings, supervisor, store, write_unit):
    write_unit("web")
    Reconciler(settings, supervisor, store).run_pass()

    text = render_status(build_status(settings, supervisor, store))

    assert "=== QSR Status ===" in text
    assert f"Gitops dir:  {settings.source_root}" in text
    assert "--- Desired State (gitops) ---\n  web [system]" in text
    assert f"  web.container [active] -> {settings.source_root / 'system' / 'web.container'}" in text
    assert "--- Managed Symlinks ---" in text
    assert "strict ownership off" in text


def test_status_escapes_undecodable_names(settings, supervisor, store, write_unit):
    with open(os.path.join(os.fsencode(settings.source_root / "system"), b"caf\xe9.container"), "wb") as f:
        f.write(b"[Container]\n")

    report = build_status(settings, supervisor, store)

    assert [d.name for d in report.desired] == ["caf\\xe9"]
    assert "caf\\xe9" in render_status(report)
