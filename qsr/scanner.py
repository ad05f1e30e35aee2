from __future__ import annotations

import os
from pathlib import Path

from .models import DesiredScan, ManagedLink, UnitDescriptor
from .settings import Settings


def unit_name(path: Path, suffix: str) -> str:
    return path.name[: -len(suffix)] if suffix and path.name.endswith(suffix) else path.name


def _is_under(path: Path, root: Path) -> bool:
    try:
        path.relative_to(root)
    except ValueError:
        return False
    return path != root


def scan_desired(settings: Settings) -> DesiredScan:
    """Enumerate descriptors in the tier directories, one level deep.

    Tiers are scanned in the configured order; when a name appears in more
    than one tier the later tier wins and the earlier descriptor is kept in
    ``shadowed``. Missing tier directories are skipped.
    """
    scan = DesiredScan()
    suffix = settings.descriptor_suffix
    for tier in settings.tiers:
        tier_dir = settings.source_root / tier
        if not tier_dir.is_dir():
            continue
        for entry in sorted(tier_dir.iterdir()):
            if not entry.name.endswith(suffix) or not entry.is_file():
                continue
            desc = UnitDescriptor(name=unit_name(entry, suffix), source_path=entry, tier=tier)
            prev = scan.units.get(desc.name)
            if prev is not None:
                scan.shadowed.setdefault(desc.name, []).append(prev)
            scan.units[desc.name] = desc
    return scan


def read_link_target(link: Path) -> Path:
    """Follow ``link`` exactly one level and return an absolute, normalized path."""
    raw = os.readlink(link)
    return Path(os.path.normpath(os.path.join(str(link.parent), raw)))


def _source_roots(settings: Settings) -> list[Path]:
    roots = [settings.source_root]
    real = Path(os.path.realpath(settings.source_root))
    if real != settings.source_root:
        roots.append(real)
    return roots


def scan_actual(settings: Settings) -> dict[str, ManagedLink]:
    """Enumerate managed links in the target directory.

    A link is managed when its target (one level, not requiring the target
    to exist) lies under the source root. Regular files and links pointing
    elsewhere are left out entirely.
    """
    actual: dict[str, ManagedLink] = {}
    target_dir = settings.target_dir
    if not target_dir.is_dir():
        return actual

    roots = _source_roots(settings)
    suffix = settings.descriptor_suffix
    for entry in sorted(target_dir.iterdir()):
        if not entry.name.endswith(suffix) or not entry.is_symlink():
            continue
        try:
            target = read_link_target(entry)
        except OSError:
            continue
        if not any(_is_under(target, r) for r in roots):
            continue
        name = unit_name(entry, suffix)
        actual[name] = ManagedLink(name=name, link_path=entry, resolved_target=target)
    return actual
