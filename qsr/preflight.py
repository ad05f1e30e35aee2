from __future__ import annotations

import shutil
from typing import Callable

from .settings import Settings


class PreflightError(Exception):
    """Fatal startup condition; the process exits before entering the loop."""


class MissingDependency(PreflightError):
    pass


class MissingSourceTree(PreflightError):
    pass


def preflight(settings: Settings, which: Callable[[str], str | None] | None = None) -> None:
    """Check required binaries and the source tree, then make sure the target dir exists."""
    which = which or shutil.which
    for binary in settings.required_binaries:
        if which(binary) is None:
            raise MissingDependency(f"{binary} is not installed")

    if not settings.source_root.is_dir():
        raise MissingSourceTree(f"gitops directory not found: {settings.source_root}")

    settings.target_dir.mkdir(parents=True, exist_ok=True)
