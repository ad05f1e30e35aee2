from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping


def _env_bool(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Core paths
    source_root: Path
    target_dir: Path
    db_path: Path
    tiers: tuple[str, ...] = ("system", "apps")
    descriptor_suffix: str = ".container"
    service_suffix: str = ".service"

    # Loop timing
    watch_timeout_s: float = 300.0
    debounce_s: float = 1.0

    # Ownership: when set, only registry-listed units may be relinked/removed.
    strict_ownership: bool = False

    # Preflight
    required_binaries: tuple[str, ...] = ("systemctl", "podman")

    # Email alerting (optional)
    enable_email: bool = False
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    email_from: str | None = None
    email_to: str | None = None

    # Inspection API (basic auth is off unless both are set)
    api_user: str | None = None
    api_password: str | None = None
    api_timeout_s: int = 10

    def tier_dirs(self) -> list[Path]:
        return [self.source_root / t for t in self.tiers]

    def link_path(self, name: str) -> Path:
        return self.target_dir / f"{name}{self.descriptor_suffix}"

    def service_name(self, name: str) -> str:
        return f"{name}{self.service_suffix}"


def load_settings(env: Mapping[str, str] | None = None, home: Path | None = None) -> Settings:
    """Build the settings once at startup.

    Paths derive from the user's home directory; ``HECATE_GITOPS_DIR`` is the
    only path override. Tuning knobs use ``QSR_*`` variables.
    """
    env = os.environ if env is None else env
    home = Path(home) if home is not None else Path.home()

    base = home / ".hecate"
    raw_root = env.get("HECATE_GITOPS_DIR") or str(base / "gitops")
    source_root = Path(os.path.abspath(os.path.expanduser(raw_root)))

    return Settings(
        source_root=source_root,
        target_dir=home / ".config" / "containers" / "systemd",
        db_path=base / "qsr.db",
        watch_timeout_s=max(1.0, _env_float(env, "QSR_WATCH_TIMEOUT_S", 300.0)),
        debounce_s=max(0.0, _env_float(env, "QSR_DEBOUNCE_S", 1.0)),
        strict_ownership=_env_bool(env, "QSR_STRICT_OWNERSHIP", False),
        enable_email=_env_bool(env, "QSR_ENABLE_EMAIL", False),
        smtp_host=env.get("QSR_SMTP_HOST", "smtp.gmail.com"),
        smtp_port=_env_int(env, "QSR_SMTP_PORT", 587),
        smtp_user=env.get("QSR_SMTP_USER"),
        smtp_password=env.get("QSR_SMTP_PASSWORD"),
        email_from=env.get("QSR_EMAIL_FROM"),
        email_to=env.get("QSR_EMAIL_TO"),
        api_user=env.get("QSR_API_USER"),
        api_password=env.get("QSR_API_PASSWORD"),
        api_timeout_s=max(1, _env_int(env, "QSR_API_TIMEOUT_S", 10)),
    )
