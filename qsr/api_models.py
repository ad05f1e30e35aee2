from __future__ import annotations

from pydantic import BaseModel, Field


class DesiredOut(BaseModel):
    name: str
    tier: str
    source_path: str
    shadowed: list[str] = Field(default_factory=list)


class TargetOut(BaseModel):
    name: str
    filename: str
    status: str = Field(..., description="systemctl is-active state")
    is_symlink: bool
    link_target: str | None = None
    managed: bool = Field(..., description="Symlink into the gitops tree")
    registered: bool = Field(..., description="Listed in the ownership registry")


class StatusOut(BaseModel):
    source_root: str
    target_dir: str
    strict_ownership: bool
    revision: int = Field(..., ge=0)
    desired: list[DesiredOut]
    target: list[TargetOut]


class EventOut(BaseModel):
    id: int
    ts: str
    level: str
    unit: str | None = None
    message: str


class PassOut(BaseModel):
    id: int
    trigger: str
    started_at: str
    finished_at: str | None = None
    created: int
    updated: int
    removed: int
    conflicts: int
    ok: bool
    summary: str
