from __future__ import annotations

import secrets

from fastapi import Depends, FastAPI, HTTPException, Query, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from .api_models import EventOut, PassOut, StatusOut
from .db import Store
from .settings import Settings
from .status import build_status
from .supervisor import Supervisor, SystemctlSupervisor


def create_app(settings: Settings, supervisor: Supervisor | None = None, store: Store | None = None) -> FastAPI:
    """Read-only inspection API. It never runs a pass or touches the target dir."""
    supervisor = supervisor or SystemctlSupervisor()
    store = store or Store(settings.db_path, echo=False)
    store.init_db()

    app = FastAPI(title="Quadlet Symlink Reconciler")
    security = HTTPBasic(auto_error=False)

    def require_auth(credentials: HTTPBasicCredentials | None = Depends(security)) -> None:
        if not (settings.api_user and settings.api_password):
            return
        ok = credentials is not None and (
            secrets.compare_digest(credentials.username, settings.api_user)
            and secrets.compare_digest(credentials.password, settings.api_password)
        )
        if not ok:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid credentials",
                headers={"WWW-Authenticate": "Basic"},
            )

    @app.get("/health")
    def health() -> dict:
        return {"status": "healthy"}

    @app.get("/status", response_model=StatusOut, dependencies=[Depends(require_auth)])
    def get_status() -> StatusOut:
        report = build_status(settings, supervisor, store)
        return StatusOut(**report.to_dict())

    @app.get("/events", response_model=list[EventOut], dependencies=[Depends(require_auth)])
    def get_events(limit: int = Query(50, ge=1, le=1000)) -> list[EventOut]:
        return [EventOut(**vars(e)) for e in store.latest_events(limit)]

    @app.get("/passes", response_model=list[PassOut], dependencies=[Depends(require_auth)])
    def get_passes(limit: int = Query(20, ge=1, le=500)) -> list[PassOut]:
        return [PassOut(**vars(p)) for p in store.latest_passes(limit)]

    return app
