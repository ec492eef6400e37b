"""FastAPI application exposing the sync endpoint."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from ..config import Config
from ..merge import Snapshot, SnapshotFormatError
from ..store import SnapshotStore
from ..sync import NoDataError, SyncService

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message},
    )


def create_app(config: Config, store: SnapshotStore) -> FastAPI:
    """Create the FastAPI sync application.

    Args:
        config: Application configuration.
        store: Connected store holding the persisted snapshot.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="mindsync",
        description="Mind map snapshot sync service",
        version="0.1.0",
    )

    service = SyncService(store, key=config.store.snapshot_key)

    # Store references for route handlers
    app.state.config = config
    app.state.store = store
    app.state.service = service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_methods=["GET", "POST", "PUT", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    # ==================== API Routes (JSON) ====================

    @app.get("/api/sync")
    async def api_get_snapshot():
        """Get the persisted snapshot without merging."""
        try:
            snapshot = service.fetch()
        except Exception as e:
            logger.exception("Failed to read stored snapshot")
            return _error(500, str(e))

        return {
            "success": True,
            "data": snapshot.to_dict() if snapshot is not None else None,
        }

    @app.post("/api/sync")
    async def api_push_snapshot(request: Request):
        """Merge the client's snapshot into the persisted one."""
        try:
            body = await request.json()
        except (ValueError, RecursionError):
            return _error(400, "Bad JSON")

        if not isinstance(body, dict):
            return _error(400, "Request body must be an object")

        local_data = body.get("localData")
        try:
            local = Snapshot.from_dict(local_data) if local_data is not None else None
        except SnapshotFormatError as e:
            return _error(400, str(e))

        try:
            merged = service.push(local)
        except NoDataError as e:
            return _error(400, str(e))
        except Exception as e:
            logger.exception("Sync failed")
            return _error(500, str(e))

        return {"success": True, "data": merged.to_dict()}

    @app.get("/api/health")
    async def api_health() -> dict[str, Any]:
        """Health check endpoint for monitoring and load balancers."""
        health = {
            "status": "ok",
            "timestamp": datetime.now().isoformat(),
            "snapshot_key": config.store.snapshot_key,
        }

        try:
            health["has_snapshot"] = store.get(config.store.snapshot_key) is not None
            health["store"] = store.get_stats()
        except Exception as e:
            health["status"] = "degraded"
            health["store_error"] = str(e)

        return health

    # Static assets last so they never shadow the API
    if config.server.static_dir:
        static_path = Path(config.server.static_dir).expanduser()
        if static_path.is_dir():
            app.mount("/", StaticFiles(directory=str(static_path), html=True), name="static")
        else:
            logger.warning(f"Static directory {static_path} does not exist, not serving assets")

    return app
