# filename: src/qloud/api_server/api.py
"""
Qloud - Personal Media Server - Main API Module
Copyright (C) 2025 AZHAR ZOUHIR / BYTEDz

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU Affero General Public License as published
by the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
GNU Affero General Public License for more details.

You should have received a copy of the GNU Affero General Public License
along with this program. If not, see <https://www.gnu.org/licenses/>.
"""

import asyncio
import logging
from typing import Any, Optional, Sequence

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..core import constants
from ..core.version import __version__
from ..services.file_system import FileSystem
from .file_browser import admin_router, router as file_browser_router

log = logging.getLogger(__name__)


async def sweep_stale_uploads_task(file_system: FileSystem, interval: float):
    """Periodically removes chunked uploads that were abandoned by their clients."""
    while True:
        try:
            await file_system.cleanup_stale_uploads()
        except Exception as e:
            log.error(f"Stale upload sweep failed: {e}")
        await asyncio.sleep(interval)


# --- FastAPI App Factory ---
def create_api_app(
    file_system: FileSystem,
    admin_dependencies: Optional[Sequence[Any]] = None,
    sweep_interval: float = constants.UPLOAD_SWEEP_INTERVAL,
) -> FastAPI:
    """
    Builds the HTTP application around ``file_system``. Authentication lives
    outside the core: pass its dependencies as ``admin_dependencies`` and they
    guard every mutating route.
    """
    app = FastAPI(title="Qloud API", version=__version__, docs_url=None, redoc_url=None)
    app.state.file_system = file_system
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])

    app.include_router(file_browser_router, prefix="/api")
    app.include_router(admin_router, prefix="/api", dependencies=list(admin_dependencies or []))

    @app.on_event("startup")
    async def startup_event():
        file_system.ensure_root()
        log.info(f"Serving files from {file_system.root}")
        app.state.sweep_task = asyncio.create_task(sweep_stale_uploads_task(file_system, sweep_interval))

    @app.on_event("shutdown")
    async def shutdown_event():
        task = getattr(app.state, "sweep_task", None)
        if task:
            task.cancel()

    @app.get("/health")
    async def health():
        return {"status": "ok", "version": __version__}

    return app
