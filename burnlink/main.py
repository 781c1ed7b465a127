from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError

from .config import settings
from .database import init_db
from .errors import StoreUnavailable

from .api.drops import router as drops_router
from .api.reader import router as reader_router
from .api.auth import router as auth_router
from .api.stats import router as stats_router

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(
        title="burnlink API",
        version=settings.app_version,
    )

    # --- CORS ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Startup ---
    @app.on_event("startup")
    def _startup() -> None:
        # Creates tables for all registered SQLModel models (idempotent)
        init_db()

    # --- Store failures surface as 503, never as a business outcome ---
    @app.exception_handler(StoreUnavailable)
    async def store_unavailable_handler(request: Request, exc: StoreUnavailable) -> JSONResponse:
        return JSONResponse(status_code=503, content={"detail": "Store unavailable"})

    @app.exception_handler(DBAPIError)
    async def driver_error_handler(request: Request, exc: DBAPIError) -> JSONResponse:
        logger.error("Store failure outside a transaction: %s", exc.__class__.__name__)
        return JSONResponse(status_code=503, content={"detail": "Store unavailable"})

    # --- Health / meta ---
    @app.get("/health", tags=["meta"])
    def health() -> Dict[str, Any]:
        return {"ok": True, "env": settings.env}

    @app.get("/version", tags=["meta"])
    def version() -> Dict[str, Any]:
        return {"version": settings.app_version}

    # --- API routers ---
    app.include_router(drops_router)
    app.include_router(reader_router)
    app.include_router(auth_router)
    app.include_router(stats_router)

    return app


app = create_app()


def run() -> None:
    logging.basicConfig(level=getattr(logging, str(settings.log_level).upper(), logging.INFO))
    import uvicorn

    # NOTE: init_db is handled by the FastAPI startup hook.
    uvicorn.run(
        "burnlink.main:app",
        host=settings.host,
        port=int(settings.port),
        reload=bool(settings.reload),
    )
