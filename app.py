# app.py
"""
whackparts HTTP entry (FastAPI)

- App Factory pattern for testing & packaging
- Lifespan startup: ensure output dir
- Dev CORS: allow localhost any port (supports credentials)
- Prod CORS: MUST specify explicit origins (no wildcard with credentials)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.config import Settings, get_settings
from routers.arrange import router as arrange_router
from routers.health import router as health_router

logger = logging.getLogger("whackparts")

_LOCAL_ORIGIN = r"http://(?:localhost|127\.0\.0\.1)(?::\d+)?"


def _cors_options(s: Settings) -> dict:
    """
    Development: any localhost port, with credentials.
    Elsewhere: only the CORS_ALLOW_ORIGINS list; credentials only if it is non-empty.
    """
    if s.is_development:
        return {"allow_origins": [], "allow_origin_regex": _LOCAL_ORIGIN, "allow_credentials": True}
    origins = s.cors_origins
    return {"allow_origins": origins, "allow_origin_regex": None, "allow_credentials": bool(origins)}


@asynccontextmanager
async def lifespan(_: FastAPI):
    s = get_settings()
    try:
        s.output_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.critical("Failed to create output dir: %s", e)
        raise
    logger.info("Service ready (inventory=%s, copies=%s)", s.tube_inventory, s.copies_per_tube)
    yield
    logger.info("Service shutting down...")


def create_app() -> FastAPI:
    # logging once (avoid duplicated handlers in reload/test)
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

    s = get_settings()
    app = FastAPI(
        title="whackparts",
        version="0.1.0",
        description="Boomwhacker tube + performer assignment API",
        lifespan=lifespan,
    )
    app.state.settings = s

    app.add_middleware(
        CORSMiddleware,
        **_cors_options(s),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ---- Routers ----
    app.include_router(health_router)
    app.include_router(arrange_router)

    @app.get("/", include_in_schema=False)
    def root():
        return JSONResponse({"service": "whackparts", "status": "ok", "docs_url": "/docs"})

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app:app", host="0.0.0.0", port=8000, reload=True)
