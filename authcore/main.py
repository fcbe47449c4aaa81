"""
FastAPI application factory.

Assembles the app, registers all routers and error handlers, and wires
up lifecycle events.  The schema is created by
`python -m authcore.rbac.catalog`; startup only seeds missing
permissions and roles.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from authcore.controllers.auth_controller import router as auth_router
from authcore.controllers.invitation_controller import router as invitation_router
from authcore.controllers.role_controller import router as role_router
from authcore.controllers.user_controller import router as user_router
from authcore.core.config import settings
from authcore.core.database import engine, session_scope
from authcore.core.error_handlers import register_exception_handlers
from authcore.models import Base  # noqa: F401 — ensures all models are registered
from authcore.rbac.catalog import seed

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Auto-seed permissions & roles (idempotent)
    async with session_scope() as session:
        await seed(session)
    logger.info("Permission seed complete.")
    yield
    await engine.dispose()
    logger.info("Database engine disposed.")


def create_app(seed_on_startup: bool = True) -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan if seed_on_startup else None,
    )

    register_exception_handlers(app)

    # ── Register routers ─────────────────────────────────────────────
    app.include_router(auth_router)
    app.include_router(invitation_router)
    app.include_router(role_router)
    app.include_router(user_router)

    # ── Health check ─────────────────────────────────────────────────
    @app.get("/health", tags=["Health"])
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
