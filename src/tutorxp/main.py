"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from tutorxp.config import get_settings
from tutorxp.database import close_db, get_session_factory, init_db
from tutorxp.gamification.router import router as gamification_router
from tutorxp.gamification.seed import seed_achievements
from tutorxp.health.router import router as health_router
from tutorxp.middleware import setup_middleware
from tutorxp.redis_client import close_redis, init_redis

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url, echo=settings.debug)
    await init_redis(settings.redis_url)

    # Seed the achievement catalog (idempotent)
    if settings.seed_achievements_on_startup:
        try:
            async with get_session_factory()() as db:
                await seed_achievements(db)
        except Exception:
            logger.warning("Achievement seeding failed (tables may not exist yet)", exc_info=True)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="TutorConnect Gamification API",
        description="XP, levels, streaks and achievements for the TutorConnect tutoring marketplace",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(gamification_router)

    return app


app = create_app()
