import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.middleware.sessions import SessionMiddleware

from newsradar.config import settings
from newsradar.database import Base, dispose_engine, get_engine
from newsradar.errors import register_error_handlers
from newsradar.routes import admin, analytics, articles, auth, summaries

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup ---
    logger.info("Creating database tables if they don't exist...")
    Base.metadata.create_all(bind=get_engine())

    yield

    # --- Shutdown ---
    logger.info("Closing database connections...")
    dispose_engine()


def create_app() -> FastAPI:
    app = FastAPI(
        title="News Radar API",
        description="Classifies news articles as threats or opportunities for each organization.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.add_middleware(SessionMiddleware, secret_key=settings.session_secret, same_site="lax")
    register_error_handlers(app)

    for module in (auth, articles, analytics, summaries, admin):
        app.include_router(module.router)
    return app


app = create_app()
