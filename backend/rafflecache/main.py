import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rafflecache.api.errors import register_exception_handlers
from rafflecache.api.router import api_router
from rafflecache.core.config import get_settings
from rafflecache.core.logging import setup_logging
from rafflecache.core.resources import open_resources

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    resources = await open_resources(settings)
    app.state.resources = resources
    logger.info("Raffle cache API started", extra={"app_env": settings.app_env})

    yield

    app.state.resources = None
    await resources.close()


def create_app() -> FastAPI:
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Accept", "Origin", "X-Raffle-Ops-Token"],
    )
    register_exception_handlers(app)
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()
