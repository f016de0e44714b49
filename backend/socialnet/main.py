import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .auth import TOKEN_HEADERS
from .config import configure_logging, settings
from .db import init_db
from .errors import register_exception_handlers
from .routers import api_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    logger.info("Database ready")
    yield


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title="Social Network API", lifespan=lifespan)

    # CORS; browsers only let the client read the rotating token headers if exposed
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=list(TOKEN_HEADERS),
    )
    register_exception_handlers(app)
    app.include_router(api_router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
