from fastapi import FastAPI
from contextlib import asynccontextmanager
from fastapi.staticfiles import StaticFiles
from app.core.config import settings
from app.apis.gemini.main import router as gemini_router
from app.apis.learning.main import router as learning_router
from app.apis.history.main import router as history_router
from app.apis.profile.main import router as profile_router

import uvicorn
from fastapi.middleware.cors import CORSMiddleware
from app.core.avatar_manager import avatar_manager
from app.core.db.base import create_tables
from app.core.logging import get_logger, setup_logging
from app.core.task_queue import queue as _bg_queue
from app.modules.learning.sessions import session_manager


logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    if settings.postgres.create_tables:
        await create_tables()
    _bg_queue.start()
    session_manager.start()
    try:
        yield
    finally:
        await session_manager.stop()
        await _bg_queue.stop()


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.app.name, version=settings.app.version, lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://localhost:5173",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Serve uploaded avatars as static files
    app.mount(
        "/avatars",
        StaticFiles(directory=str(avatar_manager.base_dir), html=False),
        name="avatars",
    )

    app.include_router(gemini_router)
    app.include_router(learning_router)
    app.include_router(history_router)
    app.include_router(profile_router)

    @app.get("/")
    async def root():
        return {
            "status": "ok",
            "app": settings.app.name,
            "version": settings.app.version,
        }

    return app


app = create_app()


if __name__ == "__main__":
    try:
        uvicorn.run(
            "main:app",
            host="0.0.0.0",
            port=settings.app.port,
            reload=not settings.app.is_production,
        )
    except Exception as e:
        logger.error(f"An error occurred when starting the server: {e}.")
