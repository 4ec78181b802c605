#!/usr/bin/env python3

"""
Main application entry point for the busybee task tracker service.

Architecture: FastAPI application with in-process task and user stores, a
sandboxed upload directory and a JSON task snapshot.
Key Features: Lifecycle management, account seeding, typed error mapping, CORS configuration.
"""

import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from busybee.api.auth import router as auth_router
from busybee.api.comments import router as comments_router
from busybee.api.errors import register_exception_handlers
from busybee.api.health import router as health_router
from busybee.api.media import router as media_router
from busybee.api.tasks import router as tasks_router
from busybee.config import Settings
from busybee.config import settings as default_settings
from busybee.services.authorization import TasksAuthorization
from busybee.services.bootstrap import seed_users
from busybee.services.url_fetcher import UrlImageDownloader
from busybee.storage.files import FileStorage
from busybee.storage.persistence import InMemoryTaskPersistence, JsonTaskPersistence
from busybee.storage.tasks import TaskStore
from busybee.storage.users import UserStore
from busybee.utils.auth import TokenRevocationList
from busybee.utils.logger import cleanup_old_logs, setup_logger

logger = setup_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Seed the canonical accounts on startup and flush pending task changes on shutdown.
    """
    logger.info("Application startup...")
    cleanup_old_logs()
    if app.state.settings.seed_users:
        created = seed_users(app.state.users, app.state.settings.bcrypt_rounds)
        logger.info(f"Seeded {len(created)} accounts.")

    logger.info("busybee API startup successful.")
    yield

    logger.info("busybee API shutdown...")
    app.state.tasks.flush()
    logger.info("Shutdown complete.")


def create_app(settings: Settings | None = None):
    settings = settings or default_settings
    app = FastAPI(title="busybee API", lifespan=lifespan)

    persistence = (
        JsonTaskPersistence(settings.tasks_file)
        if settings.tasks_file is not None
        else InMemoryTaskPersistence()
    )
    app.state.settings = settings
    app.state.tasks = TaskStore(persistence)
    app.state.users = UserStore()
    app.state.files = FileStorage.from_settings(settings)
    app.state.url_downloader = UrlImageDownloader.from_settings(app.state.files, settings)
    app.state.authorization = TasksAuthorization(app.state.tasks)
    app.state.revoked_tokens = TokenRevocationList()

    register_exception_handlers(app)

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(tasks_router)
    app.include_router(comments_router)
    app.include_router(media_router)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    return app


def main():
    """
    Start the FastAPI application with uvicorn.
    """
    port = int(default_settings.server_port)
    host = default_settings.server_host

    logger.info(f"Starting busybee API server on {host}:{port}")

    try:
        uvicorn.run(create_app(), host=host, port=port)
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
