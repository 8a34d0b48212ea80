"""FastAPI application entrypoint for the SMC voice intake service."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from .config import settings
from .routers import realtime, sessions

logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    # Release microphones and speakers still held by open UIs.
    await realtime.manager.close_all()


def create_app() -> FastAPI:
    """Instantiate and configure the FastAPI application."""
    application = FastAPI(
        title="SMC Voice Intake",
        description=(
            "Voice support intake: streams the local microphone to the live agent, "
            "plays its speech back and relays transcripts and tickets to the UI."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )
    application.include_router(realtime.router)
    application.include_router(sessions.router)

    @application.get("/")
    async def root() -> dict[str, str]:
        """Lightweight health endpoint for service discovery."""
        return {"service": "smc-voice-intake", "status": "ok"}

    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port)
