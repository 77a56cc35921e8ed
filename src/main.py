"""Entry point for the Telnyx whisper coach service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from api.dependencies import close_call_control
from api.routes import router as webhook_router
from config.settings import get_settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await close_call_control()


settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
# httpx logs every request at INFO; the call-control client logs its own outcome.
logging.getLogger("httpx").setLevel(logging.WARNING)

app = FastAPI(
    title="Whisper Coach",
    description="Telnyx Call Control webhook that bridges agent calls and whispers coaching prompts.",
    lifespan=lifespan,
)
app.include_router(webhook_router)


def run() -> None:
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
