# chat_relay/main.py

from __future__ import annotations

import asyncio

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chat_relay.core import state
from chat_relay.core.config import settings
from chat_relay.core.logging import setup_logging, get_logger
from chat_relay.api.routes import root, health, rooms
from chat_relay.api import websocket as websocket_module

# Configure logging first
setup_logging()
logger = get_logger(__name__)

# FastAPI app
app = FastAPI(title="Chat Relay")

# CORS (relaxed by default – set CORS_ORIGINS in prod)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# REST routes
app.include_router(root.router)
app.include_router(health.router)
app.include_router(rooms.router)

# WebSocket routes
app.include_router(websocket_module.router)


@app.on_event("startup")
async def startup_event():
    logger.info("🚀 Chat relay starting (history cap %d, dedup window %.0fs)",
                settings.HISTORY_CAP, settings.DEDUP_WINDOW_SECONDS)

    # Purge expired dedup ids in the background
    state.dedup_sweeper = asyncio.create_task(
        state.dedup_window.run_sweeper(settings.DEDUP_SWEEP_INTERVAL_SECONDS)
    )


@app.on_event("shutdown")
async def on_shutdown():
    sweeper = state.dedup_sweeper
    state.dedup_sweeper = None
    if sweeper is not None:
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass


def run() -> None:
    import uvicorn
    uvicorn.run("chat_relay.main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
