"""API routes for the live status snapshot.

Endpoints:
  GET  /api/health  liveness of the API itself
  GET  /api/status  latest results grouped by category + overall status
  GET  /api/events  SSE stream: status on every change, idle heartbeats
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from ..core.state import StateStore, SubscriptionClosed
from .models import HealthResponse, StatusResponse, build_status

logger = logging.getLogger(__name__)

status_router = APIRouter()


def sse_event(event: str, data: Any) -> str:
    """Frame one Server-Sent Event."""
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


@status_router.get("/health", response_model=HealthResponse)
def api_health() -> HealthResponse:
    return HealthResponse(status="ok", timestamp=int(time.time()))


@status_router.get("/status", response_model=StatusResponse)
def api_status(request: Request) -> StatusResponse:
    store: StateStore = request.app.state.store
    return build_status(store.get_all())


@status_router.get("/events")
async def api_events(request: Request) -> StreamingResponse:
    """Server-Sent Events stream of status changes."""
    store: StateStore = request.app.state.store
    heartbeat: float = request.app.state.sse_heartbeat
    loop = asyncio.get_running_loop()

    async def event_generator():
        subscription = store.subscribe()
        try:
            yield sse_event("status", build_status(store.get_all()).model_dump())

            while True:
                if await request.is_disconnected():
                    break
                try:
                    update = await loop.run_in_executor(None, subscription.get, heartbeat)
                except SubscriptionClosed:
                    # Engine shut down
                    break

                if update is None:
                    yield sse_event("heartbeat", {"timestamp": int(time.time())})
                else:
                    # The notification is only a hint; send the full snapshot
                    yield sse_event("status", build_status(store.get_all()).model_dump())
        finally:
            store.unsubscribe(subscription)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
