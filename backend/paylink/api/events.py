"""Events API router for SSE and chain provider health."""

import json
from typing import Dict, Any
from fastapi import APIRouter, Depends, Request
from sse_starlette.sse import EventSourceResponse

from paylink.api.deps import get_chain_service
from paylink.core.events import event_bus
from paylink.services.chain_service import ChainService

router = APIRouter()


@router.get("/events")
async def event_stream(request: Request):
    """
    Server-Sent Events (SSE) stream of payment link lifecycle events.

    Usage:
        const eventSource = new EventSource('/api/events');
        eventSource.addEventListener('payment_confirmed', (e) => {
            console.log(JSON.parse(e.data));
        });
    """
    async def generate():
        async for event in event_bus.subscribe():
            # Check if client disconnected
            if await request.is_disconnected():
                break

            yield {
                "event": event["type"],
                "data": json.dumps(event["data"])
            }

    return EventSourceResponse(generate())


@router.get("/health/chains")
async def chain_health(chains: ChainService = Depends(get_chain_service)) -> Dict[str, Any]:
    """Reachability of each chain provider."""
    providers = await chains.health_check()
    return {
        "status": "healthy" if all(providers.values()) else "degraded",
        "providers": providers,
    }
