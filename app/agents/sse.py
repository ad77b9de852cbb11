"""
Server-Sent Events (SSE) streaming
Formats orchestration events for the frontend as they arrive
"""

from fastapi import Request
from typing import AsyncGenerator, Optional
import asyncio
import json
from datetime import datetime
import logging

from .models import EventType, OrchestrationEvent
from .orchestrator import OrchestrationHandle

logger = logging.getLogger(__name__)


def format_event(event: OrchestrationEvent) -> str:
    """Serialize one event as an SSE data frame"""
    return f"data: {json.dumps(event.model_dump(mode='json', exclude_none=True))}\n\n"


async def event_generator(
    handle: OrchestrationHandle,
    request: Optional[Request] = None,
    keepalive_seconds: float = 30.0
) -> AsyncGenerator[str, None]:
    """
    Generate SSE events for one orchestration run.
    
    Args:
        handle: Handle returned by StudyOrchestrator.run
        request: FastAPI request, used to stop early when the client leaves
        keepalive_seconds: Idle time before a keepalive frame is sent
        
    Yields:
        SSE formatted event strings
    """
    events = handle.events()
    next_event = None
    try:
        while True:
            if request is not None and await request.is_disconnected():
                # Background agents keep running and still fill the cache
                logger.info(f"Client disconnected from {handle.primary_agent} run")
                break
            
            if next_event is None:
                next_event = asyncio.ensure_future(events.__anext__())
            done, _ = await asyncio.wait({next_event}, timeout=keepalive_seconds)
            
            if not done:
                keepalive = {
                    "type": "keepalive",
                    "timestamp": datetime.now().isoformat()
                }
                yield f"data: {json.dumps(keepalive)}\n\n"
                continue
            
            try:
                event = next_event.result()
            except StopAsyncIteration:
                break
            next_event = None
            yield format_event(event)
            if event.type == EventType.DONE:
                break
    finally:
        if next_event is not None and not next_event.done():
            next_event.cancel()
