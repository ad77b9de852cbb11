from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
import logging

from app.agents.models import SolveRequest, SpeechRequest
from app.agents.sse import event_generator
from app.core.errors import (
    BackendOverloaded,
    InvalidInput,
    StudyAssistantError,
    UnknownAgent,
    create_error_response,
)
from app.core.startup import AssistantContext

logger = logging.getLogger(__name__)

router = APIRouter()


def get_assistant(request: Request) -> AssistantContext:
    return request.app.state.assistant


def _http_error(error: StudyAssistantError) -> HTTPException:
    if isinstance(error, InvalidInput):
        status = 400
    elif isinstance(error, UnknownAgent):
        status = 422
    elif isinstance(error, BackendOverloaded):
        status = 503
    else:
        status = 502
    return HTTPException(
        status_code=status,
        detail=create_error_response(error.message, error.code, error.details)
    )


@router.post("/solve")
async def solve(
    body: SolveRequest,
    request: Request,
    stream: bool = True,
    assistant: AssistantContext = Depends(get_assistant)
):
    """
    Run the selected agent, then the rest in the background.
    Streams events as SSE by default; with stream=false waits for every agent.
    """
    try:
        handle = await assistant.orchestrator.run(
            body.subject,
            body.primary_agent,
            body.agents,
            body.input,
            body.image
        )
    except StudyAssistantError as e:
        logger.warning(f"Solve request rejected: {e.message}")
        raise _http_error(e)

    if not stream:
        outcomes = await handle.wait()
        return {
            "primary_agent": handle.primary_agent,
            "outcomes": {agent: outcome.model_dump(mode="json") for agent, outcome in outcomes.items()},
            "summaries": handle.summaries,
            "audio": handle.audio,
            "practice": handle.practice.model_dump() if handle.practice else None
        }

    return StreamingResponse(
        event_generator(handle, request),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}
    )


@router.post("/speech")
async def speech(body: SpeechRequest, assistant: AssistantContext = Depends(get_assistant)):
    """Synthesize (or fetch cached) audio for a short text"""
    if not body.text.strip():
        raise HTTPException(status_code=400, detail=create_error_response("Text is required", InvalidInput.code))
    try:
        audio = await assistant.invoker.synthesize_speech(body.text.strip())
    except StudyAssistantError as e:
        raise _http_error(e)
    return {"audio": audio, "sample_rate": assistant.audio.sample_rate}


@router.get("/agents")
async def list_agents(assistant: AssistantContext = Depends(get_assistant)):
    agents = []
    for agent_id in assistant.registry.agents():
        descriptor = assistant.registry.describe(agent_id)
        agents.append({
            "id": agent_id.value,
            "name": descriptor.display_name,
            "output": descriptor.output_contract.value
        })
    return {"agents": agents}


@router.get("/cache/stats")
async def cache_stats(assistant: AssistantContext = Depends(get_assistant)):
    return await assistant.cache.get_stats()
