"""
Server-Sent Events endpoint for compilation progress.

Best effort: events published while a client is disconnected are lost.
Reconnecting clients should read GET /compile/status for the real state.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from starlette.concurrency import run_in_threadpool

from agentify.api.deps import get_config, get_notifier, get_request_store
from agentify.core.config import CompilerConfig
from agentify.core.errors import InvalidConfigError
from agentify.core.progress import ProgressNotifier
from agentify.core.requests_store import BuildRequestStore
from agentify.schemas.compile import StreamAck, StreamRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/stream", tags=["stream"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}


@router.get("")
async def stream_progress(
    user_id: Optional[str] = Query(None, max_length=128),
    config: CompilerConfig = Depends(get_config),
    notifier: ProgressNotifier = Depends(get_notifier),
    store: BuildRequestStore = Depends(get_request_store),
) -> StreamingResponse:
    """
    Stream compilation_update events as text/event-stream.

    The first frame is a connection event; heartbeats keep idle
    connections open.
    """
    connection_data = {}
    if user_id:
        # Blocking SQLAlchemy query; keep it off the event loop
        saved = await run_in_threadpool(store.get_config_for_user, user_id)
        connection_data["userId"] = user_id
        connection_data["hasConfig"] = saved is not None

    logger.info(f"sse_connected subscribers={notifier.subscriber_count}")

    return StreamingResponse(
        notifier.sse_stream(
            connection_data=connection_data,
            heartbeat_interval=config.sse_heartbeat_s,
        ),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("", response_model=StreamAck, response_model_by_alias=True, response_model_exclude_none=True)
async def queue_compilation(
    request: StreamRequest,
    store: BuildRequestStore = Depends(get_request_store),
) -> StreamAck:
    """Queue a compilation request (type start_process_configuration)."""
    if request.type != "start_process_configuration":
        raise InvalidConfigError(f"Unsupported stream request type: {request.type}")
    if not request.user_id:
        raise InvalidConfigError("user_id is required")

    stored = await run_in_threadpool(store.store_request, request.user_id, request.data or {})
    return StreamAck(message="Compilation request queued", request_id=stored.id)
