"""Push stream endpoints.

Each GET opens one Server-Sent Events stream for the caller's session.
"""

import logging
import math
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from src.api.dependencies import get_hub, require_admin, require_session
from src.api_errors import (
    AuthorizationError,
    ConnectionLimitExceededError,
    ErrorCode,
    RateLimitError,
)
from src.realtime.exceptions import ConnectionLimitError, HandshakeRateLimitedError
from src.realtime.hub import RealtimeHub
from src.realtime.registry import ConnectionIdentity

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/sse", tags=["Realtime"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def open_stream(
    request: Request,
    session_id: str,
    identity: ConnectionIdentity,
    hub: RealtimeHub,
) -> StreamingResponse:
    """Admit the caller and return the streaming response."""
    if identity.session_id != session_id:
        raise AuthorizationError("Session does not match the requested stream", ErrorCode.SESSION_MISMATCH)

    client_ip: Optional[str] = request.client.host if request.client else None
    try:
        record = hub.open_connection(
            identity,
            client_ip=client_ip,
            user_agent=request.headers.get("user-agent"),
            last_event_id=request.headers.get("last-event-id"),
        )
    except HandshakeRateLimitedError as exc:
        raise RateLimitError(str(exc), retry_after=max(1, math.ceil(exc.retry_after)))
    except ConnectionLimitError as exc:
        raise ConnectionLimitExceededError(str(exc))

    logger.info(
        "Opened stream %s for user=%s session=%s",
        record.connection_id,
        identity.user_id,
        identity.session_id,
    )
    return StreamingResponse(
        hub.stream(record),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.get("/student/{session_id}")
async def student_stream(
    session_id: str,
    request: Request,
    identity: ConnectionIdentity = Depends(require_session),
    hub: RealtimeHub = Depends(get_hub),
):
    return open_stream(request, session_id, identity, hub)


@router.get("/admin/{session_id}")
async def admin_stream(
    session_id: str,
    request: Request,
    identity: ConnectionIdentity = Depends(require_admin),
    hub: RealtimeHub = Depends(get_hub),
):
    return open_stream(request, session_id, identity, hub)


@router.get("/{session_id}")
async def session_stream(
    session_id: str,
    request: Request,
    identity: ConnectionIdentity = Depends(require_session),
    hub: RealtimeHub = Depends(get_hub),
):
    """General stream for any signed-in session."""
    return open_stream(request, session_id, identity, hub)
