"""FastAPI Dependencies for session authentication and service access.

Services live on ``app.state`` (created by ``create_app``) rather than in
module-level singletons, so each app instance, including test apps, gets
its own hub.
"""

import logging

from fastapi import Depends, Request

from src.api.auth import SessionStore, extract_session_id
from src.api_errors import AuthenticationError, AuthorizationError, ErrorCode
from src.realtime.admin import AdminConsole
from src.realtime.hub import RealtimeHub
from src.realtime.registry import ConnectionIdentity

logger = logging.getLogger(__name__)


def get_hub(request: Request) -> RealtimeHub:
    return request.app.state.hub


def get_admin_console(request: Request) -> AdminConsole:
    return request.app.state.admin


def get_sessions(request: Request) -> SessionStore:
    return request.app.state.sessions


async def require_session(
    request: Request,
    sessions: SessionStore = Depends(get_sessions),
) -> ConnectionIdentity:
    """Resolve the caller's session or fail with 401.

    Usage::

        @router.get("/sse/{session_id}")
        async def stream(identity: ConnectionIdentity = Depends(require_session)):
            ...
    """
    session_id = extract_session_id(request, request.app.state.api_config)
    if not session_id:
        raise AuthenticationError(
            "Missing session - provide a bearer token, X-Session-ID header or session cookie"
        )
    identity = sessions.get(session_id)
    if identity is None:
        raise AuthenticationError("Invalid or expired session", ErrorCode.INVALID_SESSION)
    return identity


async def require_admin(
    identity: ConnectionIdentity = Depends(require_session),
) -> ConnectionIdentity:
    """Require an administrator session."""
    if not identity.is_admin:
        logger.warning("Non-admin user=%s attempted an admin action", identity.user_id)
        raise AuthorizationError("Administrator access required")
    return identity
