"""Administrative endpoints for the realtime service.

Statistics and cleanup operate on the live registry; every message sent
from here goes through the same fanout path as collaborator events.
"""

import logging

from fastapi import APIRouter, Depends

from src.api.auth import SessionStore
from src.api.dependencies import get_admin_console, get_hub, get_sessions, require_admin
from src.api.models import (
    AdminAlertRequest,
    AdminAssignmentRequest,
    CountResponse,
    DispatchResponse,
    ForceLogoutRequest,
    PermissionNotifyRequest,
    PermissionUpdateRequest,
    PromotionRequest,
    StatsResponse,
    TestNotificationRequest,
)
from src.api_errors import ErrorCode, NotFoundError, sanitize_string
from src.realtime.admin import AdminConsole
from src.realtime.config import DisconnectReason, MessagePriority
from src.realtime.events import (
    AdminPromotedPayload,
    EventBuilder,
    EventTarget,
    EventType,
    PermissionUpdatedPayload,
    admin_assignment_event,
    notification,
)
from src.realtime.hub import RealtimeHub
from src.realtime.registry import ConnectionIdentity

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/sse/admin", tags=["Realtime Admin"])


def _report(hub: RealtimeHub, event) -> DispatchResponse:
    report = hub.fanout.dispatch_report(event)
    return DispatchResponse(
        message_id=report.message_id,
        matched=report.matched,
        delivered=report.delivered,
        dropped=report.dropped,
        expired=report.expired,
    )


@router.get("/stats", response_model=StatsResponse)
async def connection_stats(
    admin: ConnectionIdentity = Depends(require_admin),
    console: AdminConsole = Depends(get_admin_console),
):
    return StatsResponse(**console.stats().to_dict())


@router.post("/cleanup", response_model=CountResponse)
async def force_cleanup(
    admin: ConnectionIdentity = Depends(require_admin),
    console: AdminConsole = Depends(get_admin_console),
):
    removed = console.force_cleanup()
    logger.info("Admin user=%s forced cleanup, removed %d", admin.user_id, removed)
    return CountResponse(count=removed)


@router.post("/heartbeat", response_model=CountResponse)
async def send_heartbeat(
    admin: ConnectionIdentity = Depends(require_admin),
    console: AdminConsole = Depends(get_admin_console),
):
    return CountResponse(count=console.send_heartbeat())


@router.post("/test-notification", response_model=CountResponse)
async def test_notification(
    body: TestNotificationRequest,
    admin: ConnectionIdentity = Depends(require_admin),
    console: AdminConsole = Depends(get_admin_console),
):
    """Send a low-priority test event; defaults to the calling admin."""
    if body.broadcast:
        target = EventTarget.broadcast()
    else:
        target = EventTarget.for_user(body.target_user_id or admin.user_id)
    delivered = console.test_broadcast(
        title=sanitize_string(body.title),
        message=sanitize_string(body.message),
        target=target,
        notification_type=body.notification_type,
        sent_by=admin.user_id,
    )
    return CountResponse(count=delivered)


@router.post("/notify/{permission}", response_model=DispatchResponse)
async def notify_permission(
    permission: str,
    body: PermissionNotifyRequest,
    admin: ConnectionIdentity = Depends(require_admin),
    hub: RealtimeHub = Depends(get_hub),
):
    event = notification(
        title=sanitize_string(body.title),
        message=sanitize_string(body.message),
        target=EventTarget.for_permissions([permission]),
        notification_type=body.notification_type,
        priority=body.priority,
    )
    return _report(hub, event)


@router.post("/force-logout/{session_id}", response_model=CountResponse)
async def force_logout(
    session_id: str,
    body: ForceLogoutRequest,
    admin: ConnectionIdentity = Depends(require_admin),
    hub: RealtimeHub = Depends(get_hub),
    sessions: SessionStore = Depends(get_sessions),
):
    """Revoke a session (or all of its user's sessions) and close their streams."""
    identity = sessions.get(session_id)
    if identity is None:
        live = hub.registry.get_by_session(session_id)
        if not live:
            raise NotFoundError(
                "Session not found",
                ErrorCode.SESSION_NOT_FOUND,
                resource_type="session",
                resource_id=session_id,
            )
        identity = live[0].identity

    message = body.message or "Your session has been ended by an administrator."
    if body.force_all_devices:
        sessions.revoke_user(identity.user_id)
        closed = hub.fanout.force_disconnect_user(
            identity.user_id, body.reason, message, revoked_by=admin.user_id
        )
    else:
        sessions.revoke(session_id)
        closed = hub.fanout.force_disconnect_user(
            identity.user_id, body.reason, message, revoked_by=admin.user_id, session_id=session_id
        )
    logger.warning(
        "Admin user=%s force-logged-out user=%s (all_devices=%s, closed=%d)",
        admin.user_id,
        identity.user_id,
        body.force_all_devices,
        closed,
    )
    return CountResponse(count=closed)


@router.post("/permission-update", response_model=DispatchResponse)
async def permission_update(
    body: PermissionUpdateRequest,
    admin: ConnectionIdentity = Depends(require_admin),
    hub: RealtimeHub = Depends(get_hub),
    sessions: SessionStore = Depends(get_sessions),
):
    """Notify a user of new permissions and recycle their connections.

    Open connections keep the claims they were opened with, so they are
    closed after the notice; ``requires_re_login`` revokes the sessions too.
    """
    payload = PermissionUpdatedPayload(
        user_id=body.user_id,
        old_permissions=body.old_permissions,
        new_permissions=body.new_permissions,
        updated_by=admin.user_id,
        requires_re_login=body.requires_re_login,
    )
    event = (
        EventBuilder(EventType.PERMISSION_UPDATED, payload)
        .to_user(body.user_id)
        .with_priority(MessagePriority.HIGH)
        .build()
    )
    response = _report(hub, event)

    if body.requires_re_login:
        sessions.revoke_user(body.user_id)
        hub.fanout.force_disconnect_user(
            body.user_id,
            reason="permission_changed",
            message="Your permissions changed. Please sign in again.",
            revoked_by=admin.user_id,
        )
    else:
        sessions.update_permissions(body.user_id, body.new_permissions)
        hub.registry.deregister_user(body.user_id, DisconnectReason.CLAIMS_CHANGED)
    return response


@router.post("/promotion", response_model=DispatchResponse)
async def promotion(
    body: PromotionRequest,
    admin: ConnectionIdentity = Depends(require_admin),
    hub: RealtimeHub = Depends(get_hub),
    sessions: SessionStore = Depends(get_sessions),
):
    payload = AdminPromotedPayload(
        user_id=body.user_id,
        new_role=body.new_role,
        promoted_by=admin.user_id,
        faculty_id=body.faculty_id,
    )
    event = (
        EventBuilder(EventType.ADMIN_PROMOTED, payload)
        .to_user(body.user_id)
        .with_priority(MessagePriority.HIGH)
        .build()
    )
    response = _report(hub, event)
    sessions.promote(body.user_id, body.faculty_id)
    hub.registry.deregister_user(body.user_id, DisconnectReason.CLAIMS_CHANGED)
    return response


@router.post("/assignment", response_model=DispatchResponse)
async def assignment(
    body: AdminAssignmentRequest,
    admin: ConnectionIdentity = Depends(require_admin),
    hub: RealtimeHub = Depends(get_hub),
):
    event = admin_assignment_event(
        assignment_id=body.assignment_id,
        admin_id=body.admin_id,
        task_type=body.task_type,
        task_description=sanitize_string(body.task_description),
        admin_name=body.admin_name,
        due_date=body.due_date,
        priority=body.priority,
    )
    logger.info("Assignment %s sent to admin=%s by %s", body.assignment_id, body.admin_id, admin.user_id)
    return _report(hub, event)


@router.post("/alert", response_model=CountResponse)
async def admin_alert(
    body: AdminAlertRequest,
    admin: ConnectionIdentity = Depends(require_admin),
    hub: RealtimeHub = Depends(get_hub),
):
    """Announce something to every connected administrator."""
    delivered = hub.fanout.send_admin_alert(
        sanitize_string(body.title),
        sanitize_string(body.message),
        body.severity,
    )
    return CountResponse(count=delivered)
