"""Publish endpoints for collaborator-produced domain events."""

import logging

from fastapi import APIRouter, Depends

from src.api.dependencies import get_hub, require_admin
from src.api.models import (
    ActivityCheckInRequest,
    AnnouncementRequest,
    DispatchResponse,
    NewActivityRequest,
    NotificationRequest,
    RecordChangedRequest,
    SubscriptionExpiryRequest,
)
from src.api_errors import sanitize_string
from src.realtime.config import MessagePriority
from src.realtime.events import (
    ActivityCheckedInPayload,
    EventBuilder,
    EventTarget,
    EventType,
    RecordChangedPayload,
    new_activity_event,
    notification,
    subscription_expiry_warning,
    system_announcement,
)
from src.realtime.hub import RealtimeHub
from src.realtime.registry import ConnectionIdentity

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/sse", tags=["Realtime Publish"])


def _respond(hub: RealtimeHub, event) -> DispatchResponse:
    report = hub.fanout.dispatch_report(event)
    return DispatchResponse(
        message_id=report.message_id,
        matched=report.matched,
        delivered=report.delivered,
        dropped=report.dropped,
        expired=report.expired,
    )


@router.post("/notification", response_model=DispatchResponse)
async def publish_notification(
    body: NotificationRequest,
    identity: ConnectionIdentity = Depends(require_admin),
    hub: RealtimeHub = Depends(get_hub),
):
    event = notification(
        title=sanitize_string(body.title),
        message=sanitize_string(body.message),
        target=body.target.to_target(),
        notification_type=body.notification_type,
        priority=body.priority,
        action_url=body.action_url,
        ttl_seconds=body.ttl_seconds,
    )
    return _respond(hub, event)


@router.post("/announcement", response_model=DispatchResponse)
async def publish_announcement(
    body: AnnouncementRequest,
    identity: ConnectionIdentity = Depends(require_admin),
    hub: RealtimeHub = Depends(get_hub),
):
    target = EventTarget.for_faculty(body.faculty_id) if body.faculty_id else EventTarget.broadcast()
    event = system_announcement(
        title=sanitize_string(body.title),
        message=sanitize_string(body.message),
        severity=body.severity,
        target=target,
        ttl_seconds=body.ttl_seconds,
    )
    logger.info("Announcement %s published by user=%s", event.message_id, identity.user_id)
    return _respond(hub, event)


@router.post("/activity/checked-in", response_model=DispatchResponse)
async def publish_check_in(
    body: ActivityCheckInRequest,
    identity: ConnectionIdentity = Depends(require_admin),
    hub: RealtimeHub = Depends(get_hub),
):
    payload = ActivityCheckedInPayload(
        activity_id=body.activity_id,
        activity_name=sanitize_string(body.activity_name),
        user_id=body.user_id,
        user_name=sanitize_string(body.user_name),
    )
    builder = EventBuilder(EventType.ACTIVITY_CHECKED_IN, payload).to_user(body.user_id)
    if body.faculty_id:
        builder = builder.to_faculty(body.faculty_id)
    return _respond(hub, builder.with_priority(MessagePriority.NORMAL).build())


@router.post("/activity/new", response_model=DispatchResponse)
async def publish_new_activity(
    body: NewActivityRequest,
    identity: ConnectionIdentity = Depends(require_admin),
    hub: RealtimeHub = Depends(get_hub),
):
    event = new_activity_event(
        activity_id=body.activity_id,
        title=sanitize_string(body.title),
        description=sanitize_string(body.description),
        start_time=body.start_time,
        end_time=body.end_time,
        faculty_id=body.faculty_id,
        created_by=identity.user_id,
    )
    logger.info("Activity %s announced by user=%s", body.activity_id, identity.user_id)
    return _respond(hub, event)


@router.post("/subscription/expiry-warning", response_model=DispatchResponse)
async def publish_subscription_expiry(
    body: SubscriptionExpiryRequest,
    identity: ConnectionIdentity = Depends(require_admin),
    hub: RealtimeHub = Depends(get_hub),
):
    event = subscription_expiry_warning(
        user_id=body.user_id,
        subscription_type=body.subscription_type,
        expires_at=body.expires_at,
        days_remaining=body.days_remaining,
        renewal_url=body.renewal_url,
    )
    return _respond(hub, event)


@router.post("/record-changed", response_model=DispatchResponse)
async def publish_record_changed(
    body: RecordChangedRequest,
    identity: ConnectionIdentity = Depends(require_admin),
    hub: RealtimeHub = Depends(get_hub),
):
    payload = RecordChangedPayload(
        record_type=body.record_type,
        record_id=body.record_id,
        action=body.action,
        changes=body.changes,
    )
    target = body.target.to_target()
    event = (
        EventBuilder(EventType.RECORD_CHANGED, payload)
        .to_sessions(target.sessions)
        .with_permissions(target.permissions)
        .with_priority(body.priority)
    )
    if target.user_id:
        event = event.to_user(target.user_id)
    if target.faculty_id:
        event = event.to_faculty(target.faculty_id)
    return _respond(hub, event.build())
