"""API Request/Response Models.

Pydantic schemas for the push, publish and admin endpoints.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from src.realtime.config import MessagePriority
from src.realtime.events import AnnouncementSeverity, EventTarget


# ─── Common ──────────────────────────────────────────────────────────────


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str
    connections: int
    hub_running: bool


class TargetModel(BaseModel):
    """Routing target; leave every field empty to broadcast."""

    sessions: list[str] = Field(default_factory=list)
    user_id: Optional[str] = None
    faculty_id: Optional[str] = None
    permissions: list[str] = Field(default_factory=list)
    admins: bool = False

    def to_target(self) -> EventTarget:
        return EventTarget(
            sessions=frozenset(self.sessions),
            user_id=self.user_id,
            faculty_id=self.faculty_id,
            permissions=frozenset(self.permissions),
            admins=self.admins,
        )


class DispatchResponse(BaseModel):
    """Result of routing one event."""

    message_id: str
    matched: int = 0
    delivered: int = 0
    dropped: int = 0
    expired: int = 0


# ─── Publish ─────────────────────────────────────────────────────────────


class NotificationRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=2000)
    notification_type: str = "info"
    action_url: Optional[str] = None
    priority: MessagePriority = MessagePriority.NORMAL
    ttl_seconds: Optional[int] = Field(default=None, ge=1)
    target: TargetModel = Field(default_factory=TargetModel)


class AnnouncementRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=2000)
    severity: AnnouncementSeverity = AnnouncementSeverity.INFO
    faculty_id: Optional[str] = None
    ttl_seconds: int = Field(default=24 * 3600, ge=1)


class ActivityCheckInRequest(BaseModel):
    activity_id: str
    activity_name: str
    user_id: str
    user_name: str
    faculty_id: Optional[str] = None


class NewActivityRequest(BaseModel):
    activity_id: str
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=2000)
    start_time: Optional[float] = None
    end_time: Optional[float] = None
    faculty_id: Optional[str] = None


class SubscriptionExpiryRequest(BaseModel):
    user_id: str
    subscription_type: str
    expires_at: float
    days_remaining: int = Field(..., ge=0)
    renewal_url: Optional[str] = None


class RecordChangedRequest(BaseModel):
    record_type: str
    record_id: str
    action: str = Field(..., pattern="^(created|updated|deleted)$")
    changes: dict[str, Any] = Field(default_factory=dict)
    priority: MessagePriority = MessagePriority.NORMAL
    target: TargetModel = Field(default_factory=TargetModel)


# ─── Admin ───────────────────────────────────────────────────────────────


class PermissionNotifyRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=2000)
    notification_type: str = "info"
    priority: MessagePriority = MessagePriority.NORMAL


class ForceLogoutRequest(BaseModel):
    reason: str = "forced_logout"
    message: Optional[str] = None
    force_all_devices: bool = False


class PermissionUpdateRequest(BaseModel):
    user_id: str
    old_permissions: list[str] = Field(default_factory=list)
    new_permissions: list[str] = Field(default_factory=list)
    requires_re_login: bool = False


class PromotionRequest(BaseModel):
    user_id: str
    new_role: str
    faculty_id: Optional[str] = None


class TestNotificationRequest(BaseModel):
    title: str = "Test notification"
    message: str = "This is a test notification."
    notification_type: str = "info"
    target_user_id: Optional[str] = None
    broadcast: bool = False


class AdminAssignmentRequest(BaseModel):
    assignment_id: str
    admin_id: str
    admin_name: Optional[str] = None
    task_type: str
    task_description: str = Field(..., min_length=1, max_length=2000)
    due_date: Optional[float] = None
    priority: MessagePriority = MessagePriority.NORMAL


class AdminAlertRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=2000)
    severity: AnnouncementSeverity = AnnouncementSeverity.IMPORTANT


class CountResponse(BaseModel):
    """Generic count result (delivered events, removed connections)."""

    count: int


class StatsResponse(BaseModel):
    total_connections: int
    unique_users: int
    connections_by_faculty: dict[str, int]
    connections_by_permission: dict[str, int]
    connections_by_role: dict[str, int]
    average_connection_age_seconds: float
    stale_connections: int
    total_queued: int
    total_dropped: int
    slow_consumers: list[str]
    fanout: dict[str, int]
    uptime_seconds: float
