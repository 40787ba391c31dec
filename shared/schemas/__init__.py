"""
Schema definitions for change events and records.

Provides type-safe schemas for:
- Change envelopes and the Created/Updated/Deleted transitions
- Source-of-truth records and their projections
"""

from .events import (
    Change,
    ChangeEnvelope,
    Created,
    Deleted,
    EntityType,
    Updated,
    build_change,
    classify_stream_record,
    current_state,
    images,
    previous_state,
    synthesize_creation,
)
from .models import (
    AdminAccount,
    AppConfig,
    AppDeviceConfig,
    AppPii,
    AppSummary,
    License,
    LicenseSummary,
    NotificationRecord,
    Student,
    TeamMember,
    UserConfig,
    UserNotificationCounter,
)

__all__ = [
    "Change",
    "ChangeEnvelope",
    "Created",
    "Deleted",
    "EntityType",
    "Updated",
    "build_change",
    "classify_stream_record",
    "current_state",
    "images",
    "previous_state",
    "synthesize_creation",
    "AdminAccount",
    "AppConfig",
    "AppDeviceConfig",
    "AppPii",
    "AppSummary",
    "License",
    "LicenseSummary",
    "NotificationRecord",
    "Student",
    "TeamMember",
    "UserConfig",
    "UserNotificationCounter",
]
