"""Change handlers, one module per source entity."""

from .app_config import AppConfigMirrorHandler
from .license import LicenseFanoutHandler
from .notification import NotificationCounterMaintainer
from .student import AppProjectionRefresher, StudentMirrorWriter

__all__ = [
    "AppConfigMirrorHandler",
    "AppProjectionRefresher",
    "LicenseFanoutHandler",
    "NotificationCounterMaintainer",
    "StudentMirrorWriter",
]
