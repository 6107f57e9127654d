from .audit_log import AuditLog
from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin, utcnow
from .notification import Notification
from .overage import Overage
from .user import User
from .workflow import Workflow
from .workflow_version import SYSTEM_ACTOR, SnapshotType, WorkflowVersion

__all__ = [
    "SYSTEM_ACTOR",
    "AuditLog",
    "Base",
    "Notification",
    "Overage",
    "SnapshotType",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "User",
    "Workflow",
    "WorkflowVersion",
    "utcnow",
]
