# noqa: F401 to ensure models are imported for metadata
from soloflow.models.audit import AuditLog, AuthLog
from soloflow.models.billing import Subscription
from soloflow.models.notification import UserNotification
from soloflow.models.user import User

__all__ = [
    "AuditLog",
    "AuthLog",
    "Subscription",
    "UserNotification",
    "User",
]
