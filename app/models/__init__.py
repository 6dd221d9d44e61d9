from .status import DatacenterStatus, StatusHistory, VPSStatus, StatusChange
from .user import User, UserSubscription
from .notification import EmailNotification, NotificationState

__all__ = [
    "DatacenterStatus",
    "StatusHistory",
    "VPSStatus",
    "StatusChange",
    "User",
    "UserSubscription",
    "EmailNotification",
    "NotificationState",
]
