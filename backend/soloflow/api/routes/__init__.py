from . import admin, auth, billing, health, notifications, realtime

__all__ = [
    "admin",
    "auth",
    "billing",
    "health",
    "notifications",
    "realtime",
]
