from soloflow.schemas import admin, auth, billing, common, notification, user

__all__ = [
    "admin",
    "auth",
    "billing",
    "common",
    "notification",
    "user",
]
