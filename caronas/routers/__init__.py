"""Caronas Routers Package"""

from caronas.routers import (
    admin,
    users,
    rides,
    ratings,
    websocket,
)

__all__ = [
    "admin",
    "users",
    "rides",
    "ratings",
    "websocket",
]
