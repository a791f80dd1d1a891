# backend/modules/core/models/__init__.py
"""Core models module"""

from .core_models import (
    Restaurant, RestaurantNetwork, User, WorkerProfile, WorkerTier
)

__all__ = [
    "Restaurant",
    "RestaurantNetwork",
    "User",
    "WorkerProfile",
    "WorkerTier",
]
