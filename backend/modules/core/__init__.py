# backend/modules/core/__init__.py
"""Core module containing restaurants, networks, users and worker profiles."""

from .models import Restaurant, RestaurantNetwork, User, WorkerProfile, WorkerTier

__all__ = [
    "Restaurant",
    "RestaurantNetwork",
    "User",
    "WorkerProfile",
    "WorkerTier",
]
