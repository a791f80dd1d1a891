# backend/tests/factories/notifications.py

import factory
from factory import SubFactory

from modules.notifications.models import NotificationPreference
from .base import BaseFactory
from .core import UserFactory


class NotificationPreferenceFactory(BaseFactory):
    class Meta:
        model = NotificationPreference

    user = SubFactory(UserFactory)
    quiet_hours_enabled = False
    quiet_hours_start = "23:00"
    quiet_hours_end = "07:00"
    batch_low_urgency = True
    max_per_hour = 20
    type_preferences = factory.LazyFunction(dict)
