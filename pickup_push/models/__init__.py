# Models package
from pickup_push.db import Base
from pickup_push.models.event import Event, EventParticipant, EventReminder
from pickup_push.models.push_subscription import PushSubscription

__all__ = [
    "Base",
    "Event",
    "EventParticipant",
    "EventReminder",
    "PushSubscription",
]
