from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SubscribeRequest(BaseModel):
    """Browser PushSubscription JSON plus the device's last known position."""

    subscription: dict[str, Any] | None = None
    latitude: float | None = None
    longitude: float | None = None


class UnsubscribeRequest(BaseModel):
    endpoint: str | None = None


class SendRequest(BaseModel):
    """Fan-out trigger sent when an event is created."""

    model_config = ConfigDict(populate_by_name=True)

    event_id: str | None = Field(default=None, alias="eventId")
    event_title: str | None = Field(default=None, alias="eventTitle")
    event_location: str | None = Field(default=None, alias="eventLocation")
    latitude: float | None = None
    longitude: float | None = None
    radius_km: float | None = Field(default=None, alias="radiusKm")


class SendResponse(BaseModel):
    success: bool
    message: str
    sent: int
    failed: int
    total: int
