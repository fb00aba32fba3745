"""
Push subscription model for web push notifications.
"""

from sqlalchemy import Float, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from pickup_push.db import Base
from pickup_push.models.base import TimestampMixin


class PushSubscription(Base, TimestampMixin):
    """Web push subscription for one browser/device.

    The endpoint is the natural key: a device that re-registers under another
    account takes the row with it.
    """

    __tablename__ = "push_subscriptions"
    __table_args__ = (
        Index("ix_push_sub_latitude", "latitude"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    # Identity comes from the external auth provider, so no foreign key
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # Push subscription data
    endpoint: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    p256dh_key: Mapped[str] = mapped_column(String(255), nullable=False)  # Public key
    auth_key: Mapped[str] = mapped_column(String(255), nullable=False)  # Auth secret

    # Last known location; both null means not reachable by radius queries
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    # User agent for device identification
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    def to_webpush_dict(self) -> dict:
        """Subscription info in the shape pywebpush expects."""
        return {
            "endpoint": self.endpoint,
            "keys": {
                "p256dh": self.p256dh_key,
                "auth": self.auth_key,
            },
        }

    def __repr__(self) -> str:
        return f"<PushSubscription user={self.user_id} endpoint={self.endpoint[:40]}>"
