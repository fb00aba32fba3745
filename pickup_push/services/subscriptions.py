"""
Subscription storage: idempotent upsert by endpoint, removal and radius queries.
"""

import logging
import math
from dataclasses import dataclass

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pickup_push.errors import ValidationError
from pickup_push.models.push_subscription import PushSubscription
from pickup_push.services.geo import haversine_km, latitude_band

logger = logging.getLogger(__name__)


@dataclass
class SubscriptionKeys:
    p256dh: str
    auth: str


@dataclass
class SubscriptionInfo:
    """Subscription as registered by the browser's PushManager."""

    endpoint: str
    keys: SubscriptionKeys

    @classmethod
    def from_dict(cls, data: dict) -> "SubscriptionInfo":
        """Build from the browser's JSON shape, rejecting missing fields."""
        if not isinstance(data, dict):
            raise ValidationError("Invalid subscription data", field="subscription")
        endpoint = data.get("endpoint")
        if not endpoint or not isinstance(endpoint, str):
            raise ValidationError("Subscription endpoint is required", field="endpoint")
        keys = data.get("keys")
        if not keys or not isinstance(keys, dict):
            raise ValidationError("Subscription keys are required", field="keys")
        return cls(
            endpoint=endpoint,
            keys=SubscriptionKeys(p256dh=keys.get("p256dh") or "", auth=keys.get("auth") or ""),
        )


def _check_location(latitude: float | None, longitude: float | None) -> None:
    if latitude is None and longitude is None:
        return
    if latitude is None or longitude is None:
        raise ValidationError("Latitude and longitude must be provided together", field="latitude")
    for name, value, limit in (("latitude", latitude, 90.0), ("longitude", longitude, 180.0)):
        if not isinstance(value, (int, float)) or not math.isfinite(value) or abs(value) > limit:
            raise ValidationError(f"Invalid {name}", field=name)


class SubscriptionStore:
    """Push subscriptions backed by the relational store.

    One instance wraps one session. Every mutating call commits.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_endpoint(self, endpoint: str) -> PushSubscription | None:
        result = await self.db.execute(
            select(PushSubscription).where(PushSubscription.endpoint == endpoint)
        )
        return result.scalar_one_or_none()

    async def save(
        self,
        user_id: str,
        subscription: SubscriptionInfo,
        latitude: float | None = None,
        longitude: float | None = None,
        user_agent: str | None = None,
    ) -> PushSubscription:
        """Create or update the subscription for subscription.endpoint.

        Re-registration overwrites keys and moves the row to user_id. A
        re-registration without coordinates keeps the last known location.
        """
        if not subscription.endpoint:
            raise ValidationError("Subscription endpoint is required", field="endpoint")
        if not subscription.keys.p256dh or not subscription.keys.auth:
            raise ValidationError("Subscription keys are required", field="keys")
        _check_location(latitude, longitude)

        existing = await self.get_by_endpoint(subscription.endpoint)
        if existing is None:
            row = PushSubscription(
                user_id=user_id,
                endpoint=subscription.endpoint,
                p256dh_key=subscription.keys.p256dh,
                auth_key=subscription.keys.auth,
                latitude=latitude,
                longitude=longitude,
                user_agent=user_agent,
            )
            self.db.add(row)
            try:
                await self.db.commit()
                await self.db.refresh(row)
                logger.info("Created push subscription for user %s", user_id)
                return row
            except IntegrityError:
                # Another request registered the same endpoint first
                await self.db.rollback()
                existing = await self.get_by_endpoint(subscription.endpoint)
                if existing is None:
                    raise

        if existing.user_id != user_id:
            logger.info(
                "Push subscription %s moved from user %s to user %s",
                existing.id, existing.user_id, user_id,
            )
        existing.user_id = user_id
        existing.p256dh_key = subscription.keys.p256dh
        existing.auth_key = subscription.keys.auth
        if latitude is not None and longitude is not None:
            existing.latitude = latitude
            existing.longitude = longitude
        if user_agent:
            existing.user_agent = user_agent
        await self.db.commit()
        await self.db.refresh(existing)
        logger.info("Updated push subscription %s for user %s", existing.id, user_id)
        return existing

    async def remove(self, user_id: str, endpoint: str) -> int:
        """Delete the user's subscription for endpoint. Missing rows are fine."""
        result = await self.db.execute(
            delete(PushSubscription).where(
                PushSubscription.user_id == user_id,
                PushSubscription.endpoint == endpoint,
            )
        )
        await self.db.commit()
        return result.rowcount or 0

    async def remove_endpoint(self, endpoint: str) -> int:
        """Delete whatever subscription holds endpoint, regardless of owner."""
        result = await self.db.execute(
            delete(PushSubscription).where(PushSubscription.endpoint == endpoint)
        )
        await self.db.commit()
        return result.rowcount or 0

    async def list_for_user(self, user_id: str) -> list[PushSubscription]:
        result = await self.db.execute(
            select(PushSubscription)
            .where(PushSubscription.user_id == user_id)
            .order_by(PushSubscription.id)
        )
        return list(result.scalars().all())

    async def count(self) -> int:
        result = await self.db.execute(select(func.count(PushSubscription.id)))
        return result.scalar_one()

    async def query_within_radius(
        self,
        center_lat: float,
        center_lon: float,
        radius_km: float,
        exclude_user_id: str | None = None,
    ) -> list[PushSubscription]:
        """Subscriptions with a location at most radius_km from the center.

        Rows owned by exclude_user_id and rows without a location never match.
        """
        min_lat, max_lat = latitude_band(center_lat, radius_km)
        statement = select(PushSubscription).where(
            PushSubscription.latitude.is_not(None),
            PushSubscription.longitude.is_not(None),
            PushSubscription.latitude >= min_lat,
            PushSubscription.latitude <= max_lat,
        )
        if exclude_user_id is not None:
            statement = statement.where(PushSubscription.user_id != exclude_user_id)

        result = await self.db.execute(statement.order_by(PushSubscription.id))
        nearby = [
            sub
            for sub in result.scalars().all()
            if haversine_km(center_lat, center_lon, sub.latitude, sub.longitude) <= radius_km
        ]
        logger.debug(
            "Radius query (%.5f, %.5f, %.2f km) matched %d subscriptions",
            center_lat, center_lon, radius_km, len(nearby),
        )
        return nearby
