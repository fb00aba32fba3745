"""
Push notification fan-out using web-push.
"""

import asyncio
import functools
import json
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from pywebpush import WebPushException, webpush
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from pickup_push.errors import (
    NotConfiguredError,
    PermanentDeliveryError,
    TransientDeliveryError,
    TransportError,
)
from pickup_push.models.push_subscription import PushSubscription
from pickup_push.services.geo import select_nearby, validate_coordinates, validate_radius
from pickup_push.services.keys import KeyManager, SigningIdentity
from pickup_push.services.subscriptions import SubscriptionStore

logger = logging.getLogger(__name__)

# Push services answer these when the subscription no longer exists
GONE_STATUS_CODES = frozenset({404, 410})


class DeliveryOutcome(str, Enum):
    SUCCESS = "success"
    PERMANENT_FAILURE = "permanent_failure"
    TRANSIENT_FAILURE = "transient_failure"


@dataclass
class NotificationPayload:
    """What the service worker receives in its push event."""

    title: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def for_event(cls, title: str, body: str, event_id: str) -> "NotificationPayload":
        return cls(
            title=title,
            body=body,
            data={"url": f"/events/{event_id}", "eventId": event_id},
        )

    def to_dict(self) -> dict[str, Any]:
        return {"title": self.title, "body": self.body, "data": self.data}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass
class DeliveryReport:
    endpoint: str
    user_id: str
    outcome: DeliveryOutcome
    error: BaseException | None = None


@dataclass
class DispatchResult:
    sent: int = 0
    failed: int = 0
    total: int = 0
    removed: int = 0
    reports: list[DeliveryReport] = field(default_factory=list, repr=False)

    def as_dict(self) -> dict[str, int]:
        return {"sent": self.sent, "failed": self.failed, "total": self.total}


class PushTransport(Protocol):
    async def send(
        self,
        subscription_info: dict,
        data: str,
        identity: SigningIdentity,
        timeout: float,
    ) -> None:
        """Deliver data to one subscription or raise."""
        ...


class WebPushTransport:
    """Sends through pywebpush on the default executor."""

    def __init__(self, ttl: int = 86400):
        self.ttl = ttl

    def _send_sync(
        self,
        subscription_info: dict,
        data: str,
        identity: SigningIdentity,
        timeout: float,
    ) -> None:
        webpush(
            subscription_info=subscription_info,
            data=data,
            vapid_private_key=identity.private_key,
            vapid_claims=identity.claims,
            timeout=timeout,
            ttl=self.ttl,
        )

    async def send(
        self,
        subscription_info: dict,
        data: str,
        identity: SigningIdentity,
        timeout: float,
    ) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            None,
            functools.partial(self._send_sync, subscription_info, data, identity, timeout),
        )


def _response_status(exc: WebPushException) -> int | None:
    # requests.Response is falsy for 4xx/5xx, so compare against None
    response = getattr(exc, "response", None)
    if response is None:
        return None
    return getattr(response, "status_code", None)


def classify_delivery_error(exc: BaseException) -> DeliveryOutcome:
    """Map a delivery exception to permanent or transient failure."""
    if isinstance(exc, PermanentDeliveryError):
        return DeliveryOutcome.PERMANENT_FAILURE
    if isinstance(exc, TransientDeliveryError):
        return DeliveryOutcome.TRANSIENT_FAILURE
    if isinstance(exc, TransportError) and exc.response_status in GONE_STATUS_CODES:
        return DeliveryOutcome.PERMANENT_FAILURE
    if isinstance(exc, WebPushException) and _response_status(exc) in GONE_STATUS_CODES:
        return DeliveryOutcome.PERMANENT_FAILURE
    return DeliveryOutcome.TRANSIENT_FAILURE


DeliveryClassifier = Callable[[BaseException], DeliveryOutcome]


class FanoutDispatcher:
    """Delivers one payload to many subscriptions concurrently.

    Each attempt is bounded by timeout and at most max_concurrency attempts
    run at once. Individual failures are counted, never raised; endpoints the
    push service reports as gone are deleted from the store.
    """

    def __init__(
        self,
        key_manager: KeyManager,
        transport: PushTransport | None = None,
        classifier: DeliveryClassifier = classify_delivery_error,
        max_concurrency: int = 10,
        timeout: float = 10.0,
    ):
        self.key_manager = key_manager
        self.transport = transport or WebPushTransport()
        self.classifier = classifier
        self.max_concurrency = max(1, max_concurrency)
        self.timeout = timeout

    async def deliver(
        self,
        db: AsyncSession,
        center_lat: float,
        center_lon: float,
        payload: NotificationPayload,
        radius_km: float = 10.0,
        excluded_user_id: str | None = None,
    ) -> DispatchResult:
        """Send payload to every subscription within radius_km of the center."""
        validate_coordinates(center_lat, center_lon)
        validate_radius(radius_km)
        identity = self.key_manager.identity

        store = SubscriptionStore(db)
        candidates = await select_nearby(store, center_lat, center_lon, radius_km, excluded_user_id)
        logger.info(
            "Fanning out '%s' to %d subscriptions within %.1f km of (%.5f, %.5f)",
            payload.title, len(candidates), radius_km, center_lat, center_lon,
        )
        return await self._fan_out(store, candidates, payload, identity)

    async def deliver_to_user(
        self,
        db: AsyncSession,
        user_id: str,
        payload: NotificationPayload,
    ) -> DispatchResult:
        """Send payload to every device the user has registered."""
        identity = self.key_manager.identity

        store = SubscriptionStore(db)
        subscriptions = await store.list_for_user(user_id)
        if not subscriptions:
            logger.info("No push subscriptions found for user %s", user_id)
        return await self._fan_out(store, subscriptions, payload, identity)

    async def _fan_out(
        self,
        store: SubscriptionStore,
        subscriptions: Sequence[PushSubscription],
        payload: NotificationPayload,
        identity: SigningIdentity | None,
    ) -> DispatchResult:
        data = payload.to_json()
        semaphore = asyncio.Semaphore(self.max_concurrency)

        # Snapshot rows so no ORM access happens while deliveries overlap
        targets = [(sub.to_webpush_dict(), sub.user_id) for sub in subscriptions]
        if identity is None:
            if targets:
                logger.warning(
                    "VAPID keys not configured; counting %d deliveries as failed", len(targets)
                )
            reports = [
                DeliveryReport(info["endpoint"], user_id, DeliveryOutcome.TRANSIENT_FAILURE, NotConfiguredError())
                for info, user_id in targets
            ]
        else:
            reports = await asyncio.gather(
                *(self._attempt(info, user_id, data, identity, semaphore) for info, user_id in targets)
            )

        result = DispatchResult(total=len(reports), reports=list(reports))
        for report in reports:
            if report.outcome is DeliveryOutcome.SUCCESS:
                result.sent += 1
            else:
                result.failed += 1

        for report in reports:
            if report.outcome is not DeliveryOutcome.PERMANENT_FAILURE:
                continue
            logger.info("Removing expired push subscription %s...", report.endpoint[:60])
            try:
                result.removed += await store.remove_endpoint(report.endpoint)
            except SQLAlchemyError:
                # The delivery is already counted; a stale row is retried next time
                logger.exception("Failed to remove push subscription %s...", report.endpoint[:60])
                await store.db.rollback()

        logger.info(
            "Push fan-out finished: sent=%d failed=%d total=%d removed=%d",
            result.sent, result.failed, result.total, result.removed,
        )
        return result

    async def _attempt(
        self,
        subscription_info: dict,
        user_id: str,
        data: str,
        identity: SigningIdentity,
        semaphore: asyncio.Semaphore,
    ) -> DeliveryReport:
        endpoint = subscription_info["endpoint"]
        async with semaphore:
            try:
                await asyncio.wait_for(
                    self.transport.send(subscription_info, data, identity, self.timeout),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError as e:
                logger.warning("Push delivery timed out after %.1fs for %s...", self.timeout, endpoint[:60])
                return DeliveryReport(endpoint, user_id, DeliveryOutcome.TRANSIENT_FAILURE, e)
            except Exception as e:
                outcome = self.classifier(e)
                logger.error(
                    "Push delivery failed for %s... (%s): %s",
                    endpoint[:60], outcome.value, e,
                )
                return DeliveryReport(endpoint, user_id, outcome, e)

        logger.debug("Push delivered to %s...", endpoint[:60])
        return DeliveryReport(endpoint, user_id, DeliveryOutcome.SUCCESS)
