"""
Push notifications router: subscriptions, VAPID key and nearby fan-out.
"""

import logging
from urllib.parse import urlparse

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.responses import JSONResponse

from pickup_push.deps import CurrentUserId, DBSession, Dispatcher, Keys, Store
from pickup_push.errors import NotConfiguredError, PushError, ValidationError
from pickup_push.schemas.push import SendRequest, SendResponse, SubscribeRequest, UnsubscribeRequest
from pickup_push.services.push import NotificationPayload
from pickup_push.services.subscriptions import SubscriptionInfo
from pickup_push.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/push", tags=["push"])

NEARBY_TITLE = "Workout Now!"


@router.get("/vapid-public-key")
async def get_vapid_public_key(keys: Keys):
    """Get the VAPID public key for push subscription."""
    public_key = keys.get_public_key()
    if not public_key:
        raise NotConfiguredError("VAPID keys not configured")
    return {"publicKey": public_key}


@router.post("/subscribe")
async def subscribe(
    request: Request,
    body: SubscribeRequest,
    user_id: CurrentUserId,
    store: Store,
):
    """Register (or refresh) this device's push subscription."""
    if not body.subscription:
        raise ValidationError("Invalid subscription data", field="subscription")
    subscription = SubscriptionInfo.from_dict(body.subscription)

    logger.info("Push subscription request from user %s", user_id)
    await store.save(
        user_id,
        subscription,
        latitude=body.latitude,
        longitude=body.longitude,
        user_agent=request.headers.get("User-Agent"),
    )
    return {"success": True, "message": "Subscription saved"}


@router.delete("/unsubscribe")
async def unsubscribe(
    body: UnsubscribeRequest,
    user_id: CurrentUserId,
    store: Store,
):
    """Unsubscribe from push notifications."""
    if not body.endpoint:
        raise ValidationError("Endpoint is required", field="endpoint")

    removed = await store.remove(user_id, body.endpoint)
    if removed:
        logger.info("Removed push subscription for user %s", user_id)
    return {"success": True, "message": "Subscription removed"}


@router.post("/send", response_model=SendResponse)
async def send_to_nearby(
    body: SendRequest,
    user_id: CurrentUserId,
    db: DBSession,
    dispatcher: Dispatcher,
):
    """Notify subscribers near a newly created event (the creator excluded)."""
    if body.latitude is None or body.longitude is None:
        raise ValidationError("Event location coordinates are required", field="latitude")

    radius_km = body.radius_km if body.radius_km is not None else settings.push_default_radius_km
    event_id = body.event_id or ""
    payload = NotificationPayload.for_event(
        NEARBY_TITLE,
        f"{body.event_title or ''} - {body.event_location or ''}",
        event_id,
    )

    try:
        result = await dispatcher.deliver(
            db,
            body.latitude,
            body.longitude,
            payload,
            radius_km=radius_km,
            excluded_user_id=user_id,
        )
    except PushError:
        raise
    except Exception:
        logger.exception("Send notification error for event %s", event_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send notifications",
        )

    return {
        "success": True,
        "message": f"Notified {result.sent} nearby users",
        **result.as_dict(),
    }


@router.post("/test")
async def send_test_notification(
    user_id: CurrentUserId,
    db: DBSession,
    dispatcher: Dispatcher,
):
    """Send a test push notification to the current user's devices."""
    payload = NotificationPayload(
        title="Test Notification",
        body="Push notifications are working!",
        data={"url": "/profile"},
    )
    result = await dispatcher.deliver_to_user(db, user_id, payload)

    if result.total == 0:
        return JSONResponse(
            {"success": False, "message": "No active push subscriptions found"},
            status_code=status.HTTP_404_NOT_FOUND,
        )
    return {"success": result.sent > 0, **result.as_dict()}


@router.get("/status")
async def get_push_status(
    user_id: CurrentUserId,
    store: Store,
    keys: Keys,
):
    """Get push notification status for debugging."""
    subscriptions = await store.list_for_user(user_id)

    sub_info = []
    for sub in subscriptions:
        sub_info.append({
            "id": sub.id,
            "endpoint_domain": urlparse(sub.endpoint).netloc or "unknown",
            "has_location": sub.has_location,
            "user_agent": sub.user_agent[:50] if sub.user_agent else None,
            "created_at": sub.created_at.isoformat() if sub.created_at else None,
        })

    return {
        "vapid_configured": keys.configured,
        "subscription_count": len(subscriptions),
        "subscriptions": sub_info,
    }
