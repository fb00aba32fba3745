"""
Scheduled jobs triggered by the platform's cron (GET with a shared secret).
"""

import logging
import secrets
from typing import Annotated

from fastapi import APIRouter, Header, HTTPException, status

from pickup_push.deps import DBSession, Dispatcher
from pickup_push.errors import AuthError, PushError
from pickup_push.services.reminders import process_due_reminders
from pickup_push.settings import settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cron", tags=["cron"])


def _check_cron_secret(authorization: str | None) -> None:
    expected = f"Bearer {settings.cron_secret}" if settings.cron_secret else None
    if expected and authorization and secrets.compare_digest(authorization, expected):
        return
    # Outside production the job may be triggered by hand
    if settings.is_production:
        raise AuthError("Unauthorized")


@router.get("/reminders")
async def send_reminders(
    db: DBSession,
    dispatcher: Dispatcher,
    authorization: Annotated[str | None, Header()] = None,
):
    """Push reminders for events starting soon."""
    _check_cron_secret(authorization)

    try:
        sent = await process_due_reminders(db, dispatcher)
    except PushError:
        raise
    except Exception:
        logger.exception("Reminder cron error")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process reminders",
        )

    return {"success": True, "message": "Processed reminders", "sent": sent}
