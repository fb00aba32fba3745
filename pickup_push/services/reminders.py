"""
Event reminder job: pushes "starts in ..." notifications to event members.
"""

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from pickup_push.models.event import Event, EventParticipant, EventReminder
from pickup_push.services.push import FanoutDispatcher, NotificationPayload

logger = logging.getLogger(__name__)

# The cron runs every minute; a reminder is due when now is this close to its time
REMINDER_WINDOW = timedelta(minutes=2)
REMINDER_TITLE = "Event Reminder"


def format_minutes(minutes: int) -> str:
    """Human readable lead time: '30 minutes', '1 hour', '3 hours', '2 days'."""
    if minutes < 60:
        return f"{minutes} minutes"
    hours = minutes // 60
    if hours == 1:
        return "1 hour"
    if hours < 24:
        return f"{hours} hours"
    days = hours // 24
    return "1 day" if days == 1 else f"{days} days"


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_reminder_due(
    starts_at: datetime,
    reminder_minutes: int,
    now: datetime,
    window: timedelta = REMINDER_WINDOW,
) -> bool:
    reminder_at = _as_utc(starts_at) - timedelta(minutes=reminder_minutes)
    return abs(_as_utc(now) - reminder_at) < window


async def _recipients(db: AsyncSession, event: Event) -> list[str]:
    result = await db.execute(
        select(EventParticipant.user_id).where(EventParticipant.event_id == event.id)
    )
    # Creator first, no duplicates
    return list(dict.fromkeys([event.creator_id, *result.scalars().all()]))


async def _already_sent(db: AsyncSession, event_id: str) -> bool:
    result = await db.execute(
        select(EventReminder.id).where(EventReminder.event_id == event_id)
    )
    return result.scalar_one_or_none() is not None


async def process_due_reminders(
    db: AsyncSession,
    dispatcher: FanoutDispatcher,
    now: datetime | None = None,
) -> int:
    """Send every reminder that is due and not yet sent.

    Returns the number of notifications delivered.
    """
    now = _as_utc(now or datetime.now(timezone.utc))

    result = await db.execute(
        select(Event).where(
            Event.reminder_minutes.is_not(None),
            Event.starts_at > now,
        )
    )
    events = result.scalars().all()

    total_sent = 0
    for event in events:
        if not event.reminder_minutes:
            continue
        if not is_reminder_due(event.starts_at, event.reminder_minutes, now):
            continue
        if await _already_sent(db, event.id):
            continue

        payload = NotificationPayload.for_event(
            REMINDER_TITLE,
            f"{event.title} starts in {format_minutes(event.reminder_minutes)}",
            event.id,
        )
        for user_id in await _recipients(db, event):
            delivery = await dispatcher.deliver_to_user(db, user_id, payload)
            total_sent += delivery.sent

        db.add(EventReminder(event_id=event.id))
        try:
            await db.commit()
        except IntegrityError:
            # A concurrent run recorded it first
            await db.rollback()

        logger.info('Sent reminder for event "%s"', event.title)

    return total_sent
