"""Tests for the event reminder job."""

from datetime import datetime, timedelta, timezone

import pytest

from pickup_push.models.event import Event, EventParticipant, EventReminder
from pickup_push.services.push import FanoutDispatcher
from pickup_push.services.reminders import format_minutes, is_reminder_due, process_due_reminders
from pickup_push.services.subscriptions import SubscriptionInfo, SubscriptionKeys, SubscriptionStore

NOW = datetime(2026, 6, 1, 17, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "minutes,expected",
    [
        (15, "15 minutes"),
        (60, "1 hour"),
        (90, "1 hour"),
        (180, "3 hours"),
        (1440, "1 day"),
        (2880, "2 days"),
    ],
)
def test_format_minutes(minutes, expected):
    assert format_minutes(minutes) == expected


class TestIsReminderDue:
    """Test the due window around start - lead time."""

    def test_due_exactly_at_reminder_time(self):
        assert is_reminder_due(NOW + timedelta(minutes=30), 30, NOW)

    def test_due_within_window(self):
        assert is_reminder_due(NOW + timedelta(minutes=31), 30, NOW)

    def test_not_due_outside_window(self):
        assert not is_reminder_due(NOW + timedelta(minutes=45), 30, NOW)

    def test_naive_start_treated_as_utc(self):
        starts_at = (NOW + timedelta(minutes=30)).replace(tzinfo=None)

        assert is_reminder_due(starts_at, 30, NOW)


async def seed_event(db, starts_at, reminder_minutes=30):
    db.add(Event(
        id="E1",
        title="Pickup Soccer",
        location="Central Park",
        starts_at=starts_at,
        reminder_minutes=reminder_minutes,
        creator_id="creator",
    ))
    db.add(EventParticipant(event_id="E1", user_id="player"))
    db.add(EventParticipant(event_id="E1", user_id="creator"))
    await db.commit()

    store = SubscriptionStore(db)
    for user_id in ("creator", "player", "stranger"):
        info = SubscriptionInfo(
            endpoint=f"https://push.example.com/{user_id}",
            keys=SubscriptionKeys(p256dh="p256dh", auth="auth"),
        )
        await store.save(user_id, info)


class TestProcessDueReminders:
    """Test the reminder job end to end."""

    def test_sends_once_to_creator_and_participants(self, run_db, dispatcher, transport):
        async def body(db):
            await seed_event(db, NOW + timedelta(minutes=30))
            first = await process_due_reminders(db, dispatcher, now=NOW)
            second = await process_due_reminders(db, dispatcher, now=NOW + timedelta(minutes=1))
            marks = (await db.execute(EventReminder.__table__.select())).all()
            return first, second, len(marks)

        first, second, marks = run_db(body)

        assert (first, second, marks) == (2, 0, 1)
        assert sorted(transport.attempts) == [
            "https://push.example.com/creator",
            "https://push.example.com/player",
        ]
        _, delivered = transport.delivered[0]
        assert delivered == {
            "title": "Event Reminder",
            "body": "Pickup Soccer starts in 30 minutes",
            "data": {"url": "/events/E1", "eventId": "E1"},
        }

    def test_not_due_yet(self, run_db, dispatcher, transport):
        async def body(db):
            await seed_event(db, NOW + timedelta(hours=3))
            return await process_due_reminders(db, dispatcher, now=NOW)

        assert run_db(body) == 0
        assert transport.attempts == []

    def test_past_events_ignored(self, run_db, dispatcher, transport):
        async def body(db):
            await seed_event(db, NOW - timedelta(minutes=1), reminder_minutes=1)
            return await process_due_reminders(db, dispatcher, now=NOW)

        assert run_db(body) == 0

    def test_missing_identity_sends_nothing(self, run_db, unconfigured_key_manager, transport):
        dispatcher = FanoutDispatcher(unconfigured_key_manager, transport=transport)

        async def body(db):
            await seed_event(db, NOW + timedelta(minutes=30))
            return await process_due_reminders(db, dispatcher, now=NOW)

        assert run_db(body) == 0
        assert transport.attempts == []
