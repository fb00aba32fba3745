"""Seed script to populate database with sample subscriptions and an event."""

import asyncio
import sys
from datetime import datetime, timedelta, timezone

sys.path.insert(0, ".")

from sqlalchemy import select

from pickup_push.db import get_db_context, init_db
from pickup_push.models import Event, EventParticipant, PushSubscription

# Central Park, and a few devices around it
CENTER = (40.7829, -73.9654)
DEVICES = [
    ("alice", 40.7850, -73.9680),   # ~0.3 km
    ("bob", 40.8296, -73.9262),     # ~6 km
    ("carol", 40.6892, -74.0445),   # ~12.6 km, outside the default radius
    ("dave", None, None),           # no location shared
]


async def seed_database():
    """Seed the database with sample data."""
    await init_db()

    async with get_db_context() as session:
        existing = await session.execute(select(PushSubscription).limit(1))
        if existing.scalar_one_or_none():
            print("Database already seeded. Skipping.")
            return

        print("Seeding database...")

        for user_id, lat, lon in DEVICES:
            session.add(
                PushSubscription(
                    user_id=user_id,
                    endpoint=f"https://push.example.com/send/{user_id}",
                    p256dh_key="BDemoP256dhKeyForLocalTesting",
                    auth_key="demo-auth",
                    latitude=lat,
                    longitude=lon,
                )
            )
        print(f"Created {len(DEVICES)} push subscriptions")

        event = Event(
            id="demo-event",
            title="Pickup Tennis",
            location="Central Park",
            starts_at=datetime.now(timezone.utc) + timedelta(minutes=31),
            reminder_minutes=30,
            creator_id="alice",
        )
        session.add(event)
        session.add(EventParticipant(event_id=event.id, user_id="bob"))
        print(f"Created event: {event.title} (reminder due in ~1 minute)")

        print("\nDone.")


if __name__ == "__main__":
    asyncio.run(seed_database())
