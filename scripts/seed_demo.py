#!/usr/bin/env python3
"""
Seed script to create a demo venue with tables, lanes and gaming blocks
"""

import asyncio
import uuid

DAILY_HOURS = {"open": "11:00", "close": "23:00"}
WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


async def seed_demo_data():
    """Seed demo data for development"""
    from sqlalchemy import select

    from app.api.auth import create_access_token
    from app.database import SessionLocal, engine, Base
    from app.models.resource import Resource, ResourceKind
    from app.models.user import StaffMembership, User, UserRole
    from app.models.venue import Venue

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with SessionLocal() as db:
        # Check if demo venue already exists
        result = await db.execute(select(Venue).where(Venue.name == "Strike & Fork"))
        if result.scalar_one_or_none():
            print("Demo data already exists. Skipping...")
            return

        print("Creating demo venue...")

        venue = Venue(
            id=uuid.uuid4(),
            name="Strike & Fork",
            timezone="America/New_York",
            hours_json={day: dict(DAILY_HOURS) for day in WEEKDAYS},
            seating_capacity=60,
            policies_json={
                "cutoff_minutes": 120,
                "target_windows": [{"start": "14:00", "end": "17:00"}],
            },
        )
        db.add(venue)
        await db.flush()

        print(f"Created venue: {venue.name} (ID: {venue.id})")

        # Dining room
        table_sizes = [2, 2, 2, 4, 4, 4, 4, 6, 6, 8]
        for number, size in enumerate(table_sizes, start=1):
            db.add(Resource(
                venue_id=venue.id,
                kind=ResourceKind.TABLE,
                label=f"Table {number}",
                number=number,
                capacity=size,
            ))

        # Bowling lanes
        for number in range(1, 13):
            db.add(Resource(
                venue_id=venue.id,
                kind=ResourceKind.LANE,
                label=f"Lane {number}",
                number=number,
                capacity=6,
            ))

        # Gaming blocks; the arcade block has no declared member limit
        db.add(Resource(
            venue_id=venue.id,
            kind=ResourceKind.GAMING_BLOCK,
            label="VR Pod",
            capacity=4,
            block_minutes=60,
        ))
        db.add(Resource(
            venue_id=venue.id,
            kind=ResourceKind.GAMING_BLOCK,
            label="Arcade Hour",
            block_minutes=60,
        ))

        admin_user = User(
            id=uuid.uuid4(),
            email="admin@lineup.dev",
            full_name="System Admin",
            role=UserRole.SUPER_ADMIN,
            is_active=True,
        )
        manager = User(
            id=uuid.uuid4(),
            email="manager@strikeandfork.com",
            full_name="Dana Manager",
            phone="+15559876543",
            role=UserRole.VENUE_ADMIN,
            is_active=True,
        )
        diner = User(
            id=uuid.uuid4(),
            email="guest@example.com",
            full_name="Demo Guest",
            phone="+15551234567",
            role=UserRole.DINER,
            is_active=True,
        )
        db.add_all([admin_user, manager, diner])
        await db.flush()

        db.add(StaffMembership(user_id=manager.id, venue_id=venue.id, role="manager"))

        await db.commit()

        print(f"""
Demo data created successfully!

Venue: {venue.name}
  ID: {venue.id}
  Tables: {len(table_sizes)}, Lanes: 12, Gaming blocks: 2

Development tokens (expire in minutes, re-run to refresh):
  Super Admin ({admin_user.email}):
    {create_access_token(admin_user)}

  Venue Admin ({manager.email}):
    {create_access_token(manager)}

  Diner ({diner.email}):
    {create_access_token(diner)}
""")


if __name__ == "__main__":
    asyncio.run(seed_demo_data())
