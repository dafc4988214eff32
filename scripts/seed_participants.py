"""Seed a demo group of participants into the participants table.

Usage: python -m scripts.seed_participants [--group acme] [--backdate]
"""
import argparse
import asyncio
import sys
from datetime import timedelta
sys.path.insert(0, ".")

from sqlalchemy import select
from matchup.config import get_settings
from matchup.database import async_session_factory, engine
from matchup.models.participant import Participant
from matchup.services.participant_service import ParticipantService, normalize_group_key
from matchup.utils.clock import utcnow


DEMO_PARTICIPANTS = [
    {"name": "Alice Morgan", "contact_handle": "+44 7700 900101", "gender": "female"},
    {"name": "Ben Okafor", "contact_handle": "+44 7700 900102", "gender": "male"},
    {"name": "Chloe Tan", "contact_handle": "+44 7700 900103", "gender": "female"},
    {"name": "Dev Patel", "contact_handle": "+44 7700 900104", "gender": "male"},
    {"name": "Eli Novak", "contact_handle": "+44 7700 900105", "gender": "other"},
    {"name": "Fatima Haddad", "contact_handle": "+44 7700 900106", "gender": "female"},
    {"name": "George Lindqvist", "contact_handle": "+44 7700 900107", "gender": "male"},
]


async def seed(group_name: str, backdate: bool) -> None:
    settings = get_settings()
    now = utcnow()
    # Backdated participants are already past their reveal time, so the
    # group can be matched straight away from the admin console.
    clock = (lambda: now - settings.reveal_delay - timedelta(minutes=1)) if backdate else utcnow
    service = ParticipantService(async_session_factory, settings.reveal_delay, clock=clock)
    group_key = normalize_group_key(group_name)

    async with async_session_factory() as session:
        existing = set(
            (
                await session.execute(
                    select(Participant.name).where(Participant.group_key == group_key)
                )
            ).scalars().all()
        )

    for p in DEMO_PARTICIPANTS:
        if p["name"] in existing:
            print(f"  {p['name']} already in '{group_key}', skipping.")
            continue
        created = await service.register(group_name=group_name, **p)
        print(f"  Seeded {created.name} ({created.gender}), reveal at {created.reveal_time:%Y-%m-%d %H:%M}")

    await engine.dispose()
    print(f"Done seeding group '{group_key}'.")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed a demo Matchup group")
    parser.add_argument("--group", type=str, default="Acme", help="Group name")
    parser.add_argument("--backdate", action="store_true", help="Sign up past the reveal delay")
    args = parser.parse_args()
    asyncio.run(seed(args.group, args.backdate))
