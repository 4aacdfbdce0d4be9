"""Sample data seeder: default rules, a handful of leads, random events.

Events are pushed through the scoring engine so every lead ends up with
a consistent ledger.  Re-running wipes the scoring tables first.
"""

import asyncio
import random
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from app.core.config import settings
from app.models import Lead, ScoreHistory, ScoringEvent
from app.repositories.lead_repository import LeadRepository
from app.repositories.scoring_rule_repository import ScoringRuleRepository
from app.schemas.common import EventType
from app.schemas.event import ScoringEventIn
from app.services.lead_scoring import LeadScoringEngine
from app.services.rule_store import RuleStore

SAMPLE_LEADS = [
    ("Alice Johnson", "alice@techcorp.com", "TechCorp", "qualified"),
    ("Bob Smith", "bob@startupco.io", "StartupCo", "new"),
    ("Carol Williams", "carol@enterprise.com", "Enterprise Inc", "contacted"),
    ("David Brown", "david@innovate.com", "Innovate Labs", "qualified"),
    ("Eve Davis", "eve@business.com", "Business Solutions", "new"),
    ("Frank Miller", "frank@digital.com", "Digital Agency", "contacted"),
    ("Grace Lee", "grace@commerce.com", "Commerce Plus", "qualified"),
    ("Henry Wilson", "henry@consulting.com", "Wilson Consulting", "converted"),
]

# Derived from the EventType enum in common.py
EVENT_TYPES = [t.value for t in EventType]


def random_events(lead_id: uuid.UUID, count: int):
    now = datetime.now(timezone.utc)
    return [
        ScoringEventIn(
            event_id=f"seed_{lead_id.hex[:8]}_{i}_{uuid.uuid4().hex[:8]}",
            event_type=random.choice(EVENT_TYPES),
            lead_id=lead_id,
            timestamp=now - timedelta(days=random.randint(0, 29)),
            metadata={"source": "seed_script", "random": random.random()},
        )
        for i in range(count)
    ]


async def seed():
    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with session_maker() as session:
        print("Seeding lead scoring sample data")

        # Children first so the foreign keys never block a delete
        for table in ("score_history", "scoring_events", "scoring_jobs", "leads", "scoring_rules"):
            await session.execute(text(f"DELETE FROM {table}"))
        await session.commit()
        print("Cleared existing data")

        seeded = await RuleStore(ScoringRuleRepository(session)).seed_defaults()
        print(f"Created {seeded} scoring rules")

        lead_repo = LeadRepository(session)
        leads = []
        for name, email, company, status in SAMPLE_LEADS:
            leads.append(
                await lead_repo.create(
                    name=name, email=email, company=company, status=status
                )
            )
        await session.commit()
        print(f"Created {len(leads)} leads")

    scoring = LeadScoringEngine(session_maker)
    for lead in leads:
        events = random_events(lead.lead_id, random.randint(5, 20))
        result = await scoring.apply_batch(events)
        print(
            f"  {lead.name}: processed {result.processed}, "
            f"out of order {result.out_of_order}, failed {result.failed}"
        )

    async with session_maker() as session:
        ranked = (
            await session.execute(select(Lead).order_by(Lead.current_score.desc()))
        ).scalars().all()
        print("\nFinal lead scores:")
        for position, lead in enumerate(ranked, start=1):
            print(f"  {position}. {lead.name:<20} {lead.current_score} points")

        event_cnt = await session.scalar(select(func.count()).select_from(ScoringEvent))
        history_cnt = await session.scalar(select(func.count()).select_from(ScoreHistory))
        print(f"\nEvents: {event_cnt}  History entries: {history_cnt}")
        print("Seeding complete")

    await engine.dispose()


if __name__ == "__main__":
    asyncio.run(seed())
