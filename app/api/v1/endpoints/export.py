import csv
import io
import json
import re
from typing import Iterable, List
from uuid import UUID

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from app.api.deps import get_event_repo, get_lead_repo
from app.core.exceptions import LeadNotFoundError
from app.repositories.event_repository import EventRepository
from app.repositories.lead_repository import LeadRepository

router = APIRouter(prefix="/export", tags=["Export"])

# Cells starting with these are treated as formulas by spreadsheet apps
_FORMULA_PREFIXES = ("=", "+", "-", "@", "\t")


def _csv_value(value: object) -> str:
    text = "" if value is None else str(value)
    if text.startswith(_FORMULA_PREFIXES):
        return f"'{text}"
    return text


def _csv_response(header: List[str], rows: Iterable[List[object]], filename: str) -> Response:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(header)
    for row in rows:
        writer.writerow([_csv_value(value) for value in row])
    return Response(
        content=buffer.getvalue(),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.get("/leads")
async def export_leads(
    lead_repo: LeadRepository = Depends(get_lead_repo),
) -> Response:
    """All leads as CSV, highest score first."""
    leads = await lead_repo.list_leaderboard(limit=None)
    return _csv_response(
        ["Name", "Email", "Company", "Score", "Status", "Created"],
        (
            [
                lead.name,
                lead.email,
                lead.company or "",
                lead.current_score,
                lead.status,
                lead.created_at.isoformat() if lead.created_at else "",
            ]
            for lead in leads
        ),
        "leads.csv",
    )


@router.get("/events/{lead_id}")
async def export_lead_events(
    lead_id: UUID,
    lead_repo: LeadRepository = Depends(get_lead_repo),
    event_repo: EventRepository = Depends(get_event_repo),
) -> Response:
    """Every ledgered event of one lead as CSV, newest first."""
    lead = await lead_repo.get_by_id(lead_id)
    if lead is None:
        raise LeadNotFoundError(f"Lead {lead_id} not found")

    events = await event_repo.list_for_lead(lead_id, limit=None)
    slug = re.sub(r"\s+", "-", lead.name.strip()) or str(lead_id)
    return _csv_response(
        ["Event ID", "Event Type", "Timestamp", "Processed", "Metadata"],
        (
            [
                event.event_id,
                event.event_type,
                event.timestamp.isoformat(),
                "true" if event.processed else "false",
                json.dumps(event.event_metadata or {}, sort_keys=True),
            ]
            for event in events
        ),
        f"events-{slug}.csv",
    )
