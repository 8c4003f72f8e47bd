"""Per-target campaign results and CSV export."""

import csv
import io
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, List, Optional

from sqlalchemy.orm import Session, selectinload

from ..models import EventType, Target

EXPORT_HEADER = [
    "Name", "Email", "Department", "Role", "Location", "Sent",
    "Opened", "Clicked", "Submitted", "First Opened", "First Clicked",
]


@dataclass
class TargetResult:
    target: Target
    has_opened: bool = False
    has_clicked: bool = False
    has_submitted: bool = False
    first_opened: Optional[datetime] = None
    first_clicked: Optional[datetime] = None
    first_submitted: Optional[datetime] = None


def format_rfc3339(value: Optional[datetime]) -> str:
    """UTC timestamp as ``YYYY-MM-DDTHH:MM:SSZ``, or '' for None."""
    if value is None:
        return ""
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


def format_bool(value: bool) -> str:
    return "true" if value else "false"


def target_results(db: Session, campaign_id: int) -> List[TargetResult]:
    """Every target of a campaign with its earliest event of each type."""
    targets = (
        db.query(Target)
        .options(selectinload(Target.events))
        .filter(Target.campaign_id == campaign_id)
        .order_by(Target.id)
        .all()
    )

    results = []
    for target in targets:
        result = TargetResult(target=target)
        firsts = {}
        for event in target.events:
            current = firsts.get(event.event_type)
            if current is None or event.created_at < current:
                firsts[event.event_type] = event.created_at

        result.first_opened = firsts.get(EventType.OPEN)
        result.first_clicked = firsts.get(EventType.CLICK)
        result.first_submitted = firsts.get(EventType.SUBMIT)
        result.has_opened = result.first_opened is not None
        result.has_clicked = result.first_clicked is not None
        result.has_submitted = result.first_submitted is not None
        results.append(result)

    return results


def _csv_line(row: List[str]) -> str:
    buffer = io.StringIO()
    csv.writer(buffer).writerow(row)
    return buffer.getvalue()


def export_rows(results: List[TargetResult]) -> Iterator[str]:
    """Yield the CSV export line by line, header first."""
    yield _csv_line(EXPORT_HEADER)
    for result in results:
        target = result.target
        yield _csv_line([
            target.name,
            target.email,
            target.department,
            target.role,
            target.location,
            format_bool(target.sent),
            format_bool(result.has_opened),
            format_bool(result.has_clicked),
            format_bool(result.has_submitted),
            format_rfc3339(result.first_opened),
            format_rfc3339(result.first_clicked),
        ])
