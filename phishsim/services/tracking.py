"""
Event Recording
===============
Appends open/click/submit events for the target a tracking token resolves
to. Events are never updated or deduplicated here; repeated interactions
are collapsed at query time by the stats aggregator.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from .. import crud
from ..models import Event, EventType, Target
from ..schemas import EventMeta

logger = logging.getLogger(__name__)


def resolve_target(db: Session, token: str) -> Optional[Target]:
    return crud.get_target_by_token(db, token)


def record_for_target(db: Session, target: Target, meta: EventMeta) -> Event:
    """Append one event for an already-resolved target."""
    event = Event(
        target_id=target.id,
        event_type=EventType(meta.event_type),
        meta=meta.model_dump(exclude_none=True),
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


def record_event(db: Session, token: str, meta: EventMeta) -> Optional[Event]:
    """
    Resolve ``token`` and append an event of ``meta``'s type.

    Returns None, with nothing written, when the token does not resolve.
    """
    target = resolve_target(db, token)
    if target is None:
        logger.debug(f"Tracking token not found: {token[:8]}...")
        return None

    event = record_for_target(db, target, meta)
    logger.info(f"Recorded {meta.event_type} event for target {target.id} (campaign {target.campaign_id})")
    return event
