"""
PhishSim - CRUD Operations
==========================
Database operations for campaigns and targets, including the dispatch
claim and sent transitions.
"""

from datetime import datetime, timedelta
from typing import List, Optional, Dict, Any
from sqlalchemy.orm import Session
from sqlalchemy import and_, or_

from .models import Campaign, Target
from .services.tokens import issue_unique_token

TARGET_ATTRIBUTES = ("name", "department", "role", "location", "employee_id", "manager")


# =============================================================================
# CAMPAIGN CRUD
# =============================================================================

def create_campaign(
    db: Session,
    name: str,
    email_subject: str,
    email_body: str,
    from_address: str,
    created_by: int = None
) -> Campaign:
    """Create a new campaign."""
    campaign = Campaign(
        name=name,
        email_subject=email_subject,
        email_body=email_body,
        from_address=from_address,
        created_by=created_by
    )
    db.add(campaign)
    db.commit()
    db.refresh(campaign)
    return campaign


def get_campaign(db: Session, campaign_id: int) -> Optional[Campaign]:
    """Get a campaign by ID."""
    return db.query(Campaign).filter(Campaign.id == campaign_id).first()


def get_campaigns(db: Session, skip: int = 0, limit: int = 100) -> List[Campaign]:
    """Get campaigns, newest first."""
    return (
        db.query(Campaign)
        .order_by(Campaign.created_at.desc(), Campaign.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )


# =============================================================================
# TARGET CRUD
# =============================================================================

def is_valid_email(email: str) -> bool:
    """Minimal syntactic check: contains '@' and '.'."""
    return bool(email) and "@" in email and "." in email


def token_exists(db: Session, token: str) -> bool:
    return db.query(Target.id).filter(Target.token == token).first() is not None


def get_target_by_token(db: Session, token: str) -> Optional[Target]:
    """Resolve a tracking token to its target."""
    if not token:
        return None
    return db.query(Target).filter(Target.token == token).first()


def bulk_create_targets(
    db: Session,
    campaign_id: int,
    targets: List[Dict[str, Any]]
) -> List[Target]:
    """
    Create targets from already-validated rows, each with a unique token.

    Rows are dicts with an ``email`` key and optional attribute keys.
    """
    issued = set()

    def is_taken(token: str) -> bool:
        return token in issued or token_exists(db, token)

    created = []
    for row in targets:
        email = (row.get("email") or "").strip()
        if not is_valid_email(email):
            raise ValueError(f"Invalid email: {email!r}")

        token = issue_unique_token(is_taken)
        issued.add(token)

        target = Target(
            campaign_id=campaign_id,
            email=email,
            token=token,
            **{attr: (row.get(attr) or "").strip() for attr in TARGET_ATTRIBUTES}
        )
        db.add(target)
        created.append(target)

    db.commit()
    for target in created:
        db.refresh(target)
    return created


# =============================================================================
# DISPATCH STATE
# =============================================================================

def _dispatchable(campaign_id: int, stale_before: datetime):
    return and_(
        Target.campaign_id == campaign_id,
        Target.sent.is_(False),
        or_(Target.claimed_at.is_(None), Target.claimed_at < stale_before),
    )


def claim_cutoff(claim_ttl_seconds: int, now: datetime = None) -> datetime:
    """Claims older than this are treated as abandoned."""
    return (now or datetime.utcnow()) - timedelta(seconds=claim_ttl_seconds)


def get_dispatchable_targets(db: Session, campaign_id: int, stale_before: datetime) -> List[Target]:
    """Unsent targets of a campaign that no live dispatch has claimed."""
    return (
        db.query(Target)
        .filter(_dispatchable(campaign_id, stale_before))
        .order_by(Target.id)
        .all()
    )


def count_dispatchable_targets(db: Session, campaign_id: int, stale_before: datetime) -> int:
    return db.query(Target).filter(_dispatchable(campaign_id, stale_before)).count()


def claim_target(db: Session, target_id: int, stale_before: datetime) -> bool:
    """
    Reserve a target for sending.

    A single conditional UPDATE; only one concurrent caller can win it.
    """
    updated = (
        db.query(Target)
        .filter(
            Target.id == target_id,
            Target.sent.is_(False),
            or_(Target.claimed_at.is_(None), Target.claimed_at < stale_before),
        )
        .update({Target.claimed_at: datetime.utcnow()}, synchronize_session=False)
    )
    db.commit()
    return updated == 1


def release_claim(db: Session, target_id: int) -> None:
    """Give a claimed, still-unsent target back to future dispatches."""
    (
        db.query(Target)
        .filter(Target.id == target_id, Target.sent.is_(False))
        .update({Target.claimed_at: None}, synchronize_session=False)
    )
    db.commit()


def mark_target_sent(db: Session, target_id: int, sent_at: datetime = None) -> bool:
    """Flip ``sent`` to true together with ``sent_at``; a no-op if already sent."""
    updated = (
        db.query(Target)
        .filter(Target.id == target_id, Target.sent.is_(False))
        .update(
            {
                Target.sent: True,
                Target.sent_at: sent_at or datetime.utcnow(),
                Target.claimed_at: None,
            },
            synchronize_session=False,
        )
    )
    db.commit()
    return updated == 1
