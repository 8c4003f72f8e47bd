"""
Campaign Management API
=======================
Operator endpoints for campaigns: create and list, recipient CSV import,
background dispatch and results export. All routes require a signed-in
operator.
"""

import csv
import io
import logging
from typing import Dict, List, Tuple
from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.orm import Session

from .. import crud
from ..database import get_db
from ..deps.auth import require_user
from ..models import User
from ..schemas import (
    CampaignCreate, CampaignResponse, CampaignDetailResponse,
    UploadTargetsResponse, DispatchJobResponse
)
from ..services import export
from ..services.dispatcher import DispatchQueueFull, DispatchSupervisor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/campaigns", tags=["Campaigns"], dependencies=[Depends(require_user)])

OPTIONAL_COLUMNS = crud.TARGET_ATTRIBUTES


def get_supervisor(request: Request) -> DispatchSupervisor:
    """Dependency returning the application's dispatch supervisor."""
    return request.app.state.supervisor


def _get_campaign_or_404(db: Session, campaign_id: int):
    campaign = crud.get_campaign(db, campaign_id)
    if not campaign:
        raise HTTPException(status_code=404, detail="Campaign not found")
    return campaign


def parse_targets_csv(text: str) -> Tuple[List[Dict[str, str]], List[str]]:
    """
    Split an uploaded recipient CSV into valid rows and per-row errors.

    The header is matched case-insensitively and must include ``email``.
    Row numbers in errors count the header as row 1.
    """
    try:
        records = [record for record in csv.reader(io.StringIO(text)) if record]
    except csv.Error:
        raise HTTPException(status_code=400, detail="Failed to parse CSV")

    if len(records) < 2:
        raise HTTPException(status_code=400, detail="CSV must contain header and at least one row")

    header = [col.strip().lower() for col in records[0]]
    columns = {name: i for i, name in enumerate(header)}
    if "email" not in columns:
        raise HTTPException(status_code=400, detail="CSV must contain 'email' column")

    rows = []
    errors = []
    for row_number, record in enumerate(records[1:], start=2):
        if len(record) != len(header):
            errors.append(f"Row {row_number}: column count mismatch")
            continue

        email = record[columns["email"]].strip()
        if not email:
            errors.append(f"Row {row_number}: email is required")
            continue
        if not crud.is_valid_email(email):
            errors.append(f"Row {row_number}: invalid email format")
            continue

        row = {"email": email}
        for name in OPTIONAL_COLUMNS:
            if name in columns:
                row[name] = record[columns[name]].strip()
        rows.append(row)

    return rows, errors


# =============================================================================
# CAMPAIGNS
# =============================================================================

@router.get("", response_model=List[CampaignResponse])
async def list_campaigns(skip: int = 0, limit: int = 100, db: Session = Depends(get_db)):
    """List campaigns, newest first."""
    return crud.get_campaigns(db, skip=skip, limit=limit)


@router.post("", response_model=CampaignResponse, status_code=201)
async def create_campaign(
    data: CampaignCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_user)
):
    """Create a new campaign."""
    if not all(v.strip() for v in (data.name, data.email_subject, data.email_body, data.from_address)):
        raise HTTPException(status_code=400, detail="All fields are required")

    campaign = crud.create_campaign(
        db,
        name=data.name.strip(),
        email_subject=data.email_subject,
        email_body=data.email_body,
        from_address=data.from_address.strip(),
        created_by=user.id
    )
    logger.info(f"Campaign {campaign.id} created by {user.username}")
    return campaign


@router.get("/{campaign_id}", response_model=CampaignDetailResponse)
async def get_campaign(campaign_id: int, db: Session = Depends(get_db)):
    """Campaign with its targets."""
    return _get_campaign_or_404(db, campaign_id)


# =============================================================================
# TARGETS
# =============================================================================

@router.post("/{campaign_id}/upload-targets", response_model=UploadTargetsResponse)
async def upload_targets(
    campaign_id: int,
    file: UploadFile = File(...),
    db: Session = Depends(get_db)
):
    """Import recipients from a CSV file."""
    _get_campaign_or_404(db, campaign_id)

    content = await file.read()
    try:
        decoded = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="CSV must be UTF-8 encoded")

    rows, errors = parse_targets_csv(decoded)
    created = crud.bulk_create_targets(db, campaign_id, rows) if rows else []

    logger.info(f"Imported {len(created)} targets into campaign {campaign_id} ({len(errors)} rejected)")
    return UploadTargetsResponse(
        imported=len(created),
        errors=errors,
        message=f"Imported {len(created)} targets",
    )


# =============================================================================
# DISPATCH
# =============================================================================

@router.post("/{campaign_id}/send")
async def send_campaign(
    campaign_id: int,
    request: Request,
    db: Session = Depends(get_db),
    supervisor: DispatchSupervisor = Depends(get_supervisor)
):
    """
    Queue a background dispatch of every unsent target.
    Returns as soon as the job is accepted.
    """
    _get_campaign_or_404(db, campaign_id)

    settings = request.app.state.settings
    stale_before = crud.claim_cutoff(settings.claim_ttl_seconds)
    pending = crud.count_dispatchable_targets(db, campaign_id, stale_before)
    if pending == 0:
        return {"message": "No unsent targets found", "sent": 0}

    try:
        job = supervisor.submit(campaign_id, queued=pending)
    except DispatchQueueFull as e:
        logger.warning(f"Rejected dispatch for campaign {campaign_id}: {e}")
        raise HTTPException(status_code=503, detail="Dispatch queue is full, try again later")

    return JSONResponse(
        status_code=202,
        content={"message": "Email sending started", "targets": pending, "job_id": job.id},
    )


@router.get("/{campaign_id}/dispatch")
async def dispatch_status(
    campaign_id: int,
    db: Session = Depends(get_db),
    supervisor: DispatchSupervisor = Depends(get_supervisor)
):
    """Recent dispatch jobs for a campaign."""
    _get_campaign_or_404(db, campaign_id)

    return {
        "campaign_id": campaign_id,
        "running": supervisor.is_running(campaign_id),
        "jobs": [DispatchJobResponse.model_validate(job) for job in supervisor.jobs_for(campaign_id)],
    }


# =============================================================================
# EXPORT
# =============================================================================

@router.get("/{campaign_id}/export")
async def export_results(campaign_id: int, db: Session = Depends(get_db)):
    """Per-target results as a CSV download."""
    _get_campaign_or_404(db, campaign_id)

    results = export.target_results(db, campaign_id)
    return StreamingResponse(
        export.export_rows(results),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename=campaign_{campaign_id}_results.csv"},
    )
