"""Campaign statistics API."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from .. import crud
from ..database import get_db
from ..deps.auth import require_user
from ..schemas import CampaignResponse, CampaignStatsResponse, OverallStatsResponse
from ..services.stats import DEFAULT_DIMENSION, StatsAggregator, UnsupportedDimension

router = APIRouter(prefix="/api", tags=["Stats"], dependencies=[Depends(require_user)])


@router.get("/campaigns/{campaign_id}/stats", response_model=CampaignStatsResponse)
async def get_campaign_stats(
    campaign_id: int,
    group_by: str = Query(DEFAULT_DIMENSION),
    db: Session = Depends(get_db)
):
    """Overall and grouped statistics for one campaign."""
    campaign = crud.get_campaign(db, campaign_id)
    if not campaign:
        raise HTTPException(status_code=404, detail="Campaign not found")

    aggregator = StatsAggregator(db)
    try:
        department_stats = aggregator.grouped_stats(group_by, campaign_id)
    except UnsupportedDimension as e:
        raise HTTPException(status_code=400, detail=str(e))

    overall = aggregator.campaign_stats(campaign_id)
    overall.campaign_name = campaign.name

    return CampaignStatsResponse(
        campaign=CampaignResponse.model_validate(campaign),
        overall_stats=overall,
        department_stats=department_stats,
        grouped_by=group_by,
    )


@router.get("/stats", response_model=OverallStatsResponse)
async def get_overall_stats(group_by: str = Query(DEFAULT_DIMENSION), db: Session = Depends(get_db)):
    """Statistics across every campaign."""
    try:
        return StatsAggregator(db).overall_stats(group_by)
    except UnsupportedDimension as e:
        raise HTTPException(status_code=400, detail=str(e))
