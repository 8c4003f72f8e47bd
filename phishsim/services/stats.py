"""
Campaign Statistics
===================
On-demand aggregates over targets and the event log.

Counts are of distinct targets, and only targets that were actually sent
count towards opened/clicked/submitted, so every rate stays within
[0, 100]. Rates are ``count / emails_sent * 100`` rounded to two decimals
and are 0 when nothing was sent.

The grouping dimension is looked up in a fixed column map; caller text is
never placed into SQL.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import asc, case, desc, distinct, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import crud
from ..models import Event, EventType, Target
from ..schemas import CampaignStats, GroupStats

logger = logging.getLogger(__name__)

UNKNOWN_GROUP = "Unknown"
DEFAULT_DIMENSION = "department"

GROUP_DIMENSIONS = {
    "department": Target.department,
    "role": Target.role,
    "location": Target.location,
    "manager": Target.manager,
}


class UnsupportedDimension(ValueError):
    """Grouping dimension is not in GROUP_DIMENSIONS."""


def calculate_rate(numerator: int, denominator: int) -> float:
    """Percentage, or exactly 0.0 when the denominator is 0."""
    if denominator == 0:
        return 0.0
    return round(numerator / denominator * 100.0, 2)


def _sent_with_event(event_type: EventType):
    """COUNT(DISTINCT target) over sent targets having an event of this type."""
    return func.count(distinct(case(
        ((Target.sent.is_(True)) & (Event.event_type == event_type), Target.id),
    )))


class StatsAggregator:
    """Read-only statistics over one DB session."""

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def dimension_column(dimension: str):
        try:
            return GROUP_DIMENSIONS[dimension]
        except KeyError:
            raise UnsupportedDimension(
                f"Unsupported group_by '{dimension}'. Use one of: {', '.join(GROUP_DIMENSIONS)}"
            ) from None

    def campaign_stats(self, campaign_id: Optional[int] = None) -> CampaignStats:
        """Overall figures for one campaign, or for all campaigns when None."""
        target_query = self.db.query(
            func.count(Target.id),
            func.count(case((Target.sent.is_(True), Target.id))),
        )
        event_query = (
            self.db.query(
                _sent_with_event(EventType.OPEN),
                _sent_with_event(EventType.CLICK),
                _sent_with_event(EventType.SUBMIT),
            )
            .select_from(Target)
            .join(Event, Event.target_id == Target.id)
        )
        if campaign_id is not None:
            target_query = target_query.filter(Target.campaign_id == campaign_id)
            event_query = event_query.filter(Target.campaign_id == campaign_id)

        total_targets, emails_sent = target_query.one()
        opened, clicked, submitted = event_query.one()

        total_targets = total_targets or 0
        emails_sent = emails_sent or 0
        opened, clicked, submitted = opened or 0, clicked or 0, submitted or 0

        return CampaignStats(
            campaign_id=campaign_id,
            total_targets=total_targets,
            emails_sent=emails_sent,
            opened=opened,
            clicked=clicked,
            submitted=submitted,
            open_rate=calculate_rate(opened, emails_sent),
            click_rate=calculate_rate(clicked, emails_sent),
            submit_rate=calculate_rate(submitted, emails_sent),
        )

    def grouped_stats(self, dimension: str = DEFAULT_DIMENSION, campaign_id: Optional[int] = None) -> List[GroupStats]:
        """
        Figures bucketed by a target attribute, most emails sent first.

        Blank values fall into the "Unknown" bucket. Raises
        UnsupportedDimension for a dimension outside the allow-list; a
        storage error yields an empty list.
        """
        column = self.dimension_column(dimension)
        group_value = func.coalesce(func.nullif(func.trim(column), ""), UNKNOWN_GROUP)
        emails_sent = func.count(distinct(case((Target.sent.is_(True), Target.id))))

        query = (
            self.db.query(
                group_value.label("group_value"),
                func.count(distinct(Target.id)).label("total_targets"),
                emails_sent.label("emails_sent"),
                _sent_with_event(EventType.OPEN).label("opened"),
                _sent_with_event(EventType.CLICK).label("clicked"),
                _sent_with_event(EventType.SUBMIT).label("submitted"),
            )
            .select_from(Target)
            .outerjoin(Event, Event.target_id == Target.id)
        )
        if campaign_id is not None:
            query = query.filter(Target.campaign_id == campaign_id)
        query = query.group_by("group_value").order_by(desc("emails_sent"), asc("group_value"))

        try:
            rows = query.all()
        except SQLAlchemyError as e:
            logger.error(f"Grouped stats query failed (group_by={dimension}): {e}")
            self.db.rollback()
            return []

        return [
            GroupStats(
                group_value=row.group_value,
                total_targets=row.total_targets,
                emails_sent=row.emails_sent,
                opened=row.opened,
                clicked=row.clicked,
                submitted=row.submitted,
                open_rate=calculate_rate(row.opened, row.emails_sent),
                click_rate=calculate_rate(row.clicked, row.emails_sent),
                submit_rate=calculate_rate(row.submitted, row.emails_sent),
            )
            for row in rows
        ]

    def per_campaign_stats(self) -> List[CampaignStats]:
        """Overall figures for every campaign, newest first."""
        stats = []
        for campaign in crud.get_campaigns(self.db, limit=None):
            campaign_stats = self.campaign_stats(campaign.id)
            campaign_stats.campaign_name = campaign.name
            stats.append(campaign_stats)
        return stats

    def overall_stats(self, dimension: str = DEFAULT_DIMENSION) -> Dict[str, object]:
        """Totals, per-campaign figures and grouped figures across all campaigns."""
        grouped = self.grouped_stats(dimension)
        return {
            "overall_stats": self.campaign_stats(None),
            "campaign_stats": self.per_campaign_stats(),
            "grouped_stats": grouped,
            "grouped_by": dimension,
        }
