"""SQLAlchemy models for PhishSim."""

import enum
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Boolean,
    ForeignKey, Enum, JSON, Index
)
from sqlalchemy.orm import relationship, declarative_base

Base = declarative_base()


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


# =============================================================================
# AUTHENTICATION MODELS
# =============================================================================

class UserRole(str, enum.Enum):
    """Operator roles."""
    ADMIN = "admin"
    SOC = "soc"
    VIEWER = "viewer"


class User(Base):
    """Operator account for the authenticated API."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(
        Enum(UserRole, values_callable=_enum_values, name="user_role"),
        default=UserRole.VIEWER,
        nullable=False,
    )
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    campaigns = relationship("Campaign", back_populates="owner")


# =============================================================================
# CAMPAIGN MODELS
# =============================================================================

class EventType(str, enum.Enum):
    OPEN = "open"
    CLICK = "click"
    SUBMIT = "submit"


class Campaign(Base):
    """A phishing simulation campaign."""
    __tablename__ = "campaigns"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    email_subject = Column(String(500), nullable=False)
    email_body = Column(Text, nullable=False)  # HTML with placeholders
    from_address = Column(String(255), nullable=False)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    owner = relationship("User", back_populates="campaigns")
    targets = relationship("Target", back_populates="campaign", order_by="Target.id")


class Target(Base):
    """An individual email recipient in a campaign."""
    __tablename__ = "targets"

    id = Column(Integer, primary_key=True, index=True)
    campaign_id = Column(Integer, ForeignKey("campaigns.id"), nullable=False, index=True)
    name = Column(String(200), default="", nullable=False)
    email = Column(String(255), nullable=False, index=True)
    department = Column(String(100), default="", nullable=False)
    role = Column(String(100), default="", nullable=False)
    location = Column(String(100), default="", nullable=False)
    employee_id = Column(String(100), default="", nullable=False)
    manager = Column(String(200), default="", nullable=False)
    token = Column(String(64), unique=True, nullable=False, index=True)
    sent = Column(Boolean, default=False, nullable=False)
    sent_at = Column(DateTime, nullable=True)
    # Set while a dispatch worker owns this target between read and send
    claimed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    campaign = relationship("Campaign", back_populates="targets")
    events = relationship("Event", back_populates="target", order_by="Event.created_at")

    __table_args__ = (
        Index("idx_targets_campaign_sent", "campaign_id", "sent"),
    )


class Event(Base):
    """A tracked interaction (open, click, submit). Rows are never updated."""
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    target_id = Column(Integer, ForeignKey("targets.id"), nullable=False, index=True)
    event_type = Column(
        Enum(EventType, values_callable=_enum_values, name="event_type"),
        nullable=False,
        index=True,
    )
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    target = relationship("Target", back_populates="events")

    __table_args__ = (
        Index("idx_events_target_type", "target_id", "event_type"),
    )
