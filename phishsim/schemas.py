"""Pydantic schemas for the PhishSim API."""

from datetime import datetime
from typing import Optional, List, Literal, Union
from pydantic import BaseModel, Field


# ============ Auth Schemas ============

class LoginRequest(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class RegisterRequest(BaseModel):
    username: str = Field(min_length=3, max_length=100)
    password: str = Field(min_length=8)
    role: Literal["admin", "soc", "viewer"] = "viewer"


class UserResponse(BaseModel):
    id: int
    username: str
    role: str
    created_at: datetime

    class Config:
        from_attributes = True


class AuthResponse(BaseModel):
    token: Optional[str] = None
    user: UserResponse


# ============ Campaign Schemas ============

class CampaignCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email_subject: str = Field(min_length=1, max_length=500)
    email_body: str = Field(min_length=1)
    from_address: str = Field(min_length=3, max_length=255)


class TargetResponse(BaseModel):
    id: int
    campaign_id: int
    name: str
    email: str
    department: str
    role: str
    location: str
    employee_id: str
    manager: str
    token: str
    sent: bool
    sent_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class CampaignResponse(BaseModel):
    id: int
    name: str
    email_subject: str
    email_body: str
    from_address: str
    created_by: Optional[int]
    created_at: datetime
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class CampaignDetailResponse(CampaignResponse):
    targets: List[TargetResponse] = []


class UploadTargetsResponse(BaseModel):
    imported: int
    errors: List[str]
    message: str


# ============ Tracking Schemas ============

class SubmitRequest(BaseModel):
    token: str
    username: str = ""
    password: str = ""


class SubmitResponse(BaseModel):
    success: bool
    message: str
    details: str


# Event metadata is a closed set of variants, one per event type. Unknown
# fields are rejected so nothing outside these shapes reaches the event log.

class _EventMeta(BaseModel):
    class Config:
        extra = "forbid"
        frozen = True

    ip: Optional[str] = None
    user_agent: Optional[str] = None


class OpenMeta(_EventMeta):
    event_type: Literal["open"] = "open"
    referer: Optional[str] = None


class ClickMeta(_EventMeta):
    event_type: Literal["click"] = "click"
    referer: Optional[str] = None


class SubmitMeta(_EventMeta):
    event_type: Literal["submit"] = "submit"
    username: str = ""
    password_length: int = Field(ge=0)


EventMeta = Union[OpenMeta, ClickMeta, SubmitMeta]


# ============ Stats Schemas ============

class CampaignStats(BaseModel):
    campaign_id: Optional[int] = None
    campaign_name: Optional[str] = None
    total_targets: int = 0
    emails_sent: int = 0
    opened: int = 0
    clicked: int = 0
    submitted: int = 0
    open_rate: float = 0.0
    click_rate: float = 0.0
    submit_rate: float = 0.0


class GroupStats(BaseModel):
    group_value: str
    total_targets: int = 0
    emails_sent: int = 0
    opened: int = 0
    clicked: int = 0
    submitted: int = 0
    open_rate: float = 0.0
    click_rate: float = 0.0
    submit_rate: float = 0.0


class CampaignStatsResponse(BaseModel):
    campaign: CampaignResponse
    overall_stats: CampaignStats
    department_stats: List[GroupStats]
    grouped_by: str


class OverallStatsResponse(BaseModel):
    overall_stats: CampaignStats
    campaign_stats: List[CampaignStats]
    grouped_stats: List[GroupStats]
    grouped_by: str


# ============ Dispatch Schemas ============

class DispatchJobResponse(BaseModel):
    id: str
    campaign_id: int
    status: str
    queued: int
    sent: int
    failed: int
    skipped: int
    created_at: datetime
    started_at: Optional[datetime]
    finished_at: Optional[datetime]
    error: Optional[str]

    class Config:
        from_attributes = True
