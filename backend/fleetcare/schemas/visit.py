from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class StartVisitRequest(BaseModel):
    subscription_id: int


class SystemFindingInput(BaseModel):
    system: str
    status: str
    note: Optional[str] = None


class PartInput(BaseModel):
    name: str
    quantity: int = 1
    cost: Optional[int] = None


class FindingsRequest(BaseModel):
    system_findings: Optional[list[SystemFindingInput]] = None
    notes: Optional[str] = None
    work_performed: Optional[str] = None
    recommendations: Optional[str] = None
    duration: Optional[int] = Field(default=None, ge=0)
    location: Optional[str] = None
    parts_used: Optional[list[PartInput]] = None


class InspectionInput(BaseModel):
    component: str
    status: str = "good"
    notes: Optional[str] = None


class RejectVisitRequest(BaseModel):
    reason: str


class InspectionInfo(BaseModel):
    id: int
    component: str
    status: str
    notes: Optional[str] = None

    model_config = {"from_attributes": True}


class MediaInfo(BaseModel):
    id: int
    url: str
    caption: Optional[str] = None
    media_type: str
    category: Optional[str] = None
    uploaded_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class VisitInfo(BaseModel):
    id: int
    subscription_id: int
    assignment_id: int
    technician_id: int
    visit_number: int
    status: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    findings: Optional[str] = None
    system_findings: list[dict] = []
    recommendations: Optional[str] = None
    work_performed: Optional[str] = None
    parts_used: list[dict] = []
    duration_minutes: Optional[int] = None
    location: Optional[str] = None
    inspections: list[InspectionInfo] = []
    media: list[MediaInfo] = []

    model_config = {"from_attributes": True}
