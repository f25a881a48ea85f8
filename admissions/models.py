"""Pydantic models for the admissions outreach API and core."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field

from admissions.db_models import CallDirection, CallOutcome, LeadSource, LeadStatus


class TurnRole(str, Enum):
    PROSPECT = "prospect"
    ASSISTANT = "assistant"
    # Framing turns are sent to the reply generator but never stored.
    SYSTEM = "system"


class ConversationTurn(BaseModel):
    """One utterance in conversation order."""
    role: TurnRole
    text: str


class NormalizedLeadInput(BaseModel):
    """A lead sighting from any channel, already mapped to our field names."""
    source: LeadSource = LeadSource.UNKNOWN
    source_id: Optional[str] = None
    created_at: Optional[datetime] = None
    first_name: str = ""
    last_name: Optional[str] = None
    phone: str = ""
    email: Optional[str] = None
    city: Optional[str] = None
    student_grade: Optional[str] = None
    preferred_exam: Optional[str] = None
    guardian_name: Optional[str] = None
    student_name: Optional[str] = None
    campaign_name: Optional[str] = None
    ad_group_name: Optional[str] = None
    metadata: Optional[Any] = None


class ManualLeadRequest(BaseModel):
    """Request model for POST /leads (operator entry)."""
    first_name: str = Field(min_length=1)
    last_name: Optional[str] = None
    phone: str = Field(min_length=6)
    email: Optional[EmailStr] = None
    city: Optional[str] = None
    student_grade: Optional[str] = None
    preferred_exam: Optional[str] = None
    guardian_name: Optional[str] = None
    student_name: Optional[str] = None
    notes: Optional[str] = None

    def to_lead_input(self) -> NormalizedLeadInput:
        return NormalizedLeadInput(
            source=LeadSource.MANUAL,
            first_name=self.first_name,
            last_name=self.last_name,
            phone=self.phone,
            email=str(self.email) if self.email else None,
            city=self.city,
            student_grade=self.student_grade,
            preferred_exam=self.preferred_exam,
            guardian_name=self.guardian_name,
            student_name=self.student_name,
            metadata={"notes": self.notes} if self.notes else None,
        )


class OutboundCallRequest(BaseModel):
    """Request model for POST /calls/outbound."""
    lead_id: int = Field(gt=0, validation_alias=AliasChoices("leadId", "lead_id"))


class CallOutcomeRequest(BaseModel):
    """Request model for POST /calls/outcome (operator-logged result)."""
    lead_id: int = Field(gt=0)
    call_id: str = Field(min_length=1)
    outcome: Optional[CallOutcome] = None
    duration_seconds: Optional[int] = Field(default=None, ge=0)
    transcript: Optional[str] = None
    recording_url: Optional[str] = None
    demo_accepted: Optional[bool] = None
    follow_up_at: Optional[datetime] = None
    notes: Optional[str] = None


class CallLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    provider_call_id: str
    direction: CallDirection
    transcript: Optional[str] = None
    outcome: Optional[CallOutcome] = None
    demo_accepted: bool = False
    call_status: Optional[str] = None
    duration_seconds: Optional[int] = None
    recording_url: Optional[str] = None
    notes: Optional[str] = None
    follow_up_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class LeadOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    source: LeadSource
    source_id: Optional[str] = None
    phone: str
    email: Optional[str] = None
    first_name: str
    last_name: Optional[str] = None
    guardian_name: Optional[str] = None
    student_name: Optional[str] = None
    student_grade: Optional[str] = None
    preferred_exam: Optional[str] = None
    city: Optional[str] = None
    campaign_name: Optional[str] = None
    ad_group_name: Optional[str] = None
    status: LeadStatus
    call_count: int = 0
    last_contacted_at: Optional[datetime] = None
    demo_scheduled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class LeadWithCalls(LeadOut):
    recent_calls: list[CallLogOut] = []


class StatusCount(BaseModel):
    status: LeadStatus
    count: int


class LeadSummary(BaseModel):
    """Response model for GET /leads."""
    stats: list[StatusCount]
    leads: list[LeadWithCalls]


class SyncResult(BaseModel):
    """Response model for POST /leads/sync."""
    ok: bool = True
    created_count: int = 0
    updated_count: int = 0
    skipped_count: int = 0
    created_ids: list[int] = []
    updated_ids: list[int] = []
