"""
SQLAlchemy database models.

Three entities: leads, call sessions (conversation state that must survive
between stateless webhook callbacks) and call logs (one durable row per
provider call).
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
import enum
import uuid

from admissions.database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, the format every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_session_id() -> str:
    return uuid.uuid4().hex


class LeadStatus(str, enum.Enum):
    """Lead pipeline stage."""
    NEW = "NEW"
    CONTACTED = "CONTACTED"
    FOLLOW_UP = "FOLLOW_UP"
    DEMO_SCHEDULED = "DEMO_SCHEDULED"
    DEMO_COMPLETED = "DEMO_COMPLETED"
    ENROLLED = "ENROLLED"
    DISQUALIFIED = "DISQUALIFIED"


class LeadSource(str, enum.Enum):
    """Channel that produced a lead sighting."""
    FACEBOOK = "FACEBOOK"
    GOOGLE_ADS = "GOOGLE_ADS"
    MANUAL = "MANUAL"
    UNKNOWN = "UNKNOWN"


class CallDirection(str, enum.Enum):
    INBOUND = "INBOUND"
    OUTBOUND = "OUTBOUND"


class SessionStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"


class CallOutcome(str, enum.Enum):
    """What a call achieved, once known."""
    DEMO_SCHEDULED = "DEMO_SCHEDULED"
    FOLLOW_UP = "FOLLOW_UP"
    NOT_INTERESTED = "NOT_INTERESTED"
    NO_ANSWER = "NO_ANSWER"
    CALLBACK_REQUESTED = "CALLBACK_REQUESTED"
    WRONG_NUMBER = "WRONG_NUMBER"


class DBLead(Base):
    """Lead database model."""
    __tablename__ = "leads"
    __table_args__ = (
        UniqueConstraint("source", "source_id", name="uq_leads_source_source_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    source = Column(SQLEnum(LeadSource), nullable=False, default=LeadSource.UNKNOWN)
    source_id = Column(String(255), nullable=True)

    phone = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(255), nullable=True, index=True)

    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255))
    guardian_name = Column(String(255))
    student_name = Column(String(255))
    student_grade = Column(String(100))
    preferred_exam = Column(String(255))
    city = Column(String(255))
    campaign_name = Column(String(255))
    ad_group_name = Column(String(255))
    # Opaque payload from the source channel, JSON string.
    metadata_json = Column("metadata", Text)

    status = Column(SQLEnum(LeadStatus), nullable=False, default=LeadStatus.NEW)
    call_count = Column(Integer, nullable=False, default=0)
    last_contacted_at = Column(DateTime, nullable=True)
    demo_scheduled_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    call_logs = relationship(
        "DBCallLog",
        back_populates="lead",
        order_by=lambda: [DBCallLog.created_at.desc(), DBCallLog.id.desc()],
    )


class DBCallSession(Base):
    """
    Call session model - the conversation state of one call.

    Every webhook callback loads this row, advances it by one turn and
    writes it back; nothing about the conversation lives in process memory.
    """
    __tablename__ = "call_sessions"

    id = Column(String(32), primary_key=True, default=new_session_id)
    lead_id = Column(Integer, ForeignKey("leads.id"), nullable=True, index=True)
    provider_call_id = Column(String(100), nullable=True, index=True)

    direction = Column(SQLEnum(CallDirection), nullable=False)
    status = Column(SQLEnum(SessionStatus), nullable=False, default=SessionStatus.ACTIVE)
    turn_index = Column(Integer, nullable=False, default=0)

    # JSON list of {"role": "prospect" | "assistant", "text": "..."}
    history = Column(Text, nullable=False, default="[]")
    last_prompt = Column(Text)
    last_response = Column(Text)
    demo_accepted = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    lead = relationship("DBLead")


class DBCallLog(Base):
    """Durable record of one provider call, independent of session lifetime."""
    __tablename__ = "call_logs"

    id = Column(Integer, primary_key=True, index=True)
    provider_call_id = Column(String(100), unique=True, nullable=False, index=True)
    lead_id = Column(Integer, ForeignKey("leads.id"), nullable=False, index=True)
    direction = Column(SQLEnum(CallDirection), nullable=False)

    transcript = Column(Text)
    outcome = Column(SQLEnum(CallOutcome), nullable=True)
    demo_accepted = Column(Boolean, nullable=False, default=False)
    # JSON list of turns as of the latest reconcile
    gather_data = Column(Text)

    # Owned by the asynchronous status callback
    call_status = Column(String(50))
    duration_seconds = Column(Integer, nullable=True)
    recording_url = Column(String(500))
    notes = Column(Text)

    follow_up_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    lead = relationship("DBLead", back_populates="call_logs")
