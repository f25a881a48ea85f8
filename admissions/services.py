"""
Service layer for database operations.

Services add and flush; the caller owns the transaction and commits, so a
webhook turn can write the lead, the session and the call log atomically.
"""

from typing import Iterable, Optional
from datetime import datetime

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from admissions.db_models import (
    CallDirection,
    CallOutcome,
    DBCallLog,
    DBCallSession,
    DBLead,
    LeadSource,
    LeadStatus,
    SessionStatus,
    utcnow,
)
from admissions.errors import LeadNotFoundError
from admissions.logging_config import get_logger
from admissions.models import (
    CallLogOut,
    CallOutcomeRequest,
    ConversationTurn,
    LeadSummary,
    LeadWithCalls,
    StatusCount,
)
from admissions.conversation_policy import dump_history

logger = get_logger(__name__)

RECENT_CALLS_PER_LEAD = 3


class LeadService:
    """Service for managing leads."""

    @staticmethod
    def get_lead(db: Session, lead_id: int) -> Optional[DBLead]:
        """Get lead by ID."""
        return db.query(DBLead).filter(DBLead.id == lead_id).first()

    @staticmethod
    def get_lead_by_phone(db: Session, phone: str) -> Optional[DBLead]:
        """Get lead by phone number."""
        return db.query(DBLead).filter(DBLead.phone == phone).first()

    @staticmethod
    def get_lead_by_email(db: Session, email: str) -> Optional[DBLead]:
        return db.query(DBLead).filter(DBLead.email == email).order_by(DBLead.id).first()

    @staticmethod
    def get_lead_by_source(db: Session, source: LeadSource, source_id: str) -> Optional[DBLead]:
        return (
            db.query(DBLead)
            .filter(DBLead.source == source, DBLead.source_id == source_id)
            .first()
        )

    @staticmethod
    def create_lead(db: Session, **fields) -> DBLead:
        """Create a new lead (flushed, not committed)."""
        lead = DBLead(**fields)
        db.add(lead)
        db.flush()

        logger.info("lead_created", lead_id=lead.id, source=lead.source.value)
        return lead

    @staticmethod
    def mark_contacted(db: Session, lead: DBLead, when: Optional[datetime] = None) -> DBLead:
        """Active touch: status CONTACTED regardless of prior stage."""
        lead.status = LeadStatus.CONTACTED
        lead.last_contacted_at = when or utcnow()
        db.flush()
        return lead

    @staticmethod
    def mark_demo_scheduled(db: Session, lead: DBLead, when: Optional[datetime] = None) -> DBLead:
        when = when or utcnow()
        lead.status = LeadStatus.DEMO_SCHEDULED
        lead.demo_scheduled_at = when
        lead.last_contacted_at = when
        db.flush()

        logger.info("lead_demo_scheduled", lead_id=lead.id)
        return lead

    @staticmethod
    def increment_call_count(db: Session, lead_id: int, when: Optional[datetime] = None) -> None:
        """Atomic `call_count + 1` in the store, safe against concurrent writers."""
        db.execute(
            update(DBLead)
            .where(DBLead.id == lead_id)
            .values(call_count=DBLead.call_count + 1, last_contacted_at=when or utcnow())
            .execution_options(synchronize_session=False)
        )
        db.flush()

    @staticmethod
    def status_counts(db: Session) -> list[StatusCount]:
        """Per-status lead counts; every status is present, zero-filled."""
        rows = dict(
            db.query(DBLead.status, func.count(DBLead.id)).group_by(DBLead.status).all()
        )
        return [StatusCount(status=status, count=rows.get(status, 0)) for status in LeadStatus]

    @staticmethod
    def lead_summary(db: Session, recent_calls: int = RECENT_CALLS_PER_LEAD) -> LeadSummary:
        """Dashboard view: status counts and leads newest first with their latest calls."""
        leads = (
            db.query(DBLead)
            .options(selectinload(DBLead.call_logs))
            .order_by(DBLead.created_at.desc(), DBLead.id.desc())
            .all()
        )

        items = []
        for lead in leads:
            item = LeadWithCalls.model_validate(lead)
            item.recent_calls = [CallLogOut.model_validate(log) for log in lead.call_logs[:recent_calls]]
            items.append(item)

        return LeadSummary(stats=LeadService.status_counts(db), leads=items)


class CallSessionService:
    """Service for managing call sessions."""

    @staticmethod
    def create_session(
        db: Session,
        lead_id: int,
        direction: CallDirection,
        history: list[ConversationTurn],
        last_prompt: str,
        provider_call_id: Optional[str] = None,
    ) -> DBCallSession:
        """Create a new ACTIVE session at turn 0."""
        session = DBCallSession(
            lead_id=lead_id,
            direction=direction,
            status=SessionStatus.ACTIVE,
            turn_index=0,
            history=dump_history(history),
            last_prompt=last_prompt,
            provider_call_id=provider_call_id or None,
        )
        db.add(session)
        db.flush()

        logger.info(
            "call_session_created",
            session_id=session.id,
            lead_id=lead_id,
            direction=direction.value,
            call_sid=provider_call_id,
        )
        return session

    @staticmethod
    def get_session(db: Session, session_id: str, for_update: bool = False) -> Optional[DBCallSession]:
        """Get call session by id, optionally locking the row until commit."""
        query = db.query(DBCallSession).filter(DBCallSession.id == session_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    @staticmethod
    def advance(
        db: Session,
        session: DBCallSession,
        expected_turn: int,
        history: list[ConversationTurn],
        last_prompt: str,
        last_response: str,
        completed: bool,
        provider_call_id: Optional[str] = None,
        demo_accepted: bool = False,
    ) -> bool:
        """
        Move an ACTIVE session from `expected_turn` to `expected_turn + 1`.

        Compare-and-set on the turn index: returns False, writing nothing,
        if another callback already advanced or completed the session.
        """
        values = {
            "history": dump_history(history),
            "turn_index": expected_turn + 1,
            "last_prompt": last_prompt,
            "last_response": last_response,
            "status": SessionStatus.COMPLETED if completed else SessionStatus.ACTIVE,
            "demo_accepted": bool(session.demo_accepted or demo_accepted),
        }
        if not session.provider_call_id and provider_call_id:
            values["provider_call_id"] = provider_call_id

        result = db.execute(
            update(DBCallSession)
            .where(
                DBCallSession.id == session.id,
                DBCallSession.turn_index == expected_turn,
                DBCallSession.status == SessionStatus.ACTIVE,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning("call_session_advance_conflict", session_id=session.id, expected_turn=expected_turn)
            return False

        db.flush()
        db.refresh(session)
        return True


class CallLogService:
    """Keeps exactly one call log per provider call id."""

    @staticmethod
    def get_by_call_id(db: Session, call_id: str) -> Optional[DBCallLog]:
        return db.query(DBCallLog).filter(DBCallLog.provider_call_id == call_id).first()

    @staticmethod
    def reconcile(
        db: Session,
        call_id: Optional[str],
        lead_id: int,
        direction: CallDirection,
        transcript: Optional[str] = None,
        outcome: Optional[CallOutcome] = None,
        demo_accepted: Optional[bool] = None,
        gather_data: Optional[Iterable[ConversationTurn]] = None,
    ) -> Optional[DBCallLog]:
        """
        Upsert the call log keyed on `call_id`.

        Repeated calls converge on the latest transcript. `outcome` and
        `demo_accepted` are only written when given, never cleared. Without
        a call id nothing is written: the session still holds the full
        history, so the first reconcile that knows the id writes it all.
        """
        if not call_id:
            logger.info("call_log_deferred", lead_id=lead_id, reason="no_call_id")
            return None

        fields = {"lead_id": lead_id}
        if transcript is not None:
            fields["transcript"] = transcript
        if gather_data is not None:
            fields["gather_data"] = dump_history(gather_data)
        if outcome is not None:
            fields["outcome"] = outcome
        if demo_accepted:
            fields["demo_accepted"] = True

        log = CallLogService.get_by_call_id(db, call_id)
        if log is None:
            try:
                with db.begin_nested():
                    log = DBCallLog(provider_call_id=call_id, direction=direction, **fields)
                    db.add(log)
                logger.info("call_log_created", call_sid=call_id, lead_id=lead_id, direction=direction.value)
                return log
            except IntegrityError:
                # Another writer created it first; fall through to update.
                log = CallLogService.get_by_call_id(db, call_id)
                if log is None:
                    raise

        for key, value in fields.items():
            setattr(log, key, value)
        db.flush()
        return log

    @staticmethod
    def apply_status_callback(
        db: Session,
        call_id: str,
        call_status: Optional[str] = None,
        recording_url: Optional[str] = None,
        duration_seconds: Optional[int] = None,
    ) -> Optional[DBCallLog]:
        """Record provider progress on the log; transcript and outcome are left alone."""
        log = CallLogService.get_by_call_id(db, call_id)
        if log is None:
            logger.info("call_status_unmatched", call_sid=call_id, call_status=call_status)
            return None

        if call_status:
            log.call_status = call_status
            log.notes = f"Status: {call_status}"
        if recording_url:
            log.recording_url = recording_url
        if duration_seconds is not None:
            log.duration_seconds = duration_seconds
        db.flush()

        logger.info("call_status_applied", call_sid=call_id, call_status=call_status)
        return log

    @staticmethod
    def record_outcome(db: Session, request: CallOutcomeRequest) -> DBCallLog:
        """Operator-logged result of a call: upsert the log and update the lead."""
        lead = LeadService.get_lead(db, request.lead_id)
        if lead is None:
            raise LeadNotFoundError(request.lead_id)

        existing = CallLogService.get_by_call_id(db, request.call_id)
        direction = existing.direction if existing is not None else CallDirection.OUTBOUND

        outcome = request.outcome
        if request.demo_accepted and outcome is None:
            outcome = CallOutcome.DEMO_SCHEDULED

        log = CallLogService.reconcile(
            db,
            call_id=request.call_id,
            lead_id=lead.id,
            direction=direction,
            transcript=request.transcript,
            outcome=outcome,
            demo_accepted=request.demo_accepted,
        )
        if request.duration_seconds is not None:
            log.duration_seconds = request.duration_seconds
        if request.recording_url:
            log.recording_url = request.recording_url
        if request.follow_up_at is not None:
            log.follow_up_at = request.follow_up_at
        if request.notes:
            log.notes = request.notes

        now = utcnow()
        LeadService.increment_call_count(db, lead.id, when=now)
        db.refresh(lead)
        if request.demo_accepted:
            LeadService.mark_demo_scheduled(db, lead, when=now)

        db.flush()
        logger.info(
            "call_outcome_recorded",
            call_sid=request.call_id,
            lead_id=lead.id,
            outcome=outcome.value if outcome else None,
        )
        return log
