"""
Call session state machine.

Twilio calls back once per spoken utterance, each time as an independent
HTTP request. `CallEngine` turns that stream of callbacks into one bounded
conversation: the session row in the store holds all state, the session id
in the callback URL is the only continuation token, and every callback
advances the session by exactly one turn before the TwiML is returned.
"""

from typing import NamedTuple, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from admissions import metrics
from admissions.caller_text import get_caller_text
from admissions.config import OutreachSettings
from admissions.conversation_policy import (
    detect_demo_acceptance,
    display_name,
    load_history,
    render_transcript,
    should_hang_up,
)
from admissions.db_models import (
    CallDirection,
    CallOutcome,
    DBCallSession,
    DBLead,
    LeadSource,
    LeadStatus,
    SessionStatus,
    utcnow,
)
from admissions.errors import (
    CallFlowError,
    LeadNotFoundError,
    SessionExpiredError,
    SessionNotFoundError,
    UpstreamUnavailableError,
)
from admissions.logging_config import get_logger, log_transcript_turn
from admissions.models import ConversationTurn, TurnRole
from admissions.reply_generator import ReplyGenerator, inbound_framing, outbound_framing
from admissions.services import CallLogService, CallSessionService, LeadService
from admissions.telephony import TwilioTelephony

logger = get_logger(__name__)

CONTINUE_PATH = "/voice/continue"


class TurnResult(NamedTuple):
    """What one webhook callback produced."""
    document: str
    session: Optional[DBCallSession] = None
    should_hang_up: bool = True
    demo_accepted: bool = False


class CallEngine:
    """Creates call sessions and advances them one turn per callback."""

    def __init__(self, settings: OutreachSettings, reply_generator: ReplyGenerator, telephony: TwilioTelephony):
        self.settings = settings
        self.reply_generator = reply_generator
        self.telephony = telephony

    def continue_url(self, session_id: str, turn: int) -> str:
        return self.telephony.url(CONTINUE_PATH, sessionId=session_id, turn=turn)

    def _hang_up(self, message_key: str) -> TurnResult:
        return TurnResult(document=self.telephony.speak_and_hang_up(get_caller_text(message_key)))

    def _opening(self, lead: DBLead, framing: ConversationTurn) -> str:
        try:
            return self.reply_generator.generate([framing], display_name(lead)).message
        except UpstreamUnavailableError as e:
            metrics.upstream_failures.labels(service=e.service).inc()
            logger.error("opening_generation_failed", lead_id=lead.id, error=str(e))
            raise

    def _open_session(
        self,
        db: Session,
        lead: DBLead,
        direction: CallDirection,
        opening: str,
        call_id: Optional[str],
    ) -> TurnResult:
        history = [ConversationTurn(role=TurnRole.ASSISTANT, text=opening)]
        session = CallSessionService.create_session(
            db,
            lead_id=lead.id,
            direction=direction,
            history=history,
            last_prompt=opening,
            provider_call_id=call_id,
        )
        CallLogService.reconcile(
            db,
            call_id=call_id,
            lead_id=lead.id,
            direction=direction,
            transcript=render_transcript(history),
            gather_data=history,
        )
        db.commit()

        log_transcript_turn(session_id=session.id, turn=0, role=TurnRole.ASSISTANT.value, text=opening)
        document = self.telephony.speak_and_gather(opening, self.continue_url(session.id, 0))
        return TurnResult(document=document, session=session, should_hang_up=False)

    def start_outbound(self, db: Session, lead_id: Optional[int], call_id: Optional[str] = None) -> TurnResult:
        """Answer handler for a call we originated: greet the lead and open the session."""
        if not lead_id:
            logger.warning("outbound_answer_without_lead", call_sid=call_id)
            return self._hang_up("lead_details_missing")

        lead = LeadService.get_lead(db, lead_id)
        if lead is None:
            logger.warning("outbound_answer_lead_missing", lead_id=lead_id, call_sid=call_id)
            return self._hang_up("outbound_lead_missing")

        try:
            opening = self._opening(lead, outbound_framing(lead))
        except UpstreamUnavailableError:
            return self._hang_up("technical_error")

        return self._open_session(db, lead, CallDirection.OUTBOUND, opening, call_id)

    def accept_inbound(self, db: Session, caller: Optional[str], call_id: Optional[str] = None) -> TurnResult:
        """A prospect called us: find or create their lead and open the session."""
        caller = (caller or "").strip()
        if not caller:
            logger.warning("inbound_call_without_caller", call_sid=call_id)
            return self._hang_up("invalid_caller")

        now = utcnow()
        lead = LeadService.get_lead_by_phone(db, caller)
        if lead is None:
            try:
                with db.begin_nested():
                    lead = LeadService.create_lead(
                        db,
                        first_name=caller,
                        phone=caller,
                        preferred_exam=self.settings.default_preferred_exam,
                        source=LeadSource.UNKNOWN,
                        status=LeadStatus.CONTACTED,
                        last_contacted_at=now,
                    )
            except IntegrityError:
                # The same number was created concurrently.
                lead = LeadService.get_lead_by_phone(db, caller)
                if lead is None:
                    raise
                LeadService.mark_contacted(db, lead, now)
        else:
            LeadService.mark_contacted(db, lead, now)

        LeadService.increment_call_count(db, lead.id, when=now)
        db.commit()
        logger.info("inbound_call_accepted", lead_id=lead.id, call_sid=call_id)

        try:
            opening = self._opening(lead, inbound_framing(lead))
        except UpstreamUnavailableError:
            return self._hang_up("technical_error")

        return self._open_session(db, lead, CallDirection.INBOUND, opening, call_id)

    def continue_turn(
        self,
        db: Session,
        session_id: Optional[str],
        captured_speech: Optional[str],
        call_id: Optional[str] = None,
        turn: Optional[int] = None,
    ) -> TurnResult:
        """
        Advance a session by one prospect/assistant cycle.

        `turn` is the turn index the callback URL was issued for; a callback
        for any other index is a duplicate or stale delivery and only
        re-renders the stored state. Lookup failures never propagate: the
        caller hears an apology and the line is closed.
        """
        captured = (captured_speech or "").strip()
        try:
            if not session_id:
                raise SessionExpiredError("continuation callback without a session id")

            session = CallSessionService.get_session(db, session_id, for_update=True)
            if session is None:
                raise SessionNotFoundError(session_id)

            if session.status == SessionStatus.COMPLETED:
                db.rollback()
                logger.info("call_turn_after_completion", session_id=session_id)
                return self._replay(session)

            if turn is not None and turn != session.turn_index:
                db.rollback()
                logger.info(
                    "call_turn_duplicate",
                    session_id=session_id,
                    callback_turn=turn,
                    turn_index=session.turn_index,
                )
                return self._replay(session)

            lead = LeadService.get_lead(db, session.lead_id) if session.lead_id else None
            if lead is None:
                raise LeadNotFoundError(session.lead_id)

            return self._advance(db, session, lead, captured, call_id)

        except CallFlowError as e:
            db.rollback()
            logger.warning(
                "call_turn_recovered",
                session_id=session_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            return self._hang_up(e.caller_message_key)

    def _replay(self, session: DBCallSession) -> TurnResult:
        """Render the stored state again without touching it."""
        if session.status == SessionStatus.COMPLETED:
            document = self.telephony.speak_and_hang_up(get_caller_text("closing"))
            return TurnResult(document=document, session=session, demo_accepted=bool(session.demo_accepted))

        document = self.telephony.speak_and_gather(
            session.last_prompt or get_caller_text("fallback_short"),
            self.continue_url(session.id, session.turn_index),
        )
        return TurnResult(
            document=document,
            session=session,
            should_hang_up=False,
            demo_accepted=bool(session.demo_accepted),
        )

    def _advance(
        self,
        db: Session,
        session: DBCallSession,
        lead: DBLead,
        captured: str,
        call_id: Optional[str],
    ) -> TurnResult:
        expected_turn = session.turn_index
        history = load_history(session.history)
        if captured:
            history.append(ConversationTurn(role=TurnRole.PROSPECT, text=captured))
            log_transcript_turn(session_id=session.id, turn=expected_turn, role=TurnRole.PROSPECT.value, text=captured)

        hang_up = should_hang_up(expected_turn, captured, self.settings.turn_cap)
        demo_now = detect_demo_acceptance(captured)
        first_acceptance = demo_now and not session.demo_accepted

        reply: Optional[str] = None
        try:
            reply = self.reply_generator.generate(history, display_name(lead)).message
        except UpstreamUnavailableError as e:
            # Never retried mid-call; the call is closed instead.
            metrics.upstream_failures.labels(service=e.service).inc()
            logger.error("reply_generation_failed", session_id=session.id, turn=expected_turn, error=str(e))
            hang_up = True

        if reply:
            history.append(ConversationTurn(role=TurnRole.ASSISTANT, text=reply))
            log_transcript_turn(session_id=session.id, turn=expected_turn, role=TurnRole.ASSISTANT.value, text=reply)

        closing = get_caller_text("closing")
        if first_acceptance:
            LeadService.mark_demo_scheduled(db, lead, utcnow())

        advanced = CallSessionService.advance(
            db,
            session,
            expected_turn=expected_turn,
            history=history,
            last_prompt=reply or closing,
            last_response=captured,
            completed=hang_up,
            provider_call_id=call_id,
            demo_accepted=demo_now,
        )
        if not advanced:
            # Another delivery of this turn won; undo ours and show its result.
            db.rollback()
            current = CallSessionService.get_session(db, session.id)
            return self._replay(current)

        CallLogService.reconcile(
            db,
            call_id=session.provider_call_id or call_id,
            lead_id=lead.id,
            direction=session.direction,
            transcript=render_transcript(history),
            outcome=CallOutcome.DEMO_SCHEDULED if demo_now else None,
            demo_accepted=True if demo_now else None,
            gather_data=history,
        )
        db.commit()

        metrics.call_turns.labels(direction=session.direction.value).inc()
        if first_acceptance:
            metrics.demos_scheduled.inc()
        logger.info(
            "call_turn_processed",
            session_id=session.id,
            turn_index=session.turn_index,
            hang_up=hang_up,
            demo_accepted=bool(session.demo_accepted),
        )

        if hang_up:
            document = self.telephony.speak_and_hang_up(closing)
        else:
            document = self.telephony.speak_and_gather(reply, self.continue_url(session.id, session.turn_index))

        return TurnResult(
            document=document,
            session=session,
            should_hang_up=hang_up,
            demo_accepted=bool(session.demo_accepted),
        )
