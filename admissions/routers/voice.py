"""Twilio voice webhooks: every response is TwiML, even when something failed."""

import traceback
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response
from sqlalchemy.orm import Session

from admissions.call_engine import CallEngine
from admissions.caller_text import get_caller_text
from admissions.database import get_db
from admissions.deps import get_call_engine, get_telephony
from admissions.logging_config import logger
from admissions.services import CallLogService
from admissions.telephony import TwilioTelephony

router = APIRouter(tags=["Voice"])


def _twiml(document: str) -> Response:
    return Response(content=document, media_type="application/xml")


def _error_twiml(telephony: TwilioTelephony) -> Response:
    return _twiml(telephony.speak_and_hang_up(get_caller_text("technical_error")))


def _parse_int(value) -> Optional[int]:
    try:
        return int(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


# POST /voice/outbound?leadId=1
# Gets: Twilio form fields (CallSid, To, ...) and query param leadId
# Returns: TwiML (application/xml)
# Example:
#   curl -X POST 'http://localhost:8000/voice/outbound?leadId=1' -d 'CallSid=CAxxx'
@router.post("/voice/outbound")
async def voice_outbound(
    request: Request,
    db: Session = Depends(get_db),
    engine: CallEngine = Depends(get_call_engine),
    telephony: TwilioTelephony = Depends(get_telephony),
):
    """Answer handler for a call placed by the dialer."""
    lead_id = _parse_int(request.query_params.get("leadId"))
    try:
        form_data = await request.form()
        call_sid = form_data.get("CallSid", "")
        logger.info("voice_outbound_answered", call_sid=call_sid, lead_id=lead_id)

        result = await run_in_threadpool(engine.start_outbound, db, lead_id, call_sid or None)
        return _twiml(result.document)

    except Exception as e:
        db.rollback()
        logger.error("voice_outbound_error", lead_id=lead_id, error=str(e), traceback=traceback.format_exc())
        return _error_twiml(telephony)


# POST /voice/inbound
# Gets: Twilio form fields (CallSid, From, To, ...)
# Returns: TwiML (application/xml)
# Example:
#   curl -X POST http://localhost:8000/voice/inbound -d 'CallSid=CAxxx&From=%2B919800000000'
@router.post("/voice/inbound")
async def voice_inbound(
    request: Request,
    db: Session = Depends(get_db),
    engine: CallEngine = Depends(get_call_engine),
    telephony: TwilioTelephony = Depends(get_telephony),
):
    """A prospect is calling the institute."""
    try:
        form_data = await request.form()
        call_sid = form_data.get("CallSid", "")
        from_number = form_data.get("From", "")
        logger.info("voice_inbound_called", call_sid=call_sid, from_number=from_number)

        result = await run_in_threadpool(engine.accept_inbound, db, from_number, call_sid or None)
        return _twiml(result.document)

    except Exception as e:
        db.rollback()
        logger.error("voice_inbound_error", error=str(e), traceback=traceback.format_exc())
        return _error_twiml(telephony)


# POST /voice/continue?sessionId=ab12&turn=0
# Gets: Twilio form fields including SpeechResult, plus query params sessionId/turn
# Returns: TwiML (application/xml)
# Example:
#   curl -X POST 'http://localhost:8000/voice/continue?sessionId=ab12&turn=0' -d 'CallSid=CAxxx&SpeechResult=yes'
@router.post("/voice/continue")
async def voice_continue(
    request: Request,
    db: Session = Depends(get_db),
    engine: CallEngine = Depends(get_call_engine),
    telephony: TwilioTelephony = Depends(get_telephony),
):
    """One conversation turn: the prospect spoke (or stayed silent) after a prompt."""
    session_id = request.query_params.get("sessionId", "")
    turn = _parse_int(request.query_params.get("turn"))
    try:
        form_data = await request.form()
        call_sid = form_data.get("CallSid", "")
        speech = form_data.get("SpeechResult", "")
        logger.info(
            "voice_continue_called",
            call_sid=call_sid,
            session_id=session_id,
            turn=turn,
            confidence=form_data.get("Confidence", ""),
        )

        result = await run_in_threadpool(
            engine.continue_turn, db, session_id, speech, call_sid or None, turn
        )
        return _twiml(result.document)

    except Exception as e:
        db.rollback()
        logger.error("voice_continue_error", session_id=session_id, error=str(e), traceback=traceback.format_exc())
        return _error_twiml(telephony)


# POST /calls/status
# Gets: Twilio form fields (CallSid, CallStatus, CallDuration, RecordingUrl, ...)
# Returns: {"status": "received"}
# Example:
#   curl -X POST http://localhost:8000/calls/status -d 'CallSid=CAxxx&CallStatus=completed&CallDuration=42'
@router.post("/calls/status")
async def call_status(request: Request, db: Session = Depends(get_db)):
    """Receive call status updates from Twilio."""

    form_data = await request.form()
    call_sid = form_data.get("CallSid", "")
    status = form_data.get("CallStatus", "")
    recording_url = form_data.get("RecordingUrl", "")
    duration = _parse_int(form_data.get("CallDuration") or form_data.get("RecordingDuration"))

    logger.info("call_status", call_sid=call_sid, call_status=status)

    if call_sid:
        log = CallLogService.apply_status_callback(
            db,
            call_sid,
            call_status=status or None,
            recording_url=recording_url or None,
            duration_seconds=duration,
        )
        if log is not None:
            db.commit()

    return {"status": "received"}
