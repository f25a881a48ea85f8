from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from admissions.database import get_db
from admissions.deps import get_dialer
from admissions.dialer import OutboundDialer
from admissions.errors import UpstreamUnavailableError
from admissions.logging_config import logger
from admissions.models import CallLogOut, CallOutcomeRequest, OutboundCallRequest
from admissions.security import verify_api_key
from admissions.services import CallLogService

router = APIRouter(prefix="/calls", tags=["Calls"])


# POST /calls/outbound
# Gets: JSON body {"leadId": 1}
# Returns: {"ok": true, "callSid": "CAxxx"}
# Example:
#   curl -X POST http://localhost:8000/calls/outbound -H 'Content-Type: application/json' -d '{"leadId": 1}'
@router.post("/outbound")
def initiate_outbound_call(
    request: OutboundCallRequest,
    db: Session = Depends(get_db),
    dialer: OutboundDialer = Depends(get_dialer),
    api_key: str = Depends(verify_api_key),
):
    """
    Call a lead now.

    Twilio calls back on /voice/outbound when the lead answers; the
    conversation session is created there.
    """
    try:
        call_sid = dialer.originate(db, request.lead_id)
    except UpstreamUnavailableError as e:
        logger.error("outbound_call_failed", lead_id=request.lead_id, error=str(e))
        raise HTTPException(status_code=502, detail="Telephony provider unavailable")

    if call_sid is None:
        raise HTTPException(
            status_code=400,
            detail="Twilio not configured. Set TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, and TWILIO_CALLER_ID in .env",
        )

    return {"ok": True, "callSid": call_sid}


# POST /calls/outcome
# Gets: JSON body {lead_id, call_id, outcome?, duration_seconds?, transcript?, recording_url?,
#       demo_accepted?, follow_up_at?, notes?}
# Returns: {"ok": true, "call": {...}}
# Example:
#   curl -X POST http://localhost:8000/calls/outcome -H 'Content-Type: application/json' \
#     -d '{"lead_id": 1, "call_id": "CAxxx", "outcome": "FOLLOW_UP", "notes": "call back Monday"}'
@router.post("/outcome")
def log_call_outcome(
    request: CallOutcomeRequest,
    db: Session = Depends(get_db),
    api_key: str = Depends(verify_api_key),
):
    """Record what an operator learned about a call."""
    log = CallLogService.record_outcome(db, request)
    db.commit()
    db.refresh(log)
    return {"ok": True, "call": CallLogOut.model_validate(log)}
