from fastapi import APIRouter

router = APIRouter(tags=["Core"])


# GET /
# Gets: nothing
# Returns: basic API metadata and a map of key endpoints
# Example:
#   curl http://localhost:8000/
@router.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Admissions Outreach API - AI admissions counsellor",
        "version": "1.0.0",
        "description": "Ingests enquiry leads, calls prospects and books free demo classes",
        "endpoints": {
            "leads": "/leads",
            "leads_sync": "/leads/sync",
            "outbound_call": "/calls/outbound",
            "call_outcome": "/calls/outcome",
            "voice_outbound": "/voice/outbound",
            "voice_inbound": "/voice/inbound",
            "voice_continue": "/voice/continue",
            "call_status": "/calls/status",
        },
        "features": [
            "Lead deduplication across channels",
            "Outbound and inbound AI calls",
            "Demo class booking",
            "Twilio voice integration",
        ],
    }
