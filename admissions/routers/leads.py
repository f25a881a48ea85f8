from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from admissions.config import OutreachSettings
from admissions.database import get_db
from admissions.deps import get_lead_fetchers, get_resolver, get_settings
from admissions.lead_resolver import LeadIdentityResolver
from admissions.lead_sync import LeadFetcher, sync_leads
from admissions.logging_config import logger
from admissions.models import LeadOut, LeadSummary, ManualLeadRequest, SyncResult
from admissions.security import verify_api_key
from admissions.services import LeadService

router = APIRouter(prefix="/leads", tags=["Leads"])


# POST /leads
# Gets: JSON body {first_name, phone, email?, city?, student_grade?, preferred_exam?, notes?, ...}
# Returns: {"ok": true, "created": bool, "lead": {...}}
# Example:
#   curl -X POST http://localhost:8000/leads -H 'Content-Type: application/json' \
#     -d '{"first_name": "Ravi", "phone": "+919800000001", "notes": "walk-in"}'
@router.post("")
def create_lead(
    request: ManualLeadRequest,
    db: Session = Depends(get_db),
    resolver: LeadIdentityResolver = Depends(get_resolver),
    api_key: str = Depends(verify_api_key),
):
    """Operator entry of a lead; deduplicated like any channel sighting."""
    lead, created = resolver.resolve(db, request.to_lead_input())
    logger.info("manual_lead_saved", lead_id=lead.id, created=created)
    return {"ok": True, "created": created, "lead": LeadOut.model_validate(lead)}


# GET /leads
# Gets: optional X-API-Key header
# Returns: {stats: [{status, count}], leads: [{..., recent_calls: [...]}]}
# Example:
#   curl http://localhost:8000/leads
@router.get("", response_model=LeadSummary)
def list_leads(db: Session = Depends(get_db), api_key: str = Depends(verify_api_key)):
    """Per-status counts and every lead, newest first, with its latest calls."""
    return LeadService.lead_summary(db)


# POST /leads/sync
# Gets: nothing (channels are enabled through ENABLE_*_SYNC)
# Returns: {ok, created_count, updated_count, skipped_count, created_ids, updated_ids}
# Example:
#   curl -X POST http://localhost:8000/leads/sync
@router.post("/sync", response_model=SyncResult)
def sync_channel_leads(
    db: Session = Depends(get_db),
    resolver: LeadIdentityResolver = Depends(get_resolver),
    settings: OutreachSettings = Depends(get_settings),
    fetchers: list[LeadFetcher] = Depends(get_lead_fetchers),
    api_key: str = Depends(verify_api_key),
):
    """Pull leads from the enabled ad channels."""
    return sync_leads(db, resolver, settings, fetchers)
