"""
Lead identity resolution.

Every sighting of a prospect, from any channel, goes through
`LeadIdentityResolver.resolve`, which decides whether it is a new lead or
an update to one we already know and merges the fields.
"""

import json
from typing import Optional, Protocol

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from admissions import metrics
from admissions.config import OutreachSettings
from admissions.db_models import DBLead, LeadStatus
from admissions.errors import ValidationError
from admissions.logging_config import get_logger
from admissions.models import NormalizedLeadInput
from admissions.services import LeadService

logger = get_logger(__name__)

# Overwritten only when the incoming value is present.
MERGEABLE_FIELDS = (
    "first_name",
    "last_name",
    "email",
    "city",
    "student_grade",
    "preferred_exam",
    "guardian_name",
    "student_name",
    "campaign_name",
    "ad_group_name",
)


class CallOriginator(Protocol):
    """Places an outbound call to a lead; returns the call id or None if telephony is off."""

    def originate(self, db: Session, lead_id: int) -> Optional[str]:
        ...


def is_present(value) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    return True


def _clean(value):
    return value.strip() if isinstance(value, str) else value


class LeadIdentityResolver:
    """Merges inbound lead records into the store, one lead per person."""

    MAX_ATTEMPTS = 3

    def __init__(self, settings: OutreachSettings, originator: Optional[CallOriginator] = None):
        self.settings = settings
        self.originator = originator

    def resolve(self, db: Session, lead_input: NormalizedLeadInput) -> tuple[DBLead, bool]:
        """
        Create or update the lead for `lead_input`.

        Returns:
            (lead, is_newly_created)

        Raises:
            ValidationError: the phone number is missing.
        """
        phone = (lead_input.phone or "").strip()
        if not phone:
            raise ValidationError({"phone": ["Lead phone number is required"]})

        last_error: Optional[IntegrityError] = None
        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            target = self._find_match(db, lead_input, phone)
            try:
                with db.begin_nested():
                    if target is not None:
                        lead = self._merge(db, target, lead_input, phone)
                    else:
                        lead = self._build(lead_input, phone)
                        db.add(lead)
            except IntegrityError as e:
                # A concurrent resolve won the unique key; look again and merge.
                last_error = e
                logger.info("lead_resolve_conflict", phone=phone, attempt=attempt)
                continue

            db.commit()

            if target is not None:
                metrics.leads_resolved.labels(result="updated").inc()
                logger.info("lead_merged", lead_id=lead.id, source=lead.source.value, status=lead.status.value)
                return lead, False

            metrics.leads_resolved.labels(result="created").inc()
            logger.info("lead_created", lead_id=lead.id, source=lead.source.value)
            self._originate(db, lead)
            return lead, True

        raise last_error

    def _find_match(self, db: Session, lead_input: NormalizedLeadInput, phone: str) -> Optional[DBLead]:
        """Look up by (source, source_id), then phone, then email; first hit wins."""
        by_source = None
        if is_present(lead_input.source_id):
            by_source = LeadService.get_lead_by_source(db, lead_input.source, lead_input.source_id.strip())
        by_phone = LeadService.get_lead_by_phone(db, phone)
        by_email = None
        if is_present(lead_input.email):
            by_email = LeadService.get_lead_by_email(db, lead_input.email.strip())

        matches = [lead for lead in (by_source, by_phone, by_email) if lead is not None]
        if not matches:
            return None

        distinct_ids = sorted({lead.id for lead in matches})
        if len(distinct_ids) > 1:
            logger.warning(
                "lead_merge_collision",
                chosen_lead_id=matches[0].id,
                candidate_ids=distinct_ids,
                source=lead_input.source.value,
                source_id=lead_input.source_id,
            )
        return matches[0]

    def _merge(self, db: Session, lead: DBLead, lead_input: NormalizedLeadInput, phone: str) -> DBLead:
        for field in MERGEABLE_FIELDS:
            value = getattr(lead_input, field)
            if is_present(value):
                setattr(lead, field, _clean(value))

        if phone != lead.phone:
            owner = LeadService.get_lead_by_phone(db, phone)
            if owner is None:
                lead.phone = phone
            else:
                logger.warning("lead_phone_taken", lead_id=lead.id, phone_owner_id=owner.id)

        source_id = lead_input.source_id.strip() if is_present(lead_input.source_id) else lead.source_id
        if source_id is not None:
            owner = LeadService.get_lead_by_source(db, lead_input.source, source_id)
            if owner is not None and owner.id != lead.id:
                # (source, source_id) already names another lead.
                logger.warning(
                    "lead_merge_collision",
                    chosen_lead_id=lead.id,
                    candidate_ids=sorted({lead.id, owner.id}),
                    source=lead_input.source.value,
                    source_id=source_id,
                )
                source_id = None
        lead.source = lead_input.source
        lead.source_id = source_id
        if lead_input.metadata is not None:
            lead.metadata_json = json.dumps(lead_input.metadata, ensure_ascii=False, default=str)

        # A repeat sighting advances NEW only; later stages are left alone.
        if lead.status == LeadStatus.NEW:
            lead.status = LeadStatus.CONTACTED

        db.flush()
        return lead

    def _build(self, lead_input: NormalizedLeadInput, phone: str) -> DBLead:
        fields = {
            field: _clean(getattr(lead_input, field))
            for field in MERGEABLE_FIELDS
            if is_present(getattr(lead_input, field))
        }
        fields.setdefault("first_name", phone)
        fields.setdefault("preferred_exam", self.settings.default_preferred_exam)

        lead = DBLead(
            phone=phone,
            source=lead_input.source,
            source_id=_clean(lead_input.source_id) if is_present(lead_input.source_id) else None,
            status=LeadStatus.NEW,
            call_count=0,
            **fields,
        )
        if lead_input.metadata is not None:
            lead.metadata_json = json.dumps(lead_input.metadata, ensure_ascii=False, default=str)
        if lead_input.created_at is not None:
            lead.created_at = lead_input.created_at
        return lead

    def _originate(self, db: Session, lead: DBLead) -> None:
        """Fire-and-forget outbound call for a new lead; failures never undo the lead."""
        if not self.settings.enable_telephony_sync or self.originator is None:
            return
        try:
            call_id = self.originator.originate(db, lead.id)
            logger.info("lead_call_originated", lead_id=lead.id, call_sid=call_id)
        except Exception as e:
            db.rollback()
            logger.error("outbound_call_failed", lead_id=lead.id, error=str(e), error_type=type(e).__name__)
