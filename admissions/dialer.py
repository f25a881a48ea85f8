"""Outbound call origination."""

from typing import Optional

from sqlalchemy.orm import Session

from admissions import metrics
from admissions.config import OutreachSettings
from admissions.db_models import CallDirection
from admissions.errors import LeadNotFoundError, TelephonyNotConfigured, UpstreamUnavailableError
from admissions.logging_config import get_logger
from admissions.services import CallLogService, LeadService
from admissions.telephony import TwilioTelephony

logger = get_logger(__name__)

OUTBOUND_ANSWER_PATH = "/voice/outbound"
STATUS_CALLBACK_PATH = "/calls/status"


class OutboundDialer:
    """
    Places outbound calls to leads.

    The session is created later, when the provider calls back on answer
    (`CallEngine.start_outbound`); until then the lead id is the only
    correlation token in the callback URL.
    """

    def __init__(self, settings: OutreachSettings, telephony: TwilioTelephony):
        self.settings = settings
        self.telephony = telephony

    def status_callback_url(self) -> str:
        return self.settings.status_callback_url or self.telephony.url(STATUS_CALLBACK_PATH)

    def originate(self, db: Session, lead_id: int) -> Optional[str]:
        """
        Call the lead and open its call log.

        Returns:
            The provider call id, or None when telephony is not configured.

        Raises:
            LeadNotFoundError: no lead with this id.
            UpstreamUnavailableError: Twilio rejected or timed out.
        """
        if not self.settings.enable_telephony_sync or not self.settings.caller_id:
            logger.info("outbound_call_skipped", lead_id=lead_id, reason="telephony_not_configured")
            return None

        lead = LeadService.get_lead(db, lead_id)
        if lead is None:
            raise LeadNotFoundError(lead_id)

        try:
            call_id = self.telephony.place_call(
                to=lead.phone,
                from_=self.settings.caller_id,
                callback_url=self.telephony.url(OUTBOUND_ANSWER_PATH, leadId=lead.id),
                status_callback_url=self.status_callback_url(),
            )
        except TelephonyNotConfigured:
            logger.info("outbound_call_skipped", lead_id=lead_id, reason="telephony_not_configured")
            return None
        except UpstreamUnavailableError:
            metrics.upstream_failures.labels(service="telephony").inc()
            raise

        CallLogService.reconcile(db, call_id=call_id, lead_id=lead.id, direction=CallDirection.OUTBOUND)
        LeadService.increment_call_count(db, lead.id)
        db.commit()

        metrics.calls_originated.inc()
        logger.info("outbound_call_initiated", lead_id=lead.id, call_sid=call_id)
        return call_id
