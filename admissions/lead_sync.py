"""
Channel sync: pull lead records from the ad channels and resolve them.

The fetchers (Facebook lead forms, Google Ads lead extensions) are external
collaborators; anything with a `source` and a `fetch()` returning
`NormalizedLeadInput` records can be plugged in.
"""

from typing import Iterable, Protocol

from sqlalchemy.orm import Session

from admissions.config import OutreachSettings
from admissions.db_models import LeadSource
from admissions.errors import ValidationError
from admissions.lead_resolver import LeadIdentityResolver
from admissions.logging_config import get_logger
from admissions.models import NormalizedLeadInput, SyncResult

logger = get_logger(__name__)


class LeadFetcher(Protocol):
    source: LeadSource

    def fetch(self) -> Iterable[NormalizedLeadInput]:
        ...


def channel_enabled(settings: OutreachSettings, source: LeadSource) -> bool:
    if source == LeadSource.FACEBOOK:
        return settings.enable_facebook_sync
    if source == LeadSource.GOOGLE_ADS:
        return settings.enable_google_ads_sync
    return False


def sync_leads(
    db: Session,
    resolver: LeadIdentityResolver,
    settings: OutreachSettings,
    fetchers: Iterable[LeadFetcher],
) -> SyncResult:
    """Resolve every record from every enabled channel; invalid records are skipped."""
    result = SyncResult()

    for fetcher in fetchers:
        if not channel_enabled(settings, fetcher.source):
            logger.info("lead_sync_channel_disabled", source=fetcher.source.value)
            continue

        fetched = 0
        for record in fetcher.fetch():
            fetched += 1
            record = record.model_copy(update={"source": fetcher.source})
            try:
                lead, created = resolver.resolve(db, record)
            except ValidationError as e:
                result.skipped_count += 1
                logger.info(
                    "lead_sync_record_skipped",
                    source=fetcher.source.value,
                    source_id=record.source_id,
                    errors=e.field_errors,
                )
                continue

            if created:
                result.created_count += 1
                result.created_ids.append(lead.id)
            else:
                result.updated_count += 1
                result.updated_ids.append(lead.id)

        logger.info("lead_sync_channel_done", source=fetcher.source.value, fetched=fetched)

    logger.info(
        "lead_sync_completed",
        created=result.created_count,
        updated=result.updated_count,
        skipped=result.skipped_count,
    )
    return result
