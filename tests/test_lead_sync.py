from admissions.config import OutreachSettings
from admissions.db_models import DBLead, LeadSource
from admissions.lead_resolver import LeadIdentityResolver
from admissions.lead_sync import sync_leads
from admissions.models import NormalizedLeadInput


class StaticFetcher:
    def __init__(self, source, records):
        self.source = source
        self.records = records
        self.fetched = False

    def fetch(self):
        self.fetched = True
        return list(self.records)


def test_sync_resolves_enabled_channels_only(db):
    settings = OutreachSettings(enable_facebook_sync=True, enable_google_ads_sync=False)
    facebook = StaticFetcher(
        LeadSource.FACEBOOK,
        [
            NormalizedLeadInput(source_id="fb-1", phone="+919800000050", first_name="Anil"),
            NormalizedLeadInput(source_id="fb-2", phone="+919800000051", first_name="Bela"),
            NormalizedLeadInput(source_id="fb-3", phone="", first_name="No Number"),
        ],
    )
    google = StaticFetcher(
        LeadSource.GOOGLE_ADS,
        [NormalizedLeadInput(source_id="g-1", phone="+919800000052")],
    )

    result = sync_leads(db, LeadIdentityResolver(settings), settings, [facebook, google])

    assert result.created_count == 2
    assert result.updated_count == 0
    assert result.skipped_count == 1
    assert google.fetched is False
    assert {lead.source for lead in db.query(DBLead).all()} == {LeadSource.FACEBOOK}


def test_sync_twice_updates_instead_of_duplicating(db):
    settings = OutreachSettings(enable_google_ads_sync=True)
    fetcher = StaticFetcher(
        LeadSource.GOOGLE_ADS,
        [NormalizedLeadInput(source_id="g-7", phone="+919800000053", campaign_name="Sainik 2025")],
    )
    resolver = LeadIdentityResolver(settings)

    first = sync_leads(db, resolver, settings, [fetcher])
    second = sync_leads(db, resolver, settings, [fetcher])

    assert first.created_ids == second.updated_ids
    assert second.created_count == 0
    assert db.query(DBLead).count() == 1
