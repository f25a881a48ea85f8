"""
Tests for lead deduplication and merge.
"""

import json
from unittest.mock import Mock

import pytest

from admissions.db_models import DBLead, LeadSource, LeadStatus
from admissions.errors import UpstreamUnavailableError, ValidationError
from admissions.lead_resolver import LeadIdentityResolver
from admissions.models import NormalizedLeadInput


@pytest.fixture
def resolver(settings):
    return LeadIdentityResolver(settings)


def test_new_phone_creates_lead_with_defaults(db, resolver):
    lead, created = resolver.resolve(
        db, NormalizedLeadInput(source=LeadSource.MANUAL, phone="+919999999999")
    )

    assert created is True
    assert lead.id is not None
    assert lead.phone == "+919999999999"
    assert lead.preferred_exam == "Sainik School"
    assert lead.status == LeadStatus.NEW
    assert lead.call_count == 0
    # No name given: the number stands in for it
    assert lead.first_name == "+919999999999"


def test_same_phone_with_email_updates_existing_lead(db, resolver):
    first, _ = resolver.resolve(
        db, NormalizedLeadInput(source=LeadSource.MANUAL, phone="+919999999999", first_name="Asha")
    )

    lead, created = resolver.resolve(
        db,
        NormalizedLeadInput(source=LeadSource.MANUAL, phone="+919999999999", email="asha@example.com"),
    )

    assert created is False
    assert lead.id == first.id
    assert lead.email == "asha@example.com"
    assert lead.first_name == "Asha"
    assert lead.status == LeadStatus.CONTACTED
    assert db.query(DBLead).count() == 1


def test_blank_fields_never_overwrite(db, resolver, make_lead):
    existing = make_lead(phone="+919800000002", city="Pune", student_grade="5")

    lead, created = resolver.resolve(
        db,
        NormalizedLeadInput(phone="+919800000002", city="   ", student_grade=None, first_name=""),
    )

    assert created is False
    assert lead.id == existing.id
    assert lead.city == "Pune"
    assert lead.student_grade == "5"
    assert lead.first_name == "Meera"


def test_later_stage_status_is_not_regressed(db, resolver, make_lead):
    make_lead(phone="+919800000003", status=LeadStatus.DEMO_SCHEDULED)

    lead, _ = resolver.resolve(db, NormalizedLeadInput(phone="+919800000003", city="Jaipur"))

    assert lead.status == LeadStatus.DEMO_SCHEDULED
    assert lead.city == "Jaipur"


def test_source_id_is_idempotent(db, resolver):
    record = NormalizedLeadInput(
        source=LeadSource.FACEBOOK,
        source_id="fb-123",
        phone="+919800000004",
        first_name="Kiran",
        metadata={"form": "sainik-2025"},
    )

    first, created_first = resolver.resolve(db, record)
    second, created_second = resolver.resolve(db, record)

    assert created_first is True
    assert created_second is False
    assert first.id == second.id
    assert db.query(DBLead).count() == 1
    assert json.loads(second.metadata_json) == {"form": "sainik-2025"}


def test_source_id_match_wins_over_phone(db, resolver, make_lead):
    by_source = make_lead(phone="+919800000005", source=LeadSource.GOOGLE_ADS, source_id="g-9")
    make_lead(phone="+919800000006", first_name="Other")

    lead, created = resolver.resolve(
        db,
        NormalizedLeadInput(
            source=LeadSource.GOOGLE_ADS,
            source_id="g-9",
            phone="+919800000006",
            city="Lucknow",
        ),
    )

    assert created is False
    assert lead.id == by_source.id
    assert lead.city == "Lucknow"
    # The number belongs to another lead; this one keeps its own
    assert lead.phone == "+919800000005"


def test_email_matches_when_phone_is_new(db, resolver, make_lead):
    existing = make_lead(phone="+919800000007", email="parent@example.com")

    lead, created = resolver.resolve(
        db, NormalizedLeadInput(phone="+919800000008", email="parent@example.com")
    )

    assert created is False
    assert lead.id == existing.id
    assert lead.phone == "+919800000008"


def test_missing_phone_is_rejected(db, resolver):
    with pytest.raises(ValidationError) as exc_info:
        resolver.resolve(db, NormalizedLeadInput(first_name="No Phone", phone="  "))

    assert exc_info.value.field_errors == {"phone": ["Lead phone number is required"]}
    assert db.query(DBLead).count() == 0


def test_new_lead_triggers_origination_when_enabled(db, dialing_settings):
    originator = Mock()
    originator.originate.return_value = "CA2001"
    resolver = LeadIdentityResolver(dialing_settings, originator=originator)

    lead, created = resolver.resolve(db, NormalizedLeadInput(phone="+919800000009"))

    assert created is True
    originator.originate.assert_called_once_with(db, lead.id)


def test_update_does_not_trigger_origination(db, dialing_settings, make_lead):
    make_lead(phone="+919800000010")
    originator = Mock()
    resolver = LeadIdentityResolver(dialing_settings, originator=originator)

    resolver.resolve(db, NormalizedLeadInput(phone="+919800000010", city="Delhi"))

    originator.originate.assert_not_called()


def test_origination_skipped_when_telephony_disabled(db, settings):
    originator = Mock()
    resolver = LeadIdentityResolver(settings, originator=originator)

    resolver.resolve(db, NormalizedLeadInput(phone="+919800000011"))

    originator.originate.assert_not_called()


def test_origination_failure_keeps_the_lead(db, dialing_settings):
    originator = Mock()
    originator.originate.side_effect = UpstreamUnavailableError("telephony", "503")
    resolver = LeadIdentityResolver(dialing_settings, originator=originator)

    lead, created = resolver.resolve(db, NormalizedLeadInput(phone="+919800000012"))

    assert created is True
    assert db.query(DBLead).filter(DBLead.phone == "+919800000012").count() == 1
    assert lead.status == LeadStatus.NEW


def test_merge_does_not_take_another_leads_source_id(db, resolver, make_lead):
    target = make_lead(phone="+911111111", source=LeadSource.FACEBOOK, source_id="123")
    other = make_lead(phone="+912222222", source=LeadSource.GOOGLE_ADS, source_id="123")

    lead, created = resolver.resolve(
        db,
        NormalizedLeadInput(source=LeadSource.GOOGLE_ADS, phone="+911111111", email="parent@gmail.com"),
    )

    assert created is False
    assert lead.id == target.id
    assert lead.source == LeadSource.GOOGLE_ADS
    assert lead.source_id is None
    assert lead.email == "parent@gmail.com"

    db.expire_all()
    assert db.get(DBLead, other.id).source_id == "123"
    assert db.query(DBLead).count() == 2


def test_merge_keeps_source_id_when_pair_is_free(db, resolver, make_lead):
    existing = make_lead(phone="+919800000013", source=LeadSource.FACEBOOK, source_id="fb-77")

    lead, _ = resolver.resolve(db, NormalizedLeadInput(source=LeadSource.GOOGLE_ADS, phone="+919800000013"))

    assert lead.id == existing.id
    assert lead.source == LeadSource.GOOGLE_ADS
    assert lead.source_id == "fb-77"


def test_unique_conflict_is_retried_as_update(db, resolver, make_lead, monkeypatch):
    existing = make_lead(phone="+919800000014", first_name="Asha")
    real_find_match = resolver._find_match
    stale_lookups = []

    def _find_match(db, lead_input, phone):
        # First lookup misses, as if another worker created the lead meanwhile.
        if not stale_lookups:
            stale_lookups.append(phone)
            return None
        return real_find_match(db, lead_input, phone)

    monkeypatch.setattr(resolver, "_find_match", _find_match)

    lead, created = resolver.resolve(db, NormalizedLeadInput(phone="+919800000014", city="Bhopal"))

    assert created is False
    assert lead.id == existing.id
    assert lead.city == "Bhopal"
    assert stale_lookups == ["+919800000014"]
    assert db.query(DBLead).count() == 1
