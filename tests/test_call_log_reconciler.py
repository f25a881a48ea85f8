"""
Tests for call log reconciliation and the operator-facing services.
"""

from datetime import datetime

import pytest

from admissions.db_models import CallDirection, CallOutcome, DBCallLog, DBLead, LeadStatus
from admissions.errors import LeadNotFoundError
from admissions.models import CallOutcomeRequest
from admissions.services import CallLogService, CallSessionService, LeadService


def test_repeated_reconcile_keeps_one_record(db, make_lead):
    lead = make_lead()

    CallLogService.reconcile(db, "CA7001", lead.id, CallDirection.OUTBOUND, transcript="Agent: Hi")
    CallLogService.reconcile(
        db, "CA7001", lead.id, CallDirection.OUTBOUND, transcript="Agent: Hi\nLead: Hello"
    )
    db.commit()

    logs = db.query(DBCallLog).all()
    assert len(logs) == 1
    assert logs[0].transcript == "Agent: Hi\nLead: Hello"


def test_outcome_is_never_cleared(db, make_lead):
    lead = make_lead()

    CallLogService.reconcile(
        db, "CA7002", lead.id, CallDirection.INBOUND,
        outcome=CallOutcome.DEMO_SCHEDULED, demo_accepted=True,
    )
    log = CallLogService.reconcile(db, "CA7002", lead.id, CallDirection.INBOUND, transcript="Lead: bye")

    assert log.outcome == CallOutcome.DEMO_SCHEDULED
    assert log.demo_accepted is True
    assert log.direction == CallDirection.INBOUND


def test_reconcile_without_call_id_writes_nothing(db, make_lead):
    lead = make_lead()

    assert CallLogService.reconcile(db, None, lead.id, CallDirection.INBOUND, transcript="x") is None
    assert CallLogService.reconcile(db, "", lead.id, CallDirection.INBOUND, transcript="x") is None
    assert db.query(DBCallLog).count() == 0


def test_status_callback_updates_progress_only(db, make_lead):
    lead = make_lead()
    CallLogService.reconcile(db, "CA7003", lead.id, CallDirection.OUTBOUND, transcript="Agent: Hi")

    log = CallLogService.apply_status_callback(
        db, "CA7003", call_status="completed",
        recording_url="https://api.twilio.com/rec/RE1", duration_seconds=42,
    )

    assert log.call_status == "completed"
    assert log.notes == "Status: completed"
    assert log.recording_url == "https://api.twilio.com/rec/RE1"
    assert log.duration_seconds == 42
    assert log.transcript == "Agent: Hi"


def test_status_callback_keeps_zero_duration(db, make_lead):
    lead = make_lead()
    CallLogService.reconcile(db, "CA7004", lead.id, CallDirection.OUTBOUND, transcript="Agent: Hi")

    log = CallLogService.apply_status_callback(db, "CA7004", call_status="no-answer", duration_seconds=0)

    assert log.call_status == "no-answer"
    assert log.duration_seconds == 0


def test_status_callback_for_unknown_call_is_ignored(db):
    assert CallLogService.apply_status_callback(db, "CA-unknown", call_status="ringing") is None
    assert db.query(DBCallLog).count() == 0


def test_record_outcome_updates_log_and_lead(db, make_lead):
    lead = make_lead(call_count=2)
    follow_up = datetime(2030, 1, 6, 10, 0)

    log = CallLogService.record_outcome(
        db,
        CallOutcomeRequest(
            lead_id=lead.id,
            call_id="CA7004",
            duration_seconds=95,
            transcript="Agent: Hi\nLead: Yes please",
            demo_accepted=True,
            follow_up_at=follow_up,
            notes="Wants Saturday batch",
        ),
    )
    db.commit()

    assert log.outcome == CallOutcome.DEMO_SCHEDULED
    assert log.duration_seconds == 95
    assert log.follow_up_at == follow_up
    assert log.notes == "Wants Saturday batch"

    db.expire_all()
    lead = db.get(DBLead, lead.id)
    assert lead.call_count == 3
    assert lead.status == LeadStatus.DEMO_SCHEDULED
    assert lead.last_contacted_at is not None


def test_record_outcome_for_unknown_lead(db):
    with pytest.raises(LeadNotFoundError):
        CallLogService.record_outcome(db, CallOutcomeRequest(lead_id=404, call_id="CA7005"))


def test_stale_advance_is_rejected(db, make_lead):
    lead = make_lead()
    session = CallSessionService.create_session(db, lead.id, CallDirection.OUTBOUND, [], "Hello")
    db.commit()

    assert CallSessionService.advance(db, session, 0, [], "Next", "Hi", completed=False) is True
    assert CallSessionService.advance(db, session, 0, [], "Again", "Hi", completed=False) is False
    db.commit()

    db.expire_all()
    stored = CallSessionService.get_session(db, session.id)
    assert stored.turn_index == 1
    assert stored.last_prompt == "Next"


def test_lead_summary_zero_fills_statuses(db, make_lead):
    older = make_lead(phone="+919800000030", created_at=datetime(2024, 1, 1))
    newer = make_lead(phone="+919800000031", created_at=datetime(2024, 6, 1), status=LeadStatus.CONTACTED)
    for n in range(4):
        CallLogService.reconcile(db, f"CA80{n}", newer.id, CallDirection.OUTBOUND, transcript=f"call {n}")
    db.commit()

    summary = LeadService.lead_summary(db)

    counts = {item.status: item.count for item in summary.stats}
    assert set(counts) == set(LeadStatus)
    assert counts[LeadStatus.NEW] == 1
    assert counts[LeadStatus.CONTACTED] == 1
    assert counts[LeadStatus.ENROLLED] == 0

    assert [item.id for item in summary.leads] == [newer.id, older.id]
    assert len(summary.leads[0].recent_calls) == 3
