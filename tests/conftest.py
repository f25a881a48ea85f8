from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from admissions.config import OutreachSettings
from admissions.errors import UpstreamUnavailableError
from admissions.models import ConversationTurn, TurnRole
from admissions.reply_generator import ReplyResult


@pytest.fixture(autouse=True)
def _safe_test_config(monkeypatch):
    """Force deterministic, offline-safe config for tests.

    The repo loads .env on import; these overrides prevent real network calls
    (OpenAI/Twilio) and keep operator endpoints open.
    """
    from admissions.config import config, Config

    for name, value in [
        ("OPENAI_API_KEY", "test"),
        ("TWILIO_ACCOUNT_SID", ""),
        ("TWILIO_AUTH_TOKEN", ""),
        ("TWILIO_CALLER_ID", ""),
        ("API_KEY", ""),
        # Avoid transcript spam in test output.
        ("LOG_CALL_TRANSCRIPT", False),
    ]:
        monkeypatch.setattr(Config, name, value, raising=False)
        monkeypatch.setattr(config, name, value, raising=False)

    return config


class FakeReplyGenerator:
    """Deterministic reply generator: echoes the last thing the prospect said.

    `on_generate` runs before each reply (used to simulate a concurrent
    callback); `fail` makes every call raise like an OpenAI outage.
    """

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[tuple[list[ConversationTurn], str]] = []
        self.on_generate = None

    def generate(self, history, display_name):
        self.calls.append((list(history), display_name))
        if self.on_generate is not None:
            self.on_generate()
        if self.fail:
            raise UpstreamUnavailableError("reply_generator", "timed out")

        last = history[-1] if history else None
        if last is None or last.role == TurnRole.SYSTEM:
            return ReplyResult(message=f"Namaste {display_name}, this is Ananya from the academy.")
        if last.role == TurnRole.PROSPECT:
            return ReplyResult(message=f"Thank you. You said: {last.text}")
        return ReplyResult(message="Could you tell me a little more?")


@pytest.fixture
def db_engine():
    from admissions.database import Base, create_store_engine
    from admissions import db_models  # noqa: F401

    engine = create_store_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(db_engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings():
    return OutreachSettings(base_url="https://calls.example.test")


@pytest.fixture
def dialing_settings():
    """Telephony enabled with a caller id."""
    return OutreachSettings(
        base_url="https://calls.example.test",
        enable_telephony_sync=True,
        caller_id="+911140000000",
    )


@pytest.fixture
def twilio_client():
    client = Mock()
    client.calls.create.return_value = Mock(sid="CA1001", status="queued")
    return client


@pytest.fixture
def telephony(settings, twilio_client):
    from admissions.telephony import TwilioTelephony

    return TwilioTelephony(settings, client=twilio_client)


@pytest.fixture
def dialing_telephony(dialing_settings, twilio_client):
    from admissions.telephony import TwilioTelephony

    return TwilioTelephony(dialing_settings, client=twilio_client)


@pytest.fixture
def reply_generator():
    return FakeReplyGenerator()


@pytest.fixture
def call_engine(settings, reply_generator, telephony):
    from admissions.call_engine import CallEngine

    return CallEngine(settings, reply_generator, telephony)


@pytest.fixture
def make_lead(db):
    """Insert a committed lead with sensible defaults."""
    from admissions.db_models import DBLead, LeadSource, LeadStatus

    def _make(**fields):
        values = {
            "first_name": "Meera",
            "phone": "+919800000001",
            "source": LeadSource.MANUAL,
            "status": LeadStatus.NEW,
            "call_count": 0,
            "preferred_exam": "Sainik School",
        }
        values.update(fields)
        lead = DBLead(**values)
        db.add(lead)
        db.commit()
        db.refresh(lead)
        return lead

    return _make


@pytest.fixture
def api(db, settings, telephony, reply_generator):
    """TestClient wired to the in-memory store and fake adapters.

    Requests share the test's session, so the test can inspect what a
    request committed.
    """
    from admissions import deps
    from admissions.database import get_db
    from admissions.main import app

    def _get_db():
        yield db

    overrides = {
        get_db: _get_db,
        deps.get_settings: lambda: telephony.settings,
        deps.get_telephony: lambda: telephony,
        deps.get_reply_generator: lambda: reply_generator,
        deps.get_lead_fetchers: lambda: [],
    }
    app.dependency_overrides.update(overrides)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
