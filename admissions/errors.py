"""Exception taxonomy for lead resolution and call handling."""

from typing import Optional


class OutreachError(Exception):
    """Base class for every error raised by the outreach core."""


class ValidationError(OutreachError):
    """Malformed operator or channel input.

    `field_errors` maps a field name to its messages, the shape returned to
    operators. Never logged as a system fault.
    """

    def __init__(self, field_errors: dict[str, list[str]], message: Optional[str] = None):
        self.field_errors = field_errors
        super().__init__(message or "; ".join(
            f"{field}: {', '.join(msgs)}" for field, msgs in field_errors.items()
        ))


class CallFlowError(OutreachError):
    """A call-related lookup failed.

    Mid-call these are recovered by speaking `caller_message` and hanging up.
    """

    caller_message_key = "technical_error"


class SessionExpiredError(CallFlowError):
    """A continuation callback arrived without a session id."""

    caller_message_key = "session_expired"


class SessionNotFoundError(CallFlowError):
    """A continuation callback carried an unknown session id."""

    caller_message_key = "session_lost"

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Call session {session_id} not found")


class LeadNotFoundError(CallFlowError):
    """A call operation referenced a lead id that no longer resolves."""

    caller_message_key = "lead_missing"

    def __init__(self, lead_id):
        self.lead_id = lead_id
        super().__init__(f"Lead {lead_id} not found")


class UpstreamUnavailableError(OutreachError):
    """The reply generator or telephony provider failed or timed out."""

    def __init__(self, service: str, detail: str = ""):
        self.service = service
        self.detail = detail
        super().__init__(f"{service} unavailable: {detail}" if detail else f"{service} unavailable")


class TelephonyNotConfigured(OutreachError):
    """Outbound calling attempted without Twilio credentials or caller id."""
