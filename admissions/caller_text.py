"""
Caller-facing messages.

Everything the service itself (not the reply generator) says on the phone
lives here.
"""

from typing import Dict

CALLER_MESSAGES: Dict[str, str] = {
    # Generic short fallback
    "fallback_short": "Hello",

    # Closings
    "closing": "Thank you for your time. Our counsellor will follow up with you shortly. Have a great day!",
    "lead_missing": "Thank you for speaking with us. A counsellor will reach out shortly.",

    # Session problems
    "session_expired": "The session expired. Thank you for your time.",
    "session_lost": "I lost the context of our chat. Let's reconnect later. Thank you!",

    # Call setup problems
    "lead_details_missing": "We could not find the lead details. Please contact support.",
    "outbound_lead_missing": "The lead record is missing. This call will now end.",
    "invalid_caller": "Thank you for reaching out. Please contact us again from a valid number.",

    # Errors
    "technical_error": "Sorry, we are facing a technical issue. A counsellor will call you back shortly. Goodbye!",
}


def get_caller_text(key: str) -> str:
    """Return the caller-facing message for `key`, or the short fallback."""
    return CALLER_MESSAGES.get(key) or CALLER_MESSAGES["fallback_short"]


def get_demo_acceptance_phrases() -> list[str]:
    """Lower-case phrases that mean the prospect committed to a demo class."""
    return [
        "book a demo",
        "schedule a demo",
        "yes demo",
        "confirm",
        "ok demo",
        "will join",
        "i will attend",
    ]
