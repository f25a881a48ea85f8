"""TwiML generation utilities.

Handles:
- XML escaping for all dynamic content
- Proper escaping of URLs in attributes
- Consistent voice and language settings
- Unicode normalization and control character removal

Each `*_fragment` function returns one TwiML verb; `compose_response` wraps
fragments into the document returned to Twilio.
"""

import re
import unicodedata
import xml.sax.saxutils as saxutils
from typing import Iterable, Optional

from admissions.caller_text import get_caller_text


def _say_attrs(voice: str, language: str) -> str:
    attrs = f'language="{saxutils.escape((language or "en-IN").strip())}"'
    voice = (voice or "").strip()
    if voice:
        attrs += f' voice="{saxutils.escape(voice)}"'
    return attrs


def _attr(value: str) -> str:
    return saxutils.quoteattr(value or "")


def sanitize_say_text(text: str, fallback: Optional[str] = None) -> str:
    """
    Sanitize text for Twilio <Say> tags.

    - Normalizes Unicode (NFKC)
    - Removes control characters (keeps basic whitespace)
    - Collapses whitespace
    - Escapes for XML
    - Returns fallback if empty
    """
    if not text:
        text = fallback or get_caller_text("fallback_short")

    t = unicodedata.normalize("NFKC", text)

    # Remove control chars (keep basic whitespace: newline, tab, space)
    t = "".join(ch for ch in t if ch in ["\n", "\t"] or ord(ch) >= 32)

    t = re.sub(r"\s+", " ", t).strip()

    if not t:
        t = fallback or get_caller_text("fallback_short")

    return saxutils.escape(t)


def say_fragment(text: str, voice: str, language: str) -> str:
    return f"<Say {_say_attrs(voice, language)}>{sanitize_say_text(text)}</Say>"


def gather_fragment(
    action_url: str,
    inner: str = "",
    input_modes: Iterable[str] = ("speech",),
    method: str = "POST",
    speech_timeout: str = "auto",
) -> str:
    """<Gather> that posts captured speech to `action_url`, wrapping `inner` verbs."""
    attrs = (
        f"input={_attr(' '.join(input_modes))} "
        f"action={_attr(action_url)} "
        f"method={_attr(method)} "
        f"speechTimeout={_attr(speech_timeout)}"
    )
    if not inner:
        return f"<Gather {attrs}/>"
    return f"<Gather {attrs}>{inner}</Gather>"


def redirect_fragment(url: str, method: str = "POST") -> str:
    return f"<Redirect method={_attr(method)}>{saxutils.escape(url)}</Redirect>"


def hangup_fragment() -> str:
    return "<Hangup/>"


def compose_response(*fragments: str) -> str:
    """Wrap verb fragments into a complete TwiML document."""
    body = "\n    ".join(f for f in fragments if f)
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<Response>
    {body}
</Response>"""
