"""Termination policy, outcome detection and transcript helpers."""

import json
import re
from typing import Iterable, Optional

from admissions.caller_text import get_demo_acceptance_phrases
from admissions.models import ConversationTurn, TurnRole

TRANSCRIPT_LABELS = {
    TurnRole.ASSISTANT: "Agent",
    TurnRole.PROSPECT: "Lead",
}
_LABEL_TO_ROLE = {label: role for role, label in TRANSCRIPT_LABELS.items()}


def should_hang_up(turn_index: int, captured_speech: str, turn_cap: int) -> bool:
    """Decide whether the turn being processed is the last one.

    `turn_index` is the session's index before this turn. Silence ends the
    call regardless of how many cycles are left.
    """
    if not (captured_speech or "").strip():
        return True
    return turn_index + 1 >= turn_cap


def detect_demo_acceptance(captured_speech: str) -> bool:
    """Return True if the prospect's words commit to a demo class."""
    lowered = (captured_speech or "").lower()
    if not lowered:
        return False
    return any(phrase in lowered for phrase in get_demo_acceptance_phrases())


def display_name(lead) -> str:
    """Guardian name if known, else first name."""
    return (lead.guardian_name or "").strip() or lead.first_name


def _single_line(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def render_transcript(turns: Iterable[ConversationTurn]) -> str:
    """Render turns as `Agent: ...` / `Lead: ...` lines.

    Whitespace inside an utterance is collapsed so each turn is one line.
    Framing turns are not part of the transcript.
    """
    lines = []
    for turn in turns:
        label = TRANSCRIPT_LABELS.get(turn.role)
        if label is None:
            continue
        lines.append(f"{label}: {_single_line(turn.text)}")
    return "\n".join(lines)


def parse_transcript(transcript: Optional[str]) -> list[ConversationTurn]:
    """Inverse of `render_transcript`. Lines without a known label are skipped."""
    turns: list[ConversationTurn] = []
    for line in (transcript or "").splitlines():
        label, sep, text = line.partition(": ")
        if not sep or label not in _LABEL_TO_ROLE:
            continue
        turns.append(ConversationTurn(role=_LABEL_TO_ROLE[label], text=text))
    return turns


def load_history(raw: Optional[str]) -> list[ConversationTurn]:
    """Decode the JSON history column of a call session."""
    if not raw:
        return []
    return [ConversationTurn.model_validate(item) for item in json.loads(raw)]


def dump_history(turns: Iterable[ConversationTurn]) -> str:
    return json.dumps([turn.model_dump(mode="json") for turn in turns], ensure_ascii=False)
