"""
LLM-based reply generator using the OpenAI API.

Produces the next thing the admissions counsellor says, given the
conversation so far and the name of the person on the line.
"""

from typing import Iterable, Optional, Protocol

from openai import OpenAI, OpenAIError
from pydantic import BaseModel

from admissions.config import OutreachSettings
from admissions.errors import UpstreamUnavailableError
from admissions.logging_config import get_logger
from admissions.models import ConversationTurn, TurnRole

logger = get_logger(__name__)

SYSTEM_PROMPT = """You are "Ananya", an admissions counsellor calling on behalf of our coaching institute.

## Institute
We prepare students for competitive school entrance exams (Sainik School, RMS, JNV and similar)
with expert mentors, small batches and regular mock tests. A free demo class is available.

## Your Role
You are speaking to a parent or guardian on the phone to:
1. Greet them warmly and confirm you are speaking to the right person
2. Understand the student's grade and the exam they are preparing for
3. Answer short questions about the programme
4. Invite them to a free demo class and get a clear yes or no

## Conversation Guidelines
- Be warm, polite and respectful; use simple Indian English
- Keep every reply to 1-2 short sentences, this is a phone call
- Ask one question at a time
- Don't be pushy; if they are not interested, thank them and close politely
- Don't discuss fees in detail, a counsellor will share them after the demo
- Don't invent facts about the institute that were not given to you
"""

_ROLE_TO_OPENAI = {
    TurnRole.PROSPECT: "user",
    TurnRole.ASSISTANT: "assistant",
    TurnRole.SYSTEM: "system",
}


class ReplyResult(BaseModel):
    message: str


class ReplyGenerator(Protocol):
    def generate(self, history: list[ConversationTurn], display_name: str) -> ReplyResult:
        ...


def outbound_framing(lead) -> ConversationTurn:
    """Framing turn that seeds the opening of an outbound call with the lead's profile."""
    name = (lead.guardian_name or "").strip() or lead.first_name
    return ConversationTurn(
        role=TurnRole.SYSTEM,
        text=(
            "Lead details:\n"
            f"Name: {name}\n"
            f"Student: {lead.student_name or 'Not provided'}\n"
            f"Grade: {lead.student_grade or 'Not provided'}\n"
            f"Preferred Exam: {lead.preferred_exam or 'Not provided'}\n"
            f"City: {lead.city or 'Unknown'}\n\n"
            "Start the conversation with a friendly greeting."
        ),
    )


def inbound_framing(lead) -> ConversationTurn:
    """Framing turn for a call the prospect placed to us."""
    name = (lead.guardian_name or "").strip() or lead.first_name
    return ConversationTurn(
        role=TurnRole.SYSTEM,
        text=(
            f"Inbound call from {lead.phone}. Lead name: {name}. "
            "Provide a warm greeting and ask how you can help."
        ),
    )


class OpenAIReplyGenerator:
    """Reply generator backed by OpenAI chat completions."""

    def __init__(
        self,
        settings: OutreachSettings,
        api_key: Optional[str] = None,
        client: Optional[OpenAI] = None,
    ):
        self.model = settings.reply_model
        self.timeout_seconds = settings.reply_timeout_seconds
        self._api_key = api_key
        self._client = client

    def _get_client(self) -> OpenAI:
        if self._client is None:
            if not self._api_key:
                raise UpstreamUnavailableError("reply_generator", "OpenAI is not configured")
            # No client-side retries: a retry mid-call only adds silence on the line.
            self._client = OpenAI(
                api_key=self._api_key,
                timeout=self.timeout_seconds,
                max_retries=0,
            )
        return self._client

    def build_messages(self, history: Iterable[ConversationTurn], display_name: str) -> list[dict]:
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "system", "content": f"You are speaking with {display_name}."},
        ]
        for turn in history:
            text = (turn.text or "").strip()
            if not text:
                continue
            messages.append({"role": _ROLE_TO_OPENAI[turn.role], "content": text})
        return messages

    def generate(self, history: list[ConversationTurn], display_name: str) -> ReplyResult:
        """
        Ask the model for the next assistant utterance.

        Raises:
            UpstreamUnavailableError: the API failed, timed out or returned nothing.
        """
        messages = self.build_messages(history, display_name)

        try:
            response = self._get_client().chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=0.7,
                max_tokens=200,
                timeout=self.timeout_seconds,
            )
        except OpenAIError as e:
            logger.error("reply_generation_failed", error=str(e), error_type=type(e).__name__)
            raise UpstreamUnavailableError("reply_generator", str(e)) from e

        content = (response.choices[0].message.content or "").strip()
        if not content:
            raise UpstreamUnavailableError("reply_generator", "empty completion")

        return ReplyResult(message=content)
