"""Twilio adapter: places calls and renders spoken-response documents."""

from typing import Optional
from urllib.parse import urlencode

from twilio.base.exceptions import TwilioException
from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from admissions import twiml_builder
from admissions.config import OutreachSettings
from admissions.errors import TelephonyNotConfigured, UpstreamUnavailableError
from admissions.logging_config import get_logger

logger = get_logger(__name__)

STATUS_CALLBACK_EVENTS = ["initiated", "ringing", "answered", "completed"]


class TwilioTelephony:
    """
    Telephony adapter backed by the Twilio REST API and TwiML.

    Rendering is pure and works without credentials; only `place_call`
    needs a configured account.
    """

    def __init__(
        self,
        settings: OutreachSettings,
        account_sid: str = "",
        auth_token: str = "",
        client: Optional[Client] = None,
    ):
        self.settings = settings
        self._account_sid = account_sid
        self._auth_token = auth_token
        self._client = client

    @property
    def is_configured(self) -> bool:
        has_credentials = self._client is not None or bool(self._account_sid and self._auth_token)
        return bool(self.settings.enable_telephony_sync and self.settings.caller_id and has_credentials)

    def _get_client(self) -> Client:
        if self._client is None:
            http_client = TwilioHttpClient(timeout=self.settings.telephony_timeout_seconds)
            self._client = Client(self._account_sid, self._auth_token, http_client=http_client)
        return self._client

    def url(self, path: str, **params) -> str:
        """Absolute webhook URL for `path` with query parameters."""
        query = urlencode({k: v for k, v in params.items() if v is not None})
        base = f"{self.settings.base_url.rstrip('/')}/{path.lstrip('/')}"
        return f"{base}?{query}" if query else base

    def place_call(
        self,
        to: str,
        from_: str,
        callback_url: str,
        status_callback_url: Optional[str] = None,
    ) -> str:
        """Originate a call and return the provider call id (Twilio CallSid)."""
        if not self.is_configured:
            raise TelephonyNotConfigured("Twilio credentials or caller id are not configured")

        kwargs = {
            "to": to,
            "from_": from_,
            "url": callback_url,
            "method": "POST",
        }
        if status_callback_url:
            kwargs.update(
                status_callback=status_callback_url,
                status_callback_method="POST",
                status_callback_event=STATUS_CALLBACK_EVENTS,
            )

        try:
            call = self._get_client().calls.create(**kwargs)
        except (TwilioException, OSError) as e:
            # requests' connection and timeout errors are OSError subclasses.
            logger.error("twilio_place_call_failed", to=to, error=str(e))
            raise UpstreamUnavailableError("telephony", str(e)) from e

        logger.info("twilio_call_placed", to=to, call_sid=call.sid)
        return call.sid

    # Rendering

    def render_speak(self, text: str) -> str:
        return twiml_builder.say_fragment(text, self.settings.voice, self.settings.voice_language)

    def render_gather(self, action_url: str, inner: str = "", method: str = "POST") -> str:
        return twiml_builder.gather_fragment(
            action_url,
            inner=inner,
            input_modes=("speech",),
            method=method,
            speech_timeout="auto",
        )

    def render_redirect(self, url: str) -> str:
        return twiml_builder.redirect_fragment(url)

    def render_hangup(self) -> str:
        return twiml_builder.hangup_fragment()

    def compose(self, *fragments: str) -> str:
        return twiml_builder.compose_response(*fragments)

    def speak_and_gather(self, text: str, action_url: str) -> str:
        """Speak `text`, gather the reply, and redirect to the same URL if nothing was captured."""
        return self.compose(
            self.render_gather(action_url, inner=self.render_speak(text)),
            self.render_redirect(action_url),
        )

    def speak_and_hang_up(self, text: str) -> str:
        return self.compose(self.render_speak(text), self.render_hangup())
