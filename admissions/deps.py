"""
FastAPI dependency providers.

The routers never build adapters themselves; tests swap any of these
through `app.dependency_overrides`.
"""

from functools import lru_cache

from fastapi import Depends

from admissions.call_engine import CallEngine
from admissions.config import OutreachSettings, config
from admissions.dialer import OutboundDialer
from admissions.lead_resolver import LeadIdentityResolver
from admissions.lead_sync import LeadFetcher
from admissions.reply_generator import OpenAIReplyGenerator, ReplyGenerator
from admissions.telephony import TwilioTelephony


@lru_cache
def get_settings() -> OutreachSettings:
    return config.outreach_settings()


@lru_cache
def _default_telephony() -> TwilioTelephony:
    return TwilioTelephony(
        get_settings(),
        account_sid=config.TWILIO_ACCOUNT_SID,
        auth_token=config.TWILIO_AUTH_TOKEN,
    )


def get_telephony() -> TwilioTelephony:
    return _default_telephony()


@lru_cache
def _default_reply_generator() -> OpenAIReplyGenerator:
    return OpenAIReplyGenerator(get_settings(), api_key=config.OPENAI_API_KEY)


def get_reply_generator() -> ReplyGenerator:
    return _default_reply_generator()


def get_lead_fetchers() -> list[LeadFetcher]:
    """No channel fetchers ship with the service; deployments register their own."""
    return []


def get_dialer(
    settings: OutreachSettings = Depends(get_settings),
    telephony: TwilioTelephony = Depends(get_telephony),
) -> OutboundDialer:
    return OutboundDialer(settings, telephony)


def get_resolver(
    settings: OutreachSettings = Depends(get_settings),
    dialer: OutboundDialer = Depends(get_dialer),
) -> LeadIdentityResolver:
    return LeadIdentityResolver(settings, originator=dialer)


def get_call_engine(
    settings: OutreachSettings = Depends(get_settings),
    reply_generator: ReplyGenerator = Depends(get_reply_generator),
    telephony: TwilioTelephony = Depends(get_telephony),
) -> CallEngine:
    return CallEngine(settings, reply_generator, telephony)
