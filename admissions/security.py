"""
Operator API key check.

Only the lead and call routers sit behind it. Twilio never sends our key,
so the voice webhooks stay open.
"""

import secrets
from typing import Optional

from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader
from admissions.config import config
from admissions.logging_config import get_logger

logger = get_logger(__name__)

operator_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(api_key: Optional[str] = Security(operator_key_header)) -> str:
    """Return "operator" for a matching key, or "development" when no key is configured."""
    if not config.API_KEY:
        return "development"

    if not api_key or not secrets.compare_digest(api_key, config.API_KEY):
        logger.warning("operator_key_rejected", key_provided=bool(api_key))
        raise HTTPException(status_code=403, detail="Invalid or missing API key")

    return "operator"
