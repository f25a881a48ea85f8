"""
Health check and monitoring endpoints.
"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from admissions.config import config
from admissions.database import get_db
from admissions.logging_config import logger

router = APIRouter(tags=["Health & Monitoring"])


# GET /health
# Gets: nothing
# Returns: {status, service, version}
# Example:
#   curl http://localhost:8000/health
@router.get("/health")
async def health_check():
    """
    Basic health check - returns 200 if service is running.
    Use this for basic liveness probes.
    """
    return {
        "status": "healthy",
        "service": "admissions-outreach",
        "version": "1.0.0"
    }


# GET /health/ready
# Gets: nothing
# Returns: dependency readiness checks; 503 when the database is unreachable
# Example:
#   curl http://localhost:8000/health/ready
@router.get("/health/ready")
def readiness_check(db: Session = Depends(get_db)):
    """
    Readiness check - verifies the record store answers.
    Use this for Kubernetes readiness probes.

    OpenAI and Twilio are reported but not required.
    """
    checks = {
        "database": False,
        "openai": config.has_openai_key() or "not_configured",
        "twilio": config.has_twilio_config() or "not_configured",
        "ready": False
    }

    try:
        db.execute(text("SELECT 1"))
        checks["database"] = True
    except SQLAlchemyError as e:
        logger.warning("readiness_check_database", status="error", error=str(e))

    checks["ready"] = checks["database"] is True
    return JSONResponse(content=checks, status_code=200 if checks["ready"] else 503)


# GET /health/info
# Gets: nothing
# Returns: service configuration summary
# Example:
#   curl http://localhost:8000/health/info
@router.get("/health/info")
async def system_info():
    """
    System information and configuration status.
    """
    settings = config.outreach_settings()
    return {
        "service": "admissions-outreach",
        "version": "1.0.0",
        "configuration": {
            "openai_configured": config.has_openai_key(),
            "openai_model": config.OPENAI_MODEL if config.has_openai_key() else None,
            "debug_mode": config.DEBUG,
            "turn_cap": settings.turn_cap,
            "default_preferred_exam": settings.default_preferred_exam,
        },
        "features": {
            "llm_conversations": config.has_openai_key(),
            "telephony_sync": settings.enable_telephony_sync,
            "facebook_sync": settings.enable_facebook_sync,
            "google_ads_sync": settings.enable_google_ads_sync,
            "database_persistence": True,
        }
    }


# GET /metrics
# Gets: nothing
# Returns: Prometheus text exposition
# Example:
#   curl http://localhost:8000/metrics
@router.get("/metrics")
async def metrics():
    """Prometheus scrape endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
