"""Main FastAPI application."""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from admissions.config import config
from admissions.database import init_db
from admissions.errors import LeadNotFoundError, ValidationError
from admissions.health import router as health_router
from admissions.logging_config import logger
from admissions.routers.calls import router as calls_router
from admissions.routers.core import router as core_router
from admissions.routers.leads import router as leads_router
from admissions.routers.voice import router as voice_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    # Startup
    logger.info("application_starting", version="1.0.0")
    init_db()
    logger.info("database_initialized")
    logger.info("openai_configured", configured=config.has_openai_key())
    logger.info("twilio_configured", configured=config.has_twilio_config())

    yield

    # Shutdown
    logger.info("application_shutting_down")


app = FastAPI(
    title="Admissions Outreach API",
    description="AI admissions counsellor: lead deduplication and demo-booking calls",
    version="1.0.0",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _field_errors_response(field_errors: dict, form_errors: list) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"ok": False, "errors": {"fieldErrors": field_errors, "formErrors": form_errors}},
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    logger.info("request_rejected", path=request.url.path, errors=exc.field_errors)
    return _field_errors_response(exc.field_errors, [])


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    field_errors: dict[str, list[str]] = {}
    form_errors: list[str] = []
    for error in exc.errors():
        # loc is ("body", field, ...) for body fields; a bare ("body",) is a form error
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query")]
        if loc:
            field_errors.setdefault(".".join(loc), []).append(error.get("msg", "Invalid value"))
        else:
            form_errors.append(error.get("msg", "Invalid request"))

    logger.info("request_rejected", path=request.url.path, errors=field_errors or form_errors)
    return _field_errors_response(field_errors, form_errors)


@app.exception_handler(LeadNotFoundError)
async def lead_not_found_handler(request: Request, exc: LeadNotFoundError):
    logger.info("lead_not_found", path=request.url.path, lead_id=exc.lead_id)
    return JSONResponse(status_code=404, content={"ok": False, "detail": str(exc)})


app.include_router(health_router)
app.include_router(core_router)
app.include_router(leads_router)
app.include_router(calls_router)
app.include_router(voice_router)
