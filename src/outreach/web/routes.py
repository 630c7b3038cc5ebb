"""JSON API routes for Branch Outreach.

Endpoints:
- GET  /api/health                  status and collaborator availability
- POST /api/customers/upload        spreadsheet -> normalized customers
- POST /api/customers/analyze       classify customers for an issue type
- GET  /api/letters/templates       template catalog
- GET  /api/letters/templates/{id}  one template
- POST /api/letters/preview         render one letter
- POST /api/letters/generate        batch letter generation
- POST /api/email/send              batch email dispatch
- POST /api/email/test              send a test email
- GET  /api/email/config-status     SMTP configuration status
- GET  /api/issue-types             issue types with their matching criteria

Input validation errors map to 400 with the message; anything unexpected
is left to FastAPI's 500 handling.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, File, HTTPException, Request, UploadFile
from pydantic import BaseModel, Field

from outreach.batch.processor import BatchRun, JobStatus
from outreach.classifier.engine import ClassificationOptions
from outreach.core.errors import (
    IngestionError,
    InputValidationError,
    MailerError,
    TemplateRenderError,
)
from outreach.core.logging import get_logger
from outreach.ingest.spreadsheet import read_customers
from outreach.letters.templates import (
    get_issue_types,
    get_template_catalog,
    get_template_info,
)
from outreach.pipeline.emails import summarize
from outreach.services import Services
from outreach.web.app import VERSION
from outreach.web.dependencies import get_services

logger = get_logger(__name__)

api_router = APIRouter(prefix="/api")


# ---------------------------------------------------------------------------
# Pydantic models for API input validation
# ---------------------------------------------------------------------------


class AnalyzeOptions(BaseModel):
    """Per-request overrides for the analysis config section."""

    use_external_scoring: bool | None = None
    min_confidence: float | None = Field(default=None, ge=0.0, le=1.0)
    scoring_cap: int | None = Field(default=None, ge=1, le=1000)


class AnalyzeRequest(BaseModel):
    """Request body for customer analysis."""

    customers: list[dict[str, Any]] = Field(max_length=10_000)
    issue_type: str
    options: AnalyzeOptions = Field(default_factory=AnalyzeOptions)


class PreviewRequest(BaseModel):
    """Request body for a single letter preview."""

    customer: dict[str, Any]
    issue_type: str
    custom_message: str | None = None


class LetterOptions(BaseModel):
    generate_pdf: bool | None = None


class LetterRequest(BaseModel):
    """Request body for batch letter generation."""

    customers: list[dict[str, Any]] = Field(max_length=1000)
    issue_type: str
    custom_message: str | None = None
    options: LetterOptions = Field(default_factory=LetterOptions)


class EmailOptions(BaseModel):
    attach_pdf: bool | None = None


class EmailRequest(BaseModel):
    """Request body for email dispatch.

    subject and content are optional; when omitted they are rendered per
    customer from the letter template for the issue type.
    """

    customers: list[dict[str, Any]] = Field(max_length=1000)
    issue_type: str
    subject: str | None = None
    content: str | None = None
    custom_message: str | None = None
    options: EmailOptions = Field(default_factory=EmailOptions)


class EmailTestRequest(BaseModel):
    """Request body for a test email."""

    email: str
    custom_message: str | None = Field(default=None, max_length=2000)


def _bad_request(e: InputValidationError) -> HTTPException:
    detail: dict[str, Any] = {"error": "Validation failed", "message": str(e)}
    if e.field:
        detail["field"] = e.field
    return HTTPException(status_code=400, detail=detail)


def _now() -> str:
    return datetime.now(UTC).isoformat()


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@api_router.get("/health")
async def health_check(request: Request):
    """Health check endpoint for monitoring."""
    services: Services | None = getattr(request.app.state, "services", None)
    if services is None:
        return {"status": "degraded", "config_loaded": False, "version": VERSION}

    return {
        "status": "healthy",
        "config_loaded": True,
        "scoring_available": services.engine.scoring_available,
        "smtp_configured": services.mailer.configured,
        "pdf_available": services.letters.pdf_available,
        "version": VERSION,
        "timestamp": _now(),
    }


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------


@api_router.post("/customers/upload")
async def upload_customers(file: UploadFile = File(...)):
    """Parse an uploaded spreadsheet into normalized customer records."""
    data = await file.read()
    try:
        result = await asyncio.to_thread(read_customers, data, file.filename)
    except InputValidationError as e:
        raise _bad_request(e) from None
    except IngestionError as e:
        logger.warning("upload_rejected", filename=file.filename, error=str(e))
        raise HTTPException(
            status_code=422,
            detail={"error": "File processing failed", "message": str(e)},
        ) from None

    return {
        "success": True,
        **result.to_dict(),
        "message": f"Successfully loaded {len(result.customers)} customer records",
    }


@api_router.post("/customers/analyze")
async def analyze_customers(body: AnalyzeRequest, services: Services = Depends(get_services)):
    """Classify customers for an issue type."""
    try:
        options = ClassificationOptions.from_config(
            services.config,
            use_external_scoring=body.options.use_external_scoring,
            min_confidence=body.options.min_confidence,
            scoring_cap=body.options.scoring_cap,
        )
        result = await services.engine.classify(body.customers, body.issue_type, options)
    except InputValidationError as e:
        raise _bad_request(e) from None

    return {"success": True, "analysis": result.to_dict(), "timestamp": _now()}


# ---------------------------------------------------------------------------
# Letters
# ---------------------------------------------------------------------------


@api_router.get("/issue-types")
async def list_issue_types():
    """Return every issue type with its name, description and criteria."""
    return {"success": True, "issue_types": get_issue_types()}


@api_router.get("/letters/templates")
async def list_templates():
    """Return the letter template catalog."""
    templates = get_template_catalog()
    return {"success": True, "templates": templates, "count": len(templates)}


@api_router.get("/letters/templates/{template_id}")
async def get_template(template_id: str):
    """Return one template's metadata."""
    info = get_template_info(template_id)
    if info is None:
        raise HTTPException(
            status_code=404,
            detail={
                "error": "Template not found",
                "message": f"Template '{template_id}' does not exist",
                "available_templates": list(get_template_catalog()),
            },
        )
    return {"success": True, "template": info.to_dict()}


@api_router.post("/letters/preview")
async def preview_letter(body: PreviewRequest, services: Services = Depends(get_services)):
    """Render a single letter without batching."""
    try:
        letter = services.letters.preview(body.customer, body.issue_type, body.custom_message)
    except InputValidationError as e:
        raise _bad_request(e) from None
    except TemplateRenderError as e:
        raise HTTPException(status_code=500, detail=str(e)) from None

    return {
        "success": True,
        "preview": {
            "customer": {
                "name": body.customer.get("NAME"),
                "account_no": body.customer.get("ACCOUNT_NO"),
            },
            "letter": letter.to_dict(),
            "previewed_at": _now(),
        },
    }


@api_router.post("/letters/generate")
async def generate_letters(body: LetterRequest, services: Services = Depends(get_services)):
    """Generate letters (optionally PDFs) for a batch of customers."""
    generate_pdf = body.options.generate_pdf
    if generate_pdf is None:
        generate_pdf = services.config.letters.generate_pdf

    try:
        run = await services.letters.generate(
            body.customers,
            body.issue_type,
            body.custom_message,
            generate_pdf=generate_pdf,
        )
    except InputValidationError as e:
        raise _bad_request(e) from None

    letters = [r.payload.to_dict() for r in run.by_status(JobStatus.SUCCESS)]
    errors = [
        {"customer": r.item_key, "error": r.error_message}
        for r in run.by_status(JobStatus.FAILED)
    ]
    stats = run.statistics
    return {
        "success": True,
        "count": len(letters),
        "letters": letters,
        "errors": errors or None,
        "statistics": {
            "total_requested": stats.total,
            "successful": stats.succeeded,
            "failed": stats.failed,
            "batches": stats.batches,
            "processing_time_ms": stats.elapsed_ms,
        },
        "metadata": {
            "issue_type": body.issue_type,
            "has_custom_message": bool(body.custom_message),
            "pdf_generated": generate_pdf,
            "timestamp": _now(),
        },
    }


# ---------------------------------------------------------------------------
# Email
# ---------------------------------------------------------------------------


def _email_results(run: BatchRun) -> list[dict[str, Any]]:
    results = []
    for r in run.results:
        entry: dict[str, Any] = {
            "customer": r.item_key,
            "status": "sent" if r.status == JobStatus.SUCCESS else r.status.value,
        }
        if r.status == JobStatus.SUCCESS:
            entry.update(r.payload.to_dict())
        elif r.status == JobStatus.FAILED:
            entry["error"] = r.error_message
            entry["error_code"] = r.error_code
        else:
            entry["reason"] = r.reason
        results.append(entry)
    return results


@api_router.post("/email/send")
async def send_emails(body: EmailRequest, services: Services = Depends(get_services)):
    """Send one email per customer that has an address."""
    attach_pdf = body.options.attach_pdf
    if attach_pdf is None:
        attach_pdf = services.config.email.attach_pdf

    try:
        run = await services.emails.dispatch(
            body.customers,
            body.issue_type,
            subject=body.subject,
            content=body.content,
            custom_message=body.custom_message,
            attach_pdf=attach_pdf,
        )
    except InputValidationError as e:
        raise _bad_request(e) from None

    return {
        "success": True,
        "statistics": summarize(run),
        "results": _email_results(run),
        "completed_at": _now(),
    }


@api_router.get("/email/config-status")
async def email_config_status(
    verify: bool = False, services: Services = Depends(get_services)
):
    """Report whether SMTP delivery is configured.

    With `?verify=true` the server also opens an authenticated SMTP session.
    """
    status = services.mailer.status()
    if verify:
        status["connection_verified"] = await services.mailer.verify()
    recommendations = []
    if not status["email_configured"]:
        recommendations = [
            "Set smtp.host, smtp.port and smtp.username in config.yaml",
            "Set smtp.from_address to the sending mailbox",
            "Set OUTREACH_SMTP_PASSWORD in the environment or .env file",
        ]
    return {
        "success": True,
        "configuration": {**status, "last_checked": _now()},
        "recommendations": recommendations,
    }


@api_router.post("/email/test")
async def send_test_email(body: EmailTestRequest, services: Services = Depends(get_services)):
    """Send a test email to check the SMTP setup."""
    if not body.email.strip():
        raise HTTPException(
            status_code=400,
            detail={
                "error": "Email address required",
                "message": "Provide an email address for the test",
                "field": "email",
            },
        )

    try:
        receipt = await services.mailer.send_test(body.email, body.custom_message)
    except MailerError as e:
        logger.warning("test_email_failed", code=e.code)
        raise HTTPException(
            status_code=500,
            detail={
                "error": "Test email failed",
                "message": str(e),
                "code": e.code,
                "suggestion": "Check the smtp section of config.yaml and OUTREACH_SMTP_PASSWORD",
            },
        ) from None

    return {
        "success": True,
        "test_email": True,
        "email": receipt.recipient,
        "result": receipt.to_dict(),
        "message": "Test email sent successfully",
        "tested_at": _now(),
    }
