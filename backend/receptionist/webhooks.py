"""Twilio inbound-call webhook and the CRM read endpoint."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from twilio.request_validator import RequestValidator

from receptionist.config import Settings
from receptionist.errors import (
    InvalidPayload,
    MethodNotAllowed,
    ReceptionistError,
    Unauthorized,
)
from receptionist.logging_utils import send_alert
from receptionist.pipeline.processor import InboundCallProcessor
from receptionist.schemas import CallEvent, ContractorJobsResponse, JobStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/receptionist", tags=["receptionist"])

_FORM_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


# ---------------------------------------------------------------------------
# Request parsing + signature
# ---------------------------------------------------------------------------


async def _read_params(request: Request) -> dict[str, Any]:
    """Return the posted parameters from a form-encoded or JSON body."""
    content_type = request.headers.get("content-type", "")
    try:
        if content_type.startswith(_FORM_TYPES):
            form = await request.form()
            return {key: str(value) for key, value in form.items()}
        body = await request.json()
    except Exception as exc:
        raise InvalidPayload("Malformed request body") from exc
    if not isinstance(body, dict):
        raise InvalidPayload("Request body must be an object")
    return body


def _public_url(request: Request, settings: Settings) -> str:
    """The URL Twilio signed: the public one, not what the proxy forwarded."""
    if settings.public_base_url:
        url = settings.public_base_url.rstrip("/") + request.url.path
        if request.url.query:
            url += f"?{request.url.query}"
        return url
    url = request.url
    proto = request.headers.get("x-forwarded-proto")
    if proto:
        url = url.replace(scheme=proto)
    host = request.headers.get("x-forwarded-host")
    if host:
        url = url.replace(netloc=host)
    return str(url)


def _signature_valid(request: Request, params: dict[str, Any], settings: Settings) -> bool:
    """Check ``X-Twilio-Signature``. Fails closed."""
    signature = request.headers.get("x-twilio-signature", "")
    if not settings.twilio_auth_token:
        logger.error("TWILIO_AUTH_TOKEN not configured", extra={"step": "webhook_validation"})
        return False
    if not signature:
        logger.warning("Missing Twilio signature header", extra={"step": "webhook_validation"})
        return False

    url = _public_url(request, settings)
    signed_params = {key: "" if value is None else str(value) for key, value in params.items()}
    valid = RequestValidator(settings.twilio_auth_token).validate(url, signed_params, signature)
    if not valid:
        logger.warning(
            "Invalid Twilio webhook signature for %s", url,
            extra={"step": "webhook_validation", "detail": signature[:10] + "..."},
        )
    return valid


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------


# Every verb is routed here so non-POST requests get our 405 body
_ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


@router.api_route("/inbound", methods=_ALL_METHODS)
async def inbound_call(request: Request) -> JSONResponse:
    """Twilio calls this once per inbound call to a receptionist number.

    Returns 200 whenever a job record was created, whatever its quality.
    """
    if request.method != "POST":
        raise MethodNotAllowed()

    settings: Settings = request.app.state.settings
    processor: InboundCallProcessor = request.app.state.processor

    params = await _read_params(request)
    call_sid = str(params.get("CallSid") or "") or None

    # Reject spoofed calls before they can spend transcription/LLM credits
    if settings.verify_signatures and not _signature_valid(request, params, settings):
        raise Unauthorized(call_sid=call_sid)

    try:
        event = CallEvent.model_validate(params)
    except ValidationError as exc:
        fields = ", ".join(str(err["loc"][0]) for err in exc.errors() if err["loc"])
        raise InvalidPayload(f"Invalid call event: {fields}", call_sid=call_sid) from exc

    try:
        result = await processor.process(event)
    except ReceptionistError:
        raise
    except Exception as exc:
        logger.exception(
            "Unhandled error processing call %s", event.call_sid,
            extra={"call_sid": event.call_sid, "step": "inbound"},
        )
        send_alert(
            f"Critical AI Receptionist failure: {exc}", "critical", call_sid=event.call_sid,
        )
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": str(exc) or exc.__class__.__name__,
                "errorCode": "INTERNAL_ERROR",
                "callSid": event.call_sid,
            },
        )

    return JSONResponse(content=result.model_dump(mode="json", by_alias=True, exclude_none=True))


# ---------------------------------------------------------------------------
# CRM read side
# ---------------------------------------------------------------------------


@router.get("/jobs/{contractor_id}", response_model=ContractorJobsResponse)
async def contractor_jobs(contractor_id: str, request: Request) -> ContractorJobsResponse:
    """Receptionist-created jobs for one contractor, newest first."""
    processor: InboundCallProcessor = request.app.state.processor
    jobs = await processor.store.list_jobs(contractor_id)
    return ContractorJobsResponse(
        contractor_id=contractor_id,
        jobs=jobs,
        total_count=len(jobs),
        new_count=sum(1 for j in jobs if j.status == JobStatus.new),
    )
