"""Outcome routing: decides which job record a call becomes and builds it."""

from __future__ import annotations

import re
import uuid
from enum import Enum

from receptionist.schemas import (
    CallEvent,
    Extraction,
    IssueType,
    JobRecord,
    JobStatus,
    Urgency,
)

_ZIP_RE = re.compile(r"\b\d{5}(?:-\d{4})?\b")

# Issue type -> CRM job category
ISSUE_CATEGORIES = {
    IssueType.repair: "repair",
    IssueType.install: "installation",
    IssueType.inspect: "inspection",
    IssueType.emergency: "emergency",
    IssueType.quote: "consultation",
    IssueType.other: "general",
}

TITLE_LENGTH = 100


class Outcome(str, Enum):
    missed = "missed"
    voicemail = "voicemail"
    private_job = "private_job"


def route(transcript: str | None, extraction: Extraction | None, threshold: float) -> Outcome:
    """Pick the outcome from transcript presence and extraction confidence."""
    if not transcript or not transcript.strip() or extraction is None:
        return Outcome.missed
    if extraction.confidence < threshold:
        return Outcome.voicemail
    return Outcome.private_job


def new_job_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def extract_zip_code(address: str | None) -> str:
    if not address:
        return ""
    match = _ZIP_RE.search(address)
    return match.group(0) if match else ""


def estimate_price_range(estimated_scope: str | None) -> tuple[int, int]:
    """Rough price band from the scope wording until real pricing exists."""
    scope = (estimated_scope or "").lower()
    if "small" in scope:
        return 100, 1000
    if "major" in scope:
        return 5000, 50000
    return 500, 5000


def build_private_job(
    contractor_id: str,
    event: CallEvent,
    transcript: str,
    extraction: Extraction,
) -> JobRecord:
    price_low, price_high = estimate_price_range(extraction.estimated_scope)
    return JobRecord(
        id=new_job_id("private-job"),
        contractor_id=contractor_id,
        call_sid=event.call_sid,
        status=JobStatus.new,
        title=extraction.description[:TITLE_LENGTH] or "New Lead from AI Receptionist",
        description=extraction.description,
        homeowner_name=extraction.caller_name or "Unknown Caller",
        homeowner_phone=extraction.caller_phone,
        address=extraction.property_address or "",
        zip_code=extract_zip_code(extraction.property_address),
        issue_type=extraction.issue_type,
        category=ISSUE_CATEGORIES[extraction.issue_type],
        urgency=extraction.urgency,
        estimated_scope=extraction.estimated_scope,
        price_low=price_low,
        price_high=price_high,
        confidence=extraction.confidence,
        transcript=transcript,
        recording_url=event.recording_url,
        call_status=event.call_status,
        call_duration=event.call_duration,
        direction=event.direction,
    )


def build_voicemail_job(
    contractor_id: str,
    event: CallEvent,
    transcript: str,
    extraction: Extraction,
) -> JobRecord:
    return JobRecord(
        id=new_job_id("voicemail"),
        contractor_id=contractor_id,
        call_sid=event.call_sid,
        status=JobStatus.voicemail,
        title="Voicemail - Manual Review Required",
        description=transcript,
        homeowner_name=extraction.caller_name or "Unknown Caller",
        homeowner_phone=event.caller,
        issue_type=extraction.issue_type,
        urgency=extraction.urgency,
        confidence=extraction.confidence,
        transcript=transcript,
        recording_url=event.recording_url,
        requires_manual_review=True,
        review_reason=f"Confidence {extraction.confidence * 100:.0f}% below threshold",
        call_status=event.call_status,
        call_duration=event.call_duration,
        direction=event.direction,
    )


def build_missed_call_job(contractor_id: str, event: CallEvent) -> JobRecord:
    return JobRecord(
        id=new_job_id("missed-call"),
        contractor_id=contractor_id,
        call_sid=event.call_sid,
        status=JobStatus.missed,
        title="Missed Call - Urgent Review",
        description="No recording or transcription available - please call back immediately",
        homeowner_phone=event.caller,
        urgency=Urgency.high,  # nothing is known, so assume it matters
        recording_url=event.recording_url,
        requires_manual_review=True,
        review_reason="No transcript",
        call_status=event.call_status,
        call_duration=event.call_duration,
        direction=event.direction,
    )
