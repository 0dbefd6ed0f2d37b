"""Pydantic models shared across the application."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

MAX_DESCRIPTION_LENGTH = 500
JOB_SOURCE = "ai_receptionist"


class _CamelModel(BaseModel):
    """Serialises to camelCase (the CRM's wire format) but accepts either."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Inbound call event (Twilio webhook payload)
# ---------------------------------------------------------------------------

class CallStatus(str, Enum):
    ringing = "ringing"
    in_progress = "in-progress"
    completed = "completed"
    no_answer = "no-answer"


class CallEvent(BaseModel):
    """One inbound call as posted by Twilio. Field names follow Twilio's."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, coerce_numbers_to_str=True)

    caller: str = Field(alias="From", min_length=1)
    dialed: str = Field(alias="To", min_length=1)
    call_sid: str = Field(alias="CallSid", min_length=1)
    recording_url: str | None = Field(default=None, alias="RecordingUrl")
    transcription_text: str | None = Field(default=None, alias="TranscriptionText")
    call_status: CallStatus = Field(default=CallStatus.completed, alias="CallStatus")
    call_duration: str | None = Field(default=None, alias="CallDuration")
    direction: str | None = Field(default=None, alias="Direction")
    account_sid: str | None = Field(default=None, alias="AccountSid")

    @field_validator("caller", "dialed", "call_sid")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

class IssueType(str, Enum):
    repair = "repair"
    install = "install"
    inspect = "inspect"
    emergency = "emergency"
    quote = "quote"
    other = "other"


class Urgency(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"
    emergency = "emergency"


class Extraction(_CamelModel):
    """Structured intent the language model pulled out of a transcript."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    caller_name: str | None = None
    caller_phone: str
    issue_type: IssueType
    urgency: Urgency
    property_address: str | None = None
    description: str
    estimated_scope: str | None = None
    confidence: float = Field(allow_inf_nan=False)

    @field_validator("issue_type", "urgency", mode="before")
    @classmethod
    def _lower_enum(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("description", mode="before")
    @classmethod
    def _cap_description(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value[:MAX_DESCRIPTION_LENGTH]
        return value

    @field_validator("confidence", mode="after")
    @classmethod
    def _clamp_confidence(cls, value: float) -> float:
        return max(0.0, min(1.0, value))


# ---------------------------------------------------------------------------
# Contractor context
# ---------------------------------------------------------------------------

class ContractorProfile(_CamelModel):
    id: str
    name: str = "Your Contractor"
    specialties: str | None = None
    service_area: str | None = None


# ---------------------------------------------------------------------------
# Job records
# ---------------------------------------------------------------------------

class JobStatus(str, Enum):
    new = "new"            # private job, confident extraction
    voicemail = "voicemail"  # low confidence, needs manual review
    missed = "missed"      # no transcript at all


class JobRecord(_CamelModel):
    id: str
    contractor_id: str
    call_sid: str
    status: JobStatus
    source: str = JOB_SOURCE
    type: str = "private"
    is_private: bool = True
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    title: str
    description: str
    homeowner_name: str = "Unknown Caller"
    homeowner_phone: str
    address: str = ""
    zip_code: str = ""
    issue_type: IssueType | None = None
    category: str | None = None
    urgency: Urgency = Urgency.medium
    estimated_scope: str | None = None
    price_low: int | None = None
    price_high: int | None = None
    confidence: float | None = None

    transcript: str | None = None
    recording_url: str | None = None
    requires_manual_review: bool = False
    review_reason: str | None = None
    call_status: CallStatus | None = None
    call_duration: str | None = None
    direction: str | None = None


class CallerHistory(BaseModel):
    is_returning: bool = False
    recent_jobs: list[JobRecord] = Field(default_factory=list)
    last_interaction: datetime | None = None


class NotificationAttempt(BaseModel):
    """One outbound SMS send. Lives only for the webhook invocation."""

    phone: str
    job_id: str
    success: bool


# ---------------------------------------------------------------------------
# Webhook responses
# ---------------------------------------------------------------------------

class SmsStatus(str, Enum):
    sent = "sent"
    failed = "failed"
    not_sent = "not_sent"
    low_confidence = "low_confidence"


class InboundResponse(_CamelModel):
    success: bool = True
    job_id: str
    sms_status: SmsStatus
    call_sid: str | None = None
    processing_time: int | None = None  # milliseconds


class ContractorJobsResponse(_CamelModel):
    contractor_id: str
    jobs: list[JobRecord]
    total_count: int
    new_count: int
