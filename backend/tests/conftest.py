"""Shared fixtures and in-test fakes for the receptionist pipeline."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from receptionist.config import Settings
from receptionist.main import create_app
from receptionist.pipeline.processor import InboundCallProcessor
from receptionist.schemas import Extraction, IssueType, NotificationAttempt, Urgency
from receptionist.services.directory import StaticContractorDirectory
from receptionist.services.extraction import degraded_extraction
from receptionist.store import InMemoryJobStore

CONTRACTOR_NUMBER = "+15125555678"
CALLER_NUMBER = "+15125551234"
CONTRACTOR_ID = "contractor-123"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "transcription_api_key": "sk-test-key",
        "extraction_api_key": "sk-test-key",
        "twilio_account_sid": "AC12345",
        "twilio_auth_token": "test-token",
        "twilio_phone_number": CONTRACTOR_NUMBER,
        "contractor_phones": {CONTRACTOR_NUMBER: CONTRACTOR_ID},
        "contractor_profiles": {CONTRACTOR_ID: {"name": "Austin Plumbing Co"}},
        "verify_signatures": False,
        "retry_base_delay": 0.0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def call_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "From": CALLER_NUMBER,
        "To": CONTRACTOR_NUMBER,
        "CallSid": "CA1234567890abcdef",
        "TranscriptionText": "Hi, I need help fixing my leaky faucet in the kitchen.",
        "RecordingUrl": "https://api.twilio.com/recording.mp3",
        "CallStatus": "completed",
        "CallDuration": "45",
    }
    payload.update(overrides)
    return {k: v for k, v in payload.items() if v is not None}


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeTranscriber:
    """Plays back a script of results; exceptions in the script are raised."""

    def __init__(self, *script: str | Exception) -> None:
        self.script = list(script) or ["transcribed text"]
        self.calls: list[str] = []

    async def transcribe(self, recording_url: str) -> str:
        self.calls.append(recording_url)
        result = self.script[min(len(self.calls), len(self.script)) - 1]
        if isinstance(result, Exception):
            raise result
        return result


class FakeExtractor:
    def __init__(self, confidence: float = 0.85, delay: float = 0.0) -> None:
        self.confidence = confidence
        self.delay = delay
        self.calls: list[tuple[str, str, str]] = []

    async def extract(self, transcript: str, contractor_id: str, caller_phone: str) -> Extraction:
        self.calls.append((transcript, contractor_id, caller_phone))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.confidence <= 0.3:
            return degraded_extraction(transcript, caller_phone)
        return Extraction(
            caller_name="John Smith",
            caller_phone=caller_phone,
            issue_type=IssueType.repair,
            urgency=Urgency.medium,
            property_address="123 Main St, Austin, TX 78701",
            description="Leaky faucet in kitchen needs repair",
            estimated_scope="small repair",
            confidence=self.confidence,
        )


class FakeNotifier:
    def __init__(self, success: bool = True) -> None:
        self.success = success
        self.sent: list[tuple[str, str, str, str]] = []

    async def send_onboarding(
        self, phone: str, job_id: str, contractor_id: str, contractor_name: str,
    ) -> NotificationAttempt:
        self.sent.append((phone, job_id, contractor_id, contractor_name))
        return NotificationAttempt(phone=phone, job_id=job_id, success=self.success)


class Pipeline:
    """A processor wired to fakes, plus a client for its app."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        directory: Any = None,
        transcriber: Any = None,
        extractor: Any = None,
        store: Any = None,
        notifier: Any = None,
    ) -> None:
        self.settings = settings or make_settings()
        self.directory = directory or StaticContractorDirectory(
            self.settings.contractor_phones, self.settings.contractor_profiles,
        )
        self.transcriber = transcriber or FakeTranscriber()
        self.extractor = extractor or FakeExtractor()
        self.store = store if store is not None else InMemoryJobStore()
        self.notifier = notifier or FakeNotifier()
        self.processor = InboundCallProcessor(
            settings=self.settings,
            directory=self.directory,
            transcriber=self.transcriber,
            extractor=self.extractor,
            store=self.store,
            notifier=self.notifier,
        )
        self.app = create_app(self.settings, self.processor)

    def client(self) -> AsyncClient:
        return AsyncClient(transport=ASGITransport(app=self.app), base_url="http://test")

    def provider_calls(self) -> int:
        return len(self.transcriber.calls) + len(self.extractor.calls) + len(self.notifier.sent)


@pytest.fixture
def pipeline() -> Pipeline:
    return Pipeline()
