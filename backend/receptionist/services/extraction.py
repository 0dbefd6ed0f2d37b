"""Intent extraction: turns a call transcript into a structured Extraction.

Runs the transcript through an OpenAI chat completion in JSON mode, then
decodes and validates the answer against the closed enums.  Any failure on
the way yields a degraded low-confidence Extraction instead of an error, so
the caller always has something to put in front of the contractor.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

import httpx
from pydantic import ValidationError

from receptionist.config import Settings
from receptionist.retry import with_retry
from receptionist.schemas import MAX_DESCRIPTION_LENGTH, Extraction, IssueType, Urgency
from receptionist.services.directory import ContractorDirectory
from receptionist.services.prompts import build_extraction_prompt
from receptionist.store import JobStore

logger = logging.getLogger(__name__)

DEGRADED_CONFIDENCE = 0.3
BLANK_DESCRIPTION_PENALTY = 0.2


class ExtractionError(Exception):
    """The model's answer could not be turned into an Extraction."""


def degraded_extraction(transcript: str, caller_phone: str) -> Extraction:
    """Low-information Extraction used whenever the model can't be trusted."""
    return Extraction(
        caller_name=None,
        caller_phone=caller_phone,
        issue_type=IssueType.other,
        urgency=Urgency.medium,
        property_address=None,
        description=transcript[:MAX_DESCRIPTION_LENGTH],
        estimated_scope=None,
        confidence=DEGRADED_CONFIDENCE,
    )


def parse_extraction(content: str, transcript: str, caller_phone: str) -> Extraction:
    """Decode the model's JSON and validate it.

    ``callerPhone`` always comes from the call itself.  A blank description
    is replaced by the start of the transcript at reduced confidence.
    """
    try:
        raw = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ExtractionError(f"Model returned invalid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise ExtractionError(f"Model returned {type(raw).__name__}, expected an object")

    raw["callerPhone"] = caller_phone
    description = raw.get("description")
    if not isinstance(description, str) or not description.strip():
        raw["description"] = transcript[:MAX_DESCRIPTION_LENGTH]
        try:
            confidence = float(raw.get("confidence", 0))
        except (TypeError, ValueError):
            confidence = 0.0
        raw["confidence"] = max(DEGRADED_CONFIDENCE, confidence - BLANK_DESCRIPTION_PENALTY)

    # The model sometimes answers with the literal string "null"
    for key in ("callerName", "propertyAddress", "estimatedScope"):
        if isinstance(raw.get(key), str) and raw[key].strip().lower() in ("", "null", "none"):
            raw[key] = None

    try:
        return Extraction.model_validate(raw)
    except ValidationError as exc:
        raise ExtractionError(f"Extraction failed validation: {exc.error_count()} error(s)") from exc


class IntentExtractor:
    """Calls the completion API with contractor and caller context."""

    def __init__(
        self,
        settings: Settings,
        directory: ContractorDirectory,
        store: JobStore,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._directory = directory
        self._store = store
        self._transport = transport
        self._url = f"{settings.openai_base_url.rstrip('/')}/chat/completions"

    async def extract(self, transcript: str, contractor_id: str, caller_phone: str) -> Extraction:
        """Return an Extraction for *transcript*. Never raises."""
        settings = self._settings
        try:
            return await asyncio.wait_for(
                self._extract(transcript, contractor_id, caller_phone),
                timeout=settings.extraction_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Extraction timed out after %.0fs", settings.extraction_timeout,
                extra={"contractor_id": contractor_id, "step": "extraction"},
            )
        except Exception as exc:
            logger.warning(
                "Extraction failed, using degraded result: %s", exc,
                extra={"contractor_id": contractor_id, "step": "extraction"},
            )
        return degraded_extraction(transcript, caller_phone)

    async def _extract(self, transcript: str, contractor_id: str, caller_phone: str) -> Extraction:
        if not self._settings.extraction_api_key:
            raise ExtractionError("Extraction API key not configured")

        profile = await self._directory.get_profile(contractor_id)
        history = await self._store.caller_history(contractor_id, caller_phone)
        payload = {
            "model": self._settings.extraction_model,
            "messages": [
                {"role": "system", "content": build_extraction_prompt(profile, history)},
                {"role": "user", "content": f"Transcript:\n\n{transcript}"},
            ],
            "response_format": {"type": "json_object"},
            "temperature": 0.2,  # Low temperature for consistent extraction
            "max_tokens": 500,
        }

        data = await with_retry(
            lambda: self._post(payload),
            max_attempts=self._settings.extraction_max_attempts,
            base_delay=self._settings.retry_base_delay,
            retry_on=(httpx.TransportError,),
            label="extraction",
        )

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise ExtractionError("No content in completion response") from exc
        if not content:
            raise ExtractionError("No content in completion response")

        extraction = parse_extraction(content, transcript, caller_phone)
        logger.info(
            "Extracted %s/%s at confidence %.2f",
            extraction.issue_type.value, extraction.urgency.value, extraction.confidence,
            extra={"contractor_id": contractor_id, "step": "extraction"},
        )
        return extraction

    async def _post(self, payload: dict[str, Any]) -> Any:
        async with httpx.AsyncClient(
            timeout=self._settings.extraction_timeout, transport=self._transport,
        ) as client:
            resp = await client.post(
                self._url,
                headers={
                    "Authorization": f"Bearer {self._settings.extraction_api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
            )
            resp.raise_for_status()
            return resp.json()
