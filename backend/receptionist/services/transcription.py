"""Speech-to-text for call recordings (OpenAI Whisper)."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

import httpx

from receptionist.config import Settings
from receptionist.retry import with_retry
from receptionist.schemas import CallEvent

logger = logging.getLogger(__name__)


class TranscriptionError(Exception):
    """A single transcription attempt failed."""


class Transcriber(Protocol):
    async def transcribe(self, recording_url: str) -> str: ...


class WhisperTranscriber:
    """Downloads a Twilio recording and transcribes it with Whisper.

    One call to :meth:`transcribe` is one attempt; retries belong to the
    caller.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        model: str = "whisper-1",
        recording_auth: tuple[str, str] | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._url = f"{base_url.rstrip('/')}/audio/transcriptions"
        self._model = model
        self._recording_auth = recording_auth
        self._timeout = timeout
        self._transport = transport

    async def transcribe(self, recording_url: str) -> str:
        if not self._api_key:
            raise TranscriptionError("Transcription API key not configured")

        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport, follow_redirects=True,
        ) as client:
            # Twilio recordings are protected by the account credentials
            audio_resp = await client.get(recording_url, auth=self._recording_auth)
            if audio_resp.status_code >= 400:
                raise TranscriptionError(
                    f"Failed to download recording: {audio_resp.status_code}"
                )

            resp = await client.post(
                self._url,
                headers={"Authorization": f"Bearer {self._api_key}"},
                data={"model": self._model, "language": "en", "response_format": "text"},
                files={"file": ("recording.mp3", audio_resp.content, "audio/mpeg")},
            )
            if resp.status_code >= 400:
                raise TranscriptionError(f"Whisper API error: {resp.status_code} {resp.text}")

        text = resp.text.strip()
        if not text:
            raise TranscriptionError("Empty transcription returned")
        return text


def get_transcriber(settings: Settings) -> WhisperTranscriber:
    recording_auth = None
    if settings.twilio_account_sid and settings.twilio_auth_token:
        recording_auth = (settings.twilio_account_sid, settings.twilio_auth_token)
    return WhisperTranscriber(
        api_key=settings.transcription_api_key,
        base_url=settings.openai_base_url,
        model=settings.transcription_model,
        recording_auth=recording_auth,
        timeout=settings.transcription_timeout,
    )


async def acquire_transcript(
    event: CallEvent,
    transcriber: Transcriber,
    settings: Settings,
) -> str | None:
    """Return the call's transcript, or None when there is none to be had.

    Provider-supplied text wins and costs nothing.  Otherwise the recording
    is transcribed with bounded retries inside the stage timeout; giving up
    is routing input for the caller, not an error.
    """
    if event.transcription_text and event.transcription_text.strip():
        return event.transcription_text

    if not event.recording_url:
        return None

    recording_url = event.recording_url
    try:
        return await asyncio.wait_for(
            with_retry(
                lambda: transcriber.transcribe(recording_url),
                max_attempts=settings.transcription_max_attempts,
                base_delay=settings.retry_base_delay,
                label="transcription",
            ),
            timeout=settings.transcription_timeout,
        )
    except asyncio.TimeoutError:
        logger.warning(
            "Transcription timed out after %.0fs", settings.transcription_timeout,
            extra={"call_sid": event.call_sid, "step": "transcription"},
        )
    except Exception:
        logger.exception(
            "Transcription failed for %s", recording_url,
            extra={"call_sid": event.call_sid, "step": "transcription"},
        )
    return None
