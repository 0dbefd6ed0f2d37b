"""Inbound call processor: runs one call event through the whole pipeline.

resolve contractor -> acquire transcript -> extract intent -> route outcome

Stages run serially because each needs the previous one's output.  Nothing
is shared between invocations, so concurrent webhooks don't interact except
through the job store.
"""

from __future__ import annotations

import logging
import time

from receptionist.config import Settings
from receptionist.errors import ContractorNotFound, DirectoryUnavailable, StoreUnavailable
from receptionist.logging_utils import send_alert
from receptionist.pipeline.outcomes import (
    Outcome,
    build_missed_call_job,
    build_private_job,
    build_voicemail_job,
    route,
)
from receptionist.retry import with_retry
from receptionist.schemas import CallEvent, InboundResponse, JobRecord, JobStatus, SmsStatus
from receptionist.services.directory import ContractorDirectory, get_directory
from receptionist.services.extraction import IntentExtractor
from receptionist.services.notifier import SmsNotifier
from receptionist.services.transcription import Transcriber, acquire_transcript, get_transcriber
from receptionist.store import HttpJobStore, InMemoryJobStore, JobStore

logger = logging.getLogger(__name__)

# What a replayed call reports; the onboarding SMS is never sent twice
REPLAY_SMS_STATUS = {
    JobStatus.new: SmsStatus.not_sent,
    JobStatus.voicemail: SmsStatus.low_confidence,
    JobStatus.missed: SmsStatus.not_sent,
}


class InboundCallProcessor:
    def __init__(
        self,
        settings: Settings,
        directory: ContractorDirectory,
        transcriber: Transcriber,
        extractor: IntentExtractor,
        store: JobStore,
        notifier: SmsNotifier,
    ) -> None:
        self.settings = settings
        self.directory = directory
        self.transcriber = transcriber
        self.extractor = extractor
        self.store = store
        self.notifier = notifier

    async def process(self, event: CallEvent) -> InboundResponse:
        """Process one call and return the webhook response body.

        Raises ``ContractorNotFound``/``DirectoryUnavailable`` before any
        paid provider is touched, and ``StoreUnavailable`` if the record
        cannot be written.  Every other failure degrades.
        """
        started = time.monotonic()
        call_sid = event.call_sid

        # 1. Resolve the contractor first; nothing expensive happens for unknown numbers
        contractor_id = await self._resolve_contractor(event)

        log_extra = {"call_sid": call_sid, "contractor_id": contractor_id}

        # A redelivered webhook gets the first answer back, with no provider calls
        existing = await self._find_existing(contractor_id, call_sid)
        if existing is not None:
            logger.info(
                "Call already processed as %s", existing.id,
                extra={**log_extra, "job_id": existing.id},
            )
            return InboundResponse(
                job_id=existing.id,
                sms_status=REPLAY_SMS_STATUS[existing.status],
                call_sid=call_sid,
                processing_time=int((time.monotonic() - started) * 1000),
            )

        logger.info("Processing call from %s", event.caller, extra=log_extra)

        # 2. Transcript
        transcript = await acquire_transcript(event, self.transcriber, self.settings)

        # 3. Extraction (only when there is something to extract from)
        extraction = None
        if transcript and transcript.strip():
            extraction = await self.extractor.extract(transcript, contractor_id, event.caller)

        # 4. Outcome
        outcome = route(transcript, extraction, self.settings.confidence_threshold)

        if outcome is Outcome.missed:
            job_id = await self._save(build_missed_call_job(contractor_id, event))
            send_alert(
                f"Missed call with no transcript for contractor {contractor_id} from {event.caller}",
                "critical", call_sid=call_sid, contractor_id=contractor_id, job_id=job_id,
            )
            sms_status = SmsStatus.not_sent

        elif outcome is Outcome.voicemail:
            job_id = await self._save(
                build_voicemail_job(contractor_id, event, transcript, extraction)
            )
            send_alert(
                f"Voicemail requiring manual review for contractor {contractor_id}",
                "warning", call_sid=call_sid, contractor_id=contractor_id, job_id=job_id,
            )
            sms_status = SmsStatus.low_confidence

        else:
            job_id = await self._save(
                build_private_job(contractor_id, event, transcript, extraction)
            )
            profile = await self.directory.get_profile(contractor_id)
            attempt = await self.notifier.send_onboarding(
                extraction.caller_phone, job_id, contractor_id, profile.name,
            )
            sms_status = SmsStatus.sent if attempt.success else SmsStatus.failed

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Call processed: outcome=%s job=%s sms=%s in %dms",
            outcome.value, job_id, sms_status.value, elapsed_ms,
            extra={**log_extra, "job_id": job_id},
        )
        return InboundResponse(
            job_id=job_id,
            sms_status=sms_status,
            call_sid=call_sid,
            processing_time=elapsed_ms,
        )

    async def _resolve_contractor(self, event: CallEvent) -> str:
        try:
            contractor_id = await with_retry(
                lambda: self.directory.lookup(event.dialed),
                max_attempts=self.settings.directory_max_attempts,
                base_delay=self.settings.retry_base_delay,
                retry_on=(DirectoryUnavailable,),
                label="contractor_lookup",
            )
        except DirectoryUnavailable as exc:
            exc.call_sid = event.call_sid
            raise

        if not contractor_id:
            logger.warning(
                "No contractor for number %s", event.dialed,
                extra={"call_sid": event.call_sid, "step": "contractor_lookup"},
            )
            send_alert(
                f"Receptionist call to unmapped number: {event.dialed}",
                "warning", call_sid=event.call_sid,
            )
            raise ContractorNotFound(call_sid=event.call_sid)
        return contractor_id

    async def _find_existing(self, contractor_id: str, call_sid: str) -> JobRecord | None:
        """Best effort: if the store can't answer, the write still dedupes."""
        try:
            return await self.store.find_by_call(contractor_id, call_sid)
        except StoreUnavailable:
            logger.warning(
                "Could not check for an existing job for call %s", call_sid,
                extra={"call_sid": call_sid, "contractor_id": contractor_id, "step": "find_by_call"},
            )
            return None

    async def _save(self, record: JobRecord) -> str:
        try:
            return await with_retry(
                lambda: self.store.create_job(record),
                max_attempts=self.settings.store_max_attempts,
                base_delay=self.settings.retry_base_delay,
                retry_on=(StoreUnavailable,),
                label="create_job",
            )
        except StoreUnavailable as exc:
            exc.call_sid = record.call_sid
            send_alert(
                f"Could not store {record.status.value} job for call {record.call_sid}",
                "critical", call_sid=record.call_sid, contractor_id=record.contractor_id,
            )
            raise


def get_job_store(settings: Settings) -> JobStore:
    if settings.job_store_url:
        return HttpJobStore(settings.job_store_url, timeout=settings.http_timeout)
    return InMemoryJobStore(settings.job_store_file or None)


def build_processor(settings: Settings, store: JobStore | None = None) -> InboundCallProcessor:
    """Wire the production collaborators from *settings*."""
    directory = get_directory(settings)
    store = store if store is not None else get_job_store(settings)
    return InboundCallProcessor(
        settings=settings,
        directory=directory,
        transcriber=get_transcriber(settings),
        extractor=IntentExtractor(settings, directory, store),
        store=store,
        notifier=SmsNotifier(settings),
    )
