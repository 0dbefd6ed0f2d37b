"""Job store: where every processed call ends up as a CRM record.

The pipeline only appends.  Two backends:

* ``InMemoryJobStore`` keeps records in process memory and can persist them
  to a JSON file so they survive restarts (simple single-node deployments).
* ``HttpJobStore`` writes to the CRM's persistence API.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Any, Protocol

import httpx

from receptionist.errors import StoreUnavailable
from receptionist.schemas import JOB_SOURCE, CallerHistory, JobRecord

logger = logging.getLogger(__name__)

RECENT_JOBS_LIMIT = 5


def normalize_phone(phone: str) -> str:
    """Digits only, so ``+1 (512) 555-1234`` matches ``+15125551234``."""
    return re.sub(r"\D", "", phone)


def build_caller_history(jobs: list[JobRecord], limit: int = RECENT_JOBS_LIMIT) -> CallerHistory:
    recent = sorted(jobs, key=lambda j: j.created_at, reverse=True)[:limit]
    return CallerHistory(
        is_returning=bool(recent),
        recent_jobs=recent,
        last_interaction=recent[0].created_at if recent else None,
    )


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class JobStore(Protocol):
    async def create_job(self, record: JobRecord) -> str:
        """Persist *record* and return its id. Raises ``StoreUnavailable``."""
        ...

    async def find_by_call(self, contractor_id: str, call_sid: str) -> JobRecord | None:
        """Return the record already stored for this call, if any."""
        ...

    async def list_jobs(self, contractor_id: str) -> list[JobRecord]: ...

    async def caller_history(self, contractor_id: str, caller_phone: str) -> CallerHistory: ...


# ---------------------------------------------------------------------------
# In-memory store (optionally file-backed)
# ---------------------------------------------------------------------------


class InMemoryJobStore:
    """Async-safe in-memory job store.

    Records are keyed by id; a second record for the same
    ``(contractor_id, call_sid)`` is not stored and the first id is returned,
    so a webhook redelivered by the provider does not duplicate the lead.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self.jobs: dict[str, JobRecord] = {}
        self.by_call: dict[tuple[str, str], str] = {}
        self._path = Path(path) if path else None
        self._lock = asyncio.Lock()
        self._load()

    def clear(self) -> None:
        self.jobs.clear()
        self.by_call.clear()

    async def create_job(self, record: JobRecord) -> str:
        key = (record.contractor_id, record.call_sid)
        async with self._lock:
            existing = self.by_call.get(key)
            if existing is not None:
                logger.info(
                    "Job for call %s already exists as %s", record.call_sid, existing,
                    extra={"call_sid": record.call_sid, "job_id": existing},
                )
                return existing
            self.jobs[record.id] = record
            self.by_call[key] = record.id
            try:
                self._persist()
            except StoreUnavailable:
                del self.jobs[record.id]
                del self.by_call[key]
                raise
        return record.id

    async def get_job(self, job_id: str) -> JobRecord | None:
        return self.jobs.get(job_id)

    async def find_by_call(self, contractor_id: str, call_sid: str) -> JobRecord | None:
        job_id = self.by_call.get((contractor_id, call_sid))
        return self.jobs.get(job_id) if job_id else None

    async def list_jobs(self, contractor_id: str) -> list[JobRecord]:
        jobs = [
            j for j in self.jobs.values()
            if j.contractor_id == contractor_id and j.source == JOB_SOURCE
        ]
        return sorted(jobs, key=lambda j: j.created_at, reverse=True)

    async def caller_history(self, contractor_id: str, caller_phone: str) -> CallerHistory:
        wanted = normalize_phone(caller_phone)
        matches = [
            j for j in self.jobs.values()
            if j.contractor_id == contractor_id
            and wanted
            and normalize_phone(j.homeowner_phone) == wanted
        ]
        return build_caller_history(matches)

    # ----- File persistence -------------------------------------------------

    def _load(self) -> None:
        """Load persisted jobs from disk at startup."""
        if self._path is None or not self._path.exists():
            return
        try:
            raw = json.loads(self._path.read_text())
            for entry in raw:
                record = JobRecord.model_validate(entry)
                self.jobs[record.id] = record
                self.by_call[(record.contractor_id, record.call_sid)] = record.id
            logger.info("Loaded %d job(s) from %s", len(self.jobs), self._path)
        except Exception:
            logger.exception("Failed to load jobs from %s", self._path)

    def _persist(self) -> None:
        """Write current jobs to disk."""
        if self._path is None:
            return
        try:
            data = [j.model_dump(mode="json", by_alias=True) for j in self.jobs.values()]
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(data, indent=2))
        except OSError as exc:
            raise StoreUnavailable(f"Failed to persist jobs to {self._path}: {exc}") from exc


# ---------------------------------------------------------------------------
# Remote CRM store
# ---------------------------------------------------------------------------


class HttpJobStore:
    """Job store backed by the CRM persistence API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport)

    async def create_job(self, record: JobRecord) -> str:
        url = f"{self._base_url}/contractors/{record.contractor_id}/jobs"
        try:
            async with self._client() as client:
                resp = await client.post(url, json=record.model_dump(mode="json", by_alias=True))
                resp.raise_for_status()
                data: dict[str, Any] = resp.json() if resp.content else {}
        except (httpx.HTTPError, ValueError) as exc:
            raise StoreUnavailable(f"Job store write failed: {exc}") from exc
        return str(data.get("id") or record.id)

    async def list_jobs(self, contractor_id: str) -> list[JobRecord]:
        url = f"{self._base_url}/contractors/{contractor_id}/jobs"
        try:
            async with self._client() as client:
                resp = await client.get(url, params={"source": JOB_SOURCE})
                resp.raise_for_status()
                raw = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise StoreUnavailable(f"Job store read failed: {exc}") from exc
        return [JobRecord.model_validate(entry) for entry in raw]

    async def find_by_call(self, contractor_id: str, call_sid: str) -> JobRecord | None:
        url = f"{self._base_url}/contractors/{contractor_id}/jobs"
        try:
            async with self._client() as client:
                resp = await client.get(url, params={"callSid": call_sid})
                resp.raise_for_status()
                raw = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise StoreUnavailable(f"Job store read failed: {exc}") from exc
        for entry in raw:
            record = JobRecord.model_validate(entry)
            if record.call_sid == call_sid:
                return record
        return None

    async def caller_history(self, contractor_id: str, caller_phone: str) -> CallerHistory:
        """Best effort: an unreachable store just means "new caller"."""
        url = f"{self._base_url}/contractors/{contractor_id}/jobs"
        try:
            async with self._client() as client:
                resp = await client.get(
                    url,
                    params={"callerPhone": caller_phone, "limit": RECENT_JOBS_LIMIT},
                )
                resp.raise_for_status()
                jobs = [JobRecord.model_validate(entry) for entry in resp.json()]
        except Exception:
            logger.warning(
                "Caller history lookup failed for contractor %s", contractor_id,
                extra={"contractor_id": contractor_id, "step": "caller_history"},
            )
            return CallerHistory()
        return build_caller_history(jobs)
