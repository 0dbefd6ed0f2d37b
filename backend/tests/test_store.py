"""Tests for the job stores and the contractor directory."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx
import pytest

from receptionist.errors import DirectoryUnavailable, StoreUnavailable
from receptionist.schemas import JobRecord, JobStatus
from receptionist.services.directory import HttpContractorDirectory, StaticContractorDirectory
from receptionist.store import HttpJobStore, InMemoryJobStore, normalize_phone

from conftest import CALLER_NUMBER, CONTRACTOR_ID, CONTRACTOR_NUMBER

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


def _job(job_id: str, call_sid: str, phone: str = CALLER_NUMBER, age_days: int = 0, **kw) -> JobRecord:
    values = dict(
        id=job_id,
        contractor_id=CONTRACTOR_ID,
        call_sid=call_sid,
        status=JobStatus.new,
        title=f"Job {job_id}",
        description="desc",
        homeowner_phone=phone,
        created_at=NOW - timedelta(days=age_days),
    )
    values.update(kw)
    return JobRecord(**values)


def test_normalize_phone() -> None:
    assert normalize_phone("+1 (512) 555-1234") == "15125551234"


class TestInMemoryJobStore:
    @pytest.mark.anyio
    async def test_create_and_list(self) -> None:
        store = InMemoryJobStore()
        assert await store.create_job(_job("a", "CA1", age_days=2)) == "a"
        assert await store.create_job(_job("b", "CA2")) == "b"
        await store.create_job(_job("c", "CA3", contractor_id="someone-else"))

        jobs = await store.list_jobs(CONTRACTOR_ID)
        assert [j.id for j in jobs] == ["b", "a"]

    @pytest.mark.anyio
    async def test_same_call_is_stored_once(self) -> None:
        store = InMemoryJobStore()
        assert await store.create_job(_job("a", "CA1")) == "a"
        assert await store.create_job(_job("b", "CA1")) == "a"
        assert list(store.jobs) == ["a"]

    @pytest.mark.anyio
    async def test_find_by_call(self) -> None:
        store = InMemoryJobStore()
        await store.create_job(_job("a", "CA1"))

        assert (await store.find_by_call(CONTRACTOR_ID, "CA1")).id == "a"
        assert await store.find_by_call(CONTRACTOR_ID, "CA2") is None
        assert await store.find_by_call("someone-else", "CA1") is None

    @pytest.mark.anyio
    async def test_caller_history_matches_on_digits(self) -> None:
        store = InMemoryJobStore()
        for i in range(7):
            await store.create_job(_job(f"j{i}", f"CA{i}", phone="+1 512-555-1234", age_days=i))
        await store.create_job(_job("other", "CAx", phone="+15550000000"))

        history = await store.caller_history(CONTRACTOR_ID, CALLER_NUMBER)
        assert history.is_returning is True
        assert [j.id for j in history.recent_jobs] == ["j0", "j1", "j2", "j3", "j4"]
        assert history.last_interaction == NOW

    @pytest.mark.anyio
    async def test_unknown_caller_has_no_history(self) -> None:
        history = await InMemoryJobStore().caller_history(CONTRACTOR_ID, CALLER_NUMBER)
        assert history.is_returning is False
        assert history.recent_jobs == []

    @pytest.mark.anyio
    async def test_file_persistence_survives_restart(self, tmp_path: Path) -> None:
        path = tmp_path / "jobs.json"
        await InMemoryJobStore(path).create_job(_job("a", "CA1"))

        saved = json.loads(path.read_text())
        assert saved[0]["callSid"] == "CA1"

        reloaded = InMemoryJobStore(path)
        assert (await reloaded.get_job("a")).call_sid == "CA1"
        assert await reloaded.create_job(_job("b", "CA1")) == "a"

    @pytest.mark.anyio
    async def test_unwritable_file_raises_store_unavailable(self, tmp_path: Path) -> None:
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        store = InMemoryJobStore(blocker / "jobs.json")

        with pytest.raises(StoreUnavailable):
            await store.create_job(_job("a", "CA1"))
        assert store.jobs == {}


class TestHttpJobStore:
    @pytest.mark.anyio
    async def test_create_posts_record(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"id": "crm-42"})

        store = HttpJobStore("https://crm.example.com/api/", transport=httpx.MockTransport(handler))
        assert await store.create_job(_job("a", "CA1")) == "crm-42"
        assert seen[0].url.path == f"/api/contractors/{CONTRACTOR_ID}/jobs"
        assert json.loads(seen[0].content)["homeownerPhone"] == CALLER_NUMBER

    @pytest.mark.anyio
    async def test_server_error_is_store_unavailable(self) -> None:
        store = HttpJobStore(
            "https://crm.example.com", transport=httpx.MockTransport(lambda r: httpx.Response(502)),
        )
        with pytest.raises(StoreUnavailable):
            await store.create_job(_job("a", "CA1"))

    @pytest.mark.anyio
    async def test_find_by_call_queries_call_sid(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=[_job("a", "CA1").model_dump(mode="json", by_alias=True)])

        store = HttpJobStore("https://crm.example.com", transport=httpx.MockTransport(handler))
        assert (await store.find_by_call(CONTRACTOR_ID, "CA1")).id == "a"
        assert await store.find_by_call(CONTRACTOR_ID, "CA2") is None
        assert seen[0].url.params["callSid"] == "CA1"

    @pytest.mark.anyio
    async def test_history_failure_means_new_caller(self) -> None:
        store = HttpJobStore(
            "https://crm.example.com", transport=httpx.MockTransport(lambda r: httpx.Response(500)),
        )
        history = await store.caller_history(CONTRACTOR_ID, CALLER_NUMBER)
        assert history.is_returning is False


class TestDirectory:
    @pytest.mark.anyio
    async def test_static_lookup_and_profile(self) -> None:
        directory = StaticContractorDirectory(
            {CONTRACTOR_NUMBER: CONTRACTOR_ID},
            {CONTRACTOR_ID: {"name": "Acme", "serviceArea": "Austin"}},
        )
        assert await directory.lookup(CONTRACTOR_NUMBER) == CONTRACTOR_ID
        assert await directory.lookup("+15129999999") is None
        profile = await directory.get_profile(CONTRACTOR_ID)
        assert (profile.name, profile.service_area) == ("Acme", "Austin")
        assert (await directory.get_profile("unknown")).name == "Your Contractor"

    @pytest.mark.anyio
    async def test_malformed_static_profile_falls_back(self) -> None:
        directory = StaticContractorDirectory(
            {CONTRACTOR_NUMBER: CONTRACTOR_ID}, {CONTRACTOR_ID: {"name": ["not", "a", "name"]}},
        )
        profile = await directory.get_profile(CONTRACTOR_ID)
        assert (profile.id, profile.name) == (CONTRACTOR_ID, "Your Contractor")

    @pytest.mark.anyio
    async def test_http_lookup(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith(CONTRACTOR_NUMBER):
                return httpx.Response(200, json={"contractorId": CONTRACTOR_ID})
            return httpx.Response(404)

        directory = HttpContractorDirectory(
            "https://crm.example.com", transport=httpx.MockTransport(handler),
        )
        assert await directory.lookup(CONTRACTOR_NUMBER) == CONTRACTOR_ID
        assert await directory.lookup("+15129999999") is None

    @pytest.mark.anyio
    async def test_http_outage_is_unavailable_not_missing(self) -> None:
        directory = HttpContractorDirectory(
            "https://crm.example.com", transport=httpx.MockTransport(lambda r: httpx.Response(503)),
        )
        with pytest.raises(DirectoryUnavailable):
            await directory.lookup(CONTRACTOR_NUMBER)
        assert (await directory.get_profile(CONTRACTOR_ID)).id == CONTRACTOR_ID
