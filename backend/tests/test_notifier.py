"""Tests for the onboarding SMS notifier."""

from __future__ import annotations

from urllib.parse import parse_qs

import httpx
import pytest

from receptionist.services.notifier import SmsNotifier, build_onboarding_url

from conftest import CALLER_NUMBER, CONTRACTOR_ID, make_settings


def _notifier(handler, **settings_overrides) -> SmsNotifier:
    return SmsNotifier(make_settings(**settings_overrides), transport=httpx.MockTransport(handler))


def test_onboarding_url() -> None:
    url = build_onboarding_url("https://fairtradeworker.com/onboard", "private-job-abc", "contractor-123")
    assert url == "https://fairtradeworker.com/onboard?job=private-job-abc&contractor=contractor-123"


@pytest.mark.anyio
async def test_sends_form_with_basic_auth() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201, json={"sid": "SM1"})

    attempt = await _notifier(handler).send_onboarding(
        CALLER_NUMBER, "private-job-abc", CONTRACTOR_ID, "Austin Plumbing Co",
    )

    assert attempt.success is True
    assert attempt.job_id == "private-job-abc"
    (request,) = seen
    assert request.url.path == "/2010-04-01/Accounts/AC12345/Messages.json"
    assert request.headers["authorization"].startswith("Basic ")
    assert request.headers["content-type"] == "application/x-www-form-urlencoded"
    form = parse_qs(request.content.decode())
    assert form["Body"][0].startswith("Hi! Thanks for calling Austin Plumbing Co.")
    assert "job=private-job-abc&contractor=contractor-123" in form["Body"][0]


@pytest.mark.anyio
async def test_missing_credentials_returns_failure_without_request() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover
        seen.append(request)
        return httpx.Response(201)

    attempt = await _notifier(handler, twilio_phone_number="").send_onboarding(
        CALLER_NUMBER, "job-1", CONTRACTOR_ID, "Acme",
    )
    assert attempt.success is False
    assert seen == []


@pytest.mark.anyio
async def test_error_status_is_a_failed_attempt() -> None:
    attempt = await _notifier(lambda request: httpx.Response(400, json={"code": 21211})).send_onboarding(
        CALLER_NUMBER, "job-1", CONTRACTOR_ID, "Acme",
    )
    assert attempt.success is False


@pytest.mark.anyio
async def test_network_error_is_caught() -> None:
    attempts = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal attempts
        attempts += 1
        raise httpx.ReadTimeout("timed out", request=request)

    attempt = await _notifier(handler).send_onboarding(CALLER_NUMBER, "job-1", CONTRACTOR_ID, "Acme")

    assert attempt.success is False
    assert attempts == 2
