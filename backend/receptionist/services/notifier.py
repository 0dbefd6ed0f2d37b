"""Twilio SMS: texts the caller an onboarding link for their new job."""

from __future__ import annotations

import logging
from urllib.parse import urlencode

import httpx

from receptionist.config import Settings
from receptionist.retry import with_retry
from receptionist.schemas import NotificationAttempt

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


def build_onboarding_url(base_url: str, job_id: str, contractor_id: str) -> str:
    return f"{base_url}?{urlencode({'job': job_id, 'contractor': contractor_id})}"


def build_onboarding_message(contractor_name: str, onboarding_url: str) -> str:
    return (
        f"Hi! Thanks for calling {contractor_name}. We've received your request "
        f"and created a job for you. Complete your profile here to get started: "
        f"{onboarding_url}"
    )


class SmsNotifier:
    """Sends the onboarding SMS through Twilio's Messages API.

    Best effort: every failure is logged and reported as an unsuccessful
    attempt, never raised.
    """

    def __init__(
        self,
        settings: Settings,
        api_base: str = TWILIO_API_BASE,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._api_base = api_base.rstrip("/")
        self._transport = transport

    async def send_onboarding(
        self,
        phone: str,
        job_id: str,
        contractor_id: str,
        contractor_name: str,
    ) -> NotificationAttempt:
        settings = self._settings
        if not settings.sms_configured:
            logger.warning(
                "Twilio credentials not configured; skipping SMS",
                extra={"job_id": job_id, "step": "sms_send"},
            )
            return NotificationAttempt(phone=phone, job_id=job_id, success=False)

        onboarding_url = build_onboarding_url(settings.onboarding_url, job_id, contractor_id)
        form = {
            "From": settings.twilio_phone_number,
            "To": phone,
            "Body": build_onboarding_message(contractor_name, onboarding_url),
        }
        url = f"{self._api_base}/Accounts/{settings.twilio_account_sid}/Messages.json"

        try:
            resp = await with_retry(
                lambda: self._post(url, form),
                max_attempts=settings.sms_max_attempts,
                base_delay=settings.retry_base_delay,
                retry_on=(httpx.TransportError,),
                label="sms_send",
            )
        except Exception:
            logger.exception(
                "SMS to %s failed", phone,
                extra={"job_id": job_id, "contractor_id": contractor_id, "step": "sms_send"},
            )
            return NotificationAttempt(phone=phone, job_id=job_id, success=False)

        success = resp.is_success
        if success:
            logger.info(
                "Onboarding SMS sent to %s", phone,
                extra={"job_id": job_id, "contractor_id": contractor_id},
            )
        else:
            logger.warning(
                "Twilio SMS error: %s %s", resp.status_code, resp.text,
                extra={"job_id": job_id, "contractor_id": contractor_id, "step": "sms_send"},
            )
        return NotificationAttempt(phone=phone, job_id=job_id, success=success)

    async def _post(self, url: str, form: dict[str, str]) -> httpx.Response:
        async with httpx.AsyncClient(
            timeout=self._settings.http_timeout, transport=self._transport,
        ) as client:
            return await client.post(
                url,
                data=form,
                auth=(self._settings.twilio_account_sid, self._settings.twilio_auth_token),
            )
