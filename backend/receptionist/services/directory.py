"""Contractor directory: maps receptionist numbers to contractors.

Backed either by the ``CONTRACTOR_PHONES`` / ``CONTRACTOR_PROFILES`` JSON
maps from configuration or by the CRM's directory API.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from receptionist.config import Settings
from receptionist.errors import DirectoryUnavailable
from receptionist.schemas import ContractorProfile

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ContractorDirectory(Protocol):
    async def lookup(self, phone_number: str) -> str | None:
        """Return the contractor id owning *phone_number*, or None.

        Raises ``DirectoryUnavailable`` when the directory cannot answer.
        """
        ...

    async def get_profile(self, contractor_id: str) -> ContractorProfile: ...


def _fallback_profile(contractor_id: str) -> ContractorProfile:
    return ContractorProfile(
        id=contractor_id,
        name="Your Contractor",
        specialties="General contracting, remodeling, repairs",
        service_area="Greater metro area",
    )


# ---------------------------------------------------------------------------
# Config-backed directory
# ---------------------------------------------------------------------------


class StaticContractorDirectory:
    """Directory read from configuration. Never unavailable."""

    def __init__(
        self,
        phones: dict[str, str],
        profiles: dict[str, dict[str, Any]] | None = None,
    ) -> None:
        self._phones = {number.strip(): cid for number, cid in phones.items()}
        self._profiles = profiles or {}

    async def lookup(self, phone_number: str) -> str | None:
        return self._phones.get(phone_number.strip())

    async def get_profile(self, contractor_id: str) -> ContractorProfile:
        raw = self._profiles.get(contractor_id)
        if not raw:
            return _fallback_profile(contractor_id)
        try:
            return ContractorProfile.model_validate({"id": contractor_id, **raw})
        except (TypeError, ValidationError):
            logger.warning(
                "Malformed profile for contractor %s in CONTRACTOR_PROFILES", contractor_id,
                extra={"contractor_id": contractor_id, "step": "get_profile"},
            )
            return _fallback_profile(contractor_id)


# ---------------------------------------------------------------------------
# CRM directory API
# ---------------------------------------------------------------------------


class HttpContractorDirectory:
    """Directory served by the CRM over HTTP."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def lookup(self, phone_number: str) -> str | None:
        url = f"{self._base_url}/contractors/by-phone/{phone_number}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.get(url)
                if resp.status_code == 404:
                    return None
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise DirectoryUnavailable(f"Contractor lookup failed: {exc}") from exc
        contractor_id = data.get("contractorId") if isinstance(data, dict) else None
        return str(contractor_id) if contractor_id else None

    async def get_profile(self, contractor_id: str) -> ContractorProfile:
        """Fetch the contractor profile; any failure yields a generic one."""
        url = f"{self._base_url}/contractors/{contractor_id}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.get(url)
                resp.raise_for_status()
                return ContractorProfile.model_validate({"id": contractor_id, **resp.json()})
        except Exception:
            logger.warning(
                "Could not fetch profile for contractor %s", contractor_id,
                extra={"contractor_id": contractor_id, "step": "get_profile"},
            )
            return _fallback_profile(contractor_id)


# ---------------------------------------------------------------------------
# Public interface: dispatches based on settings
# ---------------------------------------------------------------------------


def get_directory(settings: Settings) -> ContractorDirectory:
    """Return the HTTP directory when configured, else the config maps."""
    if settings.contractor_directory_url:
        return HttpContractorDirectory(
            settings.contractor_directory_url, timeout=settings.http_timeout,
        )
    return StaticContractorDirectory(settings.contractor_phones, settings.contractor_profiles)
