"""HTTP clients for the lead, booking and campaign services."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from onboarding.errors import CollaboratorError

logger = logging.getLogger("outreach.collaborators")


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, coerce_numbers_to_str=True)


class DuplicateMatch(_CamelModel):
    existing_lead: Dict[str, Any] = Field(default_factory=dict)
    matched_on: str = ""
    bookings: List[Dict[str, Any]] = Field(default_factory=list)


class SaveLeadsData(_CamelModel):
    saved: int = 0
    total: int = 0
    skipped_duplicates: int = 0
    lead_ids: List[str] = Field(default_factory=list)
    duplicates_found: bool = False
    duplicates: List[DuplicateMatch] = Field(default_factory=list)
    new_leads_count: int = 0


class SaveLeadsResult(BaseModel):
    success: bool = True
    data: SaveLeadsData = Field(default_factory=SaveLeadsData)


class CancelBookingsData(_CamelModel):
    cancelled_bookings: int = 0


class CancelBookingsResult(BaseModel):
    data: CancelBookingsData = Field(default_factory=CancelBookingsData)


class CampaignCreated(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    id: Optional[str] = None


class CreateCampaignResult(BaseModel):
    success: bool = False
    data: CampaignCreated = Field(default_factory=CampaignCreated)


class LeadStore(Protocol):
    async def save_leads(self, leads: List[Dict[str, Any]], *, skip_duplicates: bool) -> SaveLeadsResult: ...


class BookingService(Protocol):
    async def cancel_bookings(self, lead_ids: List[str]) -> CancelBookingsResult: ...


class CampaignService(Protocol):
    async def create_campaign(self, payload: Dict[str, Any]) -> CreateCampaignResult: ...

    async def start_campaign(self, campaign_id: str) -> bool: ...


@dataclass(frozen=True)
class CollaboratorConfig:
    """Base URL and key shared by the outreach services."""

    url: str
    key: str = ""

    def headers(self, extras: Optional[Iterable[tuple[str, str]]] = None) -> Dict[str, str]:
        base = {"Content-Type": "application/json"}
        if self.key:
            base["Authorization"] = f"Bearer {self.key}"
        if extras:
            for extra_key, value in extras:
                base[extra_key] = value
        return base

    @classmethod
    def from_env(cls) -> Optional["CollaboratorConfig"]:
        url = os.getenv("COLLABORATOR_BASE_URL", "").rstrip("/")
        if not url:
            return None
        return cls(url=url, key=os.getenv("COLLABORATOR_API_KEY", ""))


@asynccontextmanager
async def _client_context(client: Optional[httpx.AsyncClient], timeout: float = 15.0):
    if client is not None:
        yield client
        return

    managed_client = httpx.AsyncClient(timeout=timeout)
    try:
        yield managed_client
    finally:
        await managed_client.aclose()


async def _request(
    method: str,
    path: str,
    *,
    config: CollaboratorConfig,
    payload: Optional[Dict[str, Any]] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, Any]:
    url = f"{config.url}{path}"
    async with _client_context(client) as http_client:
        try:
            response = await http_client.request(method, url, headers=config.headers(), json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise CollaboratorError(f"{method} {path} failed: {exc}") from exc
        if not response.content:
            return {}
        return response.json()


class OutreachCollaborators:
    """Talks to the lead, booking and campaign endpoints of the outreach API."""

    def __init__(self, config: Optional[CollaboratorConfig], *, client: Optional[httpx.AsyncClient] = None):
        self._config = config
        self._client = client

    @property
    def enabled(self) -> bool:
        return self._config is not None

    def _require_config(self) -> CollaboratorConfig:
        if self._config is None:
            logger.warning("Collaborator service not configured")
            raise CollaboratorError("Collaborator service not configured. Set COLLABORATOR_BASE_URL.")
        return self._config

    async def save_leads(self, leads: List[Dict[str, Any]], *, skip_duplicates: bool) -> SaveLeadsResult:
        body = await _request(
            "POST",
            "/api/leads/bulk",
            config=self._require_config(),
            payload={"leads": leads, "skipDuplicates": skip_duplicates},
            client=self._client,
        )
        result = SaveLeadsResult.model_validate(body)
        logger.info(
            "Saved %s/%s leads (skip_duplicates=%s, duplicates_found=%s)",
            result.data.saved,
            result.data.total,
            skip_duplicates,
            result.data.duplicates_found,
        )
        return result

    async def cancel_bookings(self, lead_ids: List[str]) -> CancelBookingsResult:
        body = await _request(
            "POST",
            "/api/leads/bookings/cancel",
            config=self._require_config(),
            payload={"leadIds": lead_ids},
            client=self._client,
        )
        return CancelBookingsResult.model_validate(body)

    async def create_campaign(self, payload: Dict[str, Any]) -> CreateCampaignResult:
        body = await _request(
            "POST",
            "/api/campaigns",
            config=self._require_config(),
            payload=payload,
            client=self._client,
        )
        # some deployments nest the record one level deeper
        data = body.get("data") or {}
        if isinstance(data, dict) and not data.get("id") and isinstance(data.get("data"), dict):
            body = {**body, "data": data["data"]}
        return CreateCampaignResult.model_validate(body)

    async def start_campaign(self, campaign_id: str) -> bool:
        body = await _request(
            "POST",
            f"/api/campaigns/{campaign_id}/start",
            config=self._require_config(),
            payload={},
            client=self._client,
        )
        return bool(body.get("success", True))


__all__ = [
    "BookingService",
    "CampaignService",
    "CancelBookingsResult",
    "CollaboratorConfig",
    "CreateCampaignResult",
    "DuplicateMatch",
    "LeadStore",
    "OutreachCollaborators",
    "SaveLeadsData",
    "SaveLeadsResult",
]
