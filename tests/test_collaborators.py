import json
import sys
from pathlib import Path

import httpx
import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from onboarding.collaborators import CollaboratorConfig, OutreachCollaborators
from onboarding.errors import CollaboratorError

CONFIG = CollaboratorConfig(url="https://outreach.example.com", key="testkey")


@pytest.mark.asyncio
async def test_save_leads_posts_batch():
    """Leads go to the bulk endpoint with the skip flag and bearer key."""

    captured = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers.get("Authorization")
        captured["json"] = json.loads(request.content.decode())
        return httpx.Response(
            200,
            json={
                "success": True,
                "data": {"saved": 2, "total": 2, "leadIds": [1, 2], "duplicatesFound": False},
            },
        )

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport) as client:
        collaborators = OutreachCollaborators(CONFIG, client=client)
        result = await collaborators.save_leads([{"email": "a@example.com"}], skip_duplicates=True)

    assert captured["url"] == "https://outreach.example.com/api/leads/bulk"
    assert captured["auth"] == "Bearer testkey"
    assert captured["json"] == {"leads": [{"email": "a@example.com"}], "skipDuplicates": True}
    assert result.data.saved == 2
    assert result.data.lead_ids == ["1", "2"]


@pytest.mark.asyncio
async def test_cancel_bookings_posts_lead_ids():
    captured = {}

    async def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["json"] = json.loads(request.content.decode())
        return httpx.Response(200, json={"data": {"cancelledBookings": 3}})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport) as client:
        collaborators = OutreachCollaborators(CONFIG, client=client)
        result = await collaborators.cancel_bookings(["7", "8"])

    assert captured["url"] == "https://outreach.example.com/api/leads/bookings/cancel"
    assert captured["json"] == {"leadIds": ["7", "8"]}
    assert result.data.cancelled_bookings == 3


@pytest.mark.asyncio
async def test_create_and_start_campaign_unwraps_nested_data():
    seen = []

    async def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url.path)
        if request.url.path == "/api/campaigns":
            return httpx.Response(200, json={"success": True, "data": {"data": {"id": 42}}})
        return httpx.Response(200, json={"success": True})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport) as client:
        collaborators = OutreachCollaborators(CONFIG, client=client)
        created = await collaborators.create_campaign({"name": "My Campaign"})
        started = await collaborators.start_campaign(created.data.id)

    assert created.success is True
    assert created.data.id == "42"
    assert started is True
    assert seen == ["/api/campaigns", "/api/campaigns/42/start"]


@pytest.mark.asyncio
async def test_http_errors_become_collaborator_errors():
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"error": "boom"})

    transport = httpx.MockTransport(handler)
    async with httpx.AsyncClient(transport=transport) as client:
        collaborators = OutreachCollaborators(CONFIG, client=client)
        with pytest.raises(CollaboratorError):
            await collaborators.create_campaign({"name": "x"})


@pytest.mark.asyncio
async def test_unconfigured_collaborators_refuse_calls():
    collaborators = OutreachCollaborators(None)

    assert collaborators.enabled is False
    with pytest.raises(CollaboratorError):
        await collaborators.save_leads([], skip_duplicates=False)


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("COLLABORATOR_BASE_URL", "https://outreach.example.com/")
    monkeypatch.setenv("COLLABORATOR_API_KEY", "k")

    config = CollaboratorConfig.from_env()
    assert config == CollaboratorConfig(url="https://outreach.example.com", key="k")
    assert config.headers()["Authorization"] == "Bearer k"

    monkeypatch.delenv("COLLABORATOR_BASE_URL")
    assert CollaboratorConfig.from_env() is None
