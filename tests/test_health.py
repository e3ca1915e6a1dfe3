import pytest
import httpx
from campusmarket.main import app

@pytest.mark.asyncio
async def test_health():
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        r = await ac.get("/v1/health")
        assert r.status_code == 200
        assert r.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_me_requires_api_key(client):
    r = await client.get("/v1/me")
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_me_reports_role(client, admin_key, seller_key):
    r = await client.get("/v1/me", headers={"X-API-Key": admin_key})
    assert r.status_code == 200, r.text
    assert r.json() == {"user_id": "usr_admin", "role": "ADMIN", "is_admin": True}

    r = await client.get("/v1/me", headers={"X-API-Key": seller_key})
    assert r.json()["is_admin"] is False
