import pytest
from httpx import ASGITransport, AsyncClient


@pytest.mark.asyncio
async def test_healthz_reports_ok(app_with_db) -> None:
    app, _ = app_with_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        root = await client.get("/healthz")
        versioned = await client.get("/api/v1/healthz")

    assert root.status_code == 200
    assert root.json()["status"] == "ok"
    assert "version" in root.json()
    assert versioned.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_readyz_reports_component_statuses(app_with_db) -> None:
    app, _ = app_with_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/readyz")

    assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "ready"
    components = payload["components"]
    assert components["database"]["status"] == "ready"
    assert components["level_schedule"]["status"] == "ready"
    assert "2024.1" in components["level_schedule"]["detail"]
    assert components["realtime_relay"]["status"] == "ready"


@pytest.mark.asyncio
async def test_readyz_reports_broken_level_schedule(app_with_db, monkeypatch, tmp_path) -> None:
    from rebox_api.core.settings import settings

    broken = tmp_path / "levels.toml"
    broken.write_text('version = "bad"\n\n[[levels]]\nname = "Only"\nmin_points = 0\nmultiplier = 0.5\n')
    monkeypatch.setattr(settings, "reward_levels_path", str(broken))
    app, _ = app_with_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/readyz")

    payload = response.json()
    assert payload["status"] == "error"
    assert payload["components"]["level_schedule"]["status"] == "error"
