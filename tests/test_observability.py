from __future__ import annotations

import pytest
from httpx import ASGITransport, AsyncClient

from rebox_api.app import create_app
from rebox_api.core.settings import settings
from rebox_api.observability.rewards import RewardsObservabilityStore, get_rewards_store


def test_store_counts_and_resets() -> None:
    store = RewardsObservabilityStore()
    store.record_ledger_append("EARN", 120)
    store.record_ledger_append("SPEND", -100)
    store.record_redemption("succeeded", "CASH")
    store.record_redemption("rejected:insufficient_points", "CASH")
    store.record_level_up("Silver")

    snapshot = store.snapshot().as_dict()
    assert snapshot["ledger"] == {"EARN": 1, "SPEND": 1}
    assert snapshot["points"] == {"credited": 120, "debited": 100}
    assert snapshot["redemptions"] == {
        "succeeded": 1,
        "type:CASH": 1,
        "rejected:insufficient_points": 1,
    }
    assert snapshot["level_ups"] == {"Silver": 1}

    store.reset()
    assert store.snapshot().as_dict()["ledger"] == {}


@pytest.mark.asyncio
async def test_rewards_snapshot_requires_key() -> None:
    app = create_app()

    previous_key = settings.admin_api_key
    settings.admin_api_key = "snapshot-key"

    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            rejected = await client.get("/api/v1/observability/rewards")
            accepted = await client.get(
                "/api/v1/observability/rewards", headers={"X-API-Key": "snapshot-key"}
            )
        assert rejected.status_code == 401
        assert accepted.status_code == 200
        assert set(accepted.json()) == {"ledger", "points", "redemptions", "level_ups", "notifications"}
    finally:
        settings.admin_api_key = previous_key


@pytest.mark.asyncio
async def test_prometheus_metrics_render_rewards_counters() -> None:
    app = create_app()
    store = get_rewards_store()
    store.record_ledger_append("EARN", 250)
    store.record_redemption("succeeded", "GIFTCARD")

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        response = await client.get("/api/v1/observability/prometheus")

    assert response.status_code == 200
    body = response.text
    assert 'rebox_rewards_ledger_entries_total{entry_type="EARN"} 1' in body
    assert "rebox_rewards_points_credited_total 250" in body
    assert 'rebox_rewards_redemptions_total{outcome="succeeded"} 1' in body
    assert "# TYPE rebox_rewards_points_debited_total gauge" in body
