"""Observability endpoints for rewards counters and Prometheus metrics."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from rebox_api.api.dependencies.security import require_admin_api_key
from rebox_api.observability.rewards import get_rewards_store


router = APIRouter(
    prefix="/observability",
    tags=["Observability"],
    dependencies=[Depends(require_admin_api_key)],
)


@router.get("/rewards", summary="Rewards observability snapshot")
async def get_rewards_snapshot() -> dict[str, object]:
    """Retrieve aggregated rewards counters (requires admin API key)."""
    return get_rewards_store().snapshot().as_dict()


def _format_metric(name: str, description: str, value: int | float, labels: dict[str, str] | None = None) -> list[str]:
    label_fragment = ""
    if labels:
        formatted = ",".join(f'{key}="{val}"' for key, val in sorted(labels.items()))
        label_fragment = f"{{{formatted}}}"
    return [
        f"# HELP {name} {description}",
        f"# TYPE {name} gauge",
        f"{name}{label_fragment} {value}",
    ]


@router.get(
    "/prometheus",
    summary="Prometheus-formatted rewards metrics",
    response_class=PlainTextResponse,
)
async def get_prometheus_metrics() -> PlainTextResponse:
    snapshot = get_rewards_store().snapshot()
    lines: list[str] = []

    for entry_type, value in sorted(snapshot.ledger.items()):
        lines.extend(
            _format_metric(
                "rebox_rewards_ledger_entries_total",
                "Ledger entries appended grouped by type",
                value,
                labels={"entry_type": entry_type},
            )
        )

    lines.extend(
        _format_metric("rebox_rewards_points_credited_total", "Points credited to members", snapshot.points.get("credited", 0))
    )
    lines.extend(
        _format_metric("rebox_rewards_points_debited_total", "Points debited from members", snapshot.points.get("debited", 0))
    )

    for outcome, value in sorted(snapshot.redemptions.items()):
        lines.extend(
            _format_metric(
                "rebox_rewards_redemptions_total",
                "Redemption attempts grouped by outcome",
                value,
                labels={"outcome": outcome},
            )
        )

    for level, value in sorted(snapshot.level_ups.items()):
        lines.extend(
            _format_metric(
                "rebox_rewards_level_ups_total",
                "Members reaching a level",
                value,
                labels={"level": level},
            )
        )

    for outcome, value in sorted(snapshot.notifications.items()):
        lines.extend(
            _format_metric(
                "rebox_rewards_notifications_total",
                "Reward notification deliveries grouped by outcome",
                value,
                labels={"outcome": outcome},
            )
        )

    return PlainTextResponse("\n".join(lines) + "\n")
