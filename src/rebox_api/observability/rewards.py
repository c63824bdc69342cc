from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class RewardsSnapshot:
    ledger: Dict[str, int]
    points: Dict[str, int]
    redemptions: Dict[str, int]
    level_ups: Dict[str, int]
    notifications: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "ledger": dict(self.ledger),
            "points": dict(self.points),
            "redemptions": dict(self.redemptions),
            "level_ups": dict(self.level_ups),
            "notifications": dict(self.notifications),
        }


class RewardsObservabilityStore:
    """Collect rewards ledger telemetry for dashboards and alerting."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._ledger: Dict[str, int] = defaultdict(int)
        self._points: Dict[str, int] = defaultdict(int)
        self._redemptions: Dict[str, int] = defaultdict(int)
        self._level_ups: Dict[str, int] = defaultdict(int)
        self._notifications: Dict[str, int] = defaultdict(int)

    def record_ledger_append(self, entry_type: str, points: int) -> None:
        with self._lock:
            self._ledger[entry_type] += 1
            if points > 0:
                self._points["credited"] += points
            else:
                self._points["debited"] += -points

    def record_redemption(self, outcome: str, reward_type: str | None = None) -> None:
        with self._lock:
            self._redemptions[outcome] += 1
            if reward_type and outcome == "succeeded":
                self._redemptions[f"type:{reward_type}"] += 1

    def record_level_up(self, level: str) -> None:
        with self._lock:
            self._level_ups[level] += 1

    def record_notification(self, outcome: str) -> None:
        with self._lock:
            self._notifications[outcome] += 1

    def snapshot(self) -> RewardsSnapshot:
        with self._lock:
            return RewardsSnapshot(
                ledger=dict(self._ledger),
                points=dict(self._points),
                redemptions=dict(self._redemptions),
                level_ups=dict(self._level_ups),
                notifications=dict(self._notifications),
            )

    def reset(self) -> None:
        with self._lock:
            self._ledger.clear()
            self._points.clear()
            self._redemptions.clear()
            self._level_ups.clear()
            self._notifications.clear()


_STORE = RewardsObservabilityStore()


def get_rewards_store() -> RewardsObservabilityStore:
    return _STORE


__all__ = ["get_rewards_store", "RewardsObservabilityStore", "RewardsSnapshot"]
