"""Titles and messages for reward notifications."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

REWARD_EARNED = "reward:earned"
REWARD_LEVEL_UP = "reward:level_up"
REWARD_REDEEMED = "reward:redeemed"


@dataclass
class RenderedNotification:
    title: str
    message: str


def _points(value: Any) -> str:
    try:
        return f"{abs(int(value)):,}"
    except (TypeError, ValueError):
        return "0"


def render_reward_earned(payload: Mapping[str, Any]) -> RenderedNotification:
    points = _points(payload.get("points"))
    description = payload.get("description")
    message = f"You earned {points} points"
    if description:
        message = f"{message} for {description}"
    return RenderedNotification(title="Points Earned!", message=f"{message}.")


def render_reward_level_up(payload: Mapping[str, Any]) -> RenderedNotification:
    level = payload.get("level") or "a new level"
    return RenderedNotification(
        title="Level Up!",
        message=f"Congratulations! You reached {level}. Enjoy your new benefits.",
    )


def render_reward_redeemed(payload: Mapping[str, Any]) -> RenderedNotification:
    points = _points(payload.get("points"))
    cash_value = payload.get("cashValue")
    reward_type = str(payload.get("rewardType") or "reward").lower()
    value_label = f"${float(cash_value):.2f} " if cash_value is not None else ""
    return RenderedNotification(
        title="Points Redeemed",
        message=f"You redeemed {points} points for {value_label}{reward_type}.",
    )


_RENDERERS = {
    REWARD_EARNED: render_reward_earned,
    REWARD_LEVEL_UP: render_reward_level_up,
    REWARD_REDEEMED: render_reward_redeemed,
}


def render_reward_event(event_type: str, payload: Mapping[str, Any]) -> RenderedNotification:
    renderer = _RENDERERS.get(event_type)
    if renderer is None:
        raise ValueError(f"Unsupported reward event: {event_type}")
    return renderer(payload)


__all__ = [
    "REWARD_EARNED",
    "REWARD_LEVEL_UP",
    "REWARD_REDEEMED",
    "RenderedNotification",
    "render_reward_event",
]
