"""Level schedule and the pure level calculator."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Sequence

import tomllib

from rebox_api.core.settings import settings

from .errors import InvalidAmountError, LevelConfigurationError


@dataclass(frozen=True, slots=True)
class LevelConfig:
    """A named tier unlocked by lifetime points."""

    name: str
    min_points: int
    multiplier: float
    benefits: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True, slots=True)
class LevelSchedule:
    """Versioned, ordered list of levels (ascending by ``min_points``)."""

    version: str
    levels: tuple[LevelConfig, ...]

    def __post_init__(self) -> None:
        if not self.levels:
            raise LevelConfigurationError("Level schedule requires at least one level")
        names = [level.name for level in self.levels]
        if len(set(names)) != len(names):
            raise LevelConfigurationError("Level names must be unique")
        previous: int | None = None
        for level in self.levels:
            if level.min_points < 0:
                raise LevelConfigurationError(f"Level {level.name} has a negative threshold")
            if level.multiplier < 1:
                raise LevelConfigurationError(f"Level {level.name} multiplier must be >= 1")
            if previous is not None and level.min_points <= previous:
                raise LevelConfigurationError("Level thresholds must be strictly ascending")
            previous = level.min_points

    @property
    def lowest(self) -> LevelConfig:
        return self.levels[0]

    def get(self, name: str) -> LevelConfig | None:
        return next((level for level in self.levels if level.name == name), None)

    def max_points(self, level: LevelConfig) -> int | None:
        """Inclusive upper bound of ``level``; ``None`` for the top tier."""

        following = self._following(level)
        return following.min_points - 1 if following else None

    def level_for(self, lifetime_points: int) -> LevelConfig:
        _require_non_negative(lifetime_points)
        current = self.lowest
        for level in self.levels:
            if level.min_points <= lifetime_points:
                current = level
            else:
                break
        return current

    def next_level_for(self, lifetime_points: int) -> LevelConfig | None:
        return self._following(self.level_for(lifetime_points))

    def progress_to_next(self, lifetime_points: int) -> float:
        current = self.level_for(lifetime_points)
        following = self._following(current)
        if following is None:
            return 1.0
        span = following.min_points - current.min_points
        progress = (lifetime_points - current.min_points) / span
        return max(0.0, min(progress, 1.0))

    def points_to_next_level(self, lifetime_points: int) -> int:
        following = self.next_level_for(lifetime_points)
        if following is None:
            return 0
        return following.min_points - lifetime_points

    def _following(self, level: LevelConfig) -> LevelConfig | None:
        for index, candidate in enumerate(self.levels):
            if candidate.name == level.name:
                return self.levels[index + 1] if index + 1 < len(self.levels) else None
        return None


def _require_non_negative(lifetime_points: int) -> None:
    if isinstance(lifetime_points, bool) or not isinstance(lifetime_points, int):
        raise InvalidAmountError("Lifetime points must be an integer")
    if lifetime_points < 0:
        raise InvalidAmountError("Lifetime points cannot be negative")


def apply_multiplier(base_points: int, level: LevelConfig) -> int:
    """Points credited for an earn of ``base_points`` while at ``level``."""

    if base_points <= 0:
        raise InvalidAmountError("Earned points must be positive")
    return math.floor(base_points * level.multiplier)


DEFAULT_LEVEL_SCHEDULE = LevelSchedule(
    version="2024.1",
    levels=(
        LevelConfig("Bronze", 0, 1.0, ("Basic rewards", "Standard pickup scheduling")),
        LevelConfig(
            "Silver",
            1000,
            1.25,
            ("25% bonus points", "Priority pickup scheduling", "Monthly bonus rewards"),
        ),
        LevelConfig("Gold", 5000, 1.5, ("50% bonus points", "Same-day pickup", "Exclusive partner offers")),
        LevelConfig(
            "Platinum",
            15000,
            2.0,
            ("100% bonus points", "VIP support", "Early access to new features", "Partner discounts"),
        ),
        LevelConfig(
            "Diamond",
            50000,
            2.5,
            (
                "150% bonus points",
                "Dedicated account manager",
                "Custom pickup schedules",
                "Maximum partner discounts",
            ),
        ),
    ),
)


def default_level_schedule() -> LevelSchedule:
    return DEFAULT_LEVEL_SCHEDULE


def parse_level_schedule(data: dict[str, Any]) -> LevelSchedule:
    """Build a schedule from a decoded TOML/JSON document."""

    entries: Sequence[Any] = data.get("levels") or []
    levels: list[LevelConfig] = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise LevelConfigurationError("Each level must be a table")
        try:
            name = str(entry["name"])
            min_points = int(entry["min_points"])
        except (KeyError, TypeError, ValueError) as exc:
            raise LevelConfigurationError(f"Invalid level entry: {entry!r}") from exc
        benefits = entry.get("benefits") or []
        if not isinstance(benefits, list):
            raise LevelConfigurationError(f"Benefits for {name} must be a list")
        levels.append(
            LevelConfig(
                name=name,
                min_points=min_points,
                multiplier=float(entry.get("multiplier", 1.0)),
                benefits=tuple(str(item) for item in benefits),
            )
        )
    levels.sort(key=lambda level: level.min_points)
    return LevelSchedule(version=str(data.get("version", "custom")), levels=tuple(levels))


def load_level_schedule(config_path: Path) -> LevelSchedule:
    """Load a level schedule from a TOML file."""

    if not config_path.exists():
        raise FileNotFoundError(f"Level schedule not found: {config_path}")
    return parse_level_schedule(tomllib.loads(config_path.read_text()))


@lru_cache
def _cached_level_schedule(config_path: str) -> LevelSchedule:
    return load_level_schedule(Path(config_path))


def get_level_schedule(config_path: str | None = None) -> LevelSchedule:
    """Return the schedule at ``config_path`` (or the configured one), defaulting to the built-in table."""

    config_path = config_path or settings.reward_levels_path
    if not config_path:
        return DEFAULT_LEVEL_SCHEDULE
    return _cached_level_schedule(config_path)


__all__ = [
    "DEFAULT_LEVEL_SCHEDULE",
    "LevelConfig",
    "LevelSchedule",
    "apply_multiplier",
    "default_level_schedule",
    "get_level_schedule",
    "load_level_schedule",
    "parse_level_schedule",
]
