"""Domain errors raised by the rewards core."""

from __future__ import annotations

from uuid import UUID


class RewardsError(RuntimeError):
    """Base exception for rewards failures; ``code`` is stable for API clients."""

    code = "rewards_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def as_detail(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class InvalidAmountError(RewardsError):
    """Point quantity is not acceptable for the requested operation."""

    code = "invalid_amount"


class InvalidRewardTypeError(RewardsError):
    """Redemption reward type is not one of the configured values."""

    code = "invalid_reward_type"

    def __init__(self, reward_type: object, allowed: list[str]) -> None:
        super().__init__(f"Invalid reward type {reward_type!r}; expected one of {', '.join(allowed)}")
        self.reward_type = reward_type
        self.allowed = allowed


class InsufficientPointsError(RewardsError):
    """Spending would take the available balance below zero."""

    code = "insufficient_points"

    def __init__(self, requested: int, available: int) -> None:
        super().__init__(f"Insufficient points: requested {requested}, available {available}")
        self.requested = requested
        self.available = available


class IdempotencyConflictError(RewardsError):
    """An idempotency key was reused for a different request."""

    code = "idempotency_conflict"


class RewardsAccountNotFoundError(RewardsError):
    """No user exists for the referenced identifier."""

    code = "not_found"

    def __init__(self, user_id: UUID) -> None:
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class StorageUnavailableError(RewardsError):
    """The persistence store could not complete the operation; callers may retry."""

    code = "storage_unavailable"


class LevelConfigurationError(ValueError):
    """Level schedule is malformed."""


__all__ = [
    "IdempotencyConflictError",
    "InsufficientPointsError",
    "InvalidAmountError",
    "InvalidRewardTypeError",
    "LevelConfigurationError",
    "RewardsAccountNotFoundError",
    "RewardsError",
    "StorageUnavailableError",
]
