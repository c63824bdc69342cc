from .aggregate import RewardsAggregate, RewardsAggregateView, fold
from .errors import (
    IdempotencyConflictError,
    InsufficientPointsError,
    InvalidAmountError,
    InvalidRewardTypeError,
    LevelConfigurationError,
    RewardsAccountNotFoundError,
    RewardsError,
    StorageUnavailableError,
)
from .leaderboard import LeaderboardProjector, LeaderboardRow
from .ledger import LedgerAppendResult, PointsLedger, get_user_locks
from .levels import (
    DEFAULT_LEVEL_SCHEDULE,
    LevelConfig,
    LevelSchedule,
    apply_multiplier,
    default_level_schedule,
    get_level_schedule,
    load_level_schedule,
)
from .redemption import RedemptionProcessor, RedemptionResult
from .service import RewardsService, RewardsSummary, pickup_base_points

__all__ = [
    "DEFAULT_LEVEL_SCHEDULE",
    "IdempotencyConflictError",
    "InsufficientPointsError",
    "InvalidAmountError",
    "InvalidRewardTypeError",
    "LeaderboardProjector",
    "LeaderboardRow",
    "LedgerAppendResult",
    "LevelConfig",
    "LevelConfigurationError",
    "LevelSchedule",
    "PointsLedger",
    "RedemptionProcessor",
    "RedemptionResult",
    "RewardsAccountNotFoundError",
    "RewardsAggregate",
    "RewardsAggregateView",
    "RewardsError",
    "RewardsService",
    "RewardsSummary",
    "StorageUnavailableError",
    "apply_multiplier",
    "default_level_schedule",
    "fold",
    "get_level_schedule",
    "get_user_locks",
    "load_level_schedule",
    "pickup_base_points",
]
