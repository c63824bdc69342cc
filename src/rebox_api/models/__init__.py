"""SQLAlchemy models package."""

from .notification import Notification, NotificationCategoryEnum  # noqa: F401
from .rewards import LedgerEntryType, PointsLedgerEntry, RewardType, RewardsAccount  # noqa: F401
from .user import User, UserRoleEnum  # noqa: F401
