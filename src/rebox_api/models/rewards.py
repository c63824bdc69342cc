"""Rewards ledger and per-user aggregate models."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from rebox_api.db.base import Base


class LedgerEntryType(str, Enum):
    """Point-affecting event kinds."""

    EARN = "EARN"
    SPEND = "SPEND"
    ADJUSTMENT = "ADJUSTMENT"


class RewardType(str, Enum):
    """What a redemption converts points into."""

    CASH = "CASH"
    GIFTCARD = "GIFTCARD"
    DONATION = "DONATION"


class PointsLedgerEntry(Base):
    """Immutable record of a single point-affecting event."""

    __tablename__ = "rewards_ledger_entries"
    __table_args__ = (
        UniqueConstraint("user_id", "sequence", name="uq_rewards_ledger_entries_user_sequence"),
        UniqueConstraint("user_id", "idempotency_key", name="uq_rewards_ledger_entries_user_idempotency_key"),
        CheckConstraint("points <> 0", name="points_non_zero"),
        Index("ix_rewards_ledger_entries_user_type", "user_id", "entry_type"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    entry_type = Column(SqlEnum(LedgerEntryType, name="rewards_ledger_entry_type"), nullable=False)
    points = Column(Integer, nullable=False)
    description = Column(String, nullable=False)
    metadata_json = Column("metadata", JSON, nullable=False, default=dict)
    idempotency_key = Column(String(128), nullable=True)
    sequence = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    user = relationship("User")


class RewardsAccount(Base):
    """Cached aggregate of a user's ledger, updated in the same transaction as each append."""

    __tablename__ = "rewards_accounts"
    __table_args__ = (
        CheckConstraint("available_points >= 0", name="available_non_negative"),
        CheckConstraint("available_points <= lifetime_points", name="available_within_lifetime"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    available_points = Column(Integer, nullable=False, default=0, server_default="0")
    lifetime_points = Column(Integer, nullable=False, default=0, server_default="0", index=True)
    level = Column(String(32), nullable=False)
    entry_count = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    user = relationship("User")
