from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID

from rebox_api.db.base import Base


class UserRoleEnum(str, Enum):
    INDIVIDUAL = "individual"
    BUSINESS = "business"
    RECYCLER = "recycler"
    ADMIN = "admin"


class User(Base):
    __tablename__ = "users"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    email = Column(String, nullable=False, unique=True, index=True)
    display_name = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)
    city = Column(String(64), nullable=True)
    state = Column(String(64), nullable=True)
    role = Column(
        String(length=16),
        nullable=False,
        default=UserRoleEnum.INDIVIDUAL.value,
        server_default=UserRoleEnum.INDIVIDUAL.value,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def location(self) -> str | None:
        if self.city and self.state:
            return f"{self.city}, {self.state}"
        return None
