"""Service category model."""

from datetime import datetime

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel

from callqueue.models.base import _utc_now, enum_column_type
from callqueue.models.enums import CategoryStatus


class ServiceCategory(SQLModel, table=True):
    """A class of service visitors queue for ("business type")."""

    __tablename__ = "service_categories"

    id: int | None = Field(default=None, primary_key=True)
    code: str = Field(max_length=1, unique=True, index=True)
    name: str = Field(max_length=50)
    english_name: str | None = Field(default=None, max_length=100)
    prefix: str = Field(max_length=5)  # Ticket code prefix, e.g. "A" -> "A001"
    status: CategoryStatus = Field(
        default=CategoryStatus.ACTIVE,
        sa_column=Column(enum_column_type(CategoryStatus, "categorystatus"), nullable=False),
    )
    created_at: datetime = Field(default_factory=_utc_now, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utc_now, sa_column=Column(DateTime(timezone=True), nullable=False))

    @property
    def is_active(self) -> bool:
        return self.status == CategoryStatus.ACTIVE
