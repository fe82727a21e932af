"""Service category administration.

Categories are never deleted: disabling one only stops new tickets from
being issued for it.
"""

import structlog
from sqlmodel import select

from callqueue.db.tracked_session import TrackedAsyncSession
from callqueue.models.category import ServiceCategory
from callqueue.models.enums import CategoryStatus
from callqueue.services.categories.exceptions import CategoryCodeTaken, CategoryNotFound
from callqueue.utils.datetime_utils import utc_now

logger = structlog.get_logger(__name__)


class CategoryService:
    """Service for service category operations."""

    def __init__(self, session: TrackedAsyncSession):
        self.session = session

    async def list_categories(self, *, include_inactive: bool = False) -> list[ServiceCategory]:
        """List categories ordered by code."""
        statement = select(ServiceCategory).order_by(ServiceCategory.code)
        if not include_inactive:
            statement = statement.where(ServiceCategory.status == CategoryStatus.ACTIVE)
        result = await self.session.execute(statement)
        return list(result.scalars().all())

    async def get_category(self, category_id: int) -> ServiceCategory:
        category = await self.session.get(ServiceCategory, category_id)
        if category is None:
            raise CategoryNotFound(f"Category {category_id} not found")
        return category

    async def get_by_code(self, code: str) -> ServiceCategory:
        result = await self.session.execute(select(ServiceCategory).where(ServiceCategory.code == code))
        category = result.scalars().first()
        if category is None:
            raise CategoryNotFound(f"Category {code!r} not found")
        return category

    async def create_category(
        self,
        *,
        code: str,
        name: str,
        prefix: str | None = None,
        english_name: str | None = None,
    ) -> ServiceCategory:
        """Create an active category. The prefix defaults to the code."""
        existing = await self.session.execute(select(ServiceCategory.id).where(ServiceCategory.code == code))
        if existing.first() is not None:
            raise CategoryCodeTaken(f"Category code {code!r} is already in use")

        category = ServiceCategory(code=code, name=name, english_name=english_name, prefix=prefix or code)
        self.session.add(category)
        await self.session.commit()
        logger.info("Category created", category_id=category.id, code=code)
        return category

    async def update_category(
        self,
        category_id: int,
        *,
        name: str | None = None,
        english_name: str | None = None,
        prefix: str | None = None,
    ) -> ServiceCategory:
        """Update display names and/or prefix. The code is immutable."""
        category = await self.get_category(category_id)
        if name is not None:
            category.name = name
        if english_name is not None:
            category.english_name = english_name
        if prefix is not None:
            category.prefix = prefix
        category.updated_at = utc_now()
        await self.session.commit()
        return category

    async def set_active(self, category_id: int, active: bool) -> ServiceCategory:
        category = await self.get_category(category_id)
        category.status = CategoryStatus.ACTIVE if active else CategoryStatus.INACTIVE
        category.updated_at = utc_now()
        await self.session.commit()
        logger.info("Category status changed", category_id=category_id, status=category.status)
        return category
