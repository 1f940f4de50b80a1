"""Generic session-scoped repository over one SQLAlchemy model."""

from typing import Any, Generic, Sequence, TypeVar

from sqlalchemy import Select, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from yieldfarm.models.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """Column-equality queries shared by the model repositories.

    Keyword filters map column names to values; ``None`` values are skipped
    so optional query parameters can be passed straight through.

    Example:
        repo = FarmingTransactionRepository(session)
        row = await repo.first(internal_id="tx_...")
        rows = await repo.page(offset=0, limit=20, user_id="0xabc...")
    """

    model: type[ModelType]

    def __init__(self, session: AsyncSession) -> None:
        """Bind the repository to a session.

        @param session - SQLAlchemy async session owned by the caller
        """
        self.session = session

    def _where(self, stmt: Any, filters: dict[str, Any]) -> Any:
        conditions = [
            getattr(self.model, column) == value
            for column, value in filters.items()
            if value is not None and hasattr(self.model, column)
        ]
        return stmt.where(*conditions) if conditions else stmt

    def query(self, **filters: Any) -> Select:
        """Build a filtered select over the model."""
        return self._where(select(self.model), filters)

    async def page(
        self,
        *,
        offset: int = 0,
        limit: int | None = None,
        order_by: Any | None = None,
        **filters: Any,
    ) -> Sequence[ModelType]:
        """Fetch a slice of matching rows.

        @param offset - Rows to skip
        @param limit - Page size, None for all rows
        @param order_by - Ordering clause
        @param filters - column=value equality filters
        @returns Matching rows
        """
        stmt = self.query(**filters)
        if order_by is not None:
            stmt = stmt.order_by(order_by)
        stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return (await self.session.scalars(stmt)).all()

    async def first(self, **filters: Any) -> ModelType | None:
        """Fetch one matching row, or None."""
        return (await self.session.scalars(self.query(**filters).limit(1))).first()

    async def insert(self, values: dict[str, Any]) -> ModelType:
        """Add a row and load server-side defaults back into it.

        @param values - Column values
        @returns The persisted row
        """
        row = self.model(**values)
        self.session.add(row)
        await self.session.flush()
        await self.session.refresh(row)
        return row

    async def patch(self, values: dict[str, Any], **filters: Any) -> int:
        """Bulk-update matching rows.

        @param values - Column values to set
        @param filters - column=value equality filters
        @returns Number of rows changed
        """
        result = await self.session.execute(
            self._where(update(self.model).values(**values), filters)
        )
        await self.session.flush()
        return result.rowcount

    async def count(self, **filters: Any) -> int:
        """Count matching rows."""
        stmt = self._where(select(func.count()).select_from(self.model), filters)
        return (await self.session.scalar(stmt)) or 0
