"""Record stores — the minimal persistence capability a DataService needs.

Learn: DataService doesn't inherit from anything database-specific. It is
handed a RecordStore and only calls the handful of operations below. The
production implementation, SQLAlchemyStore, turns where-dicts (see
services/filters.py) into SQLAlchemy clauses against one mapped model.

Every driver failure leaves a store as a StoreError carrying the driver's
code. "The record to mutate does not exist" has its own subclass,
RecordNotFoundError, because callers map it to a 404 instead of a 500.
"""

from typing import Any, Awaitable, Callable, Mapping, Optional, Protocol, TypeVar

from sqlalchemy import ColumnElement, and_, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

R = TypeVar("R")

OrderBy = Mapping[str, str]  # {"created_at": "desc"}


class StoreError(Exception):
    """A store operation failed."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code


class RecordNotFoundError(StoreError):
    """The record targeted by an update/delete does not exist."""

    def __init__(self, message: str = "Record to mutate was not found"):
        super().__init__(message, code="RECORD_NOT_FOUND")


class RecordStore(Protocol):
    async def find_many(
        self,
        where: Mapping[str, Any],
        *,
        order_by: Optional[OrderBy] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> list[Any]: ...

    async def find_first(self, where: Mapping[str, Any]) -> Optional[Any]: ...

    async def count(self, where: Mapping[str, Any]) -> int: ...

    async def values(self, field: str, where: Mapping[str, Any]) -> list[Any]: ...

    async def create(self, data: Mapping[str, Any]) -> Any: ...

    async def update(self, record_id: Any, data: Mapping[str, Any]) -> Any: ...

    async def delete(self, record_id: Any) -> Any: ...

    async def transaction(self, fn: Callable[["RecordStore"], Awaitable[R]]) -> R: ...


# ─── SQLAlchemy ─────────────────────────────────────────


def _driver_code(exc: SQLAlchemyError) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    for attr in ("sqlstate", "pgcode", "code"):
        code = getattr(orig, attr, None)
        if code:
            return str(code)
    # exc.code is SQLAlchemy's docs-link id, not a driver code
    return None


class SQLAlchemyStore:
    """RecordStore over one ORM model and an AsyncSession.

    Each mutation commits on its own unless the store was handed out by
    transaction(), in which case the whole callback commits once.
    """

    def __init__(self, session: AsyncSession, model: type, *, autocommit: bool = True):
        self.session = session
        self.model = model
        self.autocommit = autocommit

    # ─── Where-dict translation ─────────────────────────

    def _column(self, name: str):
        column = getattr(self.model, name, None)
        if column is None or not hasattr(column, "property"):
            raise ValueError(f"{self.model.__name__} has no field {name!r}")
        return column

    def _condition(self, name: str, criteria: Any) -> list[ColumnElement]:
        column = self._column(name)
        if criteria is None:
            return [column.is_(None)]
        if not isinstance(criteria, Mapping):
            return [column == criteria]

        conditions = []
        for op, value in criteria.items():
            if op == "eq":
                conditions.append(column.is_(None) if value is None else column == value)
            elif op == "not":
                conditions.append(column.is_not(None) if value is None else column != value)
            elif op == "in":
                conditions.append(column.in_(list(value)))
            elif op == "not_in":
                conditions.append(column.not_in(list(value)))
            elif op == "gt":
                conditions.append(column > value)
            elif op == "gte":
                conditions.append(column >= value)
            elif op == "lt":
                conditions.append(column < value)
            elif op == "lte":
                conditions.append(column <= value)
            elif op == "contains":
                conditions.append(column.contains(value, autoescape=True))
            elif op == "icontains":
                conditions.append(column.icontains(value, autoescape=True))
            elif op == "startswith":
                conditions.append(column.startswith(value, autoescape=True))
            elif op == "endswith":
                conditions.append(column.endswith(value, autoescape=True))
            else:
                raise ValueError(f"Unknown filter operator {op!r} on {name!r}")
        return conditions

    def where_clause(self, where: Mapping[str, Any]) -> Optional[ColumnElement]:
        conditions: list[ColumnElement] = []
        for name, criteria in where.items():
            conditions.extend(self._condition(name, criteria))
        if not conditions:
            return None
        return and_(*conditions)

    def _select(self, where: Mapping[str, Any]):
        query = select(self.model)
        clause = self.where_clause(where)
        if clause is not None:
            query = query.where(clause)
        return query

    # ─── Reads ──────────────────────────────────────────

    async def find_many(
        self,
        where: Mapping[str, Any],
        *,
        order_by: Optional[OrderBy] = None,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> list[Any]:
        query = self._select(where)
        for name, direction in (order_by or {}).items():
            column = self._column(name)
            query = query.order_by(column.desc() if direction == "desc" else column.asc())
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        try:
            result = await self.session.execute(query)
        except SQLAlchemyError as e:
            raise StoreError(str(e), _driver_code(e)) from e
        return list(result.scalars().all())

    async def find_first(self, where: Mapping[str, Any]) -> Optional[Any]:
        try:
            result = await self.session.execute(self._select(where).limit(1))
        except SQLAlchemyError as e:
            raise StoreError(str(e), _driver_code(e)) from e
        return result.scalars().first()

    async def count(self, where: Mapping[str, Any]) -> int:
        query = select(func.count()).select_from(self.model)
        clause = self.where_clause(where)
        if clause is not None:
            query = query.where(clause)
        try:
            result = await self.session.execute(query)
        except SQLAlchemyError as e:
            raise StoreError(str(e), _driver_code(e)) from e
        return int(result.scalar_one())

    async def values(self, field: str, where: Mapping[str, Any]) -> list[Any]:
        """One column of every matching row (e.g. existing slugs)."""
        column = self._column(field)
        query = select(column)
        clause = self.where_clause(where)
        if clause is not None:
            query = query.where(clause)
        try:
            result = await self.session.execute(query)
        except SQLAlchemyError as e:
            raise StoreError(str(e), _driver_code(e)) from e
        return list(result.scalars().all())

    # ─── Writes ─────────────────────────────────────────

    async def _finish(self, record: Any = None) -> None:
        if self.autocommit:
            await self.session.commit()
        else:
            await self.session.flush()
        if record is not None:
            await self.session.refresh(record)

    async def _rollback(self) -> None:
        if self.autocommit:
            await self.session.rollback()

    async def create(self, data: Mapping[str, Any]) -> Any:
        record = self.model(**data)
        self.session.add(record)
        try:
            await self.session.flush()
            await self._finish(record)
        except SQLAlchemyError as e:
            await self._rollback()
            raise StoreError(str(e), _driver_code(e)) from e
        return record

    async def update(self, record_id: Any, data: Mapping[str, Any]) -> Any:
        try:
            record = await self.session.get(self.model, record_id)
            if record is None:
                raise RecordNotFoundError()
            for name, value in data.items():
                self._column(name)
                setattr(record, name, value)
            await self.session.flush()
            await self._finish(record)
        except SQLAlchemyError as e:
            await self._rollback()
            raise StoreError(str(e), _driver_code(e)) from e
        return record

    async def delete(self, record_id: Any) -> Any:
        try:
            record = await self.session.get(self.model, record_id)
            if record is None:
                raise RecordNotFoundError()
            await self.session.delete(record)
            await self.session.flush()
            await self._finish()
        except SQLAlchemyError as e:
            await self._rollback()
            raise StoreError(str(e), _driver_code(e)) from e
        return record

    async def transaction(self, fn: Callable[["SQLAlchemyStore"], Awaitable[R]]) -> R:
        """Run `fn` with a non-committing store, then commit once.

        Any exception rolls back everything `fn` did.
        """
        inner = SQLAlchemyStore(self.session, self.model, autocommit=False)
        try:
            result = await fn(inner)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise StoreError(str(e), _driver_code(e)) from e
        except BaseException:
            await self.session.rollback()
            raise
        return result
