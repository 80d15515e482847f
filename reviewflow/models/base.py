"""Shared SQLModel base with a small query manager API."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar

from sqlalchemy import false
from sqlmodel import SQLModel, col, select

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlmodel.ext.asyncio.session import AsyncSession
    from sqlmodel.sql.expression import SelectOfScalar

ModelT = TypeVar("ModelT", bound="QueryModel")


@dataclass(frozen=True)
class QuerySet(Generic[ModelT]):
    """Chainable wrapper around a scalar select statement."""

    statement: SelectOfScalar[ModelT]

    def filter(self, *criteria: Any) -> QuerySet[ModelT]:
        return QuerySet(self.statement.where(*criteria))

    def filter_by(self, **kwargs: Any) -> QuerySet[ModelT]:
        return QuerySet(self.statement.filter_by(**kwargs))

    def order_by(self, *clauses: Any) -> QuerySet[ModelT]:
        return QuerySet(self.statement.order_by(*clauses))

    async def all(self, session: AsyncSession) -> list[ModelT]:
        return list(await session.exec(self.statement))

    async def first(self, session: AsyncSession) -> ModelT | None:
        return (await session.exec(self.statement)).first()


class ModelManager(Generic[ModelT]):
    """Entry point for building model queries (`Model.objects`)."""

    def __init__(self, model: type[ModelT]) -> None:
        self.model = model

    def all(self) -> QuerySet[ModelT]:
        return QuerySet(select(self.model))

    def by_id(self, obj_id: object) -> QuerySet[ModelT]:
        return self.by_field("id", obj_id)

    def by_ids(self, obj_ids: Iterable[object]) -> QuerySet[ModelT]:
        return self.by_field_in("id", obj_ids)

    def by_field(self, field_name: str, value: object) -> QuerySet[ModelT]:
        return self.filter(col(getattr(self.model, field_name)) == value)

    def by_field_in(self, field_name: str, values: Iterable[object]) -> QuerySet[ModelT]:
        seq = tuple(values)
        if not seq:
            # IN () is not portable; an always-false predicate keeps chaining intact.
            return self.filter(false())
        return self.filter(col(getattr(self.model, field_name)).in_(seq))

    def filter(self, *criteria: Any) -> QuerySet[ModelT]:
        return self.all().filter(*criteria)

    def filter_by(self, **kwargs: Any) -> QuerySet[ModelT]:
        return self.all().filter_by(**kwargs)


class _ManagerDescriptor:
    def __get__(self, instance: object, owner: type[ModelT]) -> ModelManager[ModelT]:
        return ModelManager(owner)


class QueryModel(SQLModel, table=False):
    """Base class for table models exposing `Model.objects` helpers."""

    objects: ClassVar[_ManagerDescriptor] = _ManagerDescriptor()
