# backend/modules/menus/services/entity_store.py

"""
Generic entity store used by the menu services.

The services only talk to the `EntityStore` / `Repository` protocols and
exchange plain dicts with them. `SQLAlchemyEntityStore` is the production
implementation on top of an `AsyncSession`: filters become WHERE clauses,
population specs become `selectinload` chains and ORM rows are serialized
back into dicts containing only what was asked for.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Sequence, Type, Union
import logging

from sqlalchemy import and_, asc, delete, desc, func, inspect, not_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.interfaces import MANYTOONE

logger = logging.getLogger(__name__)

Filters = Dict[str, Any]
Populate = Dict[str, Any]
Sort = Union[str, Sequence[str], None]


class Repository(Protocol):
    """Per-model data access used by the menu services"""

    async def find(
        self,
        filters: Optional[Filters] = None,
        populate: Optional[Populate] = None,
        sort: Sort = None,
        offset: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        ...

    async def find_one(
        self, filters: Optional[Filters] = None, populate: Optional[Populate] = None
    ) -> Optional[Dict[str, Any]]:
        ...

    async def count(self, filters: Optional[Filters] = None) -> int:
        ...

    async def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        ...

    async def update(self, filters: Filters, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        ...

    async def delete(self, filters: Filters) -> Optional[Dict[str, Any]]:
        ...

    async def delete_many(self, filters: Filters) -> int:
        ...


class EntityStore(Protocol):
    def query(self, uid: str) -> Repository:
        ...

    def transaction(self):
        ...


def relationship_columns(mapper) -> set:
    """Keys of foreign key columns that back a relationship."""
    keys = set()
    for rel in mapper.relationships:
        keys.update(col.key for col in rel.local_columns if col.foreign_keys)
    return keys


def _ref_id(value: Any) -> Any:
    if isinstance(value, dict):
        return value.get("id")
    return value


def serialize_entity(entity: Any, populate: Optional[Populate] = None,
                     select_fields: Optional[Sequence[str]] = None) -> Dict[str, Any]:
    """Convert an ORM instance into a dict.

    Only columns (minus relationship foreign keys) and the relationships named
    in ``populate`` are read, so no lazy load is ever triggered.
    """
    mapper = inspect(type(entity))
    hidden = relationship_columns(mapper)

    data = {}
    for prop in mapper.column_attrs:
        if prop.key in hidden:
            continue
        if select_fields is not None and prop.key not in select_fields:
            continue
        data[prop.key] = getattr(entity, prop.key)

    for name, spec in (populate or {}).items():
        if name not in mapper.relationships or not spec:
            continue
        rel = mapper.relationships[name]
        nested = spec.get("populate") if isinstance(spec, dict) else None
        nested_select = spec.get("select") if isinstance(spec, dict) else None
        value = getattr(entity, name)

        if rel.uselist:
            data[name] = [serialize_entity(v, nested, nested_select) for v in value]
        else:
            data[name] = serialize_entity(value, nested, nested_select) if value is not None else None

    return data


def loader_options(model: Type, populate: Optional[Populate]) -> list:
    """Translate a population spec into selectinload options."""
    mapper = inspect(model)
    options = []
    for name, spec in (populate or {}).items():
        if not spec:
            continue
        if name not in mapper.relationships:
            logger.debug(f"Ignoring populate of unknown relation '{name}' on {model.__name__}")
            continue
        rel = mapper.relationships[name]
        loader = selectinload(getattr(model, name))
        nested = spec.get("populate") if isinstance(spec, dict) else None
        if nested:
            loader = loader.options(*loader_options(rel.mapper.class_, nested))
        options.append(loader)
    return options


class SQLAlchemyRepository:
    """Repository for a single mapped model"""

    def __init__(self, session: AsyncSession, model: Type):
        self.session = session
        self.model = model
        self.mapper = inspect(model)

    # Filters
    def _column(self, key: str):
        if key in self.mapper.relationships:
            rel = self.mapper.relationships[key]
            if rel.direction is not MANYTOONE:
                raise ValueError(f"Cannot filter on collection '{key}'")
            return list(rel.local_columns)[0]
        if key in self.mapper.column_attrs:
            return getattr(self.model, key)
        raise ValueError(f"Unknown field '{key}' for {self.model.__name__}")

    def _operator(self, column, op: str, operand: Any):
        if op == "$eq":
            return column.is_(None) if operand is None else column == _ref_id(operand)
        if op == "$ne":
            return column.is_not(None) if operand is None else column != _ref_id(operand)
        if op == "$in":
            return column.in_([_ref_id(v) for v in operand])
        if op == "$notIn":
            return column.not_in([_ref_id(v) for v in operand])
        if op == "$null":
            return column.is_(None) if operand else column.is_not(None)
        raise ValueError(f"Unsupported filter operator '{op}'")

    def _clauses(self, filters: Optional[Filters]) -> list:
        clauses = []
        for key, value in (filters or {}).items():
            if key == "$not":
                inner = self._clauses(value)
                if inner:
                    clauses.append(not_(and_(*inner)))
            elif key == "$or":
                branches = [and_(*self._clauses(branch)) for branch in value if branch]
                if branches:
                    clauses.append(or_(*branches))
            elif key == "$and":
                for branch in value:
                    clauses.extend(self._clauses(branch))
            elif isinstance(value, dict) and any(k.startswith("$") for k in value):
                column = self._column(key)
                clauses.extend(self._operator(column, op, operand) for op, operand in value.items())
            else:
                clauses.append(self._operator(self._column(key), "$eq", value))
        return clauses

    def _order_by(self, sort: Sort) -> list:
        if not sort:
            return [asc(self.mapper.primary_key[0])]
        if isinstance(sort, str):
            sort = [sort]

        order = []
        for entry in sort:
            field, _, direction = entry.partition(":")
            column = self._column(field)
            order.append(desc(column) if direction.lower() == "desc" else asc(column))
        return order

    def _assign(self, entity: Any, data: Dict[str, Any]) -> None:
        primary_key = self.mapper.primary_key[0].key
        for key, value in data.items():
            if key in self.mapper.relationships:
                rel = self.mapper.relationships[key]
                if rel.direction is not MANYTOONE:
                    logger.debug(f"Skipping collection '{key}' on {self.model.__name__}")
                    continue
                column = list(rel.local_columns)[0]
                prop = self.mapper.get_property_by_column(column)
                setattr(entity, prop.key, _ref_id(value))
            elif key in self.mapper.column_attrs and key != primary_key:
                setattr(entity, key, value)

    # Reads
    async def find(
        self,
        filters: Optional[Filters] = None,
        populate: Optional[Populate] = None,
        sort: Sort = None,
        offset: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        stmt = (
            select(self.model)
            .where(*self._clauses(filters))
            .options(*loader_options(self.model, populate))
            .order_by(*self._order_by(sort))
            .execution_options(populate_existing=True)
        )
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await self.session.execute(stmt)
        return [serialize_entity(row, populate) for row in result.scalars().all()]

    async def find_one(
        self, filters: Optional[Filters] = None, populate: Optional[Populate] = None
    ) -> Optional[Dict[str, Any]]:
        results = await self.find(filters, populate, limit=1)
        return results[0] if results else None

    async def count(self, filters: Optional[Filters] = None) -> int:
        stmt = select(func.count()).select_from(self.model).where(*self._clauses(filters))
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def _first(self, filters: Filters):
        stmt = (
            select(self.model)
            .where(*self._clauses(filters))
            .order_by(*self._order_by(None))
            .limit(1)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    # Writes
    async def create(self, data: Dict[str, Any]) -> Dict[str, Any]:
        entity = self.model()
        self._assign(entity, data)
        self.session.add(entity)
        await self.session.flush()
        await self.session.refresh(entity)
        return serialize_entity(entity)

    async def update(self, filters: Filters, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        entity = await self._first(filters)
        if entity is None:
            return None

        self._assign(entity, data)
        await self.session.flush()
        await self.session.refresh(entity)
        return serialize_entity(entity)

    async def delete(self, filters: Filters) -> Optional[Dict[str, Any]]:
        entity = await self._first(filters)
        if entity is None:
            return None

        deleted = serialize_entity(entity)
        await self.delete_many(filters)
        return deleted

    async def delete_many(self, filters: Filters) -> int:
        clauses = self._clauses(filters)
        if not clauses:
            raise ValueError("Refusing to delete without filters")

        # Filter on the mapped attribute so deleted instances leave the session.
        primary_key = getattr(self.model, self.mapper.get_property_by_column(self.mapper.primary_key[0]).key)
        result = await self.session.execute(select(primary_key).where(*clauses))
        ids = list(result.scalars().all())
        if not ids:
            return 0

        await self.session.execute(
            delete(self.model)
            .where(primary_key.in_(ids))
            .execution_options(synchronize_session="fetch")
        )
        return len(ids)


class SQLAlchemyEntityStore:
    """Entity store over one AsyncSession, addressing models by uid"""

    def __init__(self, session: AsyncSession, models: Dict[str, Type]):
        self.session = session
        self._models = dict(models)
        self._depth = 0

    def query(self, uid: str) -> SQLAlchemyRepository:
        model = self._models.get(uid)
        if model is None:
            raise KeyError(uid)
        return SQLAlchemyRepository(self.session, model)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["SQLAlchemyEntityStore"]:
        """Commit on success, roll back on error; nested calls join the outer one."""
        if self._depth:
            yield self
            return

        self._depth += 1
        try:
            yield self
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        finally:
            self._depth -= 1
