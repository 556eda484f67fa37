# Copyright 2026 Firefly Software Solutions Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Generic async store built on SQLAlchemy 2.0.

A :class:`Store` is an immutable builder: fluent setters (``columns``,
``hidden``, ``unscoped``, ``add_preload``, ``set_tx`` ...) return a new
store carrying a derived :class:`StoreState`, so a shared base store is
never affected by the chains built from it. Terminal operations take a
snapshot of the state and return the receiver to the clean state before
executing.

Usage::

    class UserStore(Store[User]):
        pass

    users = UserStore(session_factory=session_factory)
    page = await users.hidden(["password"]).paginate(
        Criteria().where_gte("age", 18).order_desc("id").page(2).per_page(20)
    )
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
from collections.abc import AsyncIterator, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any, Generic, TypeVar, cast, get_args, get_origin

import structlog
from pydantic import BaseModel
from sqlalchemy import Select, delete, func, inspect, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storeit.config.properties import StoreProperties
from storeit.data.criteria.criteria import Criteria
from storeit.data.criteria.extractor import is_zero
from storeit.data.criteria.spec import PredicateScope, PreloadSpec, RawScope, ScopeStep, as_scope_step
from storeit.data.page import Pagination
from storeit.data.relational.sqlalchemy.entity import has_soft_delete
from storeit.data.relational.sqlalchemy.presenter import QueryPresenter
from storeit.kernel.exceptions import EmptyIdListException, MissingWhereClauseException, NotFoundException

T = TypeVar("T")

logger = structlog.get_logger("storeit.store")


@dataclass(frozen=True)
class StoreState:
    """Transient projection and scope state of one store instance."""

    columns: tuple[str, ...] = ()
    hidden: tuple[str, ...] = ()
    scopes: tuple[ScopeStep, ...] = ()
    preloads: tuple[PreloadSpec, ...] = ()
    unscoped: bool = False
    session: AsyncSession | None = None

    def clean(self) -> StoreState:
        """The state left behind by a terminal operation; a bound session survives."""
        return StoreState(session=self.session)

    @property
    def omitted(self) -> tuple[str, ...]:
        """Hidden columns that the allow-list does not re-include."""
        return tuple(name for name in self.hidden if name not in self.columns)

    @property
    def has_predicates(self) -> bool:
        return any(isinstance(step, PredicateScope | RawScope) for step in self.scopes)


class Store(Generic[T]):
    """Fluent CRUD, aggregate and pagination operations for one entity type.

    Type Parameters:
        T: The entity type (any SQLAlchemy mapped class).

    Args:
        model: Entity class; optional when declared as ``Store[Entity]``.
        session_factory: Opens a session per operation when no session is
            bound with :meth:`set_tx`.
        properties: Store settings, e.g. ``config.bind(StoreProperties)``.
    """

    _entity_type: type | None = None

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        for base in getattr(cls, "__orig_bases__", []):
            if get_origin(base) is Store:
                args = get_args(base)
                if args and not isinstance(args[0], TypeVar):
                    cls._entity_type = args[0]
                break

    def __init__(
        self,
        model: type[T] | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        properties: StoreProperties | None = None,
    ) -> None:
        resolved = model or getattr(type(self), "_entity_type", None)
        if resolved is None:
            raise TypeError(f"{type(self).__name__} requires either Store[Entity] declaration or explicit model argument")
        self._model: type[T] = cast(type[T], resolved)
        self._session_factory = session_factory
        self._properties = properties or StoreProperties()
        self._presenter = QueryPresenter(self._model)
        self._state = StoreState()

        mapper = inspect(self._model)
        pk_column = mapper.primary_key[0]
        self._pk_name: str = mapper.get_property_by_column(pk_column).key
        self._pk: Any = getattr(self._model, self._pk_name)
        self._column_names: tuple[str, ...] = tuple(mapper.columns.keys())

    @property
    def model(self) -> type[T]:
        return self._model

    @property
    def state(self) -> StoreState:
        return self._state

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self._model.__name__}, state={self._state!r})"

    # ------------------------------------------------------------------
    # Fluent setters
    # ------------------------------------------------------------------

    def _derive(self, **changes: Any) -> Store[T]:
        derived = object.__new__(type(self))
        derived.__dict__.update(self.__dict__)
        derived._state = replace(self._state, **changes)
        return derived

    def columns(self, fields: Iterable[str]) -> Store[T]:
        """Restrict loaded columns to *fields* (the primary key is always loaded)."""
        return self._derive(columns=self._state.columns + self._check_columns(fields))

    def hidden(self, fields: Iterable[str]) -> Store[T]:
        """Exclude *fields* from loaded entities."""
        return self._derive(hidden=self._state.hidden + self._check_columns(fields))

    def emit(self, fields: Iterable[str]) -> Store[T]:
        return self.hidden(fields)

    def unscoped(self) -> Store[T]:
        """Include soft-deleted rows in reads; deletes become physical."""
        return self._derive(unscoped=True)

    def with_trashed(self, with_trashed: bool = True) -> Store[T]:
        return self._derive(unscoped=with_trashed)

    def scope_closure(self, step: ScopeStep | Callable[[Select[Any]], Select[Any]]) -> Store[T]:
        return self._derive(scopes=self._state.scopes + (as_scope_step(step),))

    def add_preload(self, name: str, *args: Any) -> Store[T]:
        return self._derive(preloads=self._state.preloads + (PreloadSpec(name, tuple(args)),))

    def set_tx(self, session: AsyncSession | None) -> Store[T]:
        """Run subsequent operations on *session*; the caller owns commit/rollback."""
        if session is None:
            return self
        return self._derive(session=session)

    def _check_columns(self, fields: Iterable[str]) -> tuple[str, ...]:
        names = tuple(fields)
        unknown = [name for name in names if name not in self._column_names]
        if unknown:
            raise ValueError(f"{self._model.__name__} has no column(s): {', '.join(unknown)}")
        return names

    def _column_key(self, attribute: str) -> str:
        """Table column name behind a mapped attribute key."""
        return cast(str, inspect(self._model).columns[attribute].name)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _consume(self) -> StoreState:
        state = self._state
        self._state = state.clean()
        return state

    def _require_session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            raise RuntimeError("No session factory configured and no session bound with set_tx()")
        return self._session_factory

    @contextlib.asynccontextmanager
    async def _session(
        self, state: StoreState, write: bool = False, lock: asyncio.Lock | None = None
    ) -> AsyncIterator[AsyncSession]:
        if state.session is not None:
            async with lock or contextlib.nullcontext():
                yield state.session
            return
        factory = self._require_session_factory()
        async with factory() as session:
            if write:
                async with session.begin():
                    yield session
            else:
                yield session

    def _log(self, operation: str, state: StoreState, **kwargs: Any) -> None:
        logger.debug(
            "store_operation",
            operation=operation,
            model=self._model.__name__,
            bound_session=state.session is not None,
            unscoped=state.unscoped,
            **kwargs,
        )

    def _by_id(self, id: Any) -> Criteria:
        return Criteria().where(self._pk == id)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert(self, model: T) -> T:
        return await self.create(model)

    async def create(self, model: T) -> T:
        """Persist *model*; projection and scope state do not apply to inserts."""
        state = self._consume()
        self._log("create", state)
        async with self._session(state, write=True) as session:
            session.add(model)
            await session.flush()
        return model

    async def creates(self, models: Sequence[T]) -> int:
        """Persist *models* in one flush; returns the number of rows created."""
        state = self._consume()
        if not models:
            return 0
        self._log("creates", state, rows=len(models))
        async with self._session(state, write=True) as session:
            session.add_all(models)
            await session.flush()
        return len(models)

    async def create_in_batches(self, models: Sequence[T], batch_size: int) -> int:
        """Persist *models* flushing every *batch_size* rows, in one transaction."""
        state = self._consume()
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        if not models:
            return 0
        self._log("create_in_batches", state, rows=len(models), batch_size=batch_size)
        async with self._session(state, write=True) as session:
            for start in range(0, len(models), batch_size):
                session.add_all(models[start : start + batch_size])
                await session.flush()
        return len(models)

    async def save(self, model: T) -> T:
        """Insert or update *model* by primary key; returns the persistent instance."""
        state = self._consume()
        self._log("save", state)
        async with self._session(state, write=True) as session:
            merged = await session.merge(model)
            await session.flush()
        return merged

    async def update(self, column: str, value: Any, criteria: Criteria | None = None) -> int:
        """Set one column on every row matching *criteria*; returns the row count."""
        state = self._consume()
        self._require_predicates(state, criteria, "update")
        self._check_columns([column])
        return await self._execute_update(state, criteria, {column: value})

    async def updates(self, attributes: Any, criteria: Criteria | None = None) -> int:
        """Apply a mapping, dataclass or pydantic model to every row matching *criteria*.

        Zero-valued fields of dataclasses and pydantic models are skipped;
        mappings are applied as given. Column allow/deny lists set with
        :meth:`columns` and :meth:`hidden` filter the applied values.
        """
        state = self._consume()
        self._require_predicates(state, criteria, "updates")
        values = self._update_values(state, attributes)
        if not values:
            return 0
        return await self._execute_update(state, criteria, values)

    async def update_by_id(self, id: Any, column: str, value: Any) -> int:
        state = self._consume()
        self._check_columns([column])
        return await self._execute_update(state, self._by_id(id), {column: value})

    async def updates_by_id(self, id: Any, attributes: Any) -> int:
        state = self._consume()
        values = self._update_values(state, attributes)
        if not values:
            return 0
        return await self._execute_update(state, self._by_id(id), values)

    async def delete(self, model: T) -> int:
        """Delete the row identified by *model*'s primary key."""
        state = self._consume()
        identity = inspect(self._model).primary_key_from_instance(model)
        if not identity or identity[0] is None:
            raise ValueError(f"Cannot delete a transient {self._model.__name__} without a primary key")
        return await self._execute_delete(state, self._by_id(identity[0]))

    async def deletes(self, criteria: Criteria | None = None) -> int:
        state = self._consume()
        self._require_predicates(state, criteria, "deletes")
        return await self._execute_delete(state, criteria)

    async def delete_by_id(self, id: Any) -> int:
        state = self._consume()
        return await self._execute_delete(state, self._by_id(id))

    def _require_predicates(self, state: StoreState, criteria: Criteria | None, operation: str) -> None:
        if state.has_predicates or (criteria is not None and criteria.has_predicates()):
            return
        raise MissingWhereClauseException(
            f"Refusing to {operation} every {self._model.__name__} row without a condition",
            context={"model": self._model.__name__, "operation": operation},
        )

    def _update_values(self, state: StoreState, attributes: Any) -> dict[str, Any]:
        if isinstance(attributes, Mapping):
            values = dict(attributes)
        elif isinstance(attributes, BaseModel):
            values = {k: v for k, v in attributes.model_dump().items() if not is_zero(v)}
        elif dataclasses.is_dataclass(attributes) and not isinstance(attributes, type):
            values = {
                f.name: getattr(attributes, f.name)
                for f in dataclasses.fields(attributes)
                if not is_zero(getattr(attributes, f.name))
            }
        else:
            raise TypeError(f"Cannot derive column values from {type(attributes).__name__}")

        self._check_columns(values)
        if state.columns:
            values = {k: v for k, v in values.items() if k in state.columns}
        return {k: v for k, v in values.items() if k not in state.omitted}

    async def _execute_update(self, state: StoreState, criteria: Criteria | None, values: dict[str, Any]) -> int:
        stmt = update(self._model).values(**values).execution_options(synchronize_session=False)
        whereclause = self._presenter.where_clause(state, criteria)
        if whereclause is not None:
            stmt = stmt.where(whereclause)
        self._log("update", state, columns=sorted(values))
        async with self._session(state, write=True) as session:
            result = await session.execute(stmt)
        return cast(int, result.rowcount)  # type: ignore[attr-defined]

    async def _execute_delete(self, state: StoreState, criteria: Criteria | None) -> int:
        stmt: Any
        if has_soft_delete(self._model) and not state.unscoped:
            stmt = update(self._model).values(deleted_at=datetime.now(UTC))
        else:
            stmt = delete(self._model)
        stmt = stmt.execution_options(synchronize_session=False)
        whereclause = self._presenter.where_clause(state, criteria)
        if whereclause is not None:
            stmt = stmt.where(whereclause)
        self._log("delete", state)
        async with self._session(state, write=True) as session:
            result = await session.execute(stmt)
        return cast(int, result.rowcount)  # type: ignore[attr-defined]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def find_by_id(self, id: Any) -> T:
        """Find one entity by primary key; raises :class:`NotFoundException`."""
        state = self._consume()
        items = await self._find(state, self._by_id(id).limit(1))
        if not items:
            raise NotFoundException(
                f"{self._model.__name__} with {self._pk_name}={id!r} not found",
                context={"model": self._model.__name__, "id": id},
            )
        return items[0]

    async def find_by_ids(self, ids: Iterable[Any]) -> list[T]:
        state = self._consume()
        ids = list(ids)
        if not ids:
            raise EmptyIdListException(f"find_by_ids on {self._model.__name__} needs at least one id")
        items = await self._find(state, Criteria().where(self._pk.in_(ids)))
        if not items:
            raise NotFoundException(
                f"No {self._model.__name__} found for the given ids",
                context={"model": self._model.__name__, "ids": ids},
            )
        return items

    async def first(self, criteria: Criteria | None = None) -> T:
        """First matching entity; the criteria's offset and ordering are kept."""
        state = self._consume()
        items = await self._find(state, criteria, take=1)
        if not items:
            raise NotFoundException(
                f"No {self._model.__name__} matches the criteria",
                context={"model": self._model.__name__},
            )
        return items[0]

    async def find(self, criteria: Criteria | None = None) -> list[T]:
        """All entities matching *criteria*; an empty list when nothing matches."""
        return await self._find(self._consume(), criteria)

    async def all(self) -> list[T]:
        return await self.find()

    def find_in_batches(self, batch_size: int, criteria: Criteria | None = None) -> AsyncIterator[list[T]]:
        """Iterate matching entities in primary-key order, *batch_size* at a time.

        Ordering and limit/offset of *criteria* are ignored; batches are
        fetched lazily with a keyset condition on the primary key.
        """
        state = self._consume()
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        return self._batches(state, batch_size, criteria)

    async def _batches(self, state: StoreState, batch_size: int, criteria: Criteria | None) -> AsyncIterator[list[T]]:
        last_key: Any = None
        while True:
            batch_criteria = criteria.clone() if criteria is not None else Criteria()
            batch_criteria.unset_order().unset_limit()
            if last_key is not None:
                batch_criteria.where(self._pk > last_key)
            stmt = self._presenter.present(select(self._model), state, batch_criteria)
            stmt = stmt.order_by(self._pk).limit(batch_size)
            async with self._session(state) as session:
                result = await session.execute(stmt)
                rows = list(result.scalars().all())
            if not rows:
                return
            yield rows
            if len(rows) < batch_size:
                return
            last_key = getattr(rows[-1], self._pk_name)

    async def pluck(self, column: str, criteria: Criteria | None = None) -> list[Any]:
        """Values of a single column for every matching row."""
        state = self._consume()
        self._check_columns([column])
        stmt = self._presenter.present(
            select(getattr(self._model, column)), state, criteria, entity_options=False
        )
        self._log("pluck", state, column=column)
        async with self._session(state) as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def scan(self, criteria: Criteria | None = None) -> list[dict[str, Any]]:
        """Matching rows as plain dicts, honouring the column allow/deny lists."""
        state = self._consume()
        names = state.columns or self._column_names
        table_columns = [
            getattr(self._model, name) for name in dict.fromkeys(names) if name not in state.omitted
        ]
        stmt = self._presenter.present(select(*table_columns), state, criteria, entity_options=False)
        self._log("scan", state)
        async with self._session(state) as session:
            result = await session.execute(stmt)
            return [dict(row) for row in result.mappings().all()]

    async def _find(
        self,
        state: StoreState,
        criteria: Criteria | None,
        lock: asyncio.Lock | None = None,
        take: int | None = None,
    ) -> list[T]:
        stmt = self._presenter.present(select(self._model), state, criteria)
        if take is not None:
            stmt = stmt.limit(take)
        self._log("find", state)
        async with self._session(state, lock=lock) as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def _aggregate_source(self, state: StoreState, criteria: Criteria | None) -> Any:
        stripped = criteria.for_aggregate() if criteria is not None else None
        return self._presenter.present(select(self._model), state, stripped, entity_options=False).subquery()

    async def count(self, criteria: Criteria | None = None) -> int:
        """Number of matching rows; ordering and limit/offset are ignored."""
        return await self._count(self._consume(), criteria)

    async def _count(self, state: StoreState, criteria: Criteria | None, lock: asyncio.Lock | None = None) -> int:
        source = self._aggregate_source(state, criteria)
        stmt = select(func.count()).select_from(source)
        self._log("count", state)
        async with self._session(state, lock=lock) as session:
            result = await session.execute(stmt)
            return cast(int, result.scalar_one())

    async def sum(self, column: str, criteria: Criteria | None = None) -> float:
        return await self._aggregate(func.sum, "sum", column, criteria)

    async def avg(self, column: str, criteria: Criteria | None = None) -> float:
        return await self._aggregate(func.avg, "avg", column, criteria)

    async def _aggregate(self, function: Any, name: str, column: str, criteria: Criteria | None) -> float:
        state = self._consume()
        self._check_columns([column])
        source = self._aggregate_source(state, criteria)
        stmt = select(function(source.c[self._column_key(column)]))
        self._log(name, state, column=column)
        async with self._session(state) as session:
            result = await session.execute(stmt)
            value = result.scalar_one()
        return float(value) if value is not None else 0.0

    async def exists(self, criteria: Criteria | None = None) -> bool:
        return await self.count(criteria) > 0

    # ------------------------------------------------------------------
    # Pagination
    # ------------------------------------------------------------------

    async def paginate(self, criteria: Criteria | None = None) -> Pagination[T]:
        """Count and fetch one page concurrently.

        ``page < 1`` becomes 1 and ``per_page < 1`` becomes
        ``StoreProperties.default_per_page``. The first failing query cancels
        the other and its error is raised.
        """
        state = self._consume()
        page_criteria = criteria.clone() if criteria is not None else Criteria()
        if page_criteria.get_page() < 1:
            page_criteria.page(1)
        if page_criteria.get_per_page() < 1:
            page_criteria.per_page(self._properties.default_per_page)

        lock = asyncio.Lock() if state.session is not None else None
        count_task = asyncio.create_task(self._count(state, page_criteria, lock), name="storeit-paginate-count")
        find_task = asyncio.create_task(self._find(state, page_criteria, lock), name="storeit-paginate-find")
        tasks = (count_task, find_task)
        finished: list[asyncio.Task[Any]] = []
        for task in tasks:
            task.add_done_callback(finished.append)

        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            await asyncio.wait(tasks)
            raise

        # completion order, so the earliest failure is the one raised
        first_error: BaseException | None = None
        for finished_task in finished:
            if finished_task in done and not finished_task.cancelled():
                exc = finished_task.exception()
                if exc is not None and first_error is None:
                    first_error = exc

        if first_error is not None:
            for pending_task in pending:
                pending_task.cancel()
            if pending:
                await asyncio.wait(pending)
            raise first_error

        return Pagination(
            total=count_task.result(),
            page=page_criteria.get_page(),
            per_page=page_criteria.get_per_page(),
            items=find_task.result(),
        )
