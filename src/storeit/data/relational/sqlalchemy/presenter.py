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
"""Compile store state plus :class:`Criteria` into a SQLAlchemy ``Select``.

The presenter applies directives in a fixed order so that the produced SQL
is reproducible:

1. preloads (store, then criteria)
2. hidden columns, then selected columns
3. soft-delete visibility
4. OR-groups, where, or, not
5. having, joins
6. group by, order by
7. offset, limit
8. scope steps (store, then criteria)

String fragments use ``?`` placeholders; each is rewritten to a uniquely
named bound parameter, so fragments from different sources never collide.
"""

from __future__ import annotations

import itertools
import re
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from sqlalchemy import ColumnElement, Select, and_, bindparam, column, not_, or_, select, text
from sqlalchemy.orm import defer, load_only, selectinload
from sqlalchemy.sql.elements import ClauseElement

from storeit.data.criteria.criteria import Criteria
from storeit.data.criteria.spec import (
    ConditionSpec,
    HavingSpec,
    JoinSpec,
    LimitScope,
    OrderScope,
    PredicateScope,
    PreloadSpec,
    RawScope,
    ScopeStep,
)
from storeit.data.relational.sqlalchemy.entity import has_soft_delete

if TYPE_CHECKING:
    from storeit.data.relational.sqlalchemy.store import StoreState

_BOOLEAN_OPERATOR_RE = re.compile(r"\b(AND|OR)\b", re.IGNORECASE)
_EXPANDING_TYPES = (list, tuple, set, frozenset)


class FragmentRenderer:
    """Turns predicate fragments into SQLAlchemy expressions for one statement."""

    def __init__(self, model: type) -> None:
        self._model = model
        self._counter = itertools.count(1)

    def render(self, query: Any, args: Iterable[Any] = (), model: type | None = None) -> ColumnElement[bool] | None:
        """Render a fragment, or return ``None`` when it carries no predicate."""
        if query is None:
            return None
        if isinstance(query, ClauseElement):
            return query  # type: ignore[return-value]
        if isinstance(query, Mapping):
            if not query:
                return None
            target = model or self._model
            return and_(*(_column_of(target, name) == value for name, value in query.items()))
        if isinstance(query, str):
            if not query.strip():
                return None
            return self._text(query, tuple(args))
        raise TypeError(f"Unsupported predicate fragment: {query!r}")

    def render_condition(self, condition: ConditionSpec) -> ColumnElement[bool] | None:
        return self.render(condition.query, condition.args)

    def negate(self, condition: ConditionSpec) -> ColumnElement[bool] | None:
        if isinstance(condition.query, str):
            if not condition.query.strip():
                return None
            return self._text(f"NOT ({condition.query})", condition.args, parenthesize=False)
        clause = self.render_condition(condition)
        return None if clause is None else not_(clause)

    def _text(self, fragment: str, args: tuple[Any, ...], parenthesize: bool = True) -> Any:
        pieces = fragment.replace(":", "\\:").split("?")
        if len(pieces) - 1 != len(args):
            raise ValueError(
                f"Fragment '{fragment}' has {len(pieces) - 1} placeholder(s) but {len(args)} value(s) were given"
            )
        sql = pieces[0]
        binds = []
        for value, piece in zip(args, pieces[1:], strict=True):
            name = f"p_{next(self._counter)}"
            sql += f":{name}{piece}"
            if isinstance(value, _EXPANDING_TYPES):
                binds.append(bindparam(name, list(value), expanding=True))
            else:
                binds.append(bindparam(name, value))
        if parenthesize and _BOOLEAN_OPERATOR_RE.search(fragment):
            sql = f"({sql})"
        clause = text(sql)
        return clause.bindparams(*binds) if binds else clause


def _column_of(model: type, name: str) -> Any:
    table = getattr(model, "__table__", None)
    if table is not None and name in table.c:
        return getattr(model, name, table.c[name])
    return column(name)


def _attribute(model: type, name: str) -> Any:
    attr = getattr(model, name, None)
    if attr is None or not hasattr(attr, "property"):
        raise ValueError(f"{model.__name__} has no mapped attribute '{name}'")
    return attr


class QueryPresenter:
    """Applies store state and criteria to a statement for one model."""

    def __init__(self, model: type) -> None:
        self._model = model
        self._soft_delete = has_soft_delete(model)

    @property
    def model(self) -> type:
        return self._model

    def present(
        self,
        stmt: Select[Any],
        state: StoreState,
        criteria: Criteria | None = None,
        *,
        entity_options: bool = True,
    ) -> Select[Any]:
        """Return *stmt* with every directive of *state* and *criteria* applied.

        Args:
            stmt: Base statement, usually ``select(model)``.
            state: Store projection/scope snapshot.
            criteria: Optional search criteria.
            entity_options: Apply preload and projection loader options;
                disabled for column-only statements (pluck, aggregates).
        """
        renderer = FragmentRenderer(self._model)

        if entity_options:
            preloads = list(state.preloads) + (list(criteria.preloads) if criteria else [])
            for preload in preloads:
                stmt = stmt.options(self._preload_option(preload, renderer))
            if state.omitted:
                stmt = stmt.options(*(defer(_attribute(self._model, name)) for name in state.omitted))
            if state.columns:
                stmt = stmt.options(load_only(*(_attribute(self._model, name) for name in state.columns)))

        conditions = self._conditions(state, criteria, renderer)
        if conditions:
            stmt = stmt.where(*conditions)

        if criteria is not None:
            for having in criteria.having_conditions:
                stmt = self._apply_having(stmt, having, renderer)
            for join in criteria.join_conditions:
                stmt = self._apply_join(stmt, join, renderer)
            if criteria.get_group():
                stmt = stmt.group_by(text(criteria.get_group()))
            for order in criteria.orders:
                stmt = stmt.order_by(text(order))

            offset = criteria.get_offset()
            if offset > 0:
                stmt = stmt.offset(offset)
            if criteria.get_limit() > 0 or offset > 0:
                stmt = stmt.limit(criteria.get_limit() or None)

        steps = list(state.scopes) + (list(criteria.scope_steps) if criteria else [])
        for step in steps:
            stmt = self._apply_scope(stmt, step, renderer)
        return stmt

    def where_clause(self, state: StoreState, criteria: Criteria | None = None) -> ColumnElement[bool] | None:
        """Combined WHERE expression of the presented select, for bulk writes."""
        presented = self.present(select(self._model), state, criteria, entity_options=False)
        return presented.whereclause

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _conditions(
        self, state: StoreState, criteria: Criteria | None, renderer: FragmentRenderer
    ) -> list[ColumnElement[bool]]:
        conditions: list[ColumnElement[bool]] = []
        if self._soft_delete and not state.unscoped:
            conditions.append(self._model.deleted_at.is_(None))  # type: ignore[attr-defined]
        if criteria is None:
            return conditions

        filters: list[ColumnElement[bool]] = []
        for group in criteria.group_or_conditions:
            members = [c for c in (renderer.render_condition(m) for m in group) if c is not None]
            if len(members) == 1:
                filters.append(members[0])
            elif members:
                filters.append(or_(*members))
        for condition in criteria.where_conditions:
            clause = renderer.render_condition(condition)
            if clause is not None:
                filters.append(clause)

        alternatives = [c for c in (renderer.render_condition(o) for o in criteria.or_conditions) if c is not None]
        if alternatives:
            base = [and_(*filters)] if filters else []
            filters = [or_(*base, *alternatives)]

        for condition in criteria.not_conditions:
            clause = renderer.negate(condition)
            if clause is not None:
                filters.append(clause)

        return conditions + filters

    def _preload_option(self, preload: PreloadSpec, renderer: FragmentRenderer) -> Any:
        owner = self._model
        option: Any = None
        path = preload.name.split(".")
        for index, name in enumerate(path):
            attr = _attribute(owner, name)
            target = attr.property.mapper.class_
            if index == len(path) - 1 and preload.args:
                restriction = renderer.render(preload.args[0], preload.args[1:], model=target)
                if restriction is not None:
                    attr = attr.and_(restriction)
            option = selectinload(attr) if option is None else option.selectinload(attr)
            owner = target
        return option

    def _apply_having(self, stmt: Select[Any], having: HavingSpec, renderer: FragmentRenderer) -> Select[Any]:
        clause = renderer.render(having.query, having.args)
        return stmt if clause is None else stmt.having(clause)

    def _apply_join(self, stmt: Select[Any], join: JoinSpec, renderer: FragmentRenderer) -> Select[Any]:
        if isinstance(join.target, str):
            attr = _attribute(self._model, join.target)
            if join.args:
                restriction = renderer.render(join.args[0], join.args[1:], model=attr.property.mapper.class_)
                if restriction is not None:
                    attr = attr.and_(restriction)
            return stmt.outerjoin(attr) if join.outer else stmt.join(attr)

        if not join.args:
            return stmt.outerjoin(join.target) if join.outer else stmt.join(join.target)
        on_clause = renderer.render(join.args[0], join.args[1:])
        return stmt.join(join.target, on_clause, isouter=join.outer)

    def _apply_scope(self, stmt: Select[Any], step: ScopeStep, renderer: FragmentRenderer) -> Select[Any]:
        if isinstance(step, PredicateScope):
            clause = renderer.render_condition(step.condition)
            return stmt if clause is None else stmt.where(clause)
        if isinstance(step, OrderScope):
            return stmt.order_by(text(step.order))
        if isinstance(step, LimitScope):
            return stmt.limit(step.limit or None).offset(step.offset or None)
        if isinstance(step, RawScope):
            return step.transform(stmt)
        raise TypeError(f"Unsupported scope step: {step!r}")
