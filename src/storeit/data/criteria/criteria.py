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
"""Criteria — a backend-agnostic search specification built by chaining.

Example::

    criteria = (
        Criteria()
        .where("status = ?", "active")
        .where_gte("age", 18)
        .where_contains("name", "doe")
        .order_desc("created_at")
        .page(2)
        .per_page(20)
    )
    users = await store.find(criteria)

Every mutator appends to the accumulator and returns the same instance.
Field names handed to the comparison and ordering helpers are passed
through :func:`~storeit.data.quoting.quote_reserved_word`.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

from sqlalchemy import Select

from storeit.data.criteria.spec import (
    ConditionSpec,
    GroupConditionSpec,
    HavingSpec,
    JoinSpec,
    PredicateScope,
    PreloadSpec,
    RawScope,
    ScopeStep,
    as_scope_step,
)
from storeit.data.quoting import quote_reserved_word


class Criteria:
    """Accumulates filters, ordering, grouping and pagination directives."""

    def __init__(self) -> None:
        self._where: list[ConditionSpec] = []
        self._or: list[ConditionSpec] = []
        self._not: list[ConditionSpec] = []
        self._group_or: list[GroupConditionSpec] = []
        self._having: list[HavingSpec] = []
        self._joins: list[JoinSpec] = []
        self._preloads: list[PreloadSpec] = []
        self._scopes: list[ScopeStep] = []
        self._orders: list[str] = []
        self._limit: int = 0
        self._offset: int = 0
        self._page: int = 0
        self._group: str = ""

    def __repr__(self) -> str:
        return (
            f"Criteria(where={len(self._where)}, or={len(self._or)}, not={len(self._not)}, "
            f"group_or={len(self._group_or)}, orders={self._orders!r}, limit={self._limit}, "
            f"offset={self._offset}, page={self._page}, group={self._group!r})"
        )

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    def where(self, query: Any, *args: Any) -> Criteria:
        """AND a predicate: ``where("age > ?", 18)`` or ``where({"name": "x"})``."""
        self._where.append(ConditionSpec(query, tuple(args)))
        return self

    def where_not(self, query: Any, *args: Any) -> Criteria:
        self._not.append(ConditionSpec(query, tuple(args)))
        return self

    def or_where(self, query: Any, *args: Any) -> Criteria:
        self._or.append(ConditionSpec(query, tuple(args)))
        return self

    def where_gt(self, field: str, value: Any) -> Criteria:
        return self.where(f"{quote_reserved_word(field)} > ?", value)

    def where_gte(self, field: str, value: Any) -> Criteria:
        return self.where(f"{quote_reserved_word(field)} >= ?", value)

    def where_lt(self, field: str, value: Any) -> Criteria:
        return self.where(f"{quote_reserved_word(field)} < ?", value)

    def where_lte(self, field: str, value: Any) -> Criteria:
        return self.where(f"{quote_reserved_word(field)} <= ?", value)

    def where_neq(self, field: str, value: Any) -> Criteria:
        return self.where(f"{quote_reserved_word(field)} <> ?", value)

    def where_is_null(self, field: str) -> Criteria:
        return self.where(f"{quote_reserved_word(field)} IS NULL")

    def where_not_null(self, field: str) -> Criteria:
        return self.where(f"{quote_reserved_word(field)} IS NOT NULL")

    def where_in(self, field: str, values: Iterable[Any]) -> Criteria:
        return self.where(f"{quote_reserved_word(field)} IN ?", list(values))

    def where_not_in(self, field: str, values: Iterable[Any]) -> Criteria:
        return self.where(f"{quote_reserved_word(field)} NOT IN ?", list(values))

    def where_between(self, field: str, start: Any, end: Any) -> Criteria:
        return self.where(f"{quote_reserved_word(field)} BETWEEN ? AND ?", start, end)

    def where_start_with(self, field: str, value: str) -> Criteria:
        return self.where(f"{quote_reserved_word(field)} LIKE ?", f"{value}%")

    def where_end_with(self, field: str, value: str) -> Criteria:
        return self.where(f"{quote_reserved_word(field)} LIKE ?", f"%{value}")

    def where_contains(self, field: str, value: str) -> Criteria:
        return self.where(f"{quote_reserved_word(field)} LIKE ?", f"%{value}%")

    def group_or(self, group: GroupConditionSpec | Iterable[ConditionSpec]) -> Criteria:
        """AND one OR-group of conditions; empty groups are ignored."""
        if not isinstance(group, GroupConditionSpec):
            group = GroupConditionSpec(tuple(group))
        if len(group) > 0:
            self._group_or.append(group)
        return self

    def having(self, query: Any, *args: Any) -> Criteria:
        self._having.append(HavingSpec(query, tuple(args)))
        return self

    def joins(self, target: Any, *args: Any, outer: bool = False) -> Criteria:
        self._joins.append(JoinSpec(target, tuple(args), outer))
        return self

    def add_preload(self, name: str, *args: Any) -> Criteria:
        self._preloads.append(PreloadSpec(name, tuple(args)))
        return self

    def scope_closure(self, step: ScopeStep | Callable[[Select[Any]], Select[Any]]) -> Criteria:
        """Append a scope step, applied after every other directive."""
        self._scopes.append(as_scope_step(step))
        return self

    # ------------------------------------------------------------------
    # Ordering, grouping, pagination
    # ------------------------------------------------------------------

    def order(self, field: str, descending: bool = False) -> Criteria:
        statement = quote_reserved_word(field)
        self._orders.append(f"{statement} DESC" if descending else statement)
        return self

    def order_asc(self, field: str) -> Criteria:
        return self.order(field, False)

    def order_desc(self, field: str) -> Criteria:
        return self.order(field, True)

    def limit(self, limit: int) -> Criteria:
        self._limit = limit
        return self

    def offset(self, offset: int) -> Criteria:
        self._offset = offset
        return self

    def page(self, page: int) -> Criteria:
        self._page = max(page, 1)
        return self

    def per_page(self, per_page: int) -> Criteria:
        self._limit = per_page
        return self

    def group(self, query: str) -> Criteria:
        self._group = query
        return self

    def get_page(self) -> int:
        return self._page

    def get_per_page(self) -> int:
        return self._limit

    def get_limit(self) -> int:
        return self._limit

    def get_group(self) -> str:
        return self._group

    def get_offset(self) -> int:
        """Explicit offset when positive, otherwise derived from page and limit."""
        if self._offset > 0:
            return self._offset
        if self._page < 1:
            return 0
        return self._limit * (self._page - 1)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def where_conditions(self) -> tuple[ConditionSpec, ...]:
        return tuple(self._where)

    @property
    def or_conditions(self) -> tuple[ConditionSpec, ...]:
        return tuple(self._or)

    @property
    def not_conditions(self) -> tuple[ConditionSpec, ...]:
        return tuple(self._not)

    @property
    def group_or_conditions(self) -> tuple[GroupConditionSpec, ...]:
        return tuple(self._group_or)

    @property
    def having_conditions(self) -> tuple[HavingSpec, ...]:
        return tuple(self._having)

    @property
    def join_conditions(self) -> tuple[JoinSpec, ...]:
        return tuple(self._joins)

    @property
    def preloads(self) -> tuple[PreloadSpec, ...]:
        return tuple(self._preloads)

    @property
    def scope_steps(self) -> tuple[ScopeStep, ...]:
        return tuple(self._scopes)

    @property
    def orders(self) -> tuple[str, ...]:
        return tuple(self._orders)

    def has_predicates(self) -> bool:
        """Whether any filtering directive (or a scope that may filter) is present."""
        if self._where or self._or or self._not or self._group_or:
            return True
        return any(isinstance(step, PredicateScope | RawScope) for step in self._scopes)

    # ------------------------------------------------------------------
    # Copies
    # ------------------------------------------------------------------

    def clone(self) -> Criteria:
        """Independent copy; primitives are immutable so lists are copied shallowly."""
        other = Criteria()
        other._where = list(self._where)
        other._or = list(self._or)
        other._not = list(self._not)
        other._group_or = list(self._group_or)
        other._having = list(self._having)
        other._joins = list(self._joins)
        other._preloads = list(self._preloads)
        other._scopes = list(self._scopes)
        other._orders = list(self._orders)
        other._limit = self._limit
        other._offset = self._offset
        other._page = self._page
        other._group = self._group
        return other

    def unset_order(self) -> Criteria:
        self._orders = []
        return self

    def unset_limit(self) -> Criteria:
        self._limit = 0
        self._offset = 0
        return self

    def for_aggregate(self) -> Criteria:
        """Clone with ordering and limit/offset stripped (count, sum, avg)."""
        return self.clone().unset_order().unset_limit()
