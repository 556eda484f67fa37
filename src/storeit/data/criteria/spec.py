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
"""Immutable predicate primitives accumulated by :class:`Criteria`.

A fragment (``query``) is one of:

* a SQL string with ``?`` positional placeholders bound to ``args``,
  e.g. ``ConditionSpec("age > ?", (18,))``;
* a mapping of column name to value, AND-ed as equality tests;
* a SQLAlchemy clause element, used verbatim.

Fragments are pure data: nothing touches the database until a
:class:`~storeit.data.relational.sqlalchemy.presenter.QueryPresenter`
applies them to a statement.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any, TypeAlias

from sqlalchemy import Select


@dataclass(frozen=True)
class ConditionSpec:
    """One predicate fragment plus its bound values."""

    query: Any
    args: tuple[Any, ...] = ()

    @staticmethod
    def empty() -> ConditionSpec:
        """The "no predicate produced" value."""
        return ConditionSpec(query="")

    @property
    def is_empty(self) -> bool:
        return self.query is None or (isinstance(self.query, str) and not self.query.strip())


@dataclass(frozen=True)
class GroupConditionSpec:
    """Conditions OR-ed with each other and AND-ed with everything else."""

    conditions: tuple[ConditionSpec, ...] = ()

    def __iter__(self) -> Iterator[ConditionSpec]:
        return iter(self.conditions)

    def __len__(self) -> int:
        return len(self.conditions)


@dataclass(frozen=True)
class JoinSpec:
    """A join applied verbatim to the compiled query.

    ``target`` is a relationship path on the model (``"emails"``), whose
    ON clause may be narrowed by a fragment in ``args``, or a mapped class
    or table joined with the explicit ON clause in ``args[0]``.
    """

    target: Any
    args: tuple[Any, ...] = ()
    outer: bool = False


@dataclass(frozen=True)
class HavingSpec:
    query: Any
    args: tuple[Any, ...] = ()


@dataclass(frozen=True)
class PreloadSpec:
    """Eager-load request for a (dotted) relationship path.

    Optional ``args`` restrict the related rows, either as a fragment with
    bound values (``"subscribed = ?", True``) or as clause elements.
    """

    name: str
    args: tuple[Any, ...] = ()


# ----------------------------------------------------------------------
# Scope steps
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class PredicateScope:
    """Extra WHERE condition applied after everything else."""

    condition: ConditionSpec


@dataclass(frozen=True)
class OrderScope:
    """Extra ORDER BY directive applied after the criteria orders."""

    order: str


@dataclass(frozen=True)
class LimitScope:
    """Overrides limit and offset of the compiled query."""

    limit: int
    offset: int = 0


@dataclass(frozen=True)
class RawScope:
    """Escape hatch: an arbitrary ``Select -> Select`` transformation."""

    transform: Callable[[Select[Any]], Select[Any]]


ScopeStep: TypeAlias = PredicateScope | OrderScope | LimitScope | RawScope


def as_scope_step(step: ScopeStep | Callable[[Select[Any]], Select[Any]]) -> ScopeStep:
    """Normalise a bare callable into a :class:`RawScope`."""
    if isinstance(step, PredicateScope | OrderScope | LimitScope | RawScope):
        return step
    if callable(step):
        return RawScope(transform=step)
    raise TypeError(f"Unsupported scope step: {step!r}")
