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
"""Compile annotated request objects into :class:`Criteria`.

A directive tag has the shape ``"<targets>:<operator>"``. ``<targets>`` is
a comma-separated list of column names, or ``-`` for meta directives
(``page``, ``per_page``, ``offset``, ``limit``, ``sort``)::

    @dataclass
    class UserQuery:
        keyword: str = criteria_field("name,nickname:like")
        age: int = criteria_field("age:gte", default=0)
        sort: str = criteria_field("-:sort")
        page: int = criteria_field("-:page", default=0)

    criteria = extract_criteria(UserQuery(keyword="john", sort="age-"))

Tags are parsed once per type into a :class:`DirectiveSchema`; extraction
then walks the schema over a :class:`FieldAccessor`, so plain mappings work
as well as dataclasses and pydantic models.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Protocol, runtime_checkable

import structlog
from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError

from storeit.data.criteria.criteria import Criteria
from storeit.data.criteria.spec import ConditionSpec, GroupConditionSpec
from storeit.data.quoting import quote_reserved_word
from storeit.kernel.exceptions import (
    MalformedTagException,
    NilSourceException,
    NotAStructException,
    TypeCoercionException,
)

logger = structlog.get_logger("storeit.criteria")

CRITERIA_TAG = "criteria"
META_TARGET = "-"

COMPARISON_OPERATORS: dict[str, str] = {
    "eq": "=",
    "neq": "<>",
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
    "in": "IN",
}

LIKE_PATTERNS: dict[str, str] = {
    "like": "%{}%",
    "llike": "%{}",
    "rlike": "{}%",
}

META_OPERATORS = frozenset({"page", "per_page", "offset", "limit", "sort"})

_INT_ADAPTER: TypeAdapter[int] = TypeAdapter(int)
_STR_ADAPTER: TypeAdapter[str] = TypeAdapter(str, config=ConfigDict(coerce_numbers_to_str=True))


def criteria_field(tag: str, default: Any = None, **kwargs: Any) -> Any:
    """Dataclass ``field()`` carrying a criteria directive tag."""
    metadata = dict(kwargs.pop("metadata", None) or {})
    metadata[CRITERIA_TAG] = tag
    if "default_factory" in kwargs:
        return dataclasses.field(metadata=metadata, **kwargs)
    return dataclasses.field(default=default, metadata=metadata, **kwargs)


# ----------------------------------------------------------------------
# Schema
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class Directive:
    """One parsed tag: which source field feeds which targets, and how."""

    source: str
    targets: tuple[str, ...]
    operator: str

    @property
    def is_meta(self) -> bool:
        return self.targets == (META_TARGET,)

    @classmethod
    def parse(cls, source: str, tag: str) -> Directive:
        parts = tag.split(":")
        if len(parts) != 2:
            raise MalformedTagException(
                f"Criteria tag on '{source}' must look like '<targets>:<operator>', got '{tag}'",
                context={"field": source, "tag": tag},
            )
        targets = tuple(t.strip() for t in parts[0].split(",") if t.strip())
        operator = parts[1].strip()
        if not targets or not operator:
            raise MalformedTagException(
                f"Criteria tag on '{source}' has an empty target list or operator: '{tag}'",
                context={"field": source, "tag": tag},
            )
        return cls(source=source, targets=targets, operator=operator)


@dataclass(frozen=True)
class DirectiveSchema:
    """Ordered, pre-parsed directive table for one record shape."""

    directives: tuple[Directive, ...] = ()

    @classmethod
    def for_type(cls, record_type: type) -> DirectiveSchema:
        """Schema for a dataclass or pydantic model class, parsed once per type."""
        return _schema_for_type(record_type)

    @classmethod
    def from_mapping(cls, tags: Mapping[str, str]) -> DirectiveSchema:
        """Schema from ``{source_key: tag}``, for extracting plain mappings."""
        return cls(tuple(Directive.parse(source, tag) for source, tag in tags.items()))

    def __len__(self) -> int:
        return len(self.directives)


@lru_cache(maxsize=None)
def _schema_for_type(record_type: type) -> DirectiveSchema:
    tags: list[tuple[str, str]] = []
    if isinstance(record_type, type) and issubclass(record_type, BaseModel):
        for name, info in record_type.model_fields.items():
            extra = info.json_schema_extra
            if isinstance(extra, dict) and extra.get(CRITERIA_TAG):
                tags.append((name, str(extra[CRITERIA_TAG])))
    elif dataclasses.is_dataclass(record_type):
        for f in dataclasses.fields(record_type):
            tag = f.metadata.get(CRITERIA_TAG)
            if tag:
                tags.append((f.name, tag))
    else:
        raise NotAStructException(
            f"{record_type.__name__} is neither a dataclass nor a pydantic model",
            context={"type": record_type.__name__},
        )
    return DirectiveSchema(tuple(Directive.parse(name, tag) for name, tag in tags))


# ----------------------------------------------------------------------
# Field access
# ----------------------------------------------------------------------


def is_zero(value: Any) -> bool:
    """None, False, numeric zero and empty strings/collections count as absent."""
    if value is None or value is False:
        return True
    if isinstance(value, int | float) and value == 0:
        return True
    if isinstance(value, str | bytes | list | tuple | set | frozenset | dict):
        return len(value) == 0
    return False


@runtime_checkable
class FieldAccessor(Protocol):
    def get(self, name: str) -> Any: ...

    def is_zero(self, name: str) -> bool: ...


class AttributeAccessor:
    """Reads fields of a dataclass instance or pydantic model."""

    def __init__(self, record: Any) -> None:
        self._record = record

    def get(self, name: str) -> Any:
        return getattr(self._record, name, None)

    def is_zero(self, name: str) -> bool:
        return is_zero(self.get(name))


class MappingAccessor:
    def __init__(self, data: Mapping[str, Any]) -> None:
        self._data = data

    def get(self, name: str) -> Any:
        return self._data.get(name)

    def is_zero(self, name: str) -> bool:
        return is_zero(self.get(name))


# ----------------------------------------------------------------------
# Compilation
# ----------------------------------------------------------------------


def build_condition_spec(operator: str, field: str, value: Any) -> ConditionSpec:
    """Compile one operator directive; unknown operators yield an empty spec."""
    column = quote_reserved_word(field.strip())
    if operator in COMPARISON_OPERATORS:
        return ConditionSpec(f"{column} {COMPARISON_OPERATORS[operator]} ?", (value,))
    if operator in LIKE_PATTERNS:
        text = _coerce(_STR_ADAPTER, value, operator, field)
        return ConditionSpec(f"{column} LIKE ?", (LIKE_PATTERNS[operator].format(text),))
    return ConditionSpec.empty()


def _coerce(adapter: TypeAdapter[Any], value: Any, operator: str, source: str) -> Any:
    try:
        return adapter.validate_python(value)
    except ValidationError as exc:
        raise TypeCoercionException(
            f"Cannot coerce {value!r} for '{operator}' on '{source}'",
            context={"field": source, "operator": operator, "value": value},
        ) from exc


def _apply_meta(criteria: Criteria, directive: Directive, value: Any) -> None:
    op = directive.operator
    if op == "sort":
        text = _coerce(_STR_ADAPTER, value, op, directive.source)
        for token in text.split(","):
            token = token.strip()
            name = token.rstrip("+-").strip()
            if name:
                criteria.order(name, token.endswith("-"))
        return

    number = _coerce(_INT_ADAPTER, value, op, directive.source)
    if op == "page":
        criteria.page(number)
    elif op == "per_page":
        criteria.per_page(number)
    elif op == "offset":
        criteria.offset(number)
    elif op == "limit":
        criteria.limit(number)


def _accessor_for(source: Any, schema: DirectiveSchema | None) -> tuple[FieldAccessor, DirectiveSchema]:
    if schema is not None:
        accessor: FieldAccessor = MappingAccessor(source) if isinstance(source, Mapping) else AttributeAccessor(source)
        return accessor, schema
    if isinstance(source, BaseModel) or (dataclasses.is_dataclass(source) and not isinstance(source, type)):
        return AttributeAccessor(source), DirectiveSchema.for_type(type(source))
    raise NotAStructException(
        f"Cannot extract criteria from {type(source).__name__}; pass a dataclass, a pydantic model or a schema",
        context={"type": type(source).__name__},
    )


def extract_criteria(source: Any, schema: DirectiveSchema | None = None) -> Criteria:
    """Build a :class:`Criteria` from the non-zero tagged fields of *source*.

    Args:
        source: Dataclass instance, pydantic model, or (with *schema*) any
            mapping or attribute-bearing object.
        schema: Explicit directive table; defaults to the one declared on
            the source type.

    Raises:
        NilSourceException: *source* is None.
        NotAStructException: *source* has no declared schema and none was given.
        MalformedTagException: A tag does not have the <targets>:<operator> shape.
        TypeCoercionException: A meta directive value cannot be converted.
    """
    if source is None:
        raise NilSourceException("Cannot extract criteria from None")

    accessor, schema = _accessor_for(source, schema)
    criteria = Criteria()

    for directive in schema.directives:
        if accessor.is_zero(directive.source):
            continue
        value = accessor.get(directive.source)

        if directive.operator in META_OPERATORS:
            _apply_meta(criteria, directive, value)
            continue

        specs = [
            spec
            for spec in (build_condition_spec(directive.operator, target, value) for target in directive.targets)
            if not spec.is_empty
        ]
        if not specs:
            logger.debug("criteria_operator_ignored", field=directive.source, operator=directive.operator)
            continue

        if len(directive.targets) > 1:
            criteria.group_or(GroupConditionSpec(tuple(specs)))
        else:
            criteria.where(specs[0].query, *specs[0].args)

    return criteria
