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
"""Pagination result returned by :meth:`Store.paginate`."""

from __future__ import annotations

import math
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True)
class Pagination(Generic[T]):
    """A page of results plus the total across all pages.

    Attributes:
        total: Number of rows matching the criteria, ignoring limit/offset.
        page: Current page number (1-based).
        per_page: Maximum items per page.
        items: The rows on this page.
    """

    total: int
    page: int
    per_page: int
    items: list[T]

    @property
    def total_pages(self) -> int:
        if self.total == 0:
            return 0
        return math.ceil(self.total / self.per_page)

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    def map(self, func: Callable[[T], U]) -> Pagination[U]:
        """Transform items, preserving pagination metadata."""
        return Pagination(
            total=self.total,
            page=self.page,
            per_page=self.per_page,
            items=[func(item) for item in self.items],
        )

    def to_dict(self, item_serializer: Callable[[T], Any] | None = None) -> dict[str, Any]:
        """JSON-friendly form: ``{"total", "page", "per_page", "items"}``."""
        items = [item_serializer(item) for item in self.items] if item_serializer else list(self.items)
        return {
            "total": self.total,
            "page": self.page,
            "per_page": self.per_page,
            "items": items,
        }
