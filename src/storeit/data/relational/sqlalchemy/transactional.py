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
"""Session helpers producing transactions for ``Store.set_tx``."""

from __future__ import annotations

import functools
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

F = TypeVar("F", bound=Callable[..., Any])


@asynccontextmanager
async def transaction(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """Open a session and a transaction; commit on exit, roll back on error.

    Usage:
        async with transaction(session_factory) as session:
            users = store.set_tx(session)
            await users.create(User(name="Alice"))
            await users.deletes(Criteria().where("name = ?", "Bob"))
    """
    async with session_factory() as session, session.begin():
        yield session


def reactive_transactional(
    session_factory: async_sessionmaker[AsyncSession],
) -> Callable[[F], F]:
    """Decorator for declarative async transaction management.

    The decorated function receives an AsyncSession as its first argument.
    On success the transaction is committed; on exception it is rolled back
    and the exception re-raised.

    Usage:
        @reactive_transactional(session_factory)
        async def rename(session: AsyncSession, user_id: int, name: str) -> int:
            return await store.set_tx(session).update_by_id(user_id, "name", name)
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            async with transaction(session_factory) as session:
                return await func(session, *args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator
