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
"""Tests for transaction helpers used with Store.set_tx."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import String
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.orm import Mapped, mapped_column

from storeit.data.criteria import Criteria
from storeit.data.relational.sqlalchemy.entity import Base, BaseEntity
from storeit.data.relational.sqlalchemy.store import Store
from storeit.data.relational.sqlalchemy.transactional import reactive_transactional, transaction


class Ledger(BaseEntity):
    __tablename__ = "tx_ledgers"

    label: Mapped[str] = mapped_column(String(100))


def _make_async_cm(enter_value: object = None) -> MagicMock:
    """Return a synchronous MagicMock that acts as an async context manager."""
    cm = MagicMock()
    cm.__aenter__ = AsyncMock(return_value=enter_value)
    cm.__aexit__ = AsyncMock(return_value=False)
    return cm


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tx.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def ledgers(session_factory):
    return Store(Ledger, session_factory)


class TestTransaction:
    @pytest.mark.asyncio
    async def test_commits_on_success(self, session_factory, ledgers):
        async with transaction(session_factory) as session:
            await ledgers.set_tx(session).create(Ledger(label="a"))
            await ledgers.set_tx(session).create(Ledger(label="b"))
        assert await ledgers.count() == 2

    @pytest.mark.asyncio
    async def test_rolls_back_on_error(self, session_factory, ledgers):
        with pytest.raises(RuntimeError, match="boom"):
            async with transaction(session_factory) as session:
                bound = ledgers.set_tx(session)
                await bound.create(Ledger(label="a"))
                await bound.update("label", "b", Criteria().where("label = ?", "a"))
                raise RuntimeError("boom")
        assert await ledgers.count() == 0

    @pytest.mark.asyncio
    async def test_bound_session_survives_terminal_calls(self, session_factory, ledgers):
        async with transaction(session_factory) as session:
            bound = ledgers.set_tx(session)
            await bound.create(Ledger(label="a"))
            assert bound.state.session is session
            assert await bound.count() == 1
            assert await ledgers.count() == 0
        assert await ledgers.count() == 1


class TestReactiveTransactional:
    @pytest.mark.asyncio
    async def test_passes_session_and_arguments(self, session_factory, ledgers):
        @reactive_transactional(session_factory)
        async def record(session, label: str) -> Ledger:
            return await ledgers.set_tx(session).create(Ledger(label=label))

        entry = await record("rent")
        assert entry.id is not None
        assert (await ledgers.find_by_id(entry.id)).label == "rent"

    @pytest.mark.asyncio
    async def test_rollback_on_exception(self, session_factory, ledgers):
        @reactive_transactional(session_factory)
        async def failing(session) -> None:
            await ledgers.set_tx(session).create(Ledger(label="x"))
            raise ValueError("nope")

        with pytest.raises(ValueError):
            await failing()
        assert await ledgers.count() == 0

    @pytest.mark.asyncio
    async def test_preserves_function_metadata(self):
        session = MagicMock()
        session.begin = MagicMock(return_value=_make_async_cm())
        factory = MagicMock(return_value=_make_async_cm(enter_value=session))

        @reactive_transactional(factory)
        async def handler(session) -> str:
            """Docs."""
            return "ok"

        assert handler.__name__ == "handler"
        assert handler.__doc__ == "Docs."
        assert await handler() == "ok"
        factory.assert_called_once()
