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
"""Tests for BaseEntity and SoftDeleteMixin."""

from datetime import datetime

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from storeit.data.relational.sqlalchemy.entity import BaseEntity, SoftDeleteMixin, has_soft_delete


class Plain(BaseEntity):
    __tablename__ = "entity_plain"

    name: Mapped[str] = mapped_column(String(50))


class Trashable(SoftDeleteMixin, BaseEntity):
    __tablename__ = "entity_trashable"

    name: Mapped[str] = mapped_column(String(50))


class TestBaseEntity:
    def test_audit_columns(self):
        columns = set(Plain.__table__.c.keys())
        assert {"id", "created_at", "updated_at", "name"} <= columns

    def test_integer_primary_key(self):
        assert [c.name for c in Plain.__table__.primary_key] == ["id"]
        assert Plain.__table__.c.id.autoincrement is True


class TestSoftDeleteMixin:
    def test_detection(self):
        assert has_soft_delete(Trashable)
        assert not has_soft_delete(Plain)
        assert not has_soft_delete(object)

    def test_is_deleted(self):
        item = Trashable(name="x")
        assert not item.is_deleted
        item.deleted_at = datetime(2024, 1, 1)
        assert item.is_deleted
