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
"""storeit Data — criteria compilation and generic stores.

Build a :class:`Criteria` by chaining, or derive one from an annotated
request object with :func:`extract_criteria`, then run it through a
:class:`Store`::

    users = Store(User, session_factory)
    page = await users.paginate(Criteria().where_contains("name", "doe").page(1))
"""

from storeit.data.criteria import (
    ConditionSpec,
    Criteria,
    DirectiveSchema,
    GroupConditionSpec,
    build_condition_spec,
    criteria_field,
    extract_criteria,
)
from storeit.data.page import Pagination
from storeit.data.quoting import is_reserved_word, quote_reserved_word
from storeit.data.relational.sqlalchemy import (
    Base,
    BaseEntity,
    QueryPresenter,
    SoftDeleteMixin,
    Store,
    StoreState,
    reactive_transactional,
    transaction,
)

__all__ = [
    # Criteria
    "ConditionSpec",
    "Criteria",
    "DirectiveSchema",
    "GroupConditionSpec",
    "build_condition_spec",
    "criteria_field",
    "extract_criteria",
    "is_reserved_word",
    "quote_reserved_word",
    # Results
    "Pagination",
    # Default backend (SQLAlchemy)
    "Base",
    "BaseEntity",
    "QueryPresenter",
    "SoftDeleteMixin",
    "Store",
    "StoreState",
    "reactive_transactional",
    "transaction",
]
