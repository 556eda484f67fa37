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
"""Criteria model, directive extractor and predicate primitives."""

from storeit.data.criteria.criteria import Criteria
from storeit.data.criteria.extractor import (
    AttributeAccessor,
    Directive,
    DirectiveSchema,
    FieldAccessor,
    MappingAccessor,
    build_condition_spec,
    criteria_field,
    extract_criteria,
    is_zero,
)
from storeit.data.criteria.spec import (
    ConditionSpec,
    GroupConditionSpec,
    HavingSpec,
    JoinSpec,
    LimitScope,
    OrderScope,
    PredicateScope,
    PreloadSpec,
    RawScope,
    ScopeStep,
)

__all__ = [
    "AttributeAccessor",
    "ConditionSpec",
    "Criteria",
    "Directive",
    "DirectiveSchema",
    "FieldAccessor",
    "GroupConditionSpec",
    "HavingSpec",
    "JoinSpec",
    "LimitScope",
    "MappingAccessor",
    "OrderScope",
    "PredicateScope",
    "PreloadSpec",
    "RawScope",
    "ScopeStep",
    "build_condition_spec",
    "criteria_field",
    "extract_criteria",
    "is_zero",
]
