"""Tests for extracting Criteria from annotated request objects."""

from dataclasses import dataclass, field

import pytest
from pydantic import BaseModel, Field

from storeit.data.criteria import (
    ConditionSpec,
    Directive,
    DirectiveSchema,
    GroupConditionSpec,
    build_condition_spec,
    criteria_field,
    extract_criteria,
    is_zero,
)
from storeit.kernel.exceptions import (
    InvalidSourceException,
    MalformedTagException,
    NilSourceException,
    NotAStructException,
    TypeCoercionException,
)


@dataclass
class UserQuery:
    id: int = criteria_field("id:eq", default=0)
    keywords: str = criteria_field("name,nickname:like", default="")
    keywords2: str = criteria_field("a,b:llike", default="")
    keywords3: str = criteria_field("c:rlike", default="")
    mobile: str = criteria_field("mobile:eq", default="")
    created_at: str = criteria_field("created_at:gte", default="")
    updated_at: str = criteria_field("updated_at:lte", default="")
    page: int = criteria_field("-:page", default=0)
    per_page: int = criteria_field("-:per_page", default=0)
    limit: int = criteria_field("-:limit", default=0)
    offset: int = criteria_field("-:offset", default=0)
    sort: str = criteria_field("-:sort", default="")


class TestExtractCriteria:
    def test_populated_request(self):
        criteria = extract_criteria(
            UserQuery(
                id=1,
                keywords="john",
                keywords2="week",
                keywords3="day",
                mobile="1234t789",
                created_at="2022-01-01",
                updated_at="2022-02-01",
                page=2,
                per_page=10,
                limit=10,
                offset=10,
                sort="name+,age-",
            )
        )

        assert criteria.where_conditions == (
            ConditionSpec("id = ?", (1,)),
            ConditionSpec("c LIKE ?", ("day%",)),
            ConditionSpec("mobile = ?", ("1234t789",)),
            ConditionSpec("created_at >= ?", ("2022-01-01",)),
            ConditionSpec("updated_at <= ?", ("2022-02-01",)),
        )
        assert criteria.group_or_conditions == (
            GroupConditionSpec((ConditionSpec("name LIKE ?", ("%john%",)), ConditionSpec("nickname LIKE ?", ("%john%",)))),
            GroupConditionSpec((ConditionSpec("a LIKE ?", ("%week",)), ConditionSpec("b LIKE ?", ("%week",)))),
        )
        assert criteria.orders == ("name", "age DESC")
        assert criteria.get_limit() == 10
        assert criteria.get_offset() == 10
        assert criteria.get_page() == 2

    def test_zero_valued_fields_are_skipped(self):
        criteria = extract_criteria(UserQuery())
        assert criteria.where_conditions == ()
        assert criteria.group_or_conditions == ()
        assert criteria.orders == ()
        assert criteria.get_page() == 0

    def test_untagged_dataclass(self):
        @dataclass
        class Plain:
            id: int = 0
            name: str = ""

        criteria = extract_criteria(Plain(id=1, name="x"))
        assert not criteria.has_predicates()

    def test_group_with_three_targets(self):
        @dataclass
        class Search:
            q: str = criteria_field("name,nickname,email:like", default="")

        criteria = extract_criteria(Search(q="doe"))
        (group,) = criteria.group_or_conditions
        assert len(group) == 3
        assert [c.query for c in group] == ["name LIKE ?", "nickname LIKE ?", "email LIKE ?"]

    def test_reserved_target_is_quoted(self):
        @dataclass
        class Search:
            order: int = criteria_field("order:eq", default=0)

        criteria = extract_criteria(Search(order=3))
        assert criteria.where_conditions == (ConditionSpec("`order` = ?", (3,)),)

    def test_in_operator_keeps_collection(self):
        @dataclass
        class Search:
            ids: list = criteria_field("id:in", default_factory=list)

        criteria = extract_criteria(Search(ids=[1, 2]))
        assert criteria.where_conditions == (ConditionSpec("id IN ?", ([1, 2],)),)

    def test_sort_ignores_blank_tokens(self):
        @dataclass
        class Search:
            sort: str = criteria_field("-:sort", default="")

        criteria = extract_criteria(Search(sort=" name- , ,id+"))
        assert criteria.orders == ("name DESC", "id")

    def test_numeric_strings_are_coerced(self):
        @dataclass
        class Search:
            page: str = criteria_field("-:page", default="")
            per_page: str = criteria_field("-:per_page", default="")

        criteria = extract_criteria(Search(page="3", per_page="20"))
        assert criteria.get_page() == 3
        assert criteria.get_offset() == 40

    def test_unknown_operator_is_dropped(self):
        @dataclass
        class Search:
            name: str = criteria_field("name:fuzzy", default="")

        criteria = extract_criteria(Search(name="x"))
        assert criteria.where_conditions == ()
        assert criteria.group_or_conditions == ()

    def test_pydantic_model(self):
        class Search(BaseModel):
            name: str = Field("", json_schema_extra={"criteria": "name:eq"})
            min_age: int = Field(0, json_schema_extra={"criteria": "age:gte"})
            page: int = Field(0, json_schema_extra={"criteria": "-:page"})

        criteria = extract_criteria(Search(name="ann", min_age=30, page=2))
        assert criteria.where_conditions == (
            ConditionSpec("name = ?", ("ann",)),
            ConditionSpec("age >= ?", (30,)),
        )
        assert criteria.get_page() == 2

    def test_mapping_with_explicit_schema(self):
        schema = DirectiveSchema.from_mapping({"q": "name,email:like", "status": "status:eq", "sort": "-:sort"})
        criteria = extract_criteria({"q": "ann", "status": "", "sort": "id-"}, schema)
        assert len(criteria.group_or_conditions) == 1
        assert criteria.where_conditions == ()
        assert criteria.orders == ("id DESC",)

    def test_plain_metadata_field(self):
        @dataclass
        class Search:
            name: str = field(default="", metadata={"criteria": "name:rlike"})

        criteria = extract_criteria(Search(name="jo"))
        assert criteria.where_conditions == (ConditionSpec("name LIKE ?", ("jo%",)),)


class TestExtractionErrors:
    def test_none_source(self):
        with pytest.raises(NilSourceException):
            extract_criteria(None)

    def test_mapping_without_schema(self):
        with pytest.raises(NotAStructException) as exc_info:
            extract_criteria({"id": "1", "name": "john"})
        assert isinstance(exc_info.value, InvalidSourceException)

    def test_scalar_source(self):
        with pytest.raises(NotAStructException):
            extract_criteria(42)

    def test_dataclass_type_is_not_an_instance(self):
        with pytest.raises(NotAStructException):
            extract_criteria(UserQuery)

    def test_malformed_tag(self):
        @dataclass
        class Broken:
            id: int = 0
            name: str = criteria_field("name", default="")

        with pytest.raises(MalformedTagException):
            extract_criteria(Broken(id=1, name="john"))

    def test_malformed_tag_detected_even_when_value_is_zero(self):
        @dataclass
        class Broken:
            name: str = criteria_field("name:eq:extra", default="")

        with pytest.raises(MalformedTagException):
            extract_criteria(Broken())

    def test_page_coercion_error(self):
        @dataclass
        class Search:
            page: str = criteria_field("-:page", default="")

        with pytest.raises(TypeCoercionException) as exc_info:
            extract_criteria(Search(page="two"))
        assert exc_info.value.context["operator"] == "page"

    def test_sort_coercion_error(self):
        @dataclass
        class Search:
            sort: object = criteria_field("-:sort", default=None)

        with pytest.raises(TypeCoercionException):
            extract_criteria(Search(sort=object()))


class TestDirectiveSchema:
    def test_parse(self):
        directive = Directive.parse("keywords", "name, nickname:like")
        assert directive.targets == ("name", "nickname")
        assert directive.operator == "like"
        assert not directive.is_meta

    def test_meta_directive(self):
        assert Directive.parse("page", "-:page").is_meta

    @pytest.mark.parametrize("tag", ["name", "a:b:c", ":eq", "name:"])
    def test_malformed(self, tag):
        with pytest.raises(MalformedTagException):
            Directive.parse("field", tag)

    def test_schema_is_cached_per_type(self):
        assert DirectiveSchema.for_type(UserQuery) is DirectiveSchema.for_type(UserQuery)
        assert len(DirectiveSchema.for_type(UserQuery)) == 12

    def test_for_type_rejects_plain_class(self):
        class Plain:
            pass

        with pytest.raises(NotAStructException):
            DirectiveSchema.for_type(Plain)


class TestBuildConditionSpec:
    @pytest.mark.parametrize(
        ("operator", "sql"),
        [("eq", "="), ("neq", "<>"), ("gt", ">"), ("gte", ">="), ("lt", "<"), ("lte", "<="), ("in", "IN")],
    )
    def test_comparison_operators(self, operator, sql):
        assert build_condition_spec(operator, "age", 3) == ConditionSpec(f"age {sql} ?", (3,))

    def test_like_variants(self):
        assert build_condition_spec("like", "email", "bar") == ConditionSpec("email LIKE ?", ("%bar%",))
        assert build_condition_spec("llike", "email", "bar") == ConditionSpec("email LIKE ?", ("%bar",))
        assert build_condition_spec("rlike", "email", "bar") == ConditionSpec("email LIKE ?", ("bar%",))

    def test_like_coerces_numbers(self):
        assert build_condition_spec("like", "code", 12) == ConditionSpec("code LIKE ?", ("%12%",))

    def test_unknown_operator_is_empty(self):
        spec = build_condition_spec("between", "age", 3)
        assert spec.is_empty
        assert spec == ConditionSpec.empty()

    def test_field_is_quoted(self):
        assert build_condition_spec("eq", "desc", "x").query == "`desc` = ?"


class TestIsZero:
    @pytest.mark.parametrize("value", [None, False, 0, 0.0, "", [], {}, (), set()])
    def test_zero_values(self, value):
        assert is_zero(value)

    @pytest.mark.parametrize("value", [True, 1, -1, 0.5, "0", [0], {"a": 1}])
    def test_non_zero_values(self, value):
        assert not is_zero(value)
