"""Tests for the storeit exception hierarchy."""

from sqlalchemy.exc import OperationalError, SQLAlchemyError

from storeit.kernel.exceptions import (
    BackendError,
    EmptyIdListException,
    ExtractionException,
    InvalidSourceException,
    MalformedTagException,
    MissingWhereClauseException,
    NilSourceException,
    NotAStructException,
    NotFoundException,
    StoreException,
    StoreitException,
    TypeCoercionException,
)


class TestStoreitException:
    def test_basic_creation(self):
        exc = StoreitException("something went wrong")
        assert str(exc) == "something went wrong"
        assert exc.code is None
        assert exc.context == {}

    def test_with_error_code(self):
        exc = StoreitException("bad tag", code="CUSTOM_001")
        assert exc.code == "CUSTOM_001"

    def test_with_context(self):
        exc = StoreitException("not found", context={"model": "User", "id": 7})
        assert exc.context["model"] == "User"
        assert exc.context["id"] == 7

    def test_context_defaults_to_empty_dict(self):
        exc = StoreitException("test")
        exc.context["key"] = "value"
        exc2 = StoreitException("test2")
        assert exc2.context == {}

    def test_default_codes(self):
        assert NotFoundException("x").code == "NOT_FOUND"
        assert EmptyIdListException("x").code == "EMPTY_ID_LIST"
        assert MalformedTagException("x").code == "MALFORMED_TAG"
        assert TypeCoercionException("x").code == "TYPE_COERCION"
        assert NilSourceException("x").code == "NIL_SOURCE"
        assert NotAStructException("x").code == "NOT_A_STRUCT"
        assert InvalidSourceException("x").code == "INVALID_SOURCE"
        assert MissingWhereClauseException("x").code == "MISSING_WHERE"

    def test_explicit_code_overrides_default(self):
        assert NotFoundException("x", code="USER_MISSING").code == "USER_MISSING"


class TestExceptionHierarchy:
    def test_extraction_is_storeit(self):
        assert issubclass(ExtractionException, StoreitException)

    def test_store_is_storeit(self):
        assert issubclass(StoreException, StoreitException)

    def test_invalid_source_variants(self):
        assert issubclass(NilSourceException, InvalidSourceException)
        assert issubclass(NotAStructException, InvalidSourceException)
        assert issubclass(InvalidSourceException, ExtractionException)

    def test_tag_and_coercion_are_extraction(self):
        assert issubclass(MalformedTagException, ExtractionException)
        assert issubclass(TypeCoercionException, ExtractionException)

    def test_store_exceptions(self):
        assert issubclass(NotFoundException, StoreException)
        assert issubclass(EmptyIdListException, StoreException)
        assert issubclass(MissingWhereClauseException, StoreException)

    def test_backend_error_is_sqlalchemy_error(self):
        assert BackendError is SQLAlchemyError
        assert issubclass(OperationalError, BackendError)
        assert not issubclass(BackendError, StoreitException)

    def test_catch_all_storeit_exceptions(self):
        exceptions = [
            NilSourceException("nil"),
            MalformedTagException("bad tag"),
            NotFoundException("missing"),
            EmptyIdListException("no ids"),
        ]
        for exc in exceptions:
            try:
                raise exc
            except StoreitException as caught:
                assert caught is exc
