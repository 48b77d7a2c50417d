"""Tests for the unified error model."""

from metastage.errors import (
    CircularLoadError,
    LoadError,
    MetaSyntaxError,
    MetastageError,
    NotFoundError,
)


def test_format_includes_qualified_name_code_and_hint():
    error = NotFoundError("Symbol missing", namespace="Tools", name="wrench", hint="Load Tools first.")
    assert error.qualified_name == "Tools.wrench"
    assert error.format() == "Symbol missing (Tools.wrench; NOT_FOUND) Hint: Load Tools first."


def test_code_override():
    error = MetastageError("Custom", code="CUSTOM")
    assert error.code == "CUSTOM"
    assert error.format() == "Custom (CUSTOM)"


def test_syntax_error_line():
    error = MetaSyntaxError("Invalid syntax", namespace="Tools", line=3, column=7)
    assert error.format().endswith("[line 3]")
    assert error.column == 7


def test_load_error_cause_kind():
    try:
        try:
            raise NotFoundError("missing", namespace="Tools")
        except NotFoundError as exc:
            raise LoadError("Cannot load 'Tools'", namespace="Tools") from exc
    except LoadError as error:
        assert error.cause_kind == "NOT_FOUND"
        assert error.format().endswith("caused by NOT_FOUND")


def test_load_error_without_cause():
    error = LoadError("Cannot load")
    assert error.cause_kind is None
    assert "caused by" not in error.format()


def test_hierarchy():
    assert issubclass(CircularLoadError, LoadError)
    assert issubclass(LoadError, MetastageError)
    assert CircularLoadError("cycle").code == "CIRCULAR_LOAD"
