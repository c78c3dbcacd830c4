"""Tests for catalog type families, defaults and grid display types."""

import pytest

from dal.type_normalization import (
    FAMILY_BOOLEAN,
    FAMILY_INTEGER,
    FAMILY_NUMERIC,
    FAMILY_OTHER,
    FAMILY_TEMPORAL,
    default_for_type,
    grid_column_type,
    header_name_for,
    type_family,
)


@pytest.mark.parametrize(
    "data_type, family",
    [
        ("integer", FAMILY_INTEGER),
        ("bigint", FAMILY_INTEGER),
        ("smallint", FAMILY_INTEGER),
        ("numeric", FAMILY_NUMERIC),
        ("decimal", FAMILY_NUMERIC),
        ("boolean", FAMILY_BOOLEAN),
        ("timestamp without time zone", FAMILY_TEMPORAL),
        ("timestamp with time zone", FAMILY_TEMPORAL),
        ("date", FAMILY_TEMPORAL),
        ("text", FAMILY_OTHER),
        ("character varying", FAMILY_OTHER),
        ("", FAMILY_OTHER),
    ],
)
def test_type_family(data_type, family):
    assert type_family(data_type) == family


def test_type_family_is_case_insensitive():
    assert type_family("INTEGER") == FAMILY_INTEGER


def test_defaults_for_not_null_display():
    assert default_for_type("integer") == 0
    assert default_for_type("numeric") == 0.0
    assert default_for_type("boolean") is False
    assert default_for_type("text") == ""
    assert default_for_type("date") == ""


def test_grid_column_types():
    assert grid_column_type("bigint") == "number"
    assert grid_column_type("boolean") == "boolean"
    assert grid_column_type("timestamp with time zone") == "dateTime"
    assert grid_column_type("numeric") == "string"
    assert grid_column_type("jsonb") == "string"


def test_header_name_for():
    assert header_name_for("created_at") == "Created At"
    assert header_name_for("id") == "Id"
    assert header_name_for("user's_name 2nd_col") == "User's Name 2nd Col"
    assert header_name_for("httpURL") == "HttpURL"
