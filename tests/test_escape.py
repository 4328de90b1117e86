"""Unit tests for literal escaping (used by ``to_query`` and DDL defaults)."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from quarry.escape import (
    bit_escape,
    convert_timezone,
    default_escape,
    make_escape,
    postgres_escape,
    standard_escape,
)
from quarry.helpers import UNDEFINED


class TestDefaultEscape:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (None, "NULL"),
            (UNDEFINED, "NULL"),
            (True, "true"),
            (False, "false"),
            (5, "5"),
            (1.5, "1.5"),
            (Decimal("2.50"), "2.50"),
        ],
    )
    def test_scalars(self, value, expected):
        assert default_escape(value) == expected

    def test_string_backslash_escaped(self):
        assert default_escape("a'b\n") == "'a\\'b\\n'"

    def test_bytes(self):
        assert default_escape(b"\x01\xff") == "X'01ff'"

    def test_nested_list(self):
        assert default_escape([1, [2, 3], "a"]) == "1, (2, 3), 'a'"

    def test_date(self):
        assert default_escape(date(2024, 1, 2)) == "'2024-01-02 00:00:00.000'"

    def test_naive_datetime_kept(self):
        value = datetime(2024, 1, 2, 3, 4, 5, 678000)
        assert default_escape(value) == "'2024-01-02 03:04:05.678'"

    def test_aware_datetime_utc(self):
        value = datetime(2024, 1, 2, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        assert default_escape(value, {"time_zone": "Z"}) == "'2024-01-02 10:00:00.000'"

    def test_aware_datetime_offset(self):
        value = datetime(2024, 1, 2, 12, 0, tzinfo=timezone.utc)
        assert default_escape(value, {"time_zone": "+01:00"}) == "'2024-01-02 13:00:00.000'"

    def test_mapping_as_json(self):
        assert default_escape({"a": 1}) == "'{\\\"a\\\": 1}'"

    def test_object_with_to_sql(self, pg):
        assert default_escape(pg("t").select("id")) == 'select "id" from "t"'


class TestConvertTimezone:
    @pytest.mark.parametrize(
        ("tz", "minutes"),
        [("Z", 0), ("+05:30", 330), ("-02:00", -120), ("+0100", 60), ("bogus", None)],
    )
    def test_offsets(self, tz, minutes):
        assert convert_timezone(tz) == minutes


def test_standard_escape_doubles_quotes():
    assert standard_escape("it's") == "'it''s'"
    assert standard_escape({"a": 1}) == "'{\"a\": 1}'"


def test_postgres_array_literal():
    assert postgres_escape([1, "a", None]) == "'{1,\"a\",NULL}'"
    assert postgres_escape([[1, 2], [3]]) == "'{{1,2},{3}}'"


def test_bit_escape():
    assert bit_escape(True) == "1"
    assert bit_escape(False) == "0"
    assert bit_escape("x'y") == "'x''y'"


def test_make_escape_override_piece():
    escape = make_escape(escape_string=lambda value, final, ctx: f"N'{value}'")
    assert escape("abc") == "N'abc'"
    assert escape(3) == "3"
