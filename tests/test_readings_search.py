from datetime import date

import pytest

from iotmon.core.config import settings
from iotmon.core.errors import ValidationError
from iotmon.services.readings_query import ReadingsQuery, SearchTerm, parse_search


def test_empty_search():
    assert parse_search(None) == []
    assert parse_search("   ") == []


def test_bare_text_matches_device():
    assert parse_search("kitchen") == [SearchTerm("device_id", "contains", "kitchen")]


def test_unknown_prefix_falls_back_to_whole_text():
    assert parse_search("foo:bar") == [SearchTerm("device_id", "contains", "foo:bar")]


def test_device_prefix():
    assert parse_search("device:dev1") == [SearchTerm("device_id", "contains", "dev1")]
    assert parse_search("d:dev1") == [SearchTerm("device_id", "contains", "dev1")]


def test_range():
    assert parse_search("t:20-30") == [SearchTerm("temperature_c", "range", (20.0, 30.0))]


def test_negative_range():
    assert parse_search("temp:-10-5") == [SearchTerm("temperature_c", "range", (-10.0, 5.0))]


def test_inverted_range_rejected():
    with pytest.raises(ValidationError):
        parse_search("t:30-20")


@pytest.mark.parametrize("token,op,value", [
    ("t:>25", ">", 25.0),
    ("h:<=40", "<=", 40.0),
    ("co2:>=800", ">=", 800.0),
    ("lux:<100.5", "<", 100.5),
    ("s:=3", "=", 3.0),
])
def test_comparisons(token, op, value):
    (term,) = parse_search(token)
    assert term.kind == "compare"
    assert term.op == op
    assert term.value == value


def test_plain_number_is_equality():
    assert parse_search("t:25") == [SearchTerm("temperature_c", "equals", 25.0)]
    assert parse_search("t:-5") == [SearchTerm("temperature_c", "equals", -5.0)]


def test_aliases_map_to_columns():
    columns = [term.column for term in parse_search("humidity:1 l:1 sound:1 air:1 aq:1")]
    assert columns == ["humidity_pct", "lux", "sound", "co2_ppm", "co2_ppm"]


def test_non_numeric_value_rejected():
    with pytest.raises(ValidationError):
        parse_search("t:warm")
    with pytest.raises(ValidationError):
        parse_search("t:>warm")


def test_date_token():
    assert parse_search("ts:2024-01-15") == [SearchTerm("ts", "date", date(2024, 1, 15))]


def test_invalid_calendar_date_rejected():
    with pytest.raises(ValidationError):
        parse_search("date:2024-02-30")


def test_partial_timestamp_is_text_match():
    assert parse_search("time:12:30") == [SearchTerm("ts", "contains", "12:30")]


def test_tokens_combine():
    terms = parse_search("device:kitchen t:>=20 nonsense h:30-60")
    assert [(t.column, t.kind) for t in terms] == [
        ("device_id", "contains"),
        ("temperature_c", "compare"),
        ("humidity_pct", "range"),
    ]


class TestReadingsQuery:
    def test_defaults(self):
        query = ReadingsQuery()
        assert query.page == 1
        assert query.limit == settings.READINGS_DEFAULT_LIMIT
        assert query.sort_by == "ts"
        assert query.sort_order == "DESC"
        assert query.offset == 0

    def test_offset(self):
        assert ReadingsQuery(page=3, limit=10).offset == 20

    def test_limit_clamped(self):
        assert ReadingsQuery(limit=10_000).limit == settings.READINGS_MAX_LIMIT

    def test_sort_order_case_insensitive(self):
        assert ReadingsQuery(sort_order="asc").sort_order == "ASC"

    @pytest.mark.parametrize("kwargs", [
        {"sort_by": "password"},
        {"sort_by": "ts; drop table readings"},
        {"sort_order": "sideways"},
        {"page": 0},
        {"limit": 0},
    ])
    def test_rejected(self, kwargs):
        with pytest.raises(ValidationError):
            ReadingsQuery(**kwargs)
