import pytest

from qbo_mcp.criteria import (
    AdvancedOptions,
    EmptyCriteria,
    FilterArray,
    MixedObject,
    SimpleObject,
    as_filter_array,
    classify,
    normalize,
)


@pytest.mark.parametrize(
    "raw, shape",
    [
        (None, EmptyCriteria),
        ({}, EmptyCriteria),
        ([], FilterArray),
        ([{"field": "Name", "value": "x"}], FilterArray),
        ({"filters": []}, AdvancedOptions),
        ({"limit": 5}, AdvancedOptions),
        ({"Name": "Foo"}, SimpleObject),
        ({"Name": "Foo", "limit": 5}, MixedObject),
    ],
)
def test_classify(raw, shape):
    assert isinstance(classify(raw), shape)


def test_empty_object_means_all_records():
    assert normalize({}) == {}
    assert normalize(None) == {}


def test_pagination_only_becomes_directive_entries():
    out = normalize({"limit": 10, "desc": "Name"})
    assert isinstance(out, list)
    assert sorted(out, key=lambda e: e["field"]) == [
        {"field": "desc", "value": "Name"},
        {"field": "limit", "value": 10},
    ]


def test_simple_object_passes_through():
    raw = {"Name": "Foo"}
    assert normalize(raw) == {"Name": "Foo"}
    assert normalize(raw) is raw


def test_array_passes_through_unchanged():
    raw = [{"field": "Balance", "value": "0", "operator": ">"}]
    assert normalize(raw) is raw
    assert normalize(raw) == [{"field": "Balance", "value": "0", "operator": ">"}]


def test_normalize_is_idempotent_on_filter_arrays():
    once = normalize({"filters": [{"field": "Balance", "value": 0, "operator": ">"}], "limit": 3})
    assert normalize(once) == once


def test_advanced_format_defaults_operator_and_appends_directives():
    out = normalize(
        {
            "filters": [
                {"field": "TotalAmt", "value": 100, "operator": ">="},
                {"field": "DocNumber", "value": "1001"},
            ],
            "asc": "TxnDate",
            "limit": 20,
            "offset": 40,
            "fetchAll": True,
        }
    )
    assert out == [
        {"field": "TotalAmt", "value": 100, "operator": ">="},
        {"field": "DocNumber", "value": "1001", "operator": "="},
        {"field": "asc", "value": "TxnDate"},
        {"field": "limit", "value": 20},
        {"field": "offset", "value": 40},
        {"field": "fetchAll", "value": True},
    ]


def test_advanced_format_with_nothing_in_it_is_empty():
    assert normalize({"filters": []}) == {}
    assert normalize({"filters": None, "count": False}) == {}


def test_count_directive_is_normalized_to_true():
    assert normalize({"count": "yes"}) == [{"field": "count", "value": True}]


def test_non_numeric_limit_is_dropped():
    assert normalize({"limit": "10", "asc": "Id"}) == [{"field": "asc", "value": "Id"}]


def test_mixed_object_keeps_key_order():
    out = normalize({"DisplayName": "Acme", "desc": "Id", "limit": 5, "Active": True})
    assert out == [
        {"field": "DisplayName", "value": "Acme", "operator": "="},
        {"field": "desc", "value": "Id"},
        {"field": "limit", "value": 5},
        {"field": "Active", "value": True, "operator": "="},
    ]


def test_reserved_keywords_never_become_filters():
    out = normalize({"Name": "x", "offset": 3, "fetchAll": True})
    filters = [e for e in out if "operator" in e]
    assert [f["field"] for f in filters] == ["Name"]


def test_non_object_input_is_treated_as_empty():
    assert normalize("Name = 'x'") == {}


def test_as_filter_array_expands_simple_map():
    assert as_filter_array({"Name": "x", "Active": True}) == [
        {"field": "Name", "value": "x", "operator": "="},
        {"field": "Active", "value": True, "operator": "="},
    ]
    assert as_filter_array({}) == []


def test_mixed_object_keeps_every_reserved_key():
    out = normalize({"DisplayName": "Acme", "limit": "10", "count": False, "asc": ""})
    assert out == [
        {"field": "DisplayName", "value": "Acme", "operator": "="},
        {"field": "limit", "value": "10"},
        {"field": "count", "value": True},
        {"field": "asc", "value": ""},
    ]


def test_single_filter_outside_a_list_is_kept_for_validation():
    single = {"field": "Balance", "value": 0, "operator": ">"}
    out = normalize({"filters": single, "limit": 5})
    assert out[0]["field"] == "filters"
    assert out[0]["value"] == single
    assert out[1] == {"field": "limit", "value": 5}


def test_non_object_filter_entries_pass_through():
    out = normalize({"filters": ["Balance > 0", {"field": "Id", "value": "1"}]})
    assert out == ["Balance > 0", {"field": "Id", "value": "1", "operator": "="}]
