import pytest

from qbo_mcp.criteria import RESERVED_KEYS, normalize
from qbo_mcp.entities import (
    ENTITIES,
    FieldSpec,
    coerce,
    coerce_criteria,
    find_entity,
    get_entity,
    validate_criteria,
)
from qbo_mcp.errors import CriteriaValidationError

BOOLEAN_FIELDS = [
    (name, field)
    for name, spec in ENTITIES.items()
    for field, fs in spec.fields.items()
    if fs.type == "boolean"
]


def test_registry_never_lists_reserved_keywords():
    for spec in ENTITIES.values():
        assert not RESERVED_KEYS & set(spec.fields)


def test_every_entity_has_metadata_fields():
    for spec in ENTITIES.values():
        assert {"Id", "MetaData.CreateTime", "MetaData.LastUpdatedTime"} <= set(spec.fields)
        assert spec.endpoint == "/" + spec.name.lower()


def test_filter_and_sort_only_flags():
    invoice = ENTITIES["Invoice"]
    assert "CustomerRef" in invoice.filterable_fields
    assert "CustomerRef" not in invoice.sortable_fields
    item = ENTITIES["Item"]
    assert "UnitPrice" in item.sortable_fields
    assert "UnitPrice" not in item.filterable_fields


def test_entity_lookup_is_case_insensitive():
    assert find_entity("billpayment") is ENTITIES["BillPayment"]
    assert find_entity("Nope") is None
    with pytest.raises(CriteriaValidationError, match="Unknown entity 'Nope'"):
        get_entity("Nope")


@pytest.mark.parametrize("entity, field", BOOLEAN_FIELDS)
@pytest.mark.parametrize("value", ["true", 1, "1", True])
def test_boolean_truthy_values(entity, field, value):
    out = coerce(ENTITIES[entity].fields, {"field": field, "value": value})
    assert out["value"] is True


@pytest.mark.parametrize("entity, field", BOOLEAN_FIELDS)
@pytest.mark.parametrize("value", ["false", 0, "0", False, "yes", "TRUE", 2, None])
def test_boolean_other_values_are_false(entity, field, value):
    out = coerce(ENTITIES[entity].fields, {"field": field, "value": value})
    assert out["value"] is False


def test_coerce_per_type():
    fields = {
        "Name": FieldSpec("string"),
        "Amt": FieldSpec("number"),
        "When": FieldSpec("date"),
    }
    assert coerce(fields, {"field": "Name", "value": 42})["value"] == "42"
    assert coerce(fields, {"field": "Amt", "value": "12"})["value"] == 12
    assert coerce(fields, {"field": "Amt", "value": "12.75"})["value"] == 12.75
    assert coerce(fields, {"field": "When", "value": "2024-02-30"})["value"] == "2024-02-30"


def test_coerce_leaves_unregistered_fields_alone():
    f = {"field": "Unknown", "value": "1", "operator": "="}
    assert coerce({"Other": FieldSpec("number")}, f) == f


def test_coerce_returns_a_new_filter():
    f = {"field": "Balance", "value": "5", "operator": ">"}
    out = coerce(ENTITIES["Customer"].fields, f)
    assert out == {"field": "Balance", "value": 5, "operator": ">"}
    assert f["value"] == "5"


def test_coerce_is_element_wise_for_lists():
    out = coerce(ENTITIES["Invoice"].fields, {"field": "TotalAmt", "value": ["1", 2, "3.5"], "operator": "IN"})
    assert out["value"] == [1, 2, 3.5]


def test_unparseable_number_is_left_for_validation():
    out = coerce(ENTITIES["Invoice"].fields, {"field": "Balance", "value": "lots"})
    assert out["value"] == "lots"


def test_coerce_criteria_skips_directives():
    out = coerce_criteria("Invoice", [{"field": "limit", "value": 5}, {"field": "Balance", "value": "1"}])
    assert out == [{"field": "limit", "value": 5}, {"field": "Balance", "value": 1}]


def test_coerce_criteria_simple_map():
    assert coerce_criteria("Customer", {"Active": "1", "Balance": "10"}) == {"Active": True, "Balance": 10}


def test_validate_accepts_good_criteria():
    validate_criteria(
        "Invoice",
        [
            {"field": "Balance", "value": 0, "operator": ">"},
            {"field": "Id", "value": ["1", "2"], "operator": "IN"},
            {"field": "desc", "value": "TxnDate"},
            {"field": "limit", "value": 10},
            {"field": "offset", "value": 0},
            {"field": "count", "value": True},
            {"field": "fetchAll", "value": True},
        ],
    )
    validate_criteria("Customer", {"DisplayName": "Acme"})
    validate_criteria("Customer", {})


def test_validate_rejects_unknown_field_and_lists_allowed():
    with pytest.raises(CriteriaValidationError) as exc:
        validate_criteria("Invoice", [{"field": "Nope", "value": "x", "operator": "="}])
    assert exc.value.errors == [f"Field must be one of: {', '.join(ENTITIES['Invoice'].filterable_fields)}"]
    assert str(exc.value).startswith("Validation failed:\n  - Field must be one of: Id, ")


def test_validate_rejects_sort_only_field_in_filter():
    with pytest.raises(CriteriaValidationError):
        validate_criteria("Item", [{"field": "UnitPrice", "value": 5, "operator": ">"}])


def test_validate_rejects_unsortable_sort_field():
    with pytest.raises(CriteriaValidationError, match="Sort field must be one of"):
        validate_criteria("Invoice", [{"field": "asc", "value": "CustomerRef"}])


def test_validate_reports_type_mismatch_by_field():
    with pytest.raises(CriteriaValidationError, match="expected type for field Balance"):
        validate_criteria("Invoice", [{"field": "Balance", "value": "lots", "operator": ">"}])


def test_validate_collects_all_errors():
    with pytest.raises(CriteriaValidationError) as exc:
        validate_criteria(
            "Customer",
            [
                {"field": "Bogus", "value": 1},
                {"field": "Balance", "value": 1, "operator": "!="},
                {"field": "limit", "value": -1},
                {"field": "limit", "value": 5000},
            ],
        )
    assert len(exc.value.errors) == 4


def test_validate_in_operator_shape():
    with pytest.raises(CriteriaValidationError, match="IN requires a non-empty list"):
        validate_criteria("Invoice", [{"field": "Id", "value": "1", "operator": "IN"}])
    with pytest.raises(CriteriaValidationError, match="requires a single value"):
        validate_criteria("Invoice", [{"field": "Id", "value": ["1"], "operator": "="}])


def test_validate_rejects_filters_entry():
    with pytest.raises(CriteriaValidationError, match="filters must be a list of filter objects"):
        validate_criteria("Invoice", [{"field": "filters", "value": "x"}])


@pytest.mark.parametrize("value", [None, {"a": 1}, ["x"]])
def test_non_scalar_string_values_fail_validation(value):
    out = coerce_criteria("Customer", [{"field": "DisplayName", "value": value, "operator": "="}])
    assert out[0]["value"] == value
    with pytest.raises(CriteriaValidationError):
        validate_criteria("Customer", out)


def test_non_scalar_string_value_reports_type_mismatch():
    out = coerce_criteria("Customer", {"DisplayName": None})
    with pytest.raises(CriteriaValidationError, match="expected type for field DisplayName"):
        validate_criteria("Customer", out)


def test_long_integer_strings_keep_precision():
    out = coerce(ENTITIES["Invoice"].fields, {"field": "Balance", "value": "12345678901234567891"})
    assert out["value"] == 12345678901234567891
    assert coerce(ENTITIES["Invoice"].fields, {"field": "Balance", "value": " 7 "})["value"] == 7
    assert coerce(ENTITIES["Invoice"].fields, {"field": "Balance", "value": "1e3"})["value"] == 1000


def test_non_list_filters_is_reported():
    canonical = normalize({"filters": "Balance > 0"})
    with pytest.raises(CriteriaValidationError, match="filters must be a list"):
        validate_criteria("Invoice", canonical)


def test_non_object_filter_entry_is_reported():
    with pytest.raises(CriteriaValidationError, match="Criteria entries must be objects, got str"):
        validate_criteria("Invoice", normalize({"filters": ["Balance > 0"]}))
