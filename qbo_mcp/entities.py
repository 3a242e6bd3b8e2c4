from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from qbo_mcp.criteria import (
    DEFAULT_OPERATOR,
    DIRECTIVE_KEYS,
    Canonical,
    Filter,
    as_filter_array,
)
from qbo_mcp.errors import CriteriaValidationError

OPERATORS: Tuple[str, ...] = ("=", "<", ">", "<=", ">=", "LIKE", "IN")

# QuickBooks refuses MAXRESULTS above this.
MAX_PAGE_SIZE = 1000


@dataclass(frozen=True)
class FieldSpec:
    type: str = "string"
    filterable: bool = True
    sortable: bool = True


@dataclass(frozen=True)
class EntitySpec:
    """One QuickBooks entity: REST endpoint plus query field metadata."""

    name: str
    singular: str
    plural: str
    endpoint: str
    fields: Dict[str, FieldSpec] = field(default_factory=dict)

    @property
    def filterable_fields(self) -> List[str]:
        return [f for f, s in self.fields.items() if s.filterable]

    @property
    def sortable_fields(self) -> List[str]:
        return [f for f, s in self.fields.items() if s.sortable]

    @property
    def result_key(self) -> str:
        """Key used for search results in tool output, e.g. `bill_payments`."""
        return self.plural.replace(" ", "_")


def _fields(spec: str) -> Dict[str, FieldSpec]:
    """Parse a compact `Name:type[:flags]` table.

    type: s(tring) n(umber) b(oolean) d(ate). flags: `f` filter only, `o` sort only.
    """
    types = {"s": "string", "n": "number", "b": "boolean", "d": "date"}
    out: Dict[str, FieldSpec] = {}
    for token in spec.split():
        name, _, rest = token.partition(":")
        code, _, flags = rest.partition(":")
        out[name] = FieldSpec(
            type=types[code or "s"],
            filterable="o" not in flags,
            sortable="f" not in flags,
        )
    return out


_META = "Id:s MetaData.CreateTime:d MetaData.LastUpdatedTime:d"

ENTITIES: Dict[str, EntitySpec] = {
    spec.name: spec
    for spec in (
        EntitySpec(
            "Account", "account", "accounts", "/account",
            _fields(
                f"{_META} Name:s SubAccount:b ParentRef:s Description:s Active:b:f "
                "Classification:s:f AccountType:s:f CurrentBalance:n"
            ),
        ),
        EntitySpec(
            "Bill", "bill", "bills", "/bill",
            _fields(
                f"{_META} SyncToken:s TxnDate:d DueDate:d Balance:n TotalAmt:n VendorRef:s "
                "APAccountRef:s DocNumber:s PrivateNote:s ExchangeRate:n DepartmentRef:s CurrencyRef:s"
            ),
        ),
        EntitySpec(
            "BillPayment", "bill payment", "bill payments", "/billpayment",
            _fields(
                f"{_META} TxnDate:d DocNumber:s VendorRef:s PayType:s TotalAmt:n "
                "PrivateNote:s DepartmentRef:s CurrencyRef:s"
            ),
        ),
        EntitySpec(
            "Customer", "customer", "customers", "/customer",
            _fields(
                f"{_META} DisplayName:s GivenName:s FamilyName:s CompanyName:s "
                "PrimaryEmailAddr:s PrimaryPhone:s Balance:n Active:b"
            ),
        ),
        EntitySpec(
            "Employee", "employee", "employees", "/employee",
            _fields(
                f"{_META} DisplayName:s GivenName:s FamilyName:s PrimaryEmailAddr:s "
                "PrimaryPhone:s EmployeeNumber:s Active:b HiredDate:d ReleasedDate:d"
            ),
        ),
        EntitySpec(
            "Estimate", "estimate", "estimates", "/estimate",
            _fields(f"{_META} DocNumber:s TxnDate:d TxnStatus:s CustomerRef:s TotalAmt:n"),
        ),
        EntitySpec(
            "Invoice", "invoice", "invoices", "/invoice",
            _fields(
                f"{_META} DocNumber:s TxnDate:d DueDate:d:f CustomerRef:s:f ClassRef:s:f "
                "DepartmentRef:s:f Balance:n TotalAmt:n"
            ),
        ),
        EntitySpec(
            "Item", "item", "items", "/item",
            _fields(
                f"{_META} Name:s Active:b:f Type:s Sku:s:f ParentRef:s:o PrefVendorRef:s:o "
                "UnitPrice:n:o QtyOnHand:n:o"
            ),
        ),
        EntitySpec(
            "JournalEntry", "journal entry", "journal entries", "/journalentry",
            _fields(f"{_META} DocNumber:s TxnDate:d PrivateNote:s Adjustment:b TotalAmt:n CurrencyRef:s"),
        ),
        EntitySpec(
            "Purchase", "purchase", "purchases", "/purchase",
            _fields(
                f"{_META} DocNumber:s TxnDate:d PaymentType:s AccountRef:s EntityRef:s "
                "TotalAmt:n PrivateNote:s DepartmentRef:s Credit:b"
            ),
        ),
        EntitySpec(
            "Vendor", "vendor", "vendors", "/vendor",
            _fields(
                f"{_META} SyncToken:s GivenName:s MiddleName:s FamilyName:s CompanyName:s "
                "DisplayName:s PrintOnCheckName:s Active:b PrimaryPhone:s AlternatePhone:s "
                "Mobile:s Fax:s PrimaryEmailAddr:s WebAddr:s Title:s Balance:n BillRate:n "
                "AcctNum:s Vendor1099:b"
            ),
        ),
    )
}


def find_entity(name: str) -> Optional[EntitySpec]:
    spec = ENTITIES.get(name)
    if spec is not None:
        return spec
    lowered = (name or "").lower()
    for candidate in ENTITIES.values():
        if candidate.name.lower() == lowered:
            return candidate
    return None


def get_entity(name: str) -> EntitySpec:
    spec = find_entity(name)
    if spec is None:
        raise CriteriaValidationError(
            [f"Unknown entity '{name}'. Must be one of: {', '.join(ENTITIES)}"]
        )
    return spec


# ----------------------
# Value coercion
# ----------------------


def _to_number(v: Any) -> Any:
    if isinstance(v, bool):
        return int(v)
    if isinstance(v, (int, float)):
        return v
    if not isinstance(v, str):
        return v
    text = v.strip()
    try:
        return int(text)
    except ValueError:
        pass
    try:
        num = float(text)
    except ValueError:
        # Left as-is; validate_criteria reports the mismatch.
        return v
    if not math.isfinite(num):
        return v
    return int(num) if num.is_integer() else num


def _to_boolean(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float)):
        return v == 1
    return v in ("true", "1")


def _to_string(v: Any) -> Any:
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, (int, float)):
        return str(v)
    # None and nested values stay as-is and fail the type check.
    return v


_CONVERTERS = {
    "string": _to_string,
    "number": _to_number,
    "boolean": _to_boolean,
    # Dates are opaque ISO strings.
    "date": _to_string,
}


def coerce_value(field_spec: Optional[FieldSpec], value: Any) -> Any:
    if field_spec is None:
        return value
    convert = _CONVERTERS[field_spec.type]
    if isinstance(value, (list, tuple)):
        return [convert(v) for v in value]
    return convert(value)


def coerce(entity_spec: Mapping[str, FieldSpec], f: Filter) -> Filter:
    """Return a copy of `f` whose value matches the field's declared type.

    Fields missing from `entity_spec` pass through untouched.
    """
    out = dict(f)
    name = f.get("field")
    field_spec = entity_spec.get(name) if isinstance(name, str) else None
    out["value"] = coerce_value(field_spec, f.get("value"))
    return out


def coerce_criteria(entity: str, canonical: Canonical) -> Canonical:
    """Coerce every WHERE value in canonical criteria for `entity`.

    Unknown entities are returned unchanged. Inputs are never mutated.
    """
    spec = find_entity(entity)
    if spec is None:
        return canonical
    if isinstance(canonical, list):
        return [
            e if not isinstance(e, dict) or e.get("field") in DIRECTIVE_KEYS else coerce(spec.fields, e)
            for e in canonical
        ]
    return {k: coerce_value(spec.fields.get(k), v) for k, v in (canonical or {}).items()}


# ----------------------
# Validation
# ----------------------


def _matches_type(expected: str, value: Any) -> bool:
    if expected in ("string", "date"):
        return isinstance(value, str)
    if expected == "number":
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if expected == "boolean":
        return isinstance(value, bool)
    return True


def _check_filter(spec: EntitySpec, entry: Filter, errors: List[str]) -> None:
    name = entry.get("field")
    if not isinstance(name, str) or name not in spec.fields or not spec.fields[name].filterable:
        errors.append(f"Field must be one of: {', '.join(spec.filterable_fields)}")
        return

    operator = entry.get("operator") or DEFAULT_OPERATOR
    if operator not in OPERATORS:
        errors.append(f"Invalid operator '{operator}' for field {name}. Must be one of: {', '.join(OPERATORS)}")
        return

    value = entry.get("value")
    if operator == "IN":
        if not isinstance(value, (list, tuple)) or not value:
            errors.append(f"Operator IN requires a non-empty list of values for field {name}")
            return
        values = list(value)
    elif isinstance(value, (list, tuple)):
        errors.append(f"Operator {operator} requires a single value for field {name}")
        return
    else:
        values = [value]

    expected = spec.fields[name].type
    if not all(_matches_type(expected, v) for v in values):
        errors.append(f"Value type does not match expected type for field {name}")


def _check_directive(spec: EntitySpec, entry: Filter, errors: List[str]) -> None:
    name = entry["field"]
    value = entry.get("value")
    if name in ("asc", "desc"):
        if value not in spec.sortable_fields:
            errors.append(f"Sort field must be one of: {', '.join(spec.sortable_fields)}")
    elif name in ("limit", "offset"):
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            errors.append(f"{name} must be a non-negative integer")
        elif name == "limit" and value > MAX_PAGE_SIZE:
            errors.append(f"limit must not exceed {MAX_PAGE_SIZE}")


def validate_criteria(entity: str, canonical: Canonical) -> None:
    """Check canonical criteria against the registry before compilation.

    Collects every problem and raises one CriteriaValidationError.
    """
    spec = get_entity(entity)
    errors: List[str] = []
    for entry in as_filter_array(canonical):
        if not isinstance(entry, dict):
            errors.append(f"Criteria entries must be objects, got {type(entry).__name__}")
        elif entry.get("field") == "filters":
            errors.append("filters must be a list of filter objects")
        elif entry.get("field") in DIRECTIVE_KEYS:
            _check_directive(spec, entry, errors)
        else:
            _check_filter(spec, entry, errors)
    if errors:
        raise CriteriaValidationError(errors)
