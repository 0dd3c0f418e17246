"""
assertions.py
- Parses response bodies into a snapshot mapping ({} when the body is not JSON)
- Structural assertions: 2xx status, JSON content type, JSON body
- Content assertions over JSONPath fields, guarded (only when the field is present) or not
Every assertion is evaluated independently; none short-circuits the others.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional, Tuple

import requests
from jsonpath_ng import parse as jsonpath_parse
from jsonpath_ng.exceptions import JSONPathError

# checks that only run when the field is present unless the step says otherwise
_GUARDED_BY_DEFAULT = {"equals", "not_null", "one_of", "contains"}
_CHECKS = _GUARDED_BY_DEFAULT | {"exists"}


@dataclass
class AssertionResult:
    name: str
    passed: bool
    message: Optional[str] = None
    skipped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def parse_json_body(response: requests.Response) -> Tuple[Any, bool]:
    """Return (body, ok). A body that does not parse becomes {} with ok=False."""
    try:
        return response.json(), True
    except ValueError:
        return {}, False


def _field_path(field: str) -> str:
    return field if field.startswith("$") else f"$.{field}"


def compile_field(field: str):
    """Parse a bare key or JSONPath; an invalid path raises ValueError."""
    if not isinstance(field, str) or not field:
        raise ValueError(f"field must be a non-empty string, got {field!r}")
    try:
        return jsonpath_parse(_field_path(field))
    except JSONPathError as e:
        raise ValueError(f"invalid JSONPath '{field}': {e}")


def find_field(body: Any, field: str) -> Tuple[bool, Any]:
    """
    Look up field (bare key or JSONPath) in body.
    Returns (defined, value); value is a list when several nodes match.
    """
    expr = compile_field(field)
    matches = [m.value for m in expr.find(body)]
    if not matches:
        return False, None
    return True, matches[0] if len(matches) == 1 else matches


def is_present(value: Any) -> bool:
    """Truthiness used to guard optional fields: null, false, 0 and "" count as absent."""
    if value is None or value is False:
        return False
    if isinstance(value, (int, float)) and value == 0:
        return False
    return value != ""


def label(method: str, endpoint: str, text: str) -> str:
    return f"[{method.upper()}]::{endpoint} - {text}"


def structural_assertions(response: requests.Response, json_ok: bool, method: str, endpoint: str,
                          expect_status: Optional[int] = None) -> List[AssertionResult]:
    results = []

    status = response.status_code
    if expect_status is not None:
        results.append(AssertionResult(
            label(method, endpoint, f"Status code is {expect_status}"),
            status == expect_status,
            None if status == expect_status else f"expected status {expect_status}, got {status}",
        ))
    else:
        ok = 200 <= status < 300
        results.append(AssertionResult(
            label(method, endpoint, "Status code is 2xx"),
            ok,
            None if ok else f"expected 2xx status, got {status}",
        ))

    content_type = response.headers.get("Content-Type") or ""
    ok = "application/json" in content_type
    results.append(AssertionResult(
        label(method, endpoint, "Content-Type is application/json"),
        ok,
        None if ok else f"Content-Type {content_type!r} does not include 'application/json'",
    ))

    results.append(AssertionResult(
        label(method, endpoint, "Response has JSON Body"),
        json_ok,
        None if json_ok else "response body is not valid JSON",
    ))
    return results


def _default_name(field: str, check: str, expected: Any) -> str:
    if check == "equals":
        return f"Content check if value for '{field}' matches '{expected}'"
    if check == "not_null":
        return f"Content check if value for '{field}' is not 'null'"
    if check == "exists":
        return f"Content check if '{field}' exists"
    if check == "one_of":
        return f"Content check if value for '{field}' is one of {expected!r}"
    return f"Content check if '{field}' contains '{expected}'"


def normalize_assertion(spec: Dict[str, Any]) -> Dict[str, Any]:
    """
    Fill in defaults for a content assertion declared in a suite:
      {field: status, equals: succeeded}
      {field: error_message, not_null: true}
      {field: connector_transaction_id, exists: true}
      {field: kind, equals: volume_split, guarded: false, name: "..."}
    """
    if not isinstance(spec, dict):
        raise ValueError(f"content assertion must be a mapping, got {spec!r}")
    field = spec.get("field") or spec.get("path")
    if not field:
        raise ValueError(f"content assertion missing 'field': {spec!r}")
    compile_field(field)
    checks = [c for c in _CHECKS if c in spec]
    if len(checks) != 1:
        raise ValueError(f"content assertion on '{field}' must declare exactly one of {sorted(_CHECKS)}")
    check = checks[0]
    expected = spec[check]
    if check == "one_of" and not isinstance(expected, list):
        raise ValueError(f"'one_of' on '{field}' expects a list")
    return {
        "field": field,
        "check": check,
        "expected": expected,
        "guarded": bool(spec.get("guarded", check in _GUARDED_BY_DEFAULT)),
        "name": spec.get("name"),
    }


def _evaluate(check: str, defined: bool, value: Any, expected: Any, field: str) -> Tuple[bool, Optional[str]]:
    if check == "exists":
        want = bool(expected)
        if want and not defined:
            return False, f"'{field}' is undefined"
        if not want and defined:
            return False, f"'{field}' expected to be absent but found {value!r}"
        return True, None
    if check == "not_null":
        if not defined or value is None:
            return False, f"'{field}' is null or undefined"
        return True, None
    if not defined:
        return False, f"'{field}' not found"
    if check == "equals":
        if value == expected:
            return True, None
        return False, f"'{field}' expected {expected!r} but got {value!r}"
    if check == "one_of":
        if value in expected:
            return True, None
        return False, f"'{field}' expected one of {expected!r} but got {value!r}"
    # contains
    if isinstance(value, dict):
        ok = expected in value.keys() or expected in value.values()
    elif isinstance(value, (list, tuple, str)):
        ok = expected in value
    else:
        ok = value == expected
    if ok:
        return True, None
    return False, f"'{field}' does not contain {expected!r}; value: {value!r}"


def content_assertions(body: Any, specs: List[Dict[str, Any]], method: str, endpoint: str) -> List[AssertionResult]:
    results = []
    for spec in specs:
        a = normalize_assertion(spec)
        field = a["field"]
        name = label(method, endpoint, a["name"] or _default_name(field, a["check"], a["expected"]))
        defined, value = find_field(body, field)
        if a["guarded"] and not (defined and is_present(value)):
            results.append(AssertionResult(name, True, f"'{field}' not present, check skipped", skipped=True))
            continue
        ok, msg = _evaluate(a["check"], defined, value, a["expected"], field)
        results.append(AssertionResult(name, ok, msg))
    return results
