import pytest

from src import utils
from src.assertions import (
    content_assertions,
    find_field,
    is_present,
    normalize_assertion,
    parse_json_body,
    structural_assertions,
)


def _by_name(results):
    return {r.name: r for r in results}


def test_parse_json_body_invalid_returns_empty_mapping():
    resp = utils.make_response_text("<html>oops</html>", status=502, headers={"Content-Type": "text/html"})
    body, ok = parse_json_body(resp)
    assert body == {}
    assert ok is False


def test_structural_all_pass():
    resp = utils.make_response_json({"a": 1}, status=201, headers={"Content-Type": "application/json; charset=utf-8"})
    body, ok = parse_json_body(resp)
    results = structural_assertions(resp, ok, "post", "/payments")
    assert [r.name for r in results] == [
        "[POST]::/payments - Status code is 2xx",
        "[POST]::/payments - Content-Type is application/json",
        "[POST]::/payments - Response has JSON Body",
    ]
    assert all(r.passed for r in results)


def test_structural_failures_are_independent():
    resp = utils.make_response_text("not json", status=500, headers={"Content-Type": "text/plain"})
    body, ok = parse_json_body(resp)
    results = structural_assertions(resp, ok, "GET", "/payments/x")
    assert [r.passed for r in results] == [False, False, False]
    assert "500" in results[0].message


def test_expect_status_overrides_2xx_check():
    resp = utils.make_response_json({"error": {"code": "IR_05"}}, status=400)
    results = structural_assertions(resp, True, "POST", "/payments", expect_status=400)
    assert results[0].name == "[POST]::/payments - Status code is 400"
    assert results[0].passed


def test_find_field_bare_key_and_jsonpath():
    body = {"status": "succeeded", "error": {"code": "IR_01"}, "items": [{"id": 1}, {"id": 2}]}
    assert find_field(body, "status") == (True, "succeeded")
    assert find_field(body, "$.error.code") == (True, "IR_01")
    assert find_field(body, "$.items[*].id") == (True, [1, 2])
    assert find_field(body, "missing") == (False, None)
    assert find_field([], "status") == (False, None)


@pytest.mark.parametrize("value,expected", [
    (None, False), (False, False), (0, False), ("", False),
    ("x", True), (1, True), (True, True), ([], True), ({}, True),
])
def test_is_present(value, expected):
    assert is_present(value) is expected


def test_normalize_defaults():
    assert normalize_assertion({"field": "status", "equals": "succeeded"})["guarded"] is True
    assert normalize_assertion({"field": "connector_transaction_id", "exists": True})["guarded"] is False
    assert normalize_assertion({"field": "kind", "equals": "volume_split", "guarded": False})["guarded"] is False


@pytest.mark.parametrize("spec", [
    {"equals": 1},
    {"field": "status"},
    {"field": "status", "equals": "a", "not_null": True},
    {"field": "status", "one_of": "succeeded"},
])
def test_normalize_rejects_invalid(spec):
    with pytest.raises(ValueError):
        normalize_assertion(spec)


def test_guarded_checks_skip_when_field_absent():
    specs = [
        {"field": "status", "equals": "succeeded"},
        {"field": "error_message", "not_null": True},
    ]
    results = content_assertions({}, specs, "POST", "/payments")
    assert all(r.skipped and r.passed for r in results)


def test_guarded_equals_runs_when_present():
    results = content_assertions({"status": "failed"}, [{"field": "status", "equals": "succeeded"}], "POST", "/payments")
    r = results[0]
    assert r.name == "[POST]::/payments - Content check if value for 'status' matches 'succeeded'"
    assert not r.skipped
    assert not r.passed
    assert "failed" in r.message


def test_unguarded_exists_fails_on_missing_field():
    results = content_assertions({"status": "succeeded"}, [{"field": "connector_transaction_id", "exists": True}],
                                 "POST", "/payments")
    r = results[0]
    assert r.name == "[POST]::/payments - Content check if 'connector_transaction_id' exists"
    assert r.passed is False
    assert r.skipped is False


def test_exists_passes_for_null_value():
    # defined but null still counts as existing
    results = content_assertions({"connector_transaction_id": None}, [{"field": "connector_transaction_id", "exists": True}],
                                 "POST", "/payments")
    assert results[0].passed


def test_unguarded_equals_uses_custom_name():
    specs = [{"field": "kind", "equals": "volume_split", "guarded": False, "name": "Algorithm configured for payouts"}]
    results = content_assertions({}, specs, "POST", "/routing/payouts/deactivate")
    assert results[0].name == "[POST]::/routing/payouts/deactivate - Algorithm configured for payouts"
    assert results[0].passed is False


def test_one_of_and_contains():
    body = {"status": "processing", "payment_methods": [{"payment_method": "card"}], "ids": ["a", "b"]}
    specs = [
        {"field": "status", "one_of": ["succeeded", "processing"]},
        {"field": "ids", "contains": "b"},
        {"field": "status", "contains": "cess"},
    ]
    results = content_assertions(body, specs, "GET", "/payments/x")
    assert [r.passed for r in results] == [True, True, True]


def test_assertions_do_not_short_circuit():
    specs = [
        {"field": "status", "equals": "succeeded"},
        {"field": "amount", "equals": 100},
        {"field": "currency", "equals": "USD"},
    ]
    results = content_assertions({"status": "failed", "amount": 100, "currency": "EUR"}, specs, "GET", "/payments/x")
    assert [r.passed for r in results] == [False, True, False]
    assert len(_by_name(results)) == 3
