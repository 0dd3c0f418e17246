"""
Package shim for the test runner.
Exposes the state container, step runner and suite helpers so tests can import from `src`.
"""
from .state import RunState, load_global_state, flush_global_state, seed_state
from .assertions import AssertionResult, parse_json_body
from .api_tester import (
    load_suites,
    load_suites_aggregate,
    build_request,
    execute_api_call,
    run_step,
    run_suite_collect,
    run_suites,
    validate_suite,
    main_cli,
)

__all__ = [
    "RunState",
    "load_global_state",
    "flush_global_state",
    "seed_state",
    "AssertionResult",
    "parse_json_body",
    "load_suites",
    "load_suites_aggregate",
    "build_request",
    "execute_api_call",
    "run_step",
    "run_suite_collect",
    "run_suites",
    "validate_suite",
    "main_cli",
]
