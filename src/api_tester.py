"""
api_tester.py
- Loads payment API suites from YAML (file, directory or glob)
- Runs steps in declaration order against one shared RunState
- Each step: build request from state, send it with requests, run structural
  and content assertions, extract response fields back into the state
- A failed assertion never stops later steps
- Prints summary report at end, optional JSON / HTML reports
"""

import argparse
import sys
import json
from typing import Any, Dict, List, Tuple, Optional
import re
from copy import deepcopy
import time
import traceback

import requests
from pydantic import ValidationError
import structlog
import yaml
import os
import glob
import pathlib

from .assertions import (
    AssertionResult,
    compile_field,
    content_assertions,
    find_field,
    is_present,
    label,
    normalize_assertion,
    parse_json_body,
    structural_assertions,
)
from .config import Settings, load_config, load_env
from .logging_config import configure_logging
from .state import RunState, SEED_KEYS, flush_global_state, seed_state
from .utils import load_yaml_file

log = structlog.get_logger(__name__)

DEFAULT_EXTRACT = ["payment_id", "customer_id", "client_secret"]

# simple $key placeholder pattern (no braces, single level keys)
_SIMPLE_PLACEHOLDER_RE = re.compile(r"\$([A-Za-z0-9_]+)")


def _substitute(obj: Any, values: Dict[str, Any]) -> Any:
    """
    Recursively substitute $key placeholders in strings using a flat key->value mapping.
    - If a string is exactly "$key" the stored value is returned with its type.
    - Otherwise each occurrence is replaced with str(value).
    - Unknown keys are left as they are.
    """
    if isinstance(obj, dict):
        return {k: _substitute(v, values) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_substitute(v, values) for v in obj]
    if isinstance(obj, str):
        if not values:
            return obj
        matches = list(_SIMPLE_PLACEHOLDER_RE.finditer(obj))
        if not matches:
            return obj
        # single exact placeholder -> preserve type
        if len(matches) == 1 and matches[0].start() == 0 and matches[0].end() == len(obj):
            key = matches[0].group(1)
            if key in values:
                return values[key]
            return obj

        def _repl(m):
            key = m.group(1)
            if key in values:
                return str(values[key])
            return m.group(0)
        return _SIMPLE_PLACEHOLDER_RE.sub(_repl, obj)
    return obj


def placeholders_in(obj: Any) -> List[str]:
    """Names of all $key placeholders left in obj, in order of first appearance."""
    found: List[str] = []

    def _walk(o):
        if isinstance(o, dict):
            for v in o.values():
                _walk(v)
        elif isinstance(o, list):
            for v in o:
                _walk(v)
        elif isinstance(o, str):
            for m in _SIMPLE_PLACEHOLDER_RE.finditer(o):
                if m.group(1) not in found:
                    found.append(m.group(1))
    _walk(obj)
    return found


def load_suites(path: str, config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Load suites YAML and apply simple $key substitutions using config."""
    data = load_yaml_file(path)
    if not isinstance(data, dict) or "suites" not in data:
        raise ValueError(f"Invalid suites file '{path}': missing 'suites' key")
    if not isinstance(data["suites"], list):
        raise ValueError(f"Invalid suites file '{path}': 'suites' must be a list")
    if config:
        data = _substitute(data, config)
    for idx, suite in enumerate(data["suites"], start=1):
        _check_suite_shape(suite, f"{path}: suite #{idx}")
        suite["_source_file"] = path
    return data


def _check_suite_shape(suite: Any, where: str) -> None:
    """Raise ValueError unless suite, its steps and their assertion/extract lists have the expected types."""
    if not isinstance(suite, dict):
        raise ValueError(f"{where}: suite must be a mapping, got {suite!r}")
    steps = suite.get("steps")
    if steps is None:
        return
    if not isinstance(steps, list):
        raise ValueError(f"{where}: 'steps' must be a list")
    for idx, step in enumerate(steps, start=1):
        if not isinstance(step, dict):
            raise ValueError(f"{where}: step #{idx} must be a mapping, got {step!r}")
        if not isinstance(step.get("assertions") or [], list):
            raise ValueError(f"{where}: step #{idx} 'assertions' must be a list")
        if not isinstance(step.get("extract") or [], (list, str)):
            raise ValueError(f"{where}: step #{idx} 'extract' must be a list of keys")


def _gather_yaml_files_from_dir(dir_path: str) -> List[str]:
    """Return sorted list of .yml/.yaml files under dir_path (recursive)."""
    p = pathlib.Path(dir_path)
    if not p.is_dir():
        return []
    files = [str(x) for x in p.rglob("*") if x.is_file() and x.suffix.lower() in (".yml", ".yaml")]
    return sorted(set(files))


def load_suites_aggregate(path: str, config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Load suites from a single YAML file, every YAML file under a directory,
    or every YAML file matching a glob. Combines all 'suites' lists into {'suites': [...]}.
    """
    if os.path.isfile(path):
        return load_suites(path, config=config)
    if os.path.isdir(path):
        files = _gather_yaml_files_from_dir(path)
        if not files:
            raise ValueError(f"No suite YAML files found in directory: {path}")
    else:
        hits = sorted(glob.glob(path, recursive=True))
        files = [h for h in hits if os.path.isfile(h) and h.lower().endswith((".yml", ".yaml"))]
        if not files:
            raise ValueError(f"Provided suites path is not a file, directory, or matching glob: {path}")
    combined = []
    for f in files:
        combined.extend(load_suites(f, config=config)["suites"])
    return {"suites": combined}


def _extract_specs(step: Dict[str, Any]) -> List[Dict[str, str]]:
    """Normalize a step's extract list into [{name, path}]."""
    raw = step.get("extract", DEFAULT_EXTRACT)
    if raw is None:
        raw = []
    elif isinstance(raw, str):
        # `extract: payment_id` means one key
        raw = [raw]
    elif not isinstance(raw, list):
        raise ValueError(f"'extract' must be a list of keys, got {raw!r}")
    out = []
    for item in raw:
        if isinstance(item, str):
            out.append({"name": item, "path": item})
        elif isinstance(item, dict) and item.get("name"):
            out.append({"name": item["name"], "path": item.get("path") or item["name"]})
        else:
            raise ValueError(f"invalid extract entry {item!r}: expected a key or {{name, path}}")
        compile_field(out[-1]["path"])
    return out


def check_step(step: Any) -> None:
    """Raise ValueError when a step declaration cannot be run."""
    if not isinstance(step, dict):
        raise ValueError(f"step must be a mapping, got {step!r}")
    assertions = step.get("assertions") or []
    if not isinstance(assertions, list):
        raise ValueError(f"'assertions' must be a list, got {assertions!r}")
    for a in assertions:
        normalize_assertion(a)
    _extract_specs(step)


def step_reads(step: Dict[str, Any]) -> List[str]:
    """State keys a step needs: declared 'reads' plus placeholders in its request parts."""
    reads = list(step.get("reads") or [])
    request_parts = {k: step.get(k) for k in ("url", "endpoint", "headers", "params", "body")}
    if not step.get("url"):
        request_parts["url"] = "$baseUrl"
    for key in placeholders_in(request_parts):
        if key not in reads:
            reads.append(key)
    return reads


def step_writes(step: Dict[str, Any]) -> List[str]:
    return [e["name"] for e in _extract_specs(step)]


def validate_suite(suite: Dict[str, Any], seed_keys: Optional[List[str]] = None) -> List[str]:
    """
    Check step ordering statically: every key a step reads must be seeded
    or written by an earlier step. Returns a list of problems (empty when valid).
    """
    known = set(SEED_KEYS.values()) if seed_keys is None else set(seed_keys)
    problems = []
    name = suite.get("name", "<unnamed>")
    for idx, step in enumerate(suite.get("steps") or [], start=1):
        step_name = step.get("name", f"step-{idx}") if isinstance(step, dict) else f"step-{idx}"
        try:
            check_step(step)
            writes = step_writes(step)
        except ValueError as e:
            problems.append(f"{name}: step #{idx} '{step_name}': {e}")
            continue
        for key in step_reads(step):
            if key not in known:
                problems.append(f"{name}: step #{idx} '{step_name}' reads '{key}' before any step writes it")
        known.update(writes)
    return problems


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _connector_details(suite: Dict[str, Any], connector_id: Optional[str], path: str) -> Dict[str, Any]:
    """Resolve a dotted path (e.g. 'card_pm.No3DS') in the suite's table for connector_id."""
    connectors = suite.get("connectors") or {}
    if connector_id not in connectors:
        raise ValueError(f"no connector details for connector '{connector_id}'")
    node = connectors[connector_id]
    for part in path.split("."):
        if not isinstance(node, dict) or part not in node:
            raise ValueError(f"connector '{connector_id}' has no details at '{path}'")
        node = node[part]
    if not isinstance(node, dict):
        raise ValueError(f"connector details at '{path}' must be a mapping")
    return node


def _load_body_file(path: str, source_file: Optional[str]) -> Any:
    if not os.path.isabs(path) and source_file:
        path = os.path.join(os.path.dirname(source_file), path)
    with open(path, "rt", encoding="utf-8") as fh:
        return json.load(fh)


def build_request(step: Dict[str, Any], state: RunState, suite: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Return the concrete request for step with placeholders resolved from state."""
    suite = suite or {}
    endpoint = step.get("endpoint") or "/"
    body = deepcopy(step.get("body"))
    if step.get("body_file"):
        # inline body overrides the fixture
        fixture = _load_body_file(step["body_file"], suite.get("_source_file"))
        body = _deep_merge(fixture, body) if isinstance(body, dict) and isinstance(fixture, dict) else fixture
    if step.get("connector_details"):
        details = _connector_details(suite, state.get("connectorId"), step["connector_details"])
        body = _deep_merge(body or {}, deepcopy(details))

    headers = dict(suite.get("headers") or {})
    headers.update(step.get("headers") or {})

    request = {
        "method": (step.get("method") or "GET").upper(),
        "url": step.get("url") or "$baseUrl" + endpoint,
        "headers": headers,
        "params": step.get("params"),
        "body": body,
        "timeout": step.get("timeout"),
    }
    # unset keys stay as literal placeholders instead of becoming "None"
    values = {k: v for k, v in state.data.items() if v is not None}
    return _substitute(request, values)


def execute_api_call(request: Dict[str, Any], session: Optional[requests.Session] = None,
                     timeout: float = 30) -> requests.Response:
    """Execute the HTTP request described by a built request dict and return the Response."""
    method = (request.get("method") or "GET").upper()
    url = request.get("url")
    if not url or not isinstance(url, str) or _SIMPLE_PLACEHOLDER_RE.search(url):
        raise ValueError(f"Missing or unresolved URL in request: {url!r}")

    s = session or requests.Session()

    kwargs = {"headers": request.get("headers") or {}, "timeout": request.get("timeout") or timeout}
    if request.get("body") is not None:
        kwargs["json"] = request["body"]
    if request.get("params") is not None:
        kwargs["params"] = request["params"]

    return s.request(method, url, **kwargs)


def _extract(body: Any, step: Dict[str, Any], state: RunState) -> List[str]:
    written = []
    for spec in _extract_specs(step):
        name = spec["name"]
        defined, value = find_field(body, spec["path"])
        if defined and is_present(value):
            state.set(name, value)
            written.append(name)
            log.info(f"use {{{{{name}}}}} as collection variable", key=name)
        else:
            log.info(f"INFO - Unable to assign variable {{{{{name}}}}}, as {spec['path']} is undefined.", key=name)
    return written


def _failed_step(record: Dict[str, Any], title: str, exc: Exception) -> Dict[str, Any]:
    record["error"] = f"{title}: {exc}\n{traceback.format_exc()}"
    record["assertions"] = [AssertionResult(
        label(record["request"]["method"] if record["request"] else "GET", record["endpoint"], title),
        False,
        str(exc),
    ).to_dict()]
    return record


def run_step(step: Dict[str, Any], state: RunState, session: Optional[requests.Session] = None,
             suite: Optional[Dict[str, Any]] = None, index: int = 1, timeout: float = 30) -> Dict[str, Any]:
    """
    Run one request/assert/extract step against state.
    Never raises for assertion, parse or transport failures; they end up in the returned record.
    """
    decl = step if isinstance(step, dict) else {}
    step_name = decl.get("name", f"step-{index}")
    endpoint = decl.get("endpoint") or "/"
    method = (decl.get("method") or "GET").upper()
    record: Dict[str, Any] = {"index": index, "name": step_name, "endpoint": endpoint, "start": time.time(),
                              "duration_ms": None, "request": None, "response": None, "assertions": [],
                              "extracted": [], "error": None}
    t0 = record["start"]

    try:
        check_step(step)
        request = build_request(step, state, suite)
    except (ValueError, OSError) as exc:
        record["request"] = {"method": method, "url": decl.get("url")}
        record["duration_ms"] = 0
        return _failed_step(record, "Request could not be built", exc)
    record["request"] = request

    try:
        resp = execute_api_call(request, session=session, timeout=timeout)
    except (requests.RequestException, ValueError) as exc:
        record["duration_ms"] = int((time.time() - t0) * 1000)
        log.warning("request failed", step=step_name, url=request.get("url"), error=str(exc))
        return _failed_step(record, "Request failed", exc)
    record["duration_ms"] = int((time.time() - t0) * 1000)

    body, json_ok = parse_json_body(resp)
    record["response"] = {
        "status_code": resp.status_code,
        "headers": dict(resp.headers),
        "json": body if json_ok else None,
        "text_snippet": json.dumps(body, indent=2)[:2000] if json_ok else (resp.text or "")[:2000],
    }

    results = structural_assertions(resp, json_ok, method, endpoint, expect_status=step.get("expect_status"))
    results.extend(content_assertions(body, step.get("assertions") or [], method, endpoint))
    record["assertions"] = [r.to_dict() for r in results]
    record["extracted"] = _extract(body, step, state)
    return record


def step_passed(record: Dict[str, Any]) -> bool:
    return all(a["passed"] for a in record.get("assertions") or [])


def run_suite_collect(suite: Dict[str, Any], state: RunState, session: Optional[requests.Session] = None,
                      timeout: float = 30) -> Tuple[bool, Dict[str, Any]]:
    """
    Run every step of suite in declaration order and return (ok, suite_report).
    ok is False when any assertion of any step failed.
    """
    name = suite.get("name", "<unnamed>")
    steps = suite.get("steps", []) or []
    print(f"\n=== Running suite: {name} ({len(steps)} step(s)) ===")
    session = session or requests.Session()

    report = {"name": name, "source": suite.get("_source_file"), "steps": []}
    ok = True
    for idx, step in enumerate(steps, start=1):
        step_name = step.get("name", f"step-{idx}") if isinstance(step, dict) else f"step-{idx}"
        print(f"  [{idx}/{len(steps)}] -> {step_name} ... ", end="", flush=True)
        record = run_step(step, state, session=session, suite=suite, index=idx, timeout=timeout)
        report["steps"].append(record)
        if step_passed(record):
            print("OK")
        else:
            ok = False
            print("FAILED")
    report["ok"] = ok
    return ok, report


def run_suites(suites: List[Dict[str, Any]], state: RunState, session: Optional[requests.Session] = None,
               timeout: float = 30) -> Dict[str, Any]:
    """Run suites one after another sharing state; return the detailed report."""
    detailed_report = {"suites_total": len(suites), "passed": 0, "failed": 0, "suites": []}
    for suite in suites:
        ok, suite_report = run_suite_collect(suite, state, session=session, timeout=timeout)
        detailed_report["suites"].append(suite_report)
        detailed_report["passed" if ok else "failed"] += 1
    return detailed_report


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Payments API integration test runner (YAML-driven).")
    parser.add_argument("--suites", "-s", help="Path to suites YAML, directory or glob", default="collections")
    parser.add_argument("--config", "-c", help="Path to key->value config YAML for $key substitution", default=None)
    parser.add_argument("--env-file", "-e", help="dotenv file with CONNECTOR, BASEURL, API_KEY, ...", default=None)
    parser.add_argument("--state-file", help="JSON file the run state is seeded from and flushed to", default=None)
    parser.add_argument("--report_json", help="Write detailed JSON report to this file (optional)", default=None)
    parser.add_argument("--report_html", help="Write detailed HTML report to this file (optional)", default=None)
    parser.add_argument("--validate-only", action="store_true", help="Only check step ordering, do not send requests")
    parser.add_argument("--verbose", "-v", action="store_true", help="Print per-suite results to console")
    return parser


def main_cli(argv: Optional[List[str]] = None):
    from .reporting import generate_html_report, print_summary, write_json_report

    args = build_arg_parser().parse_args(argv)

    try:
        settings = Settings()
        configure_logging(settings.log_level, settings.log_format)
        state_file = args.state_file or settings.state_file

        cfg = load_config(args.config) if args.config else {}
        suites = load_suites_aggregate(args.suites, config=cfg)["suites"]
        env = load_env(args.env_file)
        state = seed_state(state_file, env=env)

        problems = []
        for suite in suites:
            # keys seeded None are still unresolved at request time
            known = [k for k in state.keys() if state.get(k) is not None]
            problems.extend(validate_suite(suite, seed_keys=known))
        for p in problems:
            log.warning("step ordering problem", problem=p)
        if args.validate_only:
            print(f"Suites checked: {len(suites)}, ordering problems: {len(problems)}")
            for p in problems:
                print(f"- {p}")
            sys.exit(0 if not problems else 4)

        detailed_report = run_suites(suites, state, timeout=settings.timeout)

        if state_file:
            flush_global_state(state, state_file)

        if args.verbose:
            for s in detailed_report["suites"]:
                print(f"Suite '{s['name']}' {'PASSED' if s['ok'] else 'FAILED'}. Steps: {len(s['steps'])}")

        print_summary(detailed_report)

        if args.report_json:
            write_json_report(detailed_report, args.report_json)
            print(f"Wrote JSON report to {args.report_json}")
        if args.report_html:
            generate_html_report(detailed_report, args.report_html)
            print(f"Wrote HTML report to {args.report_html}")

        sys.exit(0 if detailed_report["failed"] == 0 else 2)
    except (ValidationError, ValueError, OSError, yaml.YAMLError) as exc:
        print(f"Fatal error: {exc}")
        sys.exit(3)


if __name__ == "__main__":
    main_cli()
