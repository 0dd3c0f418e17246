"""
state.py
- RunState: key/value context threaded through the steps of one run
- Seeded from environment variables at construction
- Handed over between runner invocations through a JSON state file
"""

import json
import os
from typing import Any, Dict, Mapping, Optional

import structlog

log = structlog.get_logger(__name__)

# environment variable -> state key
SEED_KEYS = {
    "CONNECTOR": "connectorId",
    "BASEURL": "baseUrl",
    "ADMINAPIKEY": "adminApiKey",
    "HS_EMAIL": "email",
    "HS_PASSWORD": "password",
    "CONNECTOR_AUTH_FILE_PATH": "connectorAuthFilePath",
    "API_KEY": "apiKey",
    "PUBLISHABLE_KEY": "publishableKey",
}


class RunState:
    """Mutable key/value store for one test run. Last write wins per key."""

    def __init__(self, data: Optional[Mapping[str, Any]] = None, env: Optional[Mapping[str, str]] = None):
        self.data: Dict[str, Any] = dict(data or {})
        if env is None:
            env = os.environ
        # seed keys are always written, an unset variable seeds None
        for env_name, key in SEED_KEYS.items():
            self.data[key] = env.get(env_name)

    def set(self, key: str, value: Any) -> None:
        self.data[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def has(self, key: str) -> bool:
        return key in self.data

    def keys(self):
        return list(self.data.keys())

    def snapshot(self) -> Dict[str, Any]:
        return dict(self.data)

    def __repr__(self):
        return f"RunState(keys={sorted(self.data)!r})"


def load_global_state(path: Optional[str]) -> Dict[str, Any]:
    """Return the mapping stored by a previous run, or {} when there is none."""
    if not path or not os.path.isfile(path):
        return {}
    with open(path, "rt", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise ValueError(f"state file '{path}' must hold a JSON object")
    return data


def flush_global_state(state: RunState, path: str) -> None:
    """Persist the state snapshot so the next invocation can seed from it."""
    snapshot = state.snapshot()
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(snapshot, fh, indent=2, ensure_ascii=False, default=str)
    log.info("flushed global state", path=path, keys=sorted(snapshot))


def seed_state(path: Optional[str], env: Optional[Mapping[str, str]] = None) -> RunState:
    state = RunState(load_global_state(path), env=env)
    # keys only: the seed carries credentials
    log.info("seeded global state", path=path, keys=sorted(state.keys()))
    return state
