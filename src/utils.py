"""
Small utility helpers used by tests and the runner.
"""

from typing import Any, Dict
import json
import yaml
import requests
from requests.structures import CaseInsensitiveDict


def load_yaml_file(path: str) -> Dict[str, Any]:
    """Load YAML file and return parsed dict (raises on error)."""
    with open(path, "rt", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    return data or {}


def make_response_text(text: str, status: int = 200, headers: Dict[str, str] = None) -> requests.Response:
    """Build a requests.Response with a raw text body."""
    resp = requests.Response()
    resp.status_code = status
    resp._content = text.encode("utf-8")
    resp.headers = CaseInsensitiveDict(headers or {})
    resp.encoding = "utf-8"
    resp.url = "http://test.local/"
    return resp


def make_response_json(obj: Any, status: int = 200, headers: Dict[str, str] = None) -> requests.Response:
    """
    Convenience for building a requests.Response with JSON body for tests.
    """
    hdrs = dict(headers or {})
    hdrs.setdefault("Content-Type", "application/json")
    return make_response_text(json.dumps(obj), status=status, headers=hdrs)
