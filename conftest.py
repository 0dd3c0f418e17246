import pytest

from src.state import RunState
from src import utils

SEED_ENV = {
    "CONNECTOR": "stripe",
    "BASEURL": "http://hs.local",
    "ADMINAPIKEY": "admin-key",
    "HS_EMAIL": "dev@example.com",
    "HS_PASSWORD": "secret",
    "CONNECTOR_AUTH_FILE_PATH": "/tmp/creds.json",
    "API_KEY": "snd_key",
    "PUBLISHABLE_KEY": "pk_snd",
}


@pytest.fixture
def seed_env():
    return dict(SEED_ENV)


@pytest.fixture
def state(seed_env):
    return RunState(env=seed_env)


@pytest.fixture
def fake_http(monkeypatch):
    """
    Replace requests.Session.request with a queue of canned responses.
    Returns (responses, calls): append responses to the list, inspect calls afterwards.
    """
    responses = []
    calls = []

    def fake_request(self, method, url, **kwargs):
        calls.append({"method": method, "url": url, **kwargs})
        if not responses:
            return utils.make_response_json({}, status=200)
        nxt = responses.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        return nxt

    monkeypatch.setattr("requests.Session.request", fake_request)
    return responses, calls
