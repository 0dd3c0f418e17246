import json

import pytest

from src import main_cli
from src import utils


@pytest.fixture
def cli_env(tmp_path, monkeypatch, seed_env):
    monkeypatch.setattr("src.api_tester.configure_logging", lambda *a, **k: None)
    for name in ("PAYTEST_LOG_LEVEL", "PAYTEST_LOG_FORMAT", "PAYTEST_TIMEOUT", "PAYTEST_STATE_FILE"):
        monkeypatch.delenv(name, raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text("".join(f"{k}={v}\n" for k, v in seed_env.items()), encoding="utf-8")
    suites = tmp_path / "suites.yaml"
    suites.write_text(
        "suites:\n"
        "  - name: create and retrieve\n"
        "    steps:\n"
        "      - name: create\n"
        "        method: POST\n"
        "        endpoint: /payments\n"
        "        headers: {api-key: $apiKey}\n"
        "        body: {amount: $amount}\n"
        "        assertions:\n"
        "          - {field: status, equals: succeeded}\n"
        "      - name: retrieve\n"
        "        method: GET\n"
        "        endpoint: /payments/$payment_id\n"
        "        extract: []\n",
        encoding="utf-8",
    )
    config = tmp_path / "config.yaml"
    config.write_text("amount: 6540\n", encoding="utf-8")
    return tmp_path, str(env_file), str(suites), str(config)


def test_cli_runs_and_flushes_state(cli_env, fake_http, capsys):
    tmp_path, env_file, suites, config = cli_env
    responses, calls = fake_http
    responses.append(utils.make_response_json({"payment_id": "pay_1", "status": "succeeded"}))
    responses.append(utils.make_response_json({"payment_id": "pay_1", "status": "succeeded"}))
    state_file = tmp_path / "state.json"
    report_json = tmp_path / "report.json"
    report_html = tmp_path / "report.html"

    with pytest.raises(SystemExit) as exc:
        main_cli(["-s", suites, "-c", config, "-e", env_file, "--state-file", str(state_file),
                  "--report_json", str(report_json), "--report_html", str(report_html)])

    assert exc.value.code == 0
    assert calls[0]["json"] == {"amount": 6540}
    assert calls[1]["url"] == "http://hs.local/payments/pay_1"
    assert json.loads(state_file.read_text(encoding="utf-8"))["payment_id"] == "pay_1"
    assert json.loads(report_json.read_text(encoding="utf-8"))["passed"] == 1
    assert report_html.exists()
    assert "Suites executed: 1" in capsys.readouterr().out


def test_cli_failed_assertion_exit_code(cli_env, fake_http):
    _, env_file, suites, config = cli_env
    responses, _ = fake_http
    responses.append(utils.make_response_json({"payment_id": "pay_1", "status": "failed"}))

    with pytest.raises(SystemExit) as exc:
        main_cli(["-s", suites, "-c", config, "-e", env_file])
    assert exc.value.code == 2


def test_cli_validate_only(cli_env, fake_http, tmp_path):
    _, env_file, _, _ = cli_env
    _, calls = fake_http
    bad = tmp_path / "bad.yaml"
    bad.write_text(
        "suites:\n  - name: retrieve first\n    steps:\n"
        "      - {name: retrieve, method: GET, endpoint: /payments/$payment_id}\n",
        encoding="utf-8",
    )

    with pytest.raises(SystemExit) as exc:
        main_cli(["-s", str(bad), "-e", env_file, "--validate-only"])
    assert exc.value.code == 4
    assert calls == []


def test_cli_fatal_on_missing_suites(cli_env, tmp_path, capsys):
    _, env_file, _, _ = cli_env
    with pytest.raises(SystemExit) as exc:
        main_cli(["-s", str(tmp_path / "none.yaml"), "-e", env_file])
    assert exc.value.code == 3
    assert "Fatal error" in capsys.readouterr().out


def test_cli_validate_only_flags_unset_base_url(cli_env, fake_http, tmp_path, monkeypatch):
    _, _, suites, config = cli_env
    env_file = tmp_path / "no-base.env"
    env_file.write_text("API_KEY=snd_key\n", encoding="utf-8")
    monkeypatch.delenv("BASEURL", raising=False)

    with pytest.raises(SystemExit) as exc:
        main_cli(["-s", suites, "-c", config, "-e", str(env_file), "--validate-only"])
    assert exc.value.code == 4


def test_cli_malformed_step_is_fatal(cli_env, tmp_path, capsys):
    _, env_file, _, _ = cli_env
    bad = tmp_path / "bad-step.yaml"
    bad.write_text("suites:\n  - name: S\n    steps: [just-a-string]\n", encoding="utf-8")
    with pytest.raises(SystemExit) as exc:
        main_cli(["-s", str(bad), "-e", env_file])
    assert exc.value.code == 3
    assert "must be a mapping" in capsys.readouterr().out


def test_cli_invalid_settings_are_fatal(cli_env, monkeypatch, capsys):
    _, env_file, suites, config = cli_env
    monkeypatch.setenv("PAYTEST_LOG_FORMAT", "xml")
    with pytest.raises(SystemExit) as exc:
        main_cli(["-s", suites, "-c", config, "-e", env_file])
    assert exc.value.code == 3
    assert "Fatal error" in capsys.readouterr().out
