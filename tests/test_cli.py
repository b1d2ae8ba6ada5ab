# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

import json

import pytest
from click.testing import CliRunner

from cli import cli, exit_code_for, parse_env


@pytest.fixture
def runner():
    return CliRunner()


def invoke(runner, *args, **kwargs):
    return runner.invoke(cli, ["--log-level", "ERROR", *args], **kwargs)


def test_exec_python(runner):
    result = invoke(runner, "exec", "python", "print('hello')")

    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert "hello" in data["stdOut"]
    assert data["success"] is True


def test_exec_failure_exit_code(runner):
    result = invoke(runner, "exec", "python", "import sys; sys.exit(5)")

    assert result.exit_code == 1
    assert json.loads(result.stdout)["exitCode"] == 5


def test_exec_timeout(runner):
    result = invoke(runner, "exec", "python", "import time; time.sleep(10)", "--timeout", "1")

    assert result.exit_code == 1
    assert json.loads(result.stdout)["timedOut"] is True


def test_exec_env_and_cwd(runner, tmp_path):
    result = invoke(
        runner,
        "exec",
        "python",
        "import os; print(os.environ['GREETING'])",
        "--env",
        "GREETING=hi",
        "--cwd",
        str(tmp_path),
    )

    assert result.exit_code == 0
    assert json.loads(result.stdout)["stdOut"].strip() == "hi"


def test_exec_bad_env(runner):
    result = invoke(runner, "exec", "python", "pass", "--env", "NOEQUALS")

    assert result.exit_code == 2


def test_exec_unknown_kind(runner):
    result = invoke(runner, "exec", "cobol", "DISPLAY 'X'")

    assert result.exit_code == 2


def test_scan(runner, tmp_path):
    (tmp_path / "a.log").write_text("x", encoding="utf-8")
    (tmp_path / "b.txt").write_text("x", encoding="utf-8")

    result = invoke(runner, "scan", str(tmp_path), "--ext", "log")

    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert [entry["path"].endswith("a.log") for entry in data] == [True]


def test_scan_missing_root(runner, tmp_path):
    result = invoke(runner, "scan", str(tmp_path / "missing"))

    assert result.exit_code == 1
    assert json.loads(result.stdout)["error"]["type"] == "PathNotFound"


def test_registry_snapshot(runner, tmp_path):
    snapshot = tmp_path / "hive.yaml"
    snapshot.write_text(
        "HKLM:\n  subKeys:\n    SOFTWARE:\n      values:\n        Owner: ops\n",
        encoding="utf-8",
    )

    result = invoke(runner, "registry", "HKLM\\SOFTWARE", "--snapshot", str(snapshot))

    assert result.exit_code == 0
    assert json.loads(result.stdout)["values"] == {"Owner": "ops"}


def test_registry_unknown_hive(runner, tmp_path):
    snapshot = tmp_path / "hive.yaml"
    snapshot.write_text("HKLM: {}\n", encoding="utf-8")

    result = invoke(runner, "registry", "HKZZ\\X", "--snapshot", str(snapshot))

    assert result.exit_code == 2
    assert json.loads(result.stdout)["error"]["type"] == "InvalidRequest"


def test_run_from_stdin(runner):
    request = {"kind": "python", "request": {"command": "print('piped')"}}

    result = invoke(runner, "run", input=json.dumps(request))

    assert result.exit_code == 0
    assert "piped" in json.loads(result.stdout)["stdOut"]


def test_run_from_yaml_file(runner, tmp_path):
    path = tmp_path / "request.yaml"
    path.write_text(
        "kind: filesystem\nrequest:\n  rootPath: " + json.dumps(str(tmp_path)) + "\n",
        encoding="utf-8",
    )

    result = invoke(runner, "run", str(path))

    assert result.exit_code == 0
    assert any(e["path"].endswith("request.yaml") for e in json.loads(result.stdout))


def test_run_unknown_kind(runner):
    result = invoke(runner, "run", input='{"kind": "ftp", "request": {}}')

    assert result.exit_code == 2
    assert json.loads(result.stdout)["error"]["type"] == "UnsupportedOperation"


def test_config_option(runner, tmp_path):
    config = tmp_path / "probe.yaml"
    config.write_text("runtime:\n  default_timeout_seconds: 1\n", encoding="utf-8")

    try:
        result = runner.invoke(
            cli,
            ["--config", str(config), "--log-level", "ERROR", "exec", "python", "import time; time.sleep(10)"],
        )
        assert json.loads(result.stdout)["error"]["type"] == "Timeout"
    finally:
        from probekit.core import config as config_module

        config_module._config = None


def test_exit_code_for():
    assert exit_code_for('{"success": true, "exitCode": 0}') == 0
    assert exit_code_for('{"success": false, "exitCode": 1}') == 1
    assert exit_code_for('{"error": {"type": "Timeout"}}') == 1
    assert exit_code_for('[{"path": "/x"}]') == 0
    assert exit_code_for('{"keyPath": "HKLM", "values": {}, "subKeys": []}') == 0


def test_parse_env():
    assert parse_env(()) is None
    assert parse_env(("A=1", "B=x=y")) == {"A": "1", "B": "x=y"}
