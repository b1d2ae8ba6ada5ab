# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Tests for the shell, batch, powershell and python executors

Argument vectors are checked per platform by patching the module-level
platform flag; execution tests run only where the host has the shell.
"""

import os
import sys

import pytest

from probekit.core.adapters import batch, powershell, python, shell
from probekit.core.adapters.batch import BatchExecutor
from probekit.core.adapters.powershell import PowerShellExecutor
from probekit.core.adapters.python import PythonExecutor, is_script_invocation
from probekit.core.adapters.shell import ShellExecutor
from probekit.core.exceptions import UnsupportedPlatformError
from probekit.core.models import ErrorKind, ExecRequest

from conftest import posix_only


# =============================================================================
# Shell
# =============================================================================


def test_shell_posix_command(monkeypatch):
    monkeypatch.setattr(shell, "IS_WINDOWS", False)
    executor = ShellExecutor()

    assert executor.build_command(ExecRequest(command="echo hi")) == ("/bin/sh", ["-c", "echo hi"])
    assert executor.build_command(ExecRequest(command="echo hi", use_login_shell=True)) == (
        "/bin/bash",
        ["-lc", "echo hi"],
    )
    assert executor.build_command(
        ExecRequest(command="echo hi", interpreter_path="/usr/bin/zsh")
    ) == ("/usr/bin/zsh", ["-c", "echo hi"])


def test_shell_windows_command(monkeypatch):
    monkeypatch.setattr(shell, "IS_WINDOWS", True)

    assert ShellExecutor().build_command(ExecRequest(command="dir")) == ("cmd.exe", ["/c", "dir"])


@posix_only
@pytest.mark.asyncio
async def test_shell_echo():
    result = await ShellExecutor().execute(ExecRequest(command="echo hello"))

    assert result.exit_code == 0
    assert "hello" in result.stdout
    assert result.success


@posix_only
@pytest.mark.asyncio
async def test_shell_pipeline_and_exit_code():
    result = await ShellExecutor().execute(ExecRequest(command="echo abc | tr a-z A-Z; exit 4"))

    assert "ABC" in result.stdout
    assert result.exit_code == 4
    assert not result.success


# =============================================================================
# Python
# =============================================================================


@pytest.mark.parametrize(
    "command,expected",
    [
        ("print('hi')", False),
        ("import os; print(os.name)", False),
        ("x = 1\nprint(x)", False),
        ("tool.py --flag 1", True),
        ("C:/scripts/tool.py", True),
        ("-m json.tool", True),
        ("-V", True),
        ("", False),
    ],
)
def test_is_script_invocation(command, expected):
    assert is_script_invocation(command) is expected


def test_existing_file_is_script(tmp_path):
    (tmp_path / "runme").write_text("print(1)\n", encoding="utf-8")

    assert is_script_invocation("runme arg", str(tmp_path))
    assert not is_script_invocation("runme arg", str(tmp_path / "elsewhere"))


def test_python_inline_command():
    program, args = PythonExecutor().build_command(ExecRequest(command="print(1)"))

    assert program == sys.executable
    assert args == ["-c", "print(1)"]


def test_python_script_command():
    request = ExecRequest(command='job.py --name "two words"', interpreter_path="/opt/py/bin/python")
    program, args = PythonExecutor().build_command(request)

    assert program == "/opt/py/bin/python"
    assert args[0] == "job.py"
    assert args[1] == "--name"
    assert len(args) == 3


@pytest.mark.asyncio
async def test_python_executes_inline_code():
    result = await PythonExecutor().execute(ExecRequest(command="print(6 * 7)"))

    assert result.success
    assert result.stdout.strip() == "42"


@pytest.mark.asyncio
async def test_python_executes_script(tmp_path):
    (tmp_path / "job.py").write_text(
        "import sys\nprint('args', sys.argv[1:])\n", encoding="utf-8"
    )
    request = ExecRequest(command="job.py one", working_directory=str(tmp_path))

    result = await PythonExecutor().execute(request)

    assert result.success
    assert "['one']" in result.stdout


@pytest.mark.asyncio
async def test_python_sleep_times_out():
    request = ExecRequest(command="import time; time.sleep(10)", timeout=1)

    result = await PythonExecutor().execute(request)

    assert result.timed_out is True
    assert result.success is False
    assert result.error.type is ErrorKind.TIMEOUT


# =============================================================================
# PowerShell
# =============================================================================


def test_powershell_arguments_posix(monkeypatch):
    monkeypatch.setattr(powershell, "IS_WINDOWS", False)
    request = ExecRequest(command="Get-Date", interpreter_path="/usr/bin/pwsh", use_login_shell=True)

    program, args = PowerShellExecutor().build_command(request)

    assert program == "/usr/bin/pwsh"
    assert args == ["-Login", "-NoProfile", "-NonInteractive", "-Command", "Get-Date"]


def test_powershell_arguments_windows(monkeypatch):
    monkeypatch.setattr(powershell, "IS_WINDOWS", True)
    request = ExecRequest(command="Get-Date", interpreter_path="powershell.exe", use_login_shell=True)

    program, args = PowerShellExecutor().build_command(request)

    assert program == "powershell.exe"
    assert args == [
        "-NoProfile",
        "-NonInteractive",
        "-ExecutionPolicy",
        "Bypass",
        "-Command",
        "Get-Date",
    ]


def test_powershell_missing_host_raises(monkeypatch):
    monkeypatch.setattr(powershell, "detect_powershell", lambda: None)

    with pytest.raises(UnsupportedPlatformError):
        PowerShellExecutor().build_command(ExecRequest(command="Get-Date"))


@pytest.mark.asyncio
async def test_powershell_missing_host_result(monkeypatch):
    monkeypatch.setattr(powershell, "detect_powershell", lambda: None)

    result = await PowerShellExecutor().execute(ExecRequest(command="Get-Date"))

    assert result.exit_code == -1
    assert result.error.type is ErrorKind.UNSUPPORTED_PLATFORM
    assert result.process_id is None


@pytest.mark.asyncio
async def test_powershell_runs_when_available():
    if powershell.detect_powershell() is None:
        pytest.skip("No PowerShell host installed")

    result = await PowerShellExecutor().execute(ExecRequest(command="Write-Output 'hello'"))

    assert result.success
    assert "hello" in result.stdout


# =============================================================================
# Batch
# =============================================================================


def test_render_script_adds_echo_off_and_crlf():
    script = BatchExecutor.render_script("echo one\necho two")

    assert script == "@echo off\r\necho one\r\necho two\r\n"


def test_render_script_keeps_existing_echo():
    script = BatchExecutor.render_script("@ECHO ON\r\ndir")

    assert script == "@ECHO ON\r\ndir\r\n"


def test_script_path_prefers_working_directory(tmp_path):
    executor = BatchExecutor()

    path = executor.script_path(ExecRequest(command="dir", working_directory=str(tmp_path)))

    assert os.path.dirname(path) == str(tmp_path)
    assert os.path.basename(path).startswith("batch_")
    assert path.endswith(".cmd")


@pytest.mark.asyncio
async def test_batch_unsupported_off_windows(monkeypatch, tmp_path):
    monkeypatch.setattr(batch, "IS_WINDOWS", False)

    result = await BatchExecutor().execute(
        ExecRequest(command="echo hi", working_directory=str(tmp_path))
    )

    assert result.error.type is ErrorKind.UNSUPPORTED_PLATFORM
    assert result.exit_code == -1
    assert result.process_id is None
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_batch_removes_script_after_run(monkeypatch, tmp_path):
    seen = {}

    class RecordingRunner:
        async def run(self, program, args, request, cancel=None):
            seen["program"] = program
            seen["script"] = args[-1]
            with open(args[-1], "rb") as f:
                seen["content"] = f.read()
            from probekit.core.process_runner import build_result, utcnow

            return build_result(utcnow(), exit_code=0)

    monkeypatch.setattr(batch, "IS_WINDOWS", True)
    executor = BatchExecutor(runner=RecordingRunner())

    result = await executor.execute(
        ExecRequest(command="echo hi", working_directory=str(tmp_path))
    )

    assert result.exit_code == 0
    assert seen["program"] == "cmd.exe"
    assert seen["content"] == b"@echo off\r\necho hi\r\n"
    assert not os.path.exists(seen["script"])
