# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Tests for wire models

Tests:
- success/duration derivation
- camelCase serialization and round trips
- extension normalization
- tagged request union
"""

import json
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from probekit.core.models import (
    ErrorInfo,
    ErrorKind,
    ExecOperation,
    ExecRequest,
    ExecResult,
    FileEntry,
    FileScanOptions,
    FileSystemOperation,
    RegistryNode,
    WmiOperation,
    WmiQueryRequest,
    dump_entries,
    file_entries_adapter,
    probe_request_adapter,
)

T0 = datetime(2025, 1, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)


def make_result(**kwargs):
    values = {"exit_code": 0, "started_at": T0, "ended_at": T0 + timedelta(seconds=2)}
    values.update(kwargs)
    return ExecResult(**values)


@pytest.mark.parametrize(
    "exit_code,error,timed_out,expected",
    [
        (0, None, False, True),
        (1, None, False, False),
        (0, ErrorInfo(type=ErrorKind.UNKNOWN, message="boom"), False, False),
        (0, None, True, False),
        (-1, ErrorInfo(type=ErrorKind.TIMEOUT, message="late"), True, False),
    ],
)
def test_success_requires_all_conditions(exit_code, error, timed_out, expected):
    result = make_result(exit_code=exit_code, error=error, timed_out=timed_out)
    assert result.success is expected


def test_duration_is_end_minus_start():
    assert make_result().duration == 2.0
    assert make_result(ended_at=T0).duration == 0.0


def test_end_before_start_rejected():
    with pytest.raises(ValidationError):
        make_result(ended_at=T0 - timedelta(seconds=1))


def test_exec_result_uses_camel_case():
    data = json.loads(make_result(stdout="hi", process_id=42).to_json())

    assert data["exitCode"] == 0
    assert data["stdOut"] == "hi"
    assert data["stdErr"] == ""
    assert data["timedOut"] is False
    assert data["processId"] == 42
    assert data["success"] is True
    assert data["duration"] == 2.0
    assert "startedAt" in data and "endedAt" in data


def test_exec_result_round_trip():
    original = make_result(
        exit_code=-1,
        stdout="partial",
        stderr="err",
        timed_out=True,
        error=ErrorInfo(type=ErrorKind.TIMEOUT, message="late", stack_trace="trace"),
        process_id=7,
    )
    parsed = ExecResult.model_validate_json(original.to_json())

    assert parsed == original
    assert parsed.error.type is ErrorKind.TIMEOUT


def test_file_entry_round_trip():
    entries = [
        FileEntry(path="/a/b.txt", size_bytes=12, last_modified_utc=T0, is_directory=False),
        FileEntry(path="/a/c", size_bytes=0, last_modified_utc=T0, is_directory=True),
    ]
    text = dump_entries(entries)

    assert json.loads(text)[0]["sizeBytes"] == 12
    assert json.loads(text)[1]["isDirectory"] is True
    assert file_entries_adapter.validate_json(text) == entries


def test_registry_node_round_trip():
    node = RegistryNode(
        key_path="HKLM\\SOFTWARE",
        values={"Version": "1.0", "Paths": ["a", "b"], "Count": 3},
        sub_keys=[RegistryNode(key_path="HKLM\\SOFTWARE\\Vendor")],
    )
    data = json.loads(node.to_json())

    assert data["keyPath"] == "HKLM\\SOFTWARE"
    assert data["subKeys"][0]["subKeys"] == []
    assert RegistryNode.model_validate_json(node.to_json()) == node
    assert node.depth() == 1


def test_exec_request_accepts_both_casings():
    camel = ExecRequest.model_validate(
        {"command": "x", "workingDirectory": "/tmp", "captureStdErr": False}
    )
    snake = ExecRequest(command="x", working_directory="/tmp", capture_stderr=False)
    assert camel == snake


def test_exec_request_rejects_non_positive_timeout():
    with pytest.raises(ValidationError):
        ExecRequest(command="x", timeout=0)


def test_models_are_frozen():
    request = ExecRequest(command="x")
    with pytest.raises(ValidationError):
        request.command = "y"


def test_extensions_normalized():
    options = FileScanOptions(root_path="/", include_extensions=["TXT", ".Log", "txt", ""])

    assert options.include_extensions == (".txt", ".log")
    assert options.accepts_extension("notes.TXT")
    assert options.accepts_extension("app.log")
    assert not options.accepts_extension("image.png")
    assert not options.accepts_extension("README")
    assert not options.accepts_extension(".txt")


def test_no_extension_filter_accepts_everything():
    options = FileScanOptions(root_path="/")
    assert options.accepts_extension("anything")


def test_scan_defaults():
    options = FileScanOptions(root_path="/")
    assert options.max_depth == 3
    assert options.follow_symlinks is False
    assert options.include_hidden is False


def test_wmi_request_defaults():
    request = WmiQueryRequest(query="SELECT * FROM Win32_BIOS")
    assert request.namespace == "root\\cimv2"
    with pytest.raises(ValidationError):
        WmiQueryRequest(query="")


def test_tagged_request_union():
    op = probe_request_adapter.validate_python(
        {"kind": "python", "request": {"command": "print(1)"}}
    )
    assert isinstance(op, ExecOperation)
    assert op.request.command == "print(1)"

    op = probe_request_adapter.validate_json('{"kind": "wmi", "request": {"query": "q"}}')
    assert isinstance(op, WmiOperation)

    op = probe_request_adapter.validate_python(
        {"kind": "filesystem", "request": {"rootPath": "/tmp", "maxDepth": 0}}
    )
    assert isinstance(op, FileSystemOperation)
    assert op.request.max_depth == 0


def test_tagged_request_rejects_unknown_kind():
    with pytest.raises(ValidationError):
        probe_request_adapter.validate_python({"kind": "telnet", "request": {}})
