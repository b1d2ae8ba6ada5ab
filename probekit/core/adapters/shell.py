# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Shell Executor

Runs a command line through the host shell:
- Windows: cmd.exe /c
- POSIX:   /bin/sh -c, or /bin/bash -lc for login shells
"""

from typing import List, Tuple

from ..base_executor import BaseExecutor
from ..models import ExecRequest, OperationKind
from ..process_runner import IS_WINDOWS


class ShellExecutor(BaseExecutor):
    kind = OperationKind.SHELL

    def build_command(self, request: ExecRequest) -> Tuple[str, List[str]]:
        if IS_WINDOWS:
            return request.interpreter_path or "cmd.exe", ["/c", request.command]

        if request.use_login_shell:
            return request.interpreter_path or "/bin/bash", ["-lc", request.command]

        return request.interpreter_path or "/bin/sh", ["-c", request.command]
