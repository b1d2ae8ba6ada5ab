# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
PowerShell Executor

Runs a command in an out-of-process PowerShell host (pwsh or Windows
PowerShell) so it can be killed like any other process tree.
"""

import shutil
from typing import List, Optional, Tuple

from ..base_executor import BaseExecutor
from ..exceptions import UnsupportedPlatformError
from ..models import ExecRequest, OperationKind
from ..process_runner import IS_WINDOWS

# Windows PowerShell first on Windows; pwsh is the only option elsewhere
_CANDIDATES = ("powershell", "pwsh") if IS_WINDOWS else ("pwsh",)


def detect_powershell() -> Optional[str]:
    """Return the first PowerShell host found on PATH"""
    for name in _CANDIDATES:
        path = shutil.which(name)
        if path:
            return path
    return None


class PowerShellExecutor(BaseExecutor):
    kind = OperationKind.POWERSHELL

    def build_command(self, request: ExecRequest) -> Tuple[str, List[str]]:
        host = request.interpreter_path or detect_powershell()
        if not host:
            raise UnsupportedPlatformError(
                "No PowerShell host found on PATH (tried: "
                + ", ".join(_CANDIDATES)
                + ")"
            )

        args: List[str] = []
        # -Login is only honoured as the first parameter
        if request.use_login_shell and not IS_WINDOWS:
            args.append("-Login")
        args.extend(["-NoProfile", "-NonInteractive"])
        if IS_WINDOWS:
            args.extend(["-ExecutionPolicy", "Bypass"])
        args.extend(["-Command", request.command])
        return host, args
