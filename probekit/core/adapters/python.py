# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Python Executor

Runs inline Python code with ``-c`` or a script invocation such as
``tool.py --flag`` / ``-m http.server`` with the arguments split
shell-style. The interpreter is the request's interpreterPath or the
Python running probekit.
"""

import os
import re
import shlex
import sys
from typing import List, Optional, Tuple

from ..base_executor import BaseExecutor
from ..models import ExecRequest, OperationKind
from ..process_runner import IS_WINDOWS

_SCRIPT_NAME = re.compile(r"[\w./\\:~-]+\.pyw?", re.IGNORECASE)


def _first_token(command: str) -> Optional[str]:
    try:
        tokens = shlex.split(command, posix=not IS_WINDOWS)
    except ValueError:
        return None
    return tokens[0] if tokens else None


def is_script_invocation(command: str, working_directory: Optional[str] = None) -> bool:
    """True when the command names a script, module or interpreter flag"""
    stripped = command.strip()
    if not stripped or "\n" in stripped:
        return False

    first = _first_token(stripped)
    if first is None:
        return False
    if first in ("-m", "-") or re.fullmatch(r"-[A-Za-z]+", first):
        return True
    if _SCRIPT_NAME.fullmatch(first):
        return True
    return os.path.isfile(os.path.join(working_directory or "", first))


class PythonExecutor(BaseExecutor):
    kind = OperationKind.PYTHON

    def build_command(self, request: ExecRequest) -> Tuple[str, List[str]]:
        interpreter = request.interpreter_path or sys.executable or "python"

        if is_script_invocation(request.command, request.working_directory):
            return interpreter, shlex.split(request.command, posix=not IS_WINDOWS)

        return interpreter, ["-c", request.command]
