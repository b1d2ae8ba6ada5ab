# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Batch Executor

Writes the command to a temporary ``.cmd`` file, runs it with
``cmd.exe /c`` and removes the file afterwards. Windows only.
"""

import asyncio
import os
import tempfile
import uuid
from typing import List, Optional, Tuple

from ..base_executor import BaseExecutor
from ..exceptions import ProbeError, UnsupportedPlatformError
from ..models import ExecRequest, ExecResult, OperationKind
from ..process_runner import IS_WINDOWS, build_result, utcnow


class BatchExecutor(BaseExecutor):
    kind = OperationKind.BATCH

    @staticmethod
    def render_script(command: str) -> str:
        """Script body with CRLF line endings and echo turned off"""
        lines = command.replace("\r\n", "\n").replace("\r", "\n").split("\n")
        if not command.lstrip().lower().startswith("@echo"):
            lines.insert(0, "@echo off")
        return "\r\n".join(lines) + "\r\n"

    def script_path(self, request: ExecRequest) -> str:
        directory = request.working_directory
        if not directory or not os.path.isdir(directory):
            directory = tempfile.gettempdir()
        return os.path.join(directory, f"batch_{uuid.uuid4().hex}.cmd")

    def build_command(self, request: ExecRequest) -> Tuple[str, List[str]]:
        if not IS_WINDOWS:
            raise UnsupportedPlatformError("Batch scripts require Windows (cmd.exe)")
        # Argument is patched with the real script path in execute()
        return request.interpreter_path or "cmd.exe", ["/c"]

    async def execute(
        self, request: ExecRequest, cancel: Optional[asyncio.Event] = None
    ) -> ExecResult:
        self.log_execution(request)

        try:
            program, args = self.build_command(request)
        except ProbeError as e:
            self.log_error(e)
            return build_result(utcnow(), error=e.to_error_info())

        path = self.script_path(request)
        try:
            with open(path, "w", encoding="utf-8", newline="") as f:
                f.write(self.render_script(request.command))
        except OSError as e:
            self.log_error(e)
            return build_result(
                utcnow(),
                error=ProbeError(f"Cannot write batch script {path}: {e}").to_error_info(),
            )

        try:
            result = await self.runner.run(program, [*args, path], request, cancel)
        finally:
            try:
                os.remove(path)
            except OSError as e:
                self.logger.warning(f"Could not remove batch script {path}: {e}")

        self.log_result(result)
        return result
