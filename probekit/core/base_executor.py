# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
probekit Base Executor

Common base for the process-backed executors. A subclass only decides how
a command becomes a program and argument vector; timeout, cancellation,
draining and termination all come from the ProcessRunner.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

from .exceptions import ProbeError
from .models import ExecRequest, ExecResult, OperationKind
from .process_runner import ProcessRunner, build_result, utcnow


class BaseExecutor(ABC):
    """
    Base class for shell and interpreter executors.

    Provides the standard execute() flow:
    build argv -> run under ProcessRunner -> log outcome.
    """

    kind: OperationKind

    def __init__(self, runner: Optional[ProcessRunner] = None):
        self.adapter_name = self.__class__.__name__
        self.logger = logging.getLogger(f"probekit.adapters.{self.kind.value}")
        self.runner = runner or ProcessRunner()

    @abstractmethod
    def build_command(self, request: ExecRequest) -> Tuple[str, List[str]]:
        """
        Build the program and argument vector for a request.

        Raises:
            ProbeError: If the host cannot run this kind of command
        """

    async def execute(
        self, request: ExecRequest, cancel: Optional[asyncio.Event] = None
    ) -> ExecResult:
        self.log_execution(request)

        try:
            program, args = self.build_command(request)
        except ProbeError as e:
            self.log_error(e)
            return build_result(utcnow(), error=e.to_error_info())

        result = await self.runner.run(program, args, request, cancel)
        self.log_result(result)
        return result

    def log_execution(self, request: ExecRequest):
        """Log method execution"""
        self.logger.debug(
            f"Executing {self.adapter_name}",
            extra={"working_directory": request.working_directory},
        )

    def log_result(self, result: ExecResult):
        if result.success:
            self.logger.info(f"{self.adapter_name} completed successfully")
        elif result.error is not None:
            self.logger.error(
                f"{self.adapter_name} failed: {result.error.type.value}: "
                f"{result.error.message}"
            )
        else:
            self.logger.info(f"{self.adapter_name} exited with {result.exit_code}")

    def log_error(self, error: Exception):
        """Log execution error"""
        self.logger.error(f"{self.adapter_name} failed: {error}")
