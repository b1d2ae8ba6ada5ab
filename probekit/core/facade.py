# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
probekit Execution Facade

Single entry point: validate a (kind, request) pair, dispatch it to the
matching executor or query service and serialize the outcome to JSON.

Only UnsupportedOperationError and InvalidRequestError are raised, both
before any I/O. Everything else comes back as JSON: executors embed errors
in ExecResult, query services failures become {"error": ErrorInfo}.
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from .adapters.batch import BatchExecutor
from .adapters.filesystem import FileSystemScanner
from .adapters.powershell import PowerShellExecutor
from .adapters.python import PythonExecutor
from .adapters.registry import RegistryQueryService, split_key_path
from .adapters.shell import ShellExecutor
from .adapters.wmi import WmiQueryService
from .base_executor import BaseExecutor
from .exceptions import (
    InvalidRequestError,
    ProbeError,
    UnsupportedOperationError,
    error_info_from_exception,
)
from .models import (
    ErrorEnvelope,
    ExecOperation,
    ExecRequest,
    ExecResult,
    FileEntry,
    FileScanOptions,
    FileSystemOperation,
    OperationKind,
    RegistryNode,
    RegistryOperation,
    RegistryQueryOptions,
    WmiOperation,
    WmiQueryRequest,
    dump_entries,
    probe_request_adapter,
)
from .process_runner import ProcessRunner

logger = logging.getLogger("probekit.facade")

M = TypeVar("M", bound=BaseModel)

RequestLike = Union[BaseModel, Mapping[str, Any]]


def _validation_errors(error: ValidationError) -> List[Dict[str, Any]]:
    return error.errors(include_url=False, include_context=False)


def parse_kind(kind: Union[str, OperationKind]) -> OperationKind:
    try:
        return OperationKind(kind)
    except ValueError:
        raise UnsupportedOperationError(
            f"Unsupported operation kind: {kind!r}",
            operation=str(kind),
            details={"supported": [k.value for k in OperationKind]},
        ) from None


def coerce_request(model: Type[M], request: Any) -> M:
    """Validate a mapping (or pass through an instance) as the given model"""
    if isinstance(request, model):
        return request
    if isinstance(request, BaseModel):
        raise InvalidRequestError(
            f"Expected {model.__name__}, got {type(request).__name__}"
        )
    try:
        return model.model_validate(request)
    except ValidationError as e:
        raise InvalidRequestError(
            f"Invalid {model.__name__}: {e.error_count()} validation error(s)",
            errors=_validation_errors(e),
        ) from e


class ProbeFacade:
    """
    Dispatches probe operations.

    Holds no per-call state; one facade can serve concurrent calls.
    """

    def __init__(
        self,
        runner: Optional[ProcessRunner] = None,
        wmi: Optional[WmiQueryService] = None,
        registry: Optional[RegistryQueryService] = None,
        filesystem: Optional[FileSystemScanner] = None,
    ):
        runner = runner or ProcessRunner()
        self.executors: Dict[OperationKind, BaseExecutor] = {
            OperationKind.POWERSHELL: PowerShellExecutor(runner),
            OperationKind.BATCH: BatchExecutor(runner),
            OperationKind.PYTHON: PythonExecutor(runner),
            OperationKind.SHELL: ShellExecutor(runner),
        }
        self.wmi = wmi or WmiQueryService()
        self.registry = registry or RegistryQueryService()
        self.filesystem = filesystem or FileSystemScanner()

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def parse(self, kind: Union[str, OperationKind], request: Any):
        """
        Validate a request for its kind.

        Returns:
            One of ExecOperation, WmiOperation, RegistryOperation,
            FileSystemOperation

        Raises:
            UnsupportedOperationError: Unknown kind
            InvalidRequestError: Payload does not fit the kind
        """
        op_kind = parse_kind(kind)
        if isinstance(request, BaseModel):
            request = request.model_dump(by_alias=True)
        elif isinstance(request, str):
            try:
                request = json.loads(request)
            except json.JSONDecodeError as e:
                raise InvalidRequestError(f"Request is not valid JSON: {e}") from e

        try:
            operation = probe_request_adapter.validate_python(
                {"kind": op_kind.value, "request": request}
            )
        except ValidationError as e:
            raise InvalidRequestError(
                f"Invalid request for {op_kind.value}: {e.error_count()} validation error(s)",
                errors=_validation_errors(e),
            ) from e

        if isinstance(operation, RegistryOperation):
            split_key_path(operation.request.root_key_path)
        return operation

    # ------------------------------------------------------------------
    # Untyped entry points
    # ------------------------------------------------------------------

    async def execute(
        self,
        kind: Union[str, OperationKind],
        request: Any,
        cancel: Optional[asyncio.Event] = None,
    ) -> str:
        """Run one operation and return its JSON result"""
        operation = self.parse(kind, request)
        logger.debug(f"Dispatching {operation.kind}")
        return await self.dispatch(operation, cancel)

    async def execute_request(
        self, data: Mapping[str, Any], cancel: Optional[asyncio.Event] = None
    ) -> str:
        """Run a tagged request mapping: {"kind": ..., "request": {...}}"""
        if not isinstance(data, Mapping) or "kind" not in data:
            raise InvalidRequestError("Tagged request must be an object with a 'kind' field")
        return await self.execute(data["kind"], data.get("request"), cancel)

    async def execute_json(self, text: str, cancel: Optional[asyncio.Event] = None) -> str:
        """Run a serialized tagged request"""
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise InvalidRequestError(f"Request is not valid JSON: {e}") from e
        return await self.execute_request(data, cancel)

    async def dispatch(self, operation: Any, cancel: Optional[asyncio.Event] = None) -> str:
        if isinstance(operation, ExecOperation):
            executor = self.executors[OperationKind(operation.kind)]
            result = await executor.execute(operation.request, cancel)
            return result.to_json()

        try:
            if isinstance(operation, WmiOperation):
                rows = await self.wmi.query(operation.request, cancel)
                return json.dumps(rows)
            if isinstance(operation, RegistryOperation):
                node = await self.registry.query(operation.request, cancel)
                return node.to_json()
            if isinstance(operation, FileSystemOperation):
                entries = await self.filesystem.scan(operation.request, cancel)
                return dump_entries(entries)
        except ProbeError as e:
            logger.error(f"{operation.kind} failed: {e.kind.value}: {e.message}")
            return ErrorEnvelope(error=e.to_error_info()).to_json()
        except Exception as e:
            logger.exception(f"{operation.kind} failed unexpectedly")
            return ErrorEnvelope(error=error_info_from_exception(e)).to_json()

        raise UnsupportedOperationError(
            f"No handler for {type(operation).__name__}",
            operation=getattr(operation, "kind", None),
        )

    # ------------------------------------------------------------------
    # Typed entry points
    # ------------------------------------------------------------------

    async def _run(
        self,
        kind: OperationKind,
        request: Union[ExecRequest, Mapping[str, Any], str],
        cancel: Optional[asyncio.Event],
    ) -> ExecResult:
        if isinstance(request, str):
            request = ExecRequest(command=request)
        return await self.executors[kind].execute(coerce_request(ExecRequest, request), cancel)

    async def run_powershell(self, request, cancel: Optional[asyncio.Event] = None) -> ExecResult:
        return await self._run(OperationKind.POWERSHELL, request, cancel)

    async def run_batch(self, request, cancel: Optional[asyncio.Event] = None) -> ExecResult:
        return await self._run(OperationKind.BATCH, request, cancel)

    async def run_python(self, request, cancel: Optional[asyncio.Event] = None) -> ExecResult:
        return await self._run(OperationKind.PYTHON, request, cancel)

    async def run_shell(self, request, cancel: Optional[asyncio.Event] = None) -> ExecResult:
        return await self._run(OperationKind.SHELL, request, cancel)

    async def query_wmi(
        self, request: RequestLike, cancel: Optional[asyncio.Event] = None
    ) -> List[Dict[str, Any]]:
        return await self.wmi.query(coerce_request(WmiQueryRequest, request), cancel)

    async def query_registry(
        self, options: RequestLike, cancel: Optional[asyncio.Event] = None
    ) -> RegistryNode:
        return await self.registry.query(coerce_request(RegistryQueryOptions, options), cancel)

    async def scan_filesystem(
        self, options: RequestLike, cancel: Optional[asyncio.Event] = None
    ) -> List[FileEntry]:
        return await self.filesystem.scan(coerce_request(FileScanOptions, options), cancel)
