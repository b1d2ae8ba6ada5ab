# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
WMI Query Service

Runs a WQL query against local Windows Management Instrumentation and
returns the rows as JSON-safe property bags.

The query runs in its own daemon thread with COM initialised for that thread.
The effective timeout and the caller's cancel event bound the wait; a
query still running in the worker is abandoned, not interrupted.
"""

import asyncio
import base64
import logging
import threading
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..config import effective_timeout
from ..exceptions import (
    OperationCancelledError,
    ProbeError,
    QueryError,
    QueryTimeoutError,
    UnsupportedPlatformError,
)
from ..models import DEFAULT_WMI_NAMESPACE, WmiQueryRequest
from ..process_runner import IS_WINDOWS

logger = logging.getLogger("probekit.adapters.wmi")

Row = Dict[str, Any]
# namespace, query -> rows (mappings or wmi objects)
Connector = Callable[[str, str], List[Any]]


def normalize_namespace(namespace: Optional[str]) -> str:
    """
    Canonical namespace path.

    ``root/cimv2``, ``\\\\.\\root\\cimv2`` and ``.\\root\\cimv2`` all
    become ``root\\cimv2``; an empty namespace becomes the default.
    """
    ns = (namespace or "").strip()
    if not ns:
        return DEFAULT_WMI_NAMESPACE

    ns = ns.replace("/", "\\").strip("\\")
    if ns.startswith(".\\"):
        ns = ns[2:]
    return ns or DEFAULT_WMI_NAMESPACE


def to_json_value(value: Any) -> Any:
    """Convert a WMI property value into something json can write"""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, (list, tuple)):
        return [to_json_value(v) for v in value]
    if isinstance(value, Mapping):
        return {str(k): to_json_value(v) for k, v in value.items()}
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return str(value)


def to_row(item: Any) -> Row:
    """Property bag for one result object"""
    if isinstance(item, Mapping):
        return {str(k): to_json_value(v) for k, v in item.items()}

    # wmi._wmi_object exposes its property names through .properties
    names = getattr(item, "properties", None)
    if names is None:
        raise QueryError(f"Unsupported WMI result object: {type(item).__name__}")
    return {name: to_json_value(getattr(item, name, None)) for name in names}


def _wmi_connector(namespace: str, query: str) -> List[Any]:
    """Default connector: the wmi package over COM, run in a worker thread"""
    import pythoncom
    import wmi

    pythoncom.CoInitialize()
    try:
        connection = wmi.WMI(namespace=namespace, privileges=["Security"])
        return [to_row(item) for item in connection.query(query)]
    finally:
        pythoncom.CoUninitialize()


def run_in_daemon_thread(func: Callable[..., Any], *args: Any) -> "asyncio.Future[Any]":
    """
    Run func(*args) on a fresh daemon thread and return a future for it.

    Unlike the default executor, an abandoned call does not hold up
    interpreter or event loop shutdown.
    """
    loop = asyncio.get_running_loop()
    future = loop.create_future()

    def settle(result: Any, error: Optional[BaseException]):
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(result)

    def worker():
        result, error = None, None
        try:
            result = func(*args)
        except BaseException as e:
            error = e
        try:
            loop.call_soon_threadsafe(settle, result, error)
        except RuntimeError:
            # Loop already closed; nobody is waiting any more
            logger.debug(f"Dropped result of abandoned {getattr(func, '__name__', func)}")

    threading.Thread(target=worker, name="probekit-wmi", daemon=True).start()
    return future


class WmiQueryService:
    """Bounded WQL queries returning lists of rows"""

    def __init__(self, connector: Optional[Connector] = None):
        self.connector = connector

    def _resolve_connector(self) -> Connector:
        if self.connector is not None:
            return self.connector
        if not IS_WINDOWS:
            raise UnsupportedPlatformError("WMI is only available on Windows")
        return _wmi_connector

    def _run_query(self, connector: Connector, namespace: str, query: str) -> List[Row]:
        try:
            return [to_row(item) for item in connector(namespace, query)]
        except ProbeError:
            raise
        except Exception as e:
            raise QueryError(
                f"WMI query failed: {e}",
                details={"namespace": namespace, "query": query},
                cause=e,
            ) from e

    async def query(
        self, request: WmiQueryRequest, cancel: Optional[asyncio.Event] = None
    ) -> List[Row]:
        """
        Run a query and return its rows.

        Raises:
            UnsupportedPlatformError: No WMI on this host
            QueryTimeoutError: Effective timeout elapsed
            OperationCancelledError: Cancel event fired first
            QueryError: Malformed query or provider fault
        """
        connector = self._resolve_connector()
        namespace = normalize_namespace(request.namespace)
        timeout = effective_timeout(request.timeout)

        if cancel is not None and cancel.is_set():
            raise OperationCancelledError("WMI query cancelled before it started")

        logger.debug(f"WMI query in {namespace}: {request.query}")

        work = run_in_daemon_thread(self._run_query, connector, namespace, request.query)
        cancel_wait = asyncio.create_task(cancel.wait()) if cancel is not None else None
        watched = {work} if cancel_wait is None else {work, cancel_wait}

        try:
            done, _ = await asyncio.wait(
                watched, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            if cancel_wait is not None:
                cancel_wait.cancel()
            if not work.done():
                work.cancel()

        if work in done:
            rows = work.result()
            logger.info(f"WMI query returned {len(rows)} row(s)")
            return rows

        if cancel_wait is not None and cancel_wait in done:
            raise OperationCancelledError("WMI query cancelled")

        logger.warning(f"WMI query exceeded {timeout}s: {request.query}")
        raise QueryTimeoutError(
            f"WMI query exceeded timeout of {timeout}s",
            timeout_seconds=timeout,
            details={"namespace": namespace, "query": request.query},
        )
