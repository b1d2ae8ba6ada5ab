# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
probekit Core

Probe execution engine: process runner, executors, query services and
the dispatch facade.
"""

from .config import ProbeConfig, get_config, load_config, reload_config
from .exceptions import (
    AccessDeniedError,
    ConfigError,
    InvalidRequestError,
    OperationCancelledError,
    PathNotFoundError,
    ProbeError,
    QueryError,
    QueryTimeoutError,
    UnsupportedOperationError,
    UnsupportedPlatformError,
)
from .facade import ProbeFacade
from .models import (
    ErrorInfo,
    ErrorKind,
    ExecRequest,
    ExecResult,
    FileEntry,
    FileScanOptions,
    OperationKind,
    RegistryNode,
    RegistryQueryOptions,
    WmiQueryRequest,
)
from .process_runner import ProcessRunner, kill_process_tree

__all__ = [
    # Facade
    "ProbeFacade",
    "ProcessRunner",
    "kill_process_tree",
    # Models
    "OperationKind",
    "ErrorKind",
    "ErrorInfo",
    "ExecRequest",
    "ExecResult",
    "WmiQueryRequest",
    "RegistryQueryOptions",
    "RegistryNode",
    "FileScanOptions",
    "FileEntry",
    # Config
    "ProbeConfig",
    "get_config",
    "load_config",
    "reload_config",
    # Errors
    "ProbeError",
    "ConfigError",
    "InvalidRequestError",
    "UnsupportedOperationError",
    "UnsupportedPlatformError",
    "PathNotFoundError",
    "AccessDeniedError",
    "QueryError",
    "QueryTimeoutError",
    "OperationCancelledError",
]
