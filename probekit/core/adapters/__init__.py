# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
probekit Adapters Package

Per-kind executors (shell, batch, powershell, python) and the query
services (wmi, registry, filesystem).
"""

from .batch import BatchExecutor
from .filesystem import FileSystemScanner
from .powershell import PowerShellExecutor
from .python import PythonExecutor
from .registry import KeyStore, MappingKeyStore, RegistryQueryService, WinRegKeyStore
from .shell import ShellExecutor
from .wmi import WmiQueryService

__all__ = [
    "ShellExecutor",
    "BatchExecutor",
    "PowerShellExecutor",
    "PythonExecutor",
    "WmiQueryService",
    "RegistryQueryService",
    "KeyStore",
    "WinRegKeyStore",
    "MappingKeyStore",
    "FileSystemScanner",
]
