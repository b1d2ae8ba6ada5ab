# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
Registry Query Service

Reads a registry key tree to a bounded depth through a KeyStore backend:
- WinRegKeyStore: the live Windows registry (winreg)
- MappingKeyStore: an in-memory or YAML/JSON snapshot of a key tree
"""

import asyncio
import base64
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from ..exceptions import (
    AccessDeniedError,
    InvalidRequestError,
    OperationCancelledError,
    PathNotFoundError,
    ResourceError,
    UnsupportedPlatformError,
)
from ..models import RegistryNode, RegistryQueryOptions
from ..process_runner import IS_WINDOWS

logger = logging.getLogger("probekit.adapters.registry")

HIVE_ALIASES = {
    "HKLM": "HKEY_LOCAL_MACHINE",
    "HKCU": "HKEY_CURRENT_USER",
    "HKCR": "HKEY_CLASSES_ROOT",
    "HKU": "HKEY_USERS",
    "HKCC": "HKEY_CURRENT_CONFIG",
}
HIVES = frozenset(HIVE_ALIASES.values())


def split_key_path(path: str) -> Tuple[str, str]:
    """
    Split a key path into canonical hive name and sub path.

    ``HKLM\\Software\\Foo`` -> (``HKEY_LOCAL_MACHINE``, ``Software\\Foo``)
    """
    cleaned = (path or "").strip().replace("/", "\\").strip("\\")
    if not cleaned:
        raise InvalidRequestError("Registry root key path must not be empty")

    hive, _, sub_path = cleaned.partition("\\")
    hive = hive.upper()
    hive = HIVE_ALIASES.get(hive, hive)
    if hive not in HIVES:
        raise InvalidRequestError(
            f"Unsupported registry hive: {hive}", details={"path": path}
        )
    return hive, sub_path.strip("\\")


def normalize_value(value: Any) -> Any:
    """Binary data as base64 text, multi-strings as lists"""
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if isinstance(value, tuple):
        return list(value)
    return value


class KeyStore(ABC):
    """Read-only access to a hierarchical key/value store"""

    @abstractmethod
    def read_values(self, path: str) -> Dict[str, Any]:
        """
        Direct values of a key, already normalized.

        Raises:
            PathNotFoundError: Key does not exist
            AccessDeniedError: Key cannot be opened
        """

    @abstractmethod
    def list_subkeys(self, path: str) -> List[str]:
        """Names of direct sub keys in enumeration order"""

    def ensure_readable(self, path: str):
        """Raise like read_values if the key cannot be opened"""
        self.list_subkeys(path)


class WinRegKeyStore(KeyStore):
    """Live registry of the local Windows host"""

    def __init__(self):
        if not IS_WINDOWS:
            raise UnsupportedPlatformError("Windows Registry is only available on Windows")
        import winreg

        self._winreg = winreg
        self._hives = {
            "HKEY_LOCAL_MACHINE": winreg.HKEY_LOCAL_MACHINE,
            "HKEY_CURRENT_USER": winreg.HKEY_CURRENT_USER,
            "HKEY_CLASSES_ROOT": winreg.HKEY_CLASSES_ROOT,
            "HKEY_USERS": winreg.HKEY_USERS,
            "HKEY_CURRENT_CONFIG": winreg.HKEY_CURRENT_CONFIG,
        }

    def _open(self, path: str):
        hive, sub_path = split_key_path(path)
        try:
            return self._winreg.OpenKey(self._hives[hive], sub_path)
        except FileNotFoundError as e:
            raise PathNotFoundError(f"Registry key not found: {path}", path=path, cause=e)
        except PermissionError as e:
            raise AccessDeniedError(f"Access denied: {path}", path=path, cause=e)

    def read_values(self, path: str) -> Dict[str, Any]:
        values: Dict[str, Any] = {}
        with self._open(path) as key:
            index = 0
            while True:
                try:
                    name, data, value_type = self._winreg.EnumValue(key, index)
                except OSError:
                    break
                if value_type == self._winreg.REG_MULTI_SZ and data is None:
                    data = []
                values[name] = normalize_value(data)
                index += 1
        return values

    def list_subkeys(self, path: str) -> List[str]:
        names: List[str] = []
        with self._open(path) as key:
            index = 0
            while True:
                try:
                    names.append(self._winreg.EnumKey(key, index))
                except OSError:
                    break
                index += 1
        return names

    def ensure_readable(self, path: str):
        with self._open(path):
            pass


class MappingKeyStore(KeyStore):
    """
    Key tree held in memory.

    Layout, per key::

        {"values": {name: value}, "subKeys": {name: <key>}, "accessDenied": false}

    The top level maps hive names (aliases accepted) to keys. Lookups are
    case-insensitive like the real registry.
    """

    def __init__(self, tree: Mapping[str, Any]):
        self.tree: Dict[str, Any] = {}
        for hive, key in tree.items():
            canonical, _ = split_key_path(str(hive))
            self.tree[canonical] = key

    @classmethod
    def from_file(cls, path: Path) -> "MappingKeyStore":
        """Load a YAML or JSON snapshot"""
        path = Path(path)
        if not path.exists():
            raise PathNotFoundError(f"Registry snapshot not found: {path}", path=str(path))
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() == ".json":
                data = json.load(f)
            else:
                data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise InvalidRequestError(f"Registry snapshot {path} must contain a mapping")
        return cls(data)

    @staticmethod
    def _child(key: Mapping[str, Any], name: str) -> Optional[Mapping[str, Any]]:
        children = key.get("subKeys") or {}
        lowered = name.lower()
        for child_name, child in children.items():
            if str(child_name).lower() == lowered:
                return child or {}
        return None

    def _lookup(self, path: str) -> Mapping[str, Any]:
        hive, sub_path = split_key_path(path)
        key = self.tree.get(hive)
        if key is None:
            raise PathNotFoundError(f"Registry key not found: {path}", path=path)

        for part in filter(None, sub_path.split("\\")):
            if key.get("accessDenied"):
                raise AccessDeniedError(f"Access denied: {path}", path=path)
            key = self._child(key, part)
            if key is None:
                raise PathNotFoundError(f"Registry key not found: {path}", path=path)

        if key.get("accessDenied"):
            raise AccessDeniedError(f"Access denied: {path}", path=path)
        return key

    def read_values(self, path: str) -> Dict[str, Any]:
        values = self._lookup(path).get("values") or {}
        return {str(name): normalize_value(value) for name, value in values.items()}

    def list_subkeys(self, path: str) -> List[str]:
        return [str(name) for name in (self._lookup(path).get("subKeys") or {})]

    def ensure_readable(self, path: str):
        self._lookup(path)


class RegistryQueryService:
    """Bounded depth-first reads of a key tree"""

    def __init__(self, store: Optional[KeyStore] = None):
        self.store = store

    def _resolve_store(self) -> KeyStore:
        if self.store is None:
            self.store = WinRegKeyStore()
        return self.store

    @staticmethod
    def _read_key(
        store: KeyStore, path: str, depth: int, options: RegistryQueryOptions
    ) -> Tuple[Dict[str, Any], List[str]]:
        values: Dict[str, Any] = {}
        if options.include_values:
            values = store.read_values(path)
        if depth < options.max_depth:
            return values, store.list_subkeys(path)
        if not options.include_values:
            store.ensure_readable(path)
        return values, []

    async def query(
        self,
        options: RegistryQueryOptions,
        cancel: Optional[asyncio.Event] = None,
    ) -> RegistryNode:
        """
        Read the tree under options.root_key_path.

        Sub keys past max_depth are never read. A sub tree that cannot be
        opened is left out of its parent; the root must be readable.

        Raises:
            InvalidRequestError: Empty path or unknown hive
            PathNotFoundError: Root key does not exist
            AccessDeniedError: Root key cannot be opened
            UnsupportedPlatformError: No registry on this host
        """
        split_key_path(options.root_key_path)
        store = self._resolve_store()

        root: Dict[str, Any] = {"key_path": options.root_key_path, "values": {}, "sub_keys": []}
        # (node, parent, depth)
        stack: List[Tuple[Dict[str, Any], Optional[Dict[str, Any]], int]] = [(root, None, 0)]
        visited = 0

        while stack:
            if cancel is not None and cancel.is_set():
                raise OperationCancelledError("Registry query cancelled")

            node, parent, depth = stack.pop()
            path = node["key_path"]
            try:
                # Hive reads can block; keep them off the event loop
                node["values"], names = await asyncio.to_thread(
                    self._read_key, store, path, depth, options
                )
            except ResourceError as e:
                if parent is None:
                    raise
                logger.debug(f"Skipping registry key {path}: {e.message}")
                parent["sub_keys"].remove(node)
                continue

            visited += 1
            children = [
                {"key_path": f"{path}\\{name}", "values": {}, "sub_keys": []}
                for name in names
            ]
            node["sub_keys"].extend(children)
            # Reversed so the first sub key is read first
            for child in reversed(children):
                stack.append((child, node, depth + 1))

        logger.info(f"Read {visited} registry key(s) under {options.root_key_path}")
        return RegistryNode.model_validate(root)
