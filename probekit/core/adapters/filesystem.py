# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
File System Scanner

Depth-bounded directory walk with hidden, extension and symlink filters.
Depth 0 lists the root's direct children only. Each directory listing runs
in a worker thread; the cancel event is checked between listings.
"""

import asyncio
import logging
import os
import stat
from datetime import datetime, timezone
from typing import FrozenSet, List, NamedTuple, Optional, Tuple

from ..exceptions import AccessDeniedError, OperationCancelledError, PathNotFoundError
from ..models import FileEntry, FileScanOptions

logger = logging.getLogger("probekit.adapters.filesystem")


class _Listed(NamedTuple):
    entry: FileEntry
    # Real path to descend into, None for files and skipped links
    descend: Optional[str]


def is_hidden(entry: os.DirEntry) -> bool:
    if entry.name.startswith("."):
        return True
    if os.name != "nt":
        return False
    try:
        attributes = entry.stat(follow_symlinks=False).st_file_attributes
    except OSError:
        return False
    return bool(attributes & stat.FILE_ATTRIBUTE_HIDDEN)


def _entry_stat(entry: os.DirEntry, follow_symlinks: bool) -> os.stat_result:
    try:
        return entry.stat(follow_symlinks=follow_symlinks)
    except OSError:
        # Broken link: report the link itself
        return entry.stat(follow_symlinks=False)


class FileSystemScanner:
    """Bounded, cycle-safe directory scans"""

    def _list_directory(
        self,
        path: str,
        options: FileScanOptions,
        ancestors: FrozenSet[str],
    ) -> List[_Listed]:
        listed: List[_Listed] = []
        with os.scandir(path) as it:
            entries = sorted(it, key=lambda e: e.name)

        for entry in entries:
            if not options.include_hidden and is_hidden(entry):
                continue

            try:
                is_link = entry.is_symlink()
                is_dir = entry.is_dir(follow_symlinks=True)
                st = _entry_stat(entry, follow_symlinks=True)
            except OSError as e:
                logger.debug(f"Skipping {entry.path}: {e}")
                continue

            if not is_dir and not options.accepts_extension(entry.name):
                continue

            descend = None
            if is_dir and (not is_link or options.follow_symlinks):
                real = os.path.realpath(entry.path)
                if real in ancestors:
                    logger.debug(f"Not following cyclic link {entry.path} -> {real}")
                else:
                    descend = real

            listed.append(
                _Listed(
                    entry=FileEntry(
                        path=entry.path,
                        size_bytes=0 if is_dir else st.st_size,
                        last_modified_utc=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
                        is_directory=is_dir,
                    ),
                    descend=descend,
                )
            )
        return listed

    async def scan(
        self, options: FileScanOptions, cancel: Optional[asyncio.Event] = None
    ) -> List[FileEntry]:
        """
        Scan options.root_path.

        Raises:
            PathNotFoundError: Root does not exist or is not a directory
            AccessDeniedError: Root cannot be listed
            OperationCancelledError: Cancel event fired during the walk
        """
        root = os.path.abspath(os.path.expanduser(options.root_path))
        if not os.path.isdir(root):
            raise PathNotFoundError(f"Directory not found: {options.root_path}", path=root)

        results: List[FileEntry] = []
        # (directory, depth of its entries, real paths on the active branch)
        stack: List[Tuple[str, int, FrozenSet[str]]] = [
            (root, 0, frozenset({os.path.realpath(root)}))
        ]

        while stack:
            if cancel is not None and cancel.is_set():
                raise OperationCancelledError(
                    "File system scan cancelled",
                    details={"root": root, "entries": len(results)},
                )

            directory, depth, ancestors = stack.pop()
            try:
                listed = await asyncio.to_thread(
                    self._list_directory, directory, options, ancestors
                )
            except PermissionError as e:
                if directory == root:
                    raise AccessDeniedError(
                        f"Access denied: {options.root_path}", path=root, cause=e
                    ) from e
                logger.debug(f"Skipping unreadable directory {directory}: {e}")
                continue
            except OSError as e:
                if directory == root:
                    raise PathNotFoundError(
                        f"Cannot list {options.root_path}: {e}", path=root, cause=e
                    ) from e
                logger.debug(f"Skipping directory {directory}: {e}")
                continue

            results.extend(item.entry for item in listed)

            if depth < options.max_depth:
                for item in reversed(listed):
                    if item.descend is not None:
                        stack.append(
                            (item.entry.path, depth + 1, ancestors | {item.descend})
                        )

        logger.info(f"Scanned {root}: {len(results)} entries")
        return results
