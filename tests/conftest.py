# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

import os
import sys
from pathlib import Path

import pytest

# Keep test runs out of ~/.probekit/logs
os.environ.setdefault("PROBEKIT_NO_FILE_LOGS", "true")

sys.path.insert(0, str(Path(__file__).parent.parent))

from probekit.core.logger import reset_loggers


@pytest.fixture(autouse=True)
def close_loggers():
    """Drop handlers bound to per-test streams"""
    yield
    reset_loggers()


def pid_gone(pid: int) -> bool:
    """True if pid is not running (zombies awaiting their reaper count as gone)"""
    import psutil

    try:
        return psutil.Process(pid).status() == psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return True


posix_only = pytest.mark.skipif(os.name == "nt", reason="POSIX-only test")
windows_only = pytest.mark.skipif(os.name != "nt", reason="Windows-only test")
