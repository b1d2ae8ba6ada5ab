# Copyright 2025 Ilya Makarov
#
# Licensed under the Business Source License 1.1
# Change Date: 2028-11-05
# Change License: Apache License 2.0

"""
probekit Process Runner

Spawns one OS process per call and always returns an ExecResult:
- stdout and stderr are drained by two tasks while a third waits for exit
- a caller cancellation event and the effective timeout form one signal
- on cancellation, timeout or failure the whole process tree is killed
  (psutil + process group) and reaped before the result is built

Termination problems are logged, never raised: a kill failure must not
hide the timeout or cancellation that caused it.
"""

import asyncio
import logging
import os
import signal
import subprocess
import time
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

import psutil

from .config import effective_timeout, get_config
from .exceptions import error_info_from_exception
from .models import ErrorInfo, ErrorKind, ExecRequest, ExecResult

logger = logging.getLogger("probekit.runner")

IS_WINDOWS = os.name == "nt"

# Keeps console windows from flashing when hosted in a service
_CREATE_NO_WINDOW = 0x08000000

_READ_CHUNK = 64 * 1024


@dataclass
class TerminationOutcome:
    """What happened when a process tree was killed"""

    pid: int
    killed: List[int] = field(default_factory=list)
    survivors: List[int] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return not self.survivors and self.error is None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_environment(overlay: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
    """Snapshot of the current environment with the request overlay applied"""
    if not overlay:
        return None
    env = os.environ.copy()
    env.update(overlay)
    return env


def _spawn_options() -> Dict[str, object]:
    if IS_WINDOWS:
        return {
            "creationflags": subprocess.CREATE_NEW_PROCESS_GROUP | _CREATE_NO_WINDOW
        }
    # New session: the child leads its own process group
    return {"start_new_session": True}


def _is_alive(proc: psutil.Process) -> bool:
    try:
        return proc.is_running() and proc.status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False
    except psutil.Error:
        return True


def _group_members(pgid: int) -> List[psutil.Process]:
    """Live processes in a POSIX process group (the leader may already be gone)"""
    members = []
    for proc in psutil.process_iter():
        try:
            if os.getpgid(proc.pid) == pgid:
                members.append(proc)
        except (OSError, psutil.Error):
            continue
    return members


def _orphaned_descendants(pid: int, since: Optional[float]) -> List[psutil.Process]:
    """
    Descendants of an exited root, found through their recorded parent pid.

    Windows keeps the parent pid of orphans. Processes created before
    `since` are skipped so a reused pid does not pull in strangers.
    """
    by_parent: Dict[int, List[psutil.Process]] = {}
    for proc in psutil.process_iter():
        try:
            if since is not None and proc.create_time() < since:
                continue
            by_parent.setdefault(proc.ppid(), []).append(proc)
        except psutil.Error:
            continue

    found: List[psutil.Process] = []
    stack = [pid]
    while stack:
        for child in by_parent.pop(stack.pop(), []):
            found.append(child)
            stack.append(child.pid)
    return found


def kill_process_tree(
    pid: int, grace: float = 5.0, since: Optional[float] = None
) -> TerminationOutcome:
    """
    Kill a process and all of its descendants, also when the process
    itself has already exited and left descendants behind.

    Blocking; call through a worker thread from async code. The root is
    never waited on with waitpid here so the event loop can still reap it.
    `since` is the root's start time in epoch seconds, when known.
    """
    outcome = TerminationOutcome(pid=pid)
    procs: List[psutil.Process] = []

    try:
        root = psutil.Process(pid)
    except psutil.NoSuchProcess:
        root = None
    except psutil.Error as e:
        outcome.error = f"Cannot inspect process {pid}: {e}"
        return outcome

    if root is not None and _is_alive(root):
        try:
            procs = root.children(recursive=True)
        except psutil.Error as e:
            outcome.error = f"Cannot list children of {pid}: {e}"
        procs.append(root)
    elif IS_WINDOWS:
        procs = _orphaned_descendants(pid, since)

    if not IS_WINDOWS:
        # The group outlives its leader; members are signalled either way
        known = {p.pid for p in procs}
        procs.extend(p for p in _group_members(pid) if p.pid not in known)
        try:
            os.killpg(pid, signal.SIGKILL)
        except OSError:
            # Group already gone or not ours; per-process kill below still runs
            pass

    for proc in procs:
        try:
            proc.kill()
        except psutil.NoSuchProcess:
            continue
        except psutil.Error as e:
            outcome.error = f"Cannot kill {proc.pid}: {e}"

    deadline = time.monotonic() + grace
    alive = [p for p in procs if _is_alive(p)]
    while alive and time.monotonic() < deadline:
        time.sleep(0.05)
        alive = [p for p in alive if _is_alive(p)]

    survivors = {p.pid for p in alive}
    outcome.killed = sorted(p.pid for p in procs if p.pid not in survivors)
    outcome.survivors = sorted(survivors)
    return outcome


async def _drain(stream: asyncio.StreamReader, sink: bytearray):
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            break
        sink.extend(chunk)


def _decode(buffer: bytearray) -> str:
    return bytes(buffer).decode("utf-8", errors="replace")


def build_result(
    started_at: datetime,
    exit_code: int = -1,
    stdout: str = "",
    stderr: str = "",
    timed_out: bool = False,
    error: Optional[ErrorInfo] = None,
    pid: Optional[int] = None,
) -> ExecResult:
    """ExecResult ending now; exit code -1 unless the process finished"""
    return ExecResult(
        exit_code=exit_code,
        stdout=stdout,
        stderr=stderr,
        timed_out=timed_out,
        error=error,
        started_at=started_at,
        ended_at=max(utcnow(), started_at),
        process_id=pid,
    )


class ProcessRunner:
    """
    Runs a program under the composite cancellation scope.

    Holds no per-call state, so one runner can serve any number of
    concurrent calls.
    """

    def __init__(
        self,
        kill_grace: Optional[float] = None,
        drain_grace: Optional[float] = None,
    ):
        runtime = get_config().runtime
        self.kill_grace = kill_grace or runtime.kill_grace_seconds
        self.drain_grace = drain_grace or runtime.drain_grace_seconds

    async def run(
        self,
        program: str,
        args: Sequence[str],
        request: ExecRequest,
        cancel: Optional[asyncio.Event] = None,
    ) -> ExecResult:
        timeout = effective_timeout(request.timeout)
        started_at = utcnow()

        if cancel is not None and cancel.is_set():
            return build_result(
                started_at,
                timed_out=True,
                error=ErrorInfo(
                    type=ErrorKind.CANCELLED,
                    message="Cancelled before the process was started",
                ),
            )

        logger.debug(f"Spawning {program} with {len(args)} args, timeout {timeout}s")

        try:
            proc = await asyncio.create_subprocess_exec(
                program,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=(
                    asyncio.subprocess.PIPE
                    if request.capture_stderr
                    else asyncio.subprocess.DEVNULL
                ),
                cwd=request.working_directory or None,
                env=build_environment(request.environment),
                **_spawn_options(),
            )
        except (OSError, ValueError) as e:
            logger.error(f"Failed to start {program}: {e}")
            return build_result(
                started_at,
                error=ErrorInfo(
                    type=ErrorKind.PROCESS_SPAWN_ERROR,
                    message=f"Failed to start {program}: {e}",
                    stack_trace=traceback.format_exc(),
                ),
            )
        except Exception as e:
            logger.error(f"Unexpected error starting {program}: {e}", exc_info=True)
            return build_result(started_at, error=error_info_from_exception(e))

        stdout = bytearray()
        stderr = bytearray()
        tasks = [asyncio.create_task(_drain(proc.stdout, stdout))]
        if proc.stderr is not None:
            tasks.append(asyncio.create_task(_drain(proc.stderr, stderr)))
        tasks.append(asyncio.create_task(proc.wait()))
        work = asyncio.gather(*tasks)

        cancel_wait = asyncio.create_task(cancel.wait()) if cancel is not None else None
        watched = {work} if cancel_wait is None else {work, cancel_wait}

        error: Optional[ErrorInfo] = None
        timed_out = False
        finished = False
        try:
            done, _ = await asyncio.wait(
                watched, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
            if work in done:
                failure = work.exception()
                if failure is None:
                    finished = True
                else:
                    error = error_info_from_exception(failure)
            elif cancel_wait is not None and cancel_wait in done:
                timed_out = True
                error = ErrorInfo(
                    type=ErrorKind.CANCELLED,
                    message="Cancelled by caller",
                )
            else:
                timed_out = True
                error = ErrorInfo(
                    type=ErrorKind.TIMEOUT,
                    message=f"Process exceeded timeout of {timeout}s",
                )
        finally:
            if cancel_wait is not None:
                cancel_wait.cancel()
            if not finished:
                # One second of slack for coarse process create times
                await self._terminate(proc, tasks, work, started_at.timestamp() - 1)

        if finished:
            result = build_result(
                started_at,
                exit_code=proc.returncode,
                stdout=_decode(stdout),
                stderr=_decode(stderr),
                pid=proc.pid,
            )
            logger.info(
                f"{program} exited with {result.exit_code} in {result.duration:.3f}s"
            )
            return result

        logger.warning(f"{program} (pid {proc.pid}) stopped: {error.message}")
        return build_result(
            started_at,
            stdout=_decode(stdout),
            stderr=_decode(stderr),
            timed_out=timed_out,
            error=error,
            pid=proc.pid,
        )

    async def _terminate(
        self, proc, tasks: List[asyncio.Task], work, started: float
    ) -> None:
        """Kill the tree, then reap the child and join the drains (bounded)"""
        # Always runs: an exited root can leave descendants holding the pipes
        outcome = await asyncio.to_thread(
            kill_process_tree, proc.pid, self.kill_grace, started
        )
        if outcome.ok:
            logger.debug(f"Killed process tree {outcome.killed}")
        else:
            logger.warning(
                f"Process tree {proc.pid} not fully terminated: "
                f"survivors={outcome.survivors} error={outcome.error}"
            )

        _, pending = await asyncio.wait(tasks, timeout=self.drain_grace)
        if pending:
            logger.warning(
                f"Abandoning {len(pending)} stream task(s) of pid {proc.pid} "
                f"after {self.drain_grace}s"
            )
            for task in pending:
                task.cancel()
            # Release the pipes so the transport does not outlive the loop
            transport = getattr(proc, "_transport", None)
            if transport is not None:
                transport.close()
        # Collect results so nothing is left unretrieved
        await asyncio.gather(work, return_exceptions=True)

