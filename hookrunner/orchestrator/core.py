"""Process orchestrator - at most one live command per hook name, output teed to a log file.

A run occupies its hook's live-run slot from spawn until its merged
stdout/stderr stream has been fully written to the log, not merely until the
process exits. Starting a run for a busy hook sends SIGTERM to the previous
process and takes the slot immediately; the superseded run still settles and
publishes its own exit/error event.
"""
import asyncio
import logging
import shlex
import signal
import time
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Coroutine, Mapping

from hookrunner.event_bus import EventBus, EventKind, jsonable
from hookrunner.hooks.models import HookEvents
from hookrunner.hooks.template import render

logger = logging.getLogger("hookrunner.runs")

READ_CHUNK = 64 * 1024


async def spawn(command: str, *, cwd: Path | str | None, shell: bool | str | None, **kwargs: Any) -> asyncio.subprocess.Process:
    """Start command. shell=True uses /bin/sh, a string names the shell to use,
    anything else splits the command into argv and executes it directly."""
    if shell is True:
        return await asyncio.create_subprocess_shell(command, cwd=cwd, **kwargs)
    if isinstance(shell, str) and shell:
        return await asyncio.create_subprocess_exec(shell, "-c", command, cwd=cwd, **kwargs)
    argv = shlex.split(command)
    if not argv:
        raise ValueError("Empty command")
    return await asyncio.create_subprocess_exec(*argv, cwd=cwd, **kwargs)


@dataclass(frozen=True)
class RunResult:
    command: str
    exit_code: int | None
    signal: str | None
    started_at: float
    duration_ms: int
    cancelled: bool
    log_path: Path

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "command": self.command,
            "exitCode": self.exit_code,
            "signal": self.signal,
            "startedAt": int(self.started_at * 1000),
            "durationMs": self.duration_ms,
            "cancelled": self.cancelled,
            "logPath": str(self.log_path),
        }


class RunHandle:
    """One execution of a hook's command."""

    def __init__(self, hook_name: str, command: str, log_path: Path):
        self.hook_name = hook_name
        self.command = command
        self.log_path = log_path
        self.process: asyncio.subprocess.Process | None = None
        self.started_at = time.time()
        self._t0 = time.monotonic()
        self.cancelled = False
        loop = asyncio.get_running_loop()
        self._settled: asyncio.Future = loop.create_future()
        self._drained: asyncio.Future = loop.create_future()

    @property
    def pid(self) -> int | None:
        return self.process.pid if self.process else None

    @property
    def is_drained(self) -> bool:
        return self._drained.done()

    @property
    def is_settled(self) -> bool:
        return self._settled.done()

    def cancel(self) -> bool:
        """Send SIGTERM. Does not wait for the process to exit."""
        if self.process is None or self.process.returncode is not None:
            return False
        try:
            self.process.terminate()
        except ProcessLookupError:
            return False
        self.cancelled = True
        return True

    async def wait(self) -> RunResult:
        """Settled result. Raises the launch/observation error of a failed run."""
        outcome = await asyncio.shield(self._settled)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def drained(self) -> None:
        """Wait until the output stream has been written and the log closed."""
        await asyncio.shield(self._drained)

    def _settle(self, outcome: "RunResult | BaseException") -> None:
        if not self._settled.done():
            self._settled.set_result(outcome)

    def _mark_drained(self) -> None:
        if not self._drained.done():
            self._drained.set_result(None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "pid": self.pid,
            "command": self.command,
            "logPath": str(self.log_path),
            "startedAt": int(self.started_at * 1000),
        }

    def __repr__(self) -> str:
        return f"RunHandle({self.hook_name!r}, pid={self.pid})"


class ProcessOrchestrator:
    """Owns the live-run registry (hook name -> RunHandle)."""

    def __init__(self, logs_root: Path, events: EventBus):
        self.logs_root = Path(logs_root)
        self.events = events
        self._runs: dict[str, RunHandle] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._background: set[asyncio.Task] = set()

    def live_runs(self) -> Mapping[str, RunHandle]:
        """Read-only snapshot of the live-run slots."""
        return MappingProxyType(dict(self._runs))

    def current(self, hook_name: str) -> RunHandle | None:
        return self._runs.get(hook_name)

    async def start(
        self,
        hook_name: str,
        command: str,
        *,
        working_directory: Path | str | None = None,
        shell: bool | str | None = None,
        context: Any = None,
        events: HookEvents | None = None,
    ) -> RunHandle:
        """Cancel the hook's previous run, spawn the new one and return at once.

        Launch failures do not raise: they are published as an error event.
        """
        rendered = render(command, context)
        async with self._lock(hook_name):
            previous = self._runs.get(hook_name)
            if previous is not None and previous.cancel():
                logger.info("[%s] Cancelled previous run (pid %s)", hook_name, previous.pid)

            handle = RunHandle(hook_name, rendered, self.logs_root / hook_name)
            log_file = None
            try:
                handle.log_path = self._new_log_path(hook_name)
                log_file = open(handle.log_path, "ab", buffering=0)
                handle.process = await spawn(
                    rendered,
                    cwd=working_directory,
                    shell=shell,
                    stdin=None,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.STDOUT,
                )
            except (OSError, ValueError) as e:
                if log_file is not None:
                    log_file.close()
                logger.error("[%s] Failed to start command %r: %s", hook_name, rendered, e)
                self._emit(EventKind.RUN, handle, working_directory, shell, events, process=handle)
                handle._mark_drained()
                handle._settle(e)
                self._emit(EventKind.ERROR, handle, working_directory, shell, events, error=e)
                return handle

            self._runs[hook_name] = handle
            logger.info("[%s] Running command (pid %s)...", hook_name, handle.pid)
            self._emit(EventKind.RUN, handle, working_directory, shell, events, process=handle)

        self._track(self._drain(handle, log_file))
        self._track(self._settle(handle, working_directory, shell, events))
        return handle

    def cancel(self, hook_name: str) -> bool:
        handle = self._runs.get(hook_name)
        return handle.cancel() if handle else False

    def cancel_all(self) -> int:
        """Signal every live run. Returns how many were signalled."""
        return sum(1 for handle in list(self._runs.values()) if handle.cancel())

    async def join(self) -> None:
        """Wait for output draining, settlement and event commands in flight."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def _lock(self, hook_name: str) -> asyncio.Lock:
        lock = self._locks.get(hook_name)
        if lock is None:
            lock = self._locks[hook_name] = asyncio.Lock()
        return lock

    def _new_log_path(self, hook_name: str) -> Path:
        log_dir = self.logs_root / hook_name
        log_dir.mkdir(parents=True, exist_ok=True)
        millis = int(time.time() * 1000)
        path = log_dir / f"{millis}.log"
        while path.exists():
            millis += 1
            path = log_dir / f"{millis}.log"
        return path

    def _track(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _drain(self, handle: RunHandle, log_file) -> None:
        stream = handle.process.stdout
        loop = asyncio.get_running_loop()
        writable = True
        try:
            while True:
                chunk = await stream.read(READ_CHUNK)
                if not chunk:
                    break
                if not writable:
                    continue
                try:
                    # one write in flight at a time keeps chunks in order
                    await loop.run_in_executor(None, log_file.write, chunk)
                except OSError:
                    # keep reading so the child never blocks on a full pipe
                    writable = False
                    logger.error("[%s] Cannot write log %s", handle.hook_name, handle.log_path, exc_info=True)
        except Exception:
            logger.error("[%s] Output stream failed", handle.hook_name, exc_info=True)
        finally:
            log_file.close()
            if self._runs.get(handle.hook_name) is handle:
                del self._runs[handle.hook_name]
            handle._mark_drained()

    async def _settle(self, handle: RunHandle, working_directory, shell, events: HookEvents | None) -> None:
        try:
            code = await handle.process.wait()
        except Exception as e:
            logger.error("[%s] Lost track of command", handle.hook_name, exc_info=True)
            handle._settle(e)
            self._emit(EventKind.ERROR, handle, working_directory, shell, events, error=e)
            return

        sig = None
        if code < 0:
            try:
                sig = signal.Signals(-code).name
            except ValueError:
                sig = str(-code)
        result = RunResult(
            command=handle.command,
            exit_code=code if code >= 0 else None,
            signal=sig,
            started_at=handle.started_at,
            duration_ms=int((time.monotonic() - handle._t0) * 1000),
            cancelled=handle.cancelled,
            log_path=handle.log_path,
        )
        if sig:
            logger.info("[%s] Command terminated by %s", handle.hook_name, sig)
        else:
            logger.info("[%s] Command exited with code %d", handle.hook_name, code)
        handle._settle(result)
        self._emit(EventKind.EXIT, handle, working_directory, shell, events, result=result)

    def _emit(self, kind: EventKind, handle: RunHandle, working_directory, shell, events: HookEvents | None, **payload: Any) -> None:
        self.events.emit(kind, handle.hook_name, hookName=handle.hook_name, **payload)
        template = events.get(kind.value) if events else None
        if template:
            context = jsonable({"hookName": handle.hook_name, **payload})
            self._track(self._run_detached(handle.hook_name, template, context, working_directory, shell))

    async def _run_detached(self, hook_name: str, template: str, context: dict, working_directory, shell) -> None:
        """Event command: own session, no stdio, outside the one-per-hook rule.
        Failures are logged and dropped."""
        command = render(template, context)
        try:
            process = await spawn(
                command,
                cwd=working_directory,
                shell=shell,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
                start_new_session=True,
            )
        except (OSError, ValueError) as e:
            logger.warning("[%s] Event command %r failed to start: %s", hook_name, command, e)
            return
        code = await process.wait()
        logger.debug("[%s] Event command %r exited with code %s", hook_name, command, code)
