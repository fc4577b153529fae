"""Daemon client backed by the ``pueue`` command line.

Every request runs one ``pueue`` subcommand, so each request uses its own
connection to the daemon and nothing on the wire is implemented here. Log
streams are ``pueue follow`` child processes whose stdout pipe is handed to
the event loop.
"""

from __future__ import annotations

import codecs
import json
import logging
import os
import re
import select
import shlex
import subprocess
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path
from typing import Any

from pui.client import DaemonClient
from pui.client import LogStream
from pui.connection import has_transport_signature
from pui.constants import INITIAL_LOG_TIMEOUT
from pui.constants import LOG_CHUNK_SIZE
from pui.exceptions import ConnectionFailedError
from pui.exceptions import DaemonError
from pui.exceptions import OperationError
from pui.exceptions import ProtocolError
from pui.exceptions import TransportError
from pui.models import Job
from pui.models import JobSet
from pui.models import JobStatus
from pui.models import StatusKind
from pui.models import TaskResult
from pui.models import TaskToRestart

logger = logging.getLogger(__name__)

# chrono writes nanoseconds; datetime.fromisoformat accepts at most microseconds
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 timestamp from pueue's JSON, or return None."""
    if not isinstance(value, str) or not value:
        return None
    text = _FRACTION_RE.sub(r"\1", value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.debug("Could not parse timestamp: %s", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def parse_result(raw: Any) -> tuple[TaskResult | None, int | None]:
    """Parse the result of a finished task into (result, exit_code)."""
    if isinstance(raw, str):
        try:
            return TaskResult(raw), None
        except ValueError:
            logger.debug("Unknown task result: %s", raw)
            return None, None
    if isinstance(raw, dict) and len(raw) == 1:
        name, value = next(iter(raw.items()))
        if name == TaskResult.FAILED.value:
            code = value if isinstance(value, int) else None
            return TaskResult.FAILED, code
        if name == TaskResult.FAILED_TO_SPAWN.value:
            return TaskResult.FAILED_TO_SPAWN, None
    return None, None


def parse_task(data: dict[str, Any]) -> Job:
    """
    Build a Job from one entry of ``pueue status --json``.

    Both the tagged status layout (``{"Running": {"start": ...}}``) and the
    older flat layout (``"Running"`` with timestamps on the task) are
    understood.

    Raises:
        ProtocolError: If required fields are missing.
    """
    try:
        task_id = int(data["id"])
        command = str(data["command"])
        path = str(data["path"])
        raw_status = data["status"]
        priority = int(data.get("priority") or 0)
    except (KeyError, TypeError, ValueError) as e:
        raise ProtocolError("Malformed task in status reply", e) from e

    payload: Any = {}
    if isinstance(raw_status, str):
        kind_name = raw_status
    elif isinstance(raw_status, dict) and len(raw_status) == 1:
        kind_name, payload = next(iter(raw_status.items()))
    else:
        raise ProtocolError(f"Malformed status for task {task_id}: {raw_status!r}")

    try:
        kind = StatusKind(kind_name)
    except ValueError as e:
        raise ProtocolError(f"Unknown status for task {task_id}: {kind_name}", e) from e

    times = payload if isinstance(payload, dict) else {}
    result: TaskResult | None = None
    exit_code: int | None = None
    if kind is StatusKind.DONE:
        raw_result = times.get("result") if isinstance(payload, dict) else payload
        if raw_result is None:
            raw_result = data.get("result")
        result, exit_code = parse_result(raw_result)

    label = data.get("label")
    return Job(
        id=task_id,
        command=command,
        original_command=str(data.get("original_command") or command),
        path=path,
        status=JobStatus(kind=kind, result=result, exit_code=exit_code),
        group=str(data.get("group") or "default"),
        label=str(label) if label is not None else None,
        priority=priority,
        enqueued_at=parse_timestamp(times.get("enqueued_at", data.get("enqueued_at"))),
        start=parse_timestamp(times.get("start", data.get("start"))),
        end=parse_timestamp(times.get("end", data.get("end"))),
    )


def parse_state(data: Any) -> dict[int, Job]:
    """Parse the full ``pueue status --json`` document into a job set."""
    if not isinstance(data, dict) or not isinstance(data.get("tasks"), dict):
        raise ProtocolError("Status reply has no task table")
    jobs: dict[int, Job] = {}
    for raw_task in data["tasks"].values():
        job = parse_task(raw_task)
        jobs[job.id] = job
    return jobs


class PueueLogStream(LogStream):
    """Log stream reading from a ``pueue follow`` child process."""

    def __init__(self, process: subprocess.Popen[bytes]) -> None:
        if process.stdout is None:
            raise ValueError("pueue follow must be started with stdout=PIPE")
        self._process = process
        self._fd = process.stdout.fileno()
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._closed = False

    def fileno(self) -> int:
        return self._fd

    def read_chunk(self) -> str | None:
        if self._closed:
            return None
        data = os.read(self.fileno(), LOG_CHUNK_SIZE)
        if not data:
            return None
        return self._decoder.decode(data)

    def wait_readable(self, timeout: float) -> bool:
        """Return True if output arrives within ``timeout`` seconds."""
        readable, _, _ = select.select([self.fileno()], [], [], timeout)
        return bool(readable)

    def stderr_text(self) -> str:
        """Collected stderr of a process that has already exited."""
        if self._process.stderr is None:
            return ""
        return self._process.stderr.read().decode(errors="replace").strip()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._process.poll() is None:
            self._process.terminate()
            try:
                self._process.wait(timeout=1.0)
            except subprocess.TimeoutExpired:
                self._process.kill()
                self._process.wait()
        for pipe in (self._process.stdout, self._process.stderr):
            if pipe is not None:
                pipe.close()
        logger.debug("Closed log stream (pid %s)", self._process.pid)


class PueueClient(DaemonClient):
    """
    DaemonClient implementation that runs the ``pueue`` executable.

    Attributes:
        executable: Name or path of the pueue binary.
        config_path: Optional pueue config file, passed as ``--config``.
    """

    def __init__(self, executable: str = "pueue", config_path: Path | None = None) -> None:
        self.executable = executable
        self.config_path = config_path

    @classmethod
    def connect(cls, executable: str = "pueue", config_path: Path | None = None) -> PueueClient:
        """
        Create a client and verify the daemon answers.

        Raises:
            ConnectionFailedError: If the daemon cannot be reached.
        """
        client = cls(executable, config_path)
        try:
            client.get_state()
        except DaemonError as e:
            raise ConnectionFailedError("Failed to connect to Pueue daemon", e) from e
        return client

    def _command(self, *args: str) -> list[str]:
        command = [self.executable]
        if self.config_path is not None:
            command += ["--config", str(self.config_path)]
        command += list(args)
        return command

    def _run(self, operation: str, *args: str) -> str:
        """Run one pueue subcommand and return its stdout.

        Raises:
            TransportError: If the daemon could not be reached.
            OperationError: If the daemon rejected the request.
        """
        command = self._command(*args)
        logger.debug("Running %s", shlex.join(command))
        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                text=True,
                stdin=subprocess.DEVNULL,
                check=False,
            )
        except ConnectionError as e:
            raise TransportError(f"'{operation}' failed", e) from e
        except OSError as e:
            raise DaemonError(f"Could not run {self.executable}", e) from e

        if completed.returncode != 0:
            message = completed.stderr.strip() or completed.stdout.strip()
            message = message or f"exit status {completed.returncode}"
            if has_transport_signature(message):
                raise TransportError(message)
            raise OperationError(operation, message)
        return completed.stdout

    def get_state(self) -> JobSet:
        output = self._run("status", "status", "--json")
        try:
            data = json.loads(output)
        except json.JSONDecodeError as e:
            raise ProtocolError("Status reply is not valid JSON", e) from e
        return parse_state(data)

    def start_tasks(self, ids: Sequence[int]) -> None:
        self._run("start", "start", *map(str, ids))

    def pause_tasks(self, ids: Sequence[int]) -> None:
        self._run("pause", "pause", *map(str, ids))

    def kill_tasks(self, ids: Sequence[int]) -> None:
        self._run("kill", "kill", *map(str, ids))

    def remove_tasks(self, ids: Sequence[int]) -> None:
        self._run("remove", "remove", *map(str, ids))

    def restart_tasks(self, tasks: Sequence[TaskToRestart]) -> None:
        # -k starts the new task right away; pueue takes the command, path,
        # label and priority from the stored original task
        self._run("restart", "restart", "-k", *(str(t.task_id) for t in tasks))

    def open_log_stream(self, task_id: int, lines: int | None = None) -> tuple[str, LogStream]:
        command = self._command("follow", str(task_id))
        if lines is not None:
            command += ["--lines", str(lines)]
        logger.debug("Opening log stream: %s", shlex.join(command))
        try:
            process = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            raise DaemonError(f"Could not run {self.executable}", e) from e

        stream = PueueLogStream(process)
        if not stream.wait_readable(INITIAL_LOG_TIMEOUT):
            return "", stream

        initial = stream.read_chunk()
        if initial is not None:
            return initial, stream

        returncode = process.wait()
        if returncode != 0:
            message = stream.stderr_text() or f"exit status {returncode}"
            stream.close()
            if has_transport_signature(message):
                raise TransportError(message)
            raise OperationError("log", f"Stream request failed: {message}")
        return "", stream

    def reconnect(self) -> None:
        # Each request opens its own connection, so reconnecting means
        # checking that a new one can be made.
        self._run("reconnect", "status", "--json")
