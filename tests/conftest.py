"""Shared test fixtures for pui tests."""

import io
import os
from collections.abc import Generator
from collections.abc import Sequence
from datetime import datetime
from datetime import timezone

import pytest
from rich.console import Console

from pui.client import DaemonClient
from pui.client import LogStream
from pui.clock import FrozenClock
from pui.models import Job
from pui.models import JobSet
from pui.models import JobStatus
from pui.models import StatusKind
from pui.models import TaskResult
from pui.models import TaskToRestart

#: Fixed "now" used by all time-dependent tests
NOW = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

HOME = "/home/user"


def make_job(
    job_id: int = 0,
    command: str = "sleep 60",
    path: str = "/home/user/project",
    kind: StatusKind = StatusKind.QUEUED,
    result: TaskResult | None = None,
    exit_code: int | None = None,
    original_command: str | None = None,
    label: str | None = None,
    priority: int = 0,
    group: str = "default",
    start: datetime | None = None,
    end: datetime | None = None,
) -> Job:
    """Create a Job with sensible defaults."""
    return Job(
        id=job_id,
        command=command,
        original_command=original_command if original_command is not None else command,
        path=path,
        status=JobStatus(kind=kind, result=result, exit_code=exit_code),
        group=group,
        label=label,
        priority=priority,
        start=start,
        end=end,
    )


def make_jobs(*jobs: Job) -> dict[int, Job]:
    """Build a job set from jobs."""
    return {job.id: job for job in jobs}


def make_console(width: int = 80, height: int = 24) -> Console:
    """Create a fixed-size console that renders into memory."""
    return Console(
        file=io.StringIO(),
        width=width,
        height=height,
        color_system=None,
        force_terminal=False,
        legacy_windows=False,
    )


def render_rows(console: Console, renderable: object) -> list[str]:
    """Print a renderable and return the painted rows."""
    console.print(renderable)
    output = console.file.getvalue()  # type: ignore[attr-defined]
    return output.splitlines()


class PipeLogStream(LogStream):
    """Log stream backed by an OS pipe, for select-based tests."""

    def __init__(self) -> None:
        self.read_fd, self.write_fd = os.pipe()
        self.closed = False

    def feed(self, data: bytes) -> None:
        os.write(self.write_fd, data)

    def finish(self) -> None:
        """Close the writing end so the next read sees end of stream."""
        if self.write_fd >= 0:
            os.close(self.write_fd)
            self.write_fd = -1

    def fileno(self) -> int:
        return self.read_fd

    def read_chunk(self) -> str | None:
        data = os.read(self.read_fd, 4096)
        return data.decode() if data else None

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.finish()
        os.close(self.read_fd)


class FakeClient(DaemonClient):
    """
    In-memory daemon client that records every request.

    Failures are injected by assigning exceptions to ``state_errors`` (raised
    in order by get_state), ``reconnect_error`` or ``action_error``.
    """

    def __init__(self, jobs: JobSet | None = None) -> None:
        self.jobs: JobSet = dict(jobs or {})
        self.calls: list[tuple[str, object]] = []
        self.state_errors: list[BaseException] = []
        self.reconnect_error: BaseException | None = None
        self.action_error: BaseException | None = None
        self.log_text = ""
        self.streams: list[PipeLogStream] = []

    def get_state(self) -> JobSet:
        self.calls.append(("get_state", None))
        if self.state_errors:
            raise self.state_errors.pop(0)
        return dict(self.jobs)

    def _action(self, name: str, payload: object) -> None:
        self.calls.append((name, payload))
        if self.action_error is not None:
            raise self.action_error

    def start_tasks(self, ids: Sequence[int]) -> None:
        self._action("start", list(ids))

    def pause_tasks(self, ids: Sequence[int]) -> None:
        self._action("pause", list(ids))

    def kill_tasks(self, ids: Sequence[int]) -> None:
        self._action("kill", list(ids))

    def remove_tasks(self, ids: Sequence[int]) -> None:
        self._action("remove", list(ids))

    def restart_tasks(self, tasks: Sequence[TaskToRestart]) -> None:
        self._action("restart", list(tasks))

    def open_log_stream(self, task_id: int, lines: int | None = None) -> tuple[str, LogStream]:
        self._action("log", (task_id, lines))
        stream = PipeLogStream()
        self.streams.append(stream)
        return self.log_text, stream

    def reconnect(self) -> None:
        self.calls.append(("reconnect", None))
        if self.reconnect_error is not None:
            raise self.reconnect_error

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]


@pytest.fixture
def frozen_clock() -> FrozenClock:
    """Clock frozen at NOW with monotonic time 100."""
    return FrozenClock(frozen_time=NOW, frozen_monotonic=100.0)


@pytest.fixture
def fake_client() -> Generator[FakeClient, None, None]:
    """Fake client with three jobs; closes any log streams it opened."""
    client = FakeClient(
        make_jobs(
            make_job(0, command="/usr/bin/sleep 60", kind=StatusKind.RUNNING, start=NOW),
            make_job(1, command="make test", kind=StatusKind.QUEUED),
            make_job(
                2,
                command="cargo build",
                kind=StatusKind.DONE,
                result=TaskResult.SUCCESS,
                start=NOW,
                end=NOW,
            ),
        )
    )
    yield client
    for stream in client.streams:
        stream.close()
