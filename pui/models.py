"""Data models for jobs tracked by the Pueue daemon."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from pui.utils import command_basename
from pui.utils import format_duration
from pui.utils import shorten_path


class StatusKind(Enum):
    """Lifecycle state of a job."""

    LOCKED = "Locked"
    STASHED = "Stashed"
    QUEUED = "Queued"
    RUNNING = "Running"
    PAUSED = "Paused"
    DONE = "Done"


class TaskResult(Enum):
    """Outcome of a finished job."""

    SUCCESS = "Success"
    FAILED = "Failed"
    FAILED_TO_SPAWN = "FailedToSpawn"
    KILLED = "Killed"
    ERRORED = "Errored"
    DEPENDENCY_FAILED = "DependencyFailed"


@dataclass(frozen=True)
class JobStatus:
    """
    Tagged job status.

    Attributes:
        kind: Lifecycle state.
        result: Outcome, only set when ``kind`` is DONE.
        exit_code: Exit code of a FAILED result.
    """

    kind: StatusKind
    result: TaskResult | None = None
    exit_code: int | None = None

    @property
    def is_done(self) -> bool:
        return self.kind is StatusKind.DONE

    @property
    def is_active(self) -> bool:
        """True while the job holds a process (running or paused)."""
        return self.kind in (StatusKind.RUNNING, StatusKind.PAUSED)


def status_display(status: JobStatus) -> str:
    """Return the status text shown in the table and used for status sorting."""
    if not status.is_done:
        return status.kind.value
    result = status.result
    if result is TaskResult.SUCCESS:
        return "Success"
    if result is TaskResult.FAILED:
        return f"Failed ({status.exit_code})"
    if result is TaskResult.KILLED:
        return "Killed"
    if result is TaskResult.ERRORED:
        return "Errored"
    if result is TaskResult.DEPENDENCY_FAILED:
        return "Dependency Failed"
    return "Done"


@dataclass(frozen=True)
class Job:
    """
    Immutable snapshot of one job as reported by the daemon.

    Attributes:
        id: Stable job id.
        command: Command line as currently shown by the daemon.
        original_command: Command line the job was created with.
        path: Working directory.
        status: Tagged status.
        group: Group the job belongs to.
        label: Optional user label.
        priority: Queue priority.
        enqueued_at: When the job entered the queue.
        start: When the job started running.
        end: When the job finished.
    """

    id: int
    command: str
    path: str
    status: JobStatus
    original_command: str = ""
    group: str = "default"
    label: str | None = None
    priority: int = 0
    enqueued_at: datetime | None = None
    start: datetime | None = None
    end: datetime | None = None

    def duration(self, now: datetime) -> float | None:
        """Seconds between start and end (or ``now`` while unfinished)."""
        if self.start is None:
            return None
        end = self.end if self.end is not None else now
        return (end - self.start).total_seconds()


#: Mapping of job id to job; replaced wholesale on every refresh
JobSet = Mapping[int, Job]


@dataclass(frozen=True)
class TaskToRestart:
    """
    Restart request for a finished job.

    Carries the job's original definition so the daemon does not pick up a
    command that was edited for display.
    """

    task_id: int
    original_command: str
    path: str
    label: str | None
    priority: int

    @classmethod
    def from_job(cls, job: Job) -> TaskToRestart:
        return cls(
            task_id=job.id,
            original_command=job.original_command or job.command,
            path=job.path,
            label=job.label,
            priority=job.priority,
        )


@dataclass(frozen=True)
class FormattedJob:
    """Display texts for one table row."""

    id: str
    status: str
    command: str
    path: str
    duration: str
    full_command: str
    full_path: str
    group: str
    label: str | None


def format_job(job: Job, now: datetime, home: str | None = None) -> FormattedJob:
    """
    Build the display texts for a job.

    Args:
        job: The job to format.
        now: Reference time for the duration of unfinished jobs.
        home: Home directory to collapse in paths (defaults to ``$HOME``).

    Returns:
        The formatted row.
    """
    return FormattedJob(
        id=str(job.id),
        status=status_display(job.status),
        command=command_basename(job.command),
        path=shorten_path(job.path, home),
        duration=format_duration(job.duration(now)),
        full_command=job.command,
        full_path=job.path,
        group=job.group,
        label=job.label,
    )
