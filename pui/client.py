"""Abstract interface to the task-queue daemon.

The controller only ever talks to the daemon through these two classes, so
the transport (the ``pueue`` executable in production, fakes in tests) can
be swapped without touching the UI code.
"""

from abc import ABC
from abc import abstractmethod
from collections.abc import Sequence

from pui.models import JobSet
from pui.models import TaskToRestart


class LogStream(ABC):
    """
    Live handle on the output of one job.

    A stream exposes a file descriptor so the event loop can wait on it with
    ``select`` alongside terminal input.
    """

    @abstractmethod
    def fileno(self) -> int:
        """File descriptor that becomes readable when a chunk is available."""

    @abstractmethod
    def read_chunk(self) -> str | None:
        """
        Read the next chunk of output.

        Only called after ``fileno()`` was reported readable.

        Returns:
            The new text, or None once the stream has closed.
        """

    @abstractmethod
    def close(self) -> None:
        """Release the stream. Safe to call more than once."""


class DaemonClient(ABC):
    """
    Request/response channel to the daemon.

    Exactly one request is in flight at a time. Every method raises a
    ``pui.exceptions.DaemonError`` subclass on failure.
    """

    @abstractmethod
    def get_state(self) -> JobSet:
        """Return a full snapshot of all jobs keyed by id."""

    @abstractmethod
    def start_tasks(self, ids: Sequence[int]) -> None:
        """Start (or resume) the given jobs."""

    @abstractmethod
    def pause_tasks(self, ids: Sequence[int]) -> None:
        """Pause the given jobs."""

    @abstractmethod
    def kill_tasks(self, ids: Sequence[int]) -> None:
        """Kill the given jobs."""

    @abstractmethod
    def remove_tasks(self, ids: Sequence[int]) -> None:
        """Remove the given jobs from the queue."""

    @abstractmethod
    def restart_tasks(self, tasks: Sequence[TaskToRestart]) -> None:
        """Restart finished jobs from their original definitions."""

    @abstractmethod
    def open_log_stream(self, task_id: int, lines: int | None = None) -> tuple[str, LogStream]:
        """
        Open a live log stream for one job on a dedicated connection.

        Args:
            task_id: Job whose output to follow.
            lines: Only deliver the last N lines of existing output.

        Returns:
            The initial log content and the stream for subsequent chunks.
        """

    @abstractmethod
    def reconnect(self) -> None:
        """Replace the underlying connection with a fresh one."""
