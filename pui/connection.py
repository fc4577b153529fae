"""Connection management for the daemon client.

The ConnectionManager wraps a DaemonClient with failure classification:
dropped connections seen during a periodic refresh get one reconnect and one
retry, everything else is reported to the caller unchanged.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TypeVar

from pui.client import DaemonClient
from pui.client import LogStream
from pui.constants import RECONNECT_FAILED_PREFIX
from pui.constants import RECONNECTING_MESSAGE
from pui.constants import TRANSPORT_ERROR_SIGNATURES
from pui.exceptions import DaemonError
from pui.exceptions import PuiError
from pui.exceptions import TransportError
from pui.models import JobSet
from pui.models import TaskToRestart

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSPORT_EXCEPTIONS = (
    BrokenPipeError,
    ConnectionResetError,
    ConnectionRefusedError,
    TransportError,
)


def has_transport_signature(text: str) -> bool:
    """Return True if an error message reads like a dropped connection."""
    lowered = text.lower()
    return any(signature in lowered for signature in TRANSPORT_ERROR_SIGNATURES)


def is_transport_error(error: BaseException) -> bool:
    """
    Classify an exception as transport-level (disconnect) or not.

    The exception and everything in its cause chain are checked, both by
    type and by message text.
    """
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, _TRANSPORT_EXCEPTIONS):
            return True
        if has_transport_signature(str(current)):
            return True
        cause = getattr(current, "cause", None)
        current = cause or current.__cause__ or current.__context__
    return False


@dataclass
class ConnectionHealth:
    """
    Visible state of the daemon connection.

    Attributes:
        error: Sticky error text from the last failed refresh.
        reconnecting: True while a reconnect attempt is running.
    """

    error: str | None = None
    reconnecting: bool = False

    @property
    def message(self) -> str | None:
        """Footer text describing the connection, or None when healthy."""
        if self.reconnecting:
            return RECONNECTING_MESSAGE
        return self.error

    def clear(self) -> None:
        self.error = None
        self.reconnecting = False


class ConnectionManager:
    """
    Sequential request channel to the daemon with reconnect policy.

    Attributes:
        client: The underlying daemon client.
        health: Connection health shown in the footer.
        epoch: Incremented whenever the connection is replaced; log streams
            opened under an older epoch are dead.
        on_reconnecting: Callback run before each reconnect attempt.
    """

    def __init__(
        self,
        client: DaemonClient,
        on_reconnecting: Callable[[], None] | None = None,
    ) -> None:
        """
        Initialize the manager.

        Args:
            client: Daemon client to issue requests with.
            on_reconnecting: Called right before a reconnect attempt so the UI
                can show that it is reconnecting.
        """
        self.client = client
        self.health = ConnectionHealth()
        self.epoch = 0
        self.on_reconnecting = on_reconnecting

    def refresh(self) -> JobSet | None:
        """
        Fetch a fresh job-set snapshot.

        Never raises for daemon failures; they are recorded in ``health``.

        Returns:
            The new snapshot, or None if it could not be fetched.
        """
        try:
            jobs = self.client.get_state()
        except (DaemonError, OSError) as e:
            if is_transport_error(e):
                return self._reconnect_and_retry(e)
            logger.debug("Refresh failed: %s", e)
            self.health.reconnecting = False
            self.health.error = f"Error: {e}"
            return None
        self.health.clear()
        return jobs

    def _reconnect_and_retry(self, error: BaseException) -> JobSet | None:
        logger.debug("Connection lost during refresh (%s), reconnecting", error)
        self.health.error = None
        self.health.reconnecting = True
        if self.on_reconnecting is not None:
            self.on_reconnecting()

        try:
            self.client.reconnect()
        except (DaemonError, OSError) as e:
            logger.warning("Reconnecting failed: %s", e)
            self.health.reconnecting = False
            self.health.error = f"{RECONNECT_FAILED_PREFIX}{e}"
            return None
        self.epoch += 1

        try:
            jobs = self.client.get_state()
        except (DaemonError, OSError) as e:
            logger.warning("Refresh after reconnect failed: %s", e)
            self.health.reconnecting = False
            self.health.error = f"Error: {e}"
            return None
        logger.debug("Reconnected to daemon (epoch %d)", self.epoch)
        self.health.clear()
        return jobs

    def _perform(self, operation: str, call: Callable[[], T]) -> T:
        """Run one request; failures are re-raised as DaemonError subclasses."""
        try:
            result = call()
        except PuiError as e:
            logger.debug("'%s' failed: %s", operation, e)
            raise
        except OSError as e:
            logger.debug("'%s' failed: %s", operation, e)
            if is_transport_error(e):
                raise TransportError(f"'{operation}' failed", e) from e
            raise DaemonError(f"'{operation}' failed", e) from e
        self.health.clear()
        return result

    def start(self, ids: Sequence[int]) -> None:
        self._perform("start", lambda: self.client.start_tasks(ids))

    def pause(self, ids: Sequence[int]) -> None:
        self._perform("pause", lambda: self.client.pause_tasks(ids))

    def kill(self, ids: Sequence[int]) -> None:
        self._perform("kill", lambda: self.client.kill_tasks(ids))

    def remove(self, ids: Sequence[int]) -> None:
        self._perform("remove", lambda: self.client.remove_tasks(ids))

    def restart(self, tasks: Sequence[TaskToRestart]) -> None:
        self._perform("restart", lambda: self.client.restart_tasks(tasks))

    def open_log_stream(self, task_id: int, lines: int | None = None) -> tuple[str, LogStream]:
        """Open a log stream for one job on a new connection."""
        return self._perform("log", lambda: self.client.open_log_stream(task_id, lines))

    def is_current(self, epoch: int) -> bool:
        """Return True if a stream opened under ``epoch`` is still usable."""
        return epoch == self.epoch
