"""Event multiplexer for the UI loop.

Each call to ``EventMultiplexer.wait`` blocks in one ``select`` until the
terminal, the log stream or the refresh timer produces something, and
returns exactly one event. The log stream only takes part when one is
given; without it the wait is just terminal input plus the timer.
"""

from __future__ import annotations

import logging
import select
from dataclasses import dataclass

from pui.client import LogStream
from pui.clock import IntervalTimer
from pui.keys import InputEvent
from pui.keys import TerminalInput

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Tick:
    """The refresh timer fired."""


@dataclass(frozen=True)
class StreamChunk:
    """
    Output from the log stream.

    Attributes:
        text: New text, or None if the stream closed.
        error: Read failure, if that is why the stream ended.
    """

    text: str | None
    error: BaseException | None = None

    @property
    def closed(self) -> bool:
        return self.text is None or self.error is not None


Event = InputEvent | StreamChunk | Tick


class EventMultiplexer:
    """
    Waits on terminal input, an optional log stream and the refresh timer.

    Attributes:
        terminal: Source of key and resize events.
        timer: Refresh timer; missed firings are skipped.
    """

    def __init__(self, terminal: TerminalInput, timer: IntervalTimer) -> None:
        self.terminal = terminal
        self.timer = timer

    def wait(self, stream: LogStream | None = None) -> Event:
        """
        Block until one event is available and return it.

        Keys already decoded from an earlier read are returned first, then a
        due timer fires before anything new is read. When the terminal and
        the stream are ready together, the terminal is read first.

        Args:
            stream: Live log stream to include in the wait, if any.

        Returns:
            The next event.

        Raises:
            EOFError: If the terminal was closed.
        """
        stream_fd = stream.fileno() if stream is not None else None
        while True:
            pending = self.terminal.pop()
            if pending is not None:
                return pending

            if self.timer.expired():
                self.timer.reset()
                return Tick()

            fds = self.terminal.filenos()
            if stream_fd is not None:
                fds = [*fds, stream_fd]

            try:
                ready, _, _ = select.select(fds, [], [], self.timer.remaining())
            except InterruptedError:
                # SIGWINCH; the wakeup pipe is readable on the next pass
                continue

            if not ready:
                self.timer.reset()
                return Tick()

            terminal_ready = [fd for fd in ready if fd != stream_fd]
            if terminal_ready:
                self.terminal.read(terminal_ready)
                event = self.terminal.pop()
                if event is not None:
                    return event

            if stream is not None and stream_fd in ready:
                try:
                    return StreamChunk(stream.read_chunk())
                except OSError as e:
                    logger.debug("Log stream read failed: %s", e)
                    return StreamChunk(None, e)
