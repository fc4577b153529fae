"""Log viewport: streamed log text with wrap-accurate scrolling.

Scroll offsets are counted in *visual* lines, i.e. rows after wrapping at
the panel's content width. The same ``wrap_log_lines`` result is used both
to count rows for clamping and to paint them, so "scroll to end" always
lands on the true last row.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from dataclasses import field

from rich.ansi import AnsiDecoder
from rich.console import Console
from rich.containers import Lines
from rich.text import Text

from pui.client import LogStream
from pui.constants import TAB_WIDTH

logger = logging.getLogger(__name__)

# Wrapping only needs a console for measurement; it never writes anything.
_MEASURE_CONSOLE = Console(file=io.StringIO(), color_system=None, legacy_windows=False)


def expand_tabs(text: str) -> str:
    """Replace every tab with a fixed run of spaces."""
    return text.replace("\t", " " * TAB_WIDTH)


def split_log_lines(text: str) -> list[Text]:
    """
    Decode log text into one styled Text per logical line.

    A single trailing newline ends the last line and does not start a new
    one; further blank lines are kept. ANSI styles carry over line breaks.
    """
    body = expand_tabs(text).replace("\r\n", "\n")
    if body.endswith("\n"):
        body = body[:-1]
    decoder = AnsiDecoder()
    return [decoder.decode_line(line) for line in body.split("\n")]


def wrap_log_lines(text: str, width: int) -> Lines:
    """
    Wrap log text into the rows the log panel paints.

    ANSI styling is kept, other control sequences are dropped. Words are
    wrapped at spaces and words longer than the width are folded.

    Args:
        text: Raw log text.
        width: Content width in columns.

    Returns:
        One rich Text per visual row.
    """
    content = Text("\n").join(split_log_lines(text))
    return content.wrap(_MEASURE_CONSOLE, max(1, width), overflow="fold")


def visual_line_count(text: str, width: int) -> int:
    """Number of rows ``text`` occupies when wrapped at ``width``."""
    return len(wrap_log_lines(text, width))


def render_log_lines(lines: Lines, offset: int, height: int) -> Text:
    """
    Join the rows visible at ``offset`` into one renderable.

    The rows are already wrapped, so the result must not wrap again.
    """
    visible = list(lines)[offset : offset + max(0, height)]
    text = Text("\n").join(visible)
    text.no_wrap = True
    text.overflow = "crop"
    return text


@dataclass
class LogViewport:
    """
    Scroll state of the log view for one job.

    Attributes:
        job_id: Job whose log is shown.
        text: Accumulated log text; only ever appended to.
        scroll_offset: Index of the first visible row.
        autoscroll: Keep the last row in view as text arrives.
        stream: Live log stream, or None once it has closed.
        stream_epoch: Connection epoch the stream was opened under.
    """

    job_id: int
    text: str = ""
    scroll_offset: int = 0
    autoscroll: bool = True
    stream: LogStream | None = None
    stream_epoch: int = 0
    _wrap_key: tuple[int, int] | None = field(default=None, repr=False, compare=False)
    _wrapped: Lines | None = field(default=None, repr=False, compare=False)

    def lines(self, width: int) -> Lines:
        """Wrapped rows of the whole buffer, cached per (length, width)."""
        key = (len(self.text), width)
        if self._wrapped is None or self._wrap_key != key:
            self._wrapped = wrap_log_lines(self.text, width)
            self._wrap_key = key
        return self._wrapped

    def max_offset(self, page_height: int, page_width: int) -> int:
        return max(0, len(self.lines(page_width)) - max(0, page_height))

    def clamp(self, page_height: int, page_width: int) -> None:
        self.scroll_offset = max(0, min(self.scroll_offset, self.max_offset(page_height, page_width)))

    def fit(self, page_height: int, page_width: int) -> None:
        """Re-apply the scroll policy after the text or the page size changed."""
        if self.autoscroll:
            self.scroll_offset = self.max_offset(page_height, page_width)
        else:
            self.clamp(page_height, page_width)

    def append(self, chunk: str, page_height: int, page_width: int) -> None:
        """
        Add streamed text to the buffer.

        With autoscroll on, the view follows the new end; otherwise the offset
        stays where the user left it.
        """
        if not chunk:
            return
        self.text += chunk
        if self.autoscroll:
            self.scroll_offset = self.max_offset(page_height, page_width)

    def scroll_by(self, delta: int, page_height: int, page_width: int) -> None:
        self.autoscroll = False
        self.scroll_offset += delta
        self.clamp(page_height, page_width)

    def scroll_to_top(self, page_height: int, page_width: int) -> None:
        self.autoscroll = False
        self.scroll_offset = 0
        self.clamp(page_height, page_width)

    def scroll_to_end(self, page_height: int, page_width: int) -> None:
        self.autoscroll = True
        self.scroll_offset = self.max_offset(page_height, page_width)

    def handle_key(self, key: str, page_height: int, page_width: int) -> bool:
        """
        Apply a scroll key.

        Args:
            key: Decoded key name (see ``pui.keys.KeyEvent.key``).
            page_height: Visible rows.
            page_width: Visible columns.

        Returns:
            True if the key was a scroll key.
        """
        half = max(1, page_height // 2)
        page = max(1, page_height)
        if key in ("j", "down"):
            self.scroll_by(1, page_height, page_width)
        elif key in ("k", "up"):
            self.scroll_by(-1, page_height, page_width)
        elif key in (" ", "pagedown"):
            self.scroll_by(page, page_height, page_width)
        elif key in ("b", "pageup"):
            self.scroll_by(-page, page_height, page_width)
        elif key == "d":
            self.scroll_by(half, page_height, page_width)
        elif key == "u":
            self.scroll_by(-half, page_height, page_width)
        elif key in ("g", "home"):
            self.scroll_to_top(page_height, page_width)
        elif key in ("G", "end"):
            self.scroll_to_end(page_height, page_width)
        else:
            return False
        return True

    def visible(self, page_height: int, page_width: int) -> Text:
        """The rows currently in view, ready to paint."""
        return render_log_lines(self.lines(page_width), self.scroll_offset, page_height)

    def close_stream(self) -> None:
        """Release the live stream, if any."""
        if self.stream is None:
            return
        stream, self.stream = self.stream, None
        stream.close()
        logger.debug("Log stream for job %d released", self.job_id)
