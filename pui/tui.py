"""Rich TUI for the Pueue task queue."""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable

from rich.console import Console
from rich.layout import Layout
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from pui.client import LogStream
from pui.clock import Clock
from pui.clock import IntervalTimer
from pui.clock import SystemClock
from pui.connection import ConnectionManager
from pui.constants import CONNECTED_MESSAGE
from pui.constants import DEFAULT_TICK_RATE
from pui.constants import LOG_CHROME_COLUMNS
from pui.constants import LOG_CHROME_ROWS
from pui.constants import MAIN_CHROME_ROWS
from pui.constants import TABLE_CHROME_ROWS
from pui.events import Event
from pui.events import EventMultiplexer
from pui.events import StreamChunk
from pui.events import Tick
from pui.exceptions import DaemonError
from pui.keys import KeyEvent
from pui.keys import ResizeEvent
from pui.keys import TerminalInput
from pui.logview import LogViewport
from pui.logview import render_log_lines
from pui.logview import wrap_log_lines
from pui.models import FormattedJob
from pui.models import TaskToRestart
from pui.models import format_job
from pui.modes import FilterMode
from pui.modes import LogMode
from pui.modes import NormalMode
from pui.modes import SortMode
from pui.selection import SortField
from pui.state import AppState

logger = logging.getLogger(__name__)

BORDER_STYLE = "cyan"
SELECTED_ROW_STYLE = "bold on #323232"

KEY_SUMMARY = (
    "j/k/PgUp/PgDn/Home/End: Nav | f: Filter | s: Sort | r: Run | p: Pause | "
    "x: Kill | Backspace: Remove | d: Details | Space: Mark | ?: Help | q: Quit"
)

HELP_TEXT = """\
Tasks
  j / k, Up / Down     Select next / previous task (wraps around)
  PgUp / PgDn          Move one page
  g / G, Home / End    First / last task
  Enter, l             Open the task log
  d                    Toggle task details
  Space                Mark or unmark the task
  r                    Start a queued task, restart a finished one
  p                    Pause
  x                    Kill
  Backspace            Remove (running and paused tasks are kept)
  f, /                 Filter by id, status, command or path
  s                    Sort, then [i]d, [s]tatus, [c]ommand or [p]ath
  Esc                  Clear marks, then the filter
  ?                    Toggle this help
  q, Ctrl+c            Quit

Actions apply to the marked tasks, or to the selected task when nothing
is marked.

Log view
  j / k, Up / Down     Scroll one line
  Space / b            Scroll one page down / up
  d / u                Scroll half a page down / up
  g / G, Home / End    Jump to top / bottom (bottom follows new output)
  Esc                  Close the log

Filter
  Enter                Keep the filter
  Esc                  Clear the filter
"""


def status_style(status: str) -> str:
    """Row colour for a displayed status text."""
    if status in ("Running", "Success"):
        return "green"
    if status.startswith("Failed") or status in ("Errored", "Killed"):
        return "red"
    if status == "Queued":
        return "yellow"
    if status == "Paused":
        return "blue"
    return "bright_black"


def details_text(formatted: FormattedJob | None) -> str:
    """Text of the details overlay for one task."""
    if formatted is None:
        return "No task selected"
    lines = [
        f"ID: {formatted.id}",
        f"Status: {formatted.status}",
        f"Command: {formatted.command}",
        f"Path: {formatted.path}",
        f"Duration: {formatted.duration}",
        f"Group: {formatted.group}",
    ]
    if formatted.label is not None:
        lines.append(f"Label: {formatted.label}")
    lines += ["", f"Full Command: {formatted.full_command}", f"Full Path: {formatted.full_path}"]
    return "\n".join(lines)


class PuiTUI:
    """
    Full-screen client for the Pueue daemon.

    One loop owns all state: it redraws, waits for a key, a log chunk or
    the refresh tick, and applies that one event before redrawing again.

    Keyboard Controls:
        q / Ctrl+c: Quit
        j, k, Up, Down: Select next/previous task (wraps)
        PgUp, PgDn, Home/g, End/G: Page and jump
        Enter / l: Open the log of the selected task
        f or /: Filter, s: Sort
        r: Run or restart, p: Pause, x: Kill, Backspace: Remove
        Space: Mark, d: Details, ?: Help

    Attributes:
        connection: Connection manager used for every daemon request.
        console: Console the UI is drawn on.
        clock: Time source for durations and the refresh timer.
        tick_rate: Refresh period in seconds.
        log_lines: Line limit passed when opening a log, or None for all.
        state: The application state.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        console: Console | None = None,
        clock: Clock | None = None,
        tick_rate: float = DEFAULT_TICK_RATE,
        log_lines: int | None = None,
        home: str | None = None,
    ) -> None:
        """
        Initialize the TUI.

        Args:
            connection: Connection manager for the daemon.
            console: Console to draw on. Defaults to the terminal.
            clock: Time source. Defaults to the system clock.
            tick_rate: Refresh period in seconds.
            log_lines: Only fetch the last N lines when opening a log.
            home: Home directory collapsed in displayed paths.
        """
        self.connection = connection
        self.console = console if console is not None else Console()
        self.clock: Clock = clock if clock is not None else SystemClock()
        self.tick_rate = tick_rate
        self.log_lines = log_lines
        self.home = home
        self.state = AppState()
        self._live: Live | None = None
        self.connection.on_reconnecting = self._redraw

    # -------------------------------------------------------------------------
    # Page geometry
    # -------------------------------------------------------------------------

    def _log_page(self) -> tuple[int, int]:
        """Rows and columns inside the log panel border."""
        height = max(1, self.console.height - LOG_CHROME_ROWS)
        width = max(1, self.console.width - LOG_CHROME_COLUMNS)
        return height, width

    def _error_height(self) -> int:
        if self.state.error is None:
            return 0
        width = max(1, self.console.width - 2)
        limit = max(3, (self.console.height - MAIN_CHROME_ROWS) // 2)
        return min(limit, len(wrap_log_lines(self.state.error, width)) + 2)

    def _table_page(self) -> int:
        """Task rows that fit in the table."""
        rows = self.console.height - MAIN_CHROME_ROWS - TABLE_CHROME_ROWS - self._error_height()
        return max(1, rows)

    def _help_page(self) -> tuple[int, int]:
        height = max(1, self.console.height - MAIN_CHROME_ROWS - 2)
        width = max(1, self.console.width - 2)
        return height, width

    # -------------------------------------------------------------------------
    # Event handling
    # -------------------------------------------------------------------------

    def handle_event(self, event: Event) -> None:
        """Apply one event from the multiplexer to the state."""
        if isinstance(event, Tick):
            self._on_tick()
        elif isinstance(event, StreamChunk):
            self._on_stream_chunk(event)
        elif isinstance(event, ResizeEvent):
            # Page sizes are recomputed from the console on the next redraw
            logger.debug("Terminal resized to %dx%d", self.console.width, self.console.height)
        elif isinstance(event, KeyEvent):
            self._handle_key(event)

    def refresh(self) -> None:
        """Fetch a new snapshot; failures only change the connection health."""
        jobs = self.connection.refresh()
        if jobs is not None:
            self.state.set_jobs(jobs)
        self._drop_stale_stream()

    def _on_tick(self) -> None:
        self.refresh()

    def _on_stream_chunk(self, chunk: StreamChunk) -> None:
        viewport = self.state.log_viewport
        if viewport is None or viewport.stream is None:
            return
        if chunk.error is not None:
            logger.debug("Log stream for job %d failed: %s", viewport.job_id, chunk.error)
        if chunk.text is None or chunk.error is not None:
            viewport.close_stream()
            return
        viewport.append(chunk.text, *self._log_page())

    def _drop_stale_stream(self) -> None:
        """Close a log stream that belongs to a replaced connection."""
        viewport = self.state.log_viewport
        if viewport is None or viewport.stream is None:
            return
        if not self.connection.is_current(viewport.stream_epoch):
            logger.debug("Connection was replaced, closing log stream of job %d", viewport.job_id)
            viewport.close_stream()

    def _active_stream(self) -> LogStream | None:
        """The stream the multiplexer should wait on, if any."""
        self._drop_stale_stream()
        viewport = self.state.log_viewport
        return viewport.stream if viewport is not None else None

    def _handle_key(self, key: KeyEvent) -> None:
        """
        Dispatch a key press.

        The error modal takes every key first, then the help overlay, then
        the active mode.
        """
        if key.ctrl and key.key == "c":
            self.state.running = False
            return

        if self.state.error is not None:
            if key.key in ("esc", "enter"):
                self.state.error = None
            return

        if self.state.show_help:
            self._handle_help_key(key)
            return

        mode = self.state.mode
        if isinstance(mode, FilterMode):
            self._handle_filter_key(mode, key)
        elif isinstance(mode, SortMode):
            self._handle_sort_key(key)
        elif isinstance(mode, LogMode):
            self._handle_log_key(mode, key)
        else:
            self._handle_normal_key(key)

    def _handle_help_key(self, key: KeyEvent) -> None:
        if key.key in ("?", "q", "esc"):
            self.state.show_help = False
            return
        height, width = self._help_page()
        max_offset = max(0, len(wrap_log_lines(HELP_TEXT, width)) - height)
        offset = self.state.help_offset
        if key.key in ("j", "down"):
            offset += 1
        elif key.key in ("k", "up"):
            offset -= 1
        elif key.key in ("pagedown", " "):
            offset += height
        elif key.key in ("pageup", "b"):
            offset -= height
        elif key.key in ("g", "home"):
            offset = 0
        elif key.key in ("G", "end"):
            offset = max_offset
        self.state.help_offset = max(0, min(offset, max_offset))

    def _handle_filter_key(self, mode: FilterMode, key: KeyEvent) -> None:
        if key.key == "enter":
            self.state.filter_text = mode.text
            self.state.mode = NormalMode()
        elif key.key == "esc":
            self.state.filter_text = ""
            self.state.mode = NormalMode()
        elif key.key == "backspace":
            mode.text = mode.text[:-1]
        elif key.is_printable:
            mode.text += key.key

    def _handle_sort_key(self, key: KeyEvent) -> None:
        if key.key == "esc":
            self.state.mode = NormalMode()
            return
        field = SortField.from_mnemonic(key.key)
        if field is not None:
            logger.debug("Sorting by %s", field.value)
            self.state.sort_field = field
            self.state.mode = NormalMode()

    def _handle_log_key(self, mode: LogMode, key: KeyEvent) -> None:
        if key.key == "esc":
            self.close_log()
            return
        mode.viewport.handle_key(key.key, *self._log_page())

    def _handle_normal_key(self, key: KeyEvent) -> None:  # noqa: C901
        state = self.state
        self._sync_selection()
        selection = state.selection
        name = key.key

        if name == "q":
            state.running = False
        elif name in ("j", "down"):
            selection.next()
        elif name in ("k", "up"):
            selection.previous()
        elif name == "pagedown":
            selection.page_down(self._table_page())
        elif name == "pageup":
            selection.page_up(self._table_page())
        elif name in ("g", "home"):
            selection.first()
        elif name in ("G", "end"):
            selection.last()
        elif name in ("enter", "l"):
            self.open_log()
        elif name in ("f", "/"):
            state.mode = FilterMode(state.filter_text)
        elif name == "s":
            state.mode = SortMode(state.sort_field)
        elif name == "r":
            self.run_or_restart()
        elif name == "p":
            self._act("pause", self.connection.pause)
        elif name == "x":
            self._act("kill", self.connection.kill)
        elif name in ("backspace", "delete"):
            self.remove()
        elif name == "d":
            state.show_details = not state.show_details
        elif name == "?":
            state.show_help = True
            state.help_offset = 0
        elif name == " ":
            if selection.job_id is not None:
                state.toggle_mark(selection.job_id)
        elif name == "esc":
            if state.show_details:
                state.show_details = False
            elif state.marks:
                state.marks.clear()
            else:
                state.filter_text = ""

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    def _perform(self, operation: str, call: Callable[[], None]) -> bool:
        """Run one daemon request; a failure opens the error modal."""
        try:
            call()
        except DaemonError as e:
            logger.debug("Action '%s' failed: %s", operation, e)
            self.state.error = e.message
            return False
        return True

    def _act(self, operation: str, request: Callable[[list[int]], None]) -> None:
        ids = [job.id for job in self.state.target_jobs()]
        if not ids:
            return
        if self._perform(operation, lambda: request(ids)):
            self.state.marks.clear()

    def run_or_restart(self) -> None:
        """Restart finished target jobs and start all others."""
        targets = self.state.target_jobs()
        finished = [TaskToRestart.from_job(job) for job in targets if job.status.is_done]
        pending = [job.id for job in targets if not job.status.is_done]
        if finished and not self._perform("restart", lambda: self.connection.restart(finished)):
            return
        if pending and not self._perform("start", lambda: self.connection.start(pending)):
            return
        if targets:
            self.state.marks.clear()

    def remove(self) -> None:
        """Remove target jobs, skipping those that are running or paused."""
        ids = [job.id for job in self.state.target_jobs() if not job.status.is_active]
        if not ids:
            return
        if self._perform("remove", lambda: self.connection.remove(ids)):
            self.state.marks.clear()

    def open_log(self) -> None:
        """Open the log of the selected job; stays in normal mode on failure."""
        job = self.state.selected_job()
        if job is None:
            return
        epoch = self.connection.epoch
        try:
            initial, stream = self.connection.open_log_stream(job.id, self.log_lines)
        except DaemonError as e:
            logger.debug("Opening log of job %d failed: %s", job.id, e)
            self.state.error = e.message
            return

        self.close_log()
        viewport = LogViewport(job_id=job.id, text=initial, stream=stream, stream_epoch=epoch)
        viewport.scroll_to_end(*self._log_page())
        self.state.mode = LogMode(viewport)
        logger.debug("Opened log of job %d", job.id)

    def close_log(self) -> None:
        """Leave log mode and release its stream."""
        viewport = self.state.log_viewport
        if viewport is None:
            return
        viewport.close_stream()
        self.state.mode = NormalMode()

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def _sync_selection(self) -> list[int]:
        return self.state.sync_selection(self.clock.now(), self.home)

    def _prepare(self) -> list[int]:
        """Bring derived state in line with the current snapshot and size."""
        view = self._sync_selection()

        page = self._table_page()
        row = self.state.selection.row
        offset = self.state.table_offset
        if row is not None:
            if row < offset:
                offset = row
            elif row >= offset + page:
                offset = row - page + 1
        self.state.table_offset = max(0, min(offset, len(view) - page))

        viewport = self.state.log_viewport
        if viewport is not None:
            viewport.fit(*self._log_page())
        return view

    def render(self) -> Layout:
        """Prepare the state and build the screen."""
        view = self._prepare()
        return self._make_layout(view)

    def _redraw(self) -> None:
        if self._live is not None:
            self._live.update(self.render(), refresh=True)

    def _make_header(self) -> Panel:
        summary = Text(KEY_SUMMARY, no_wrap=True, overflow="ellipsis")
        return Panel(summary, title=" Pui - Pueue TUI ", border_style=BORDER_STYLE, height=3)

    def _make_sort_chooser(self, active: SortField) -> Text:
        chooser = Text("Sort by: ")
        for index, field in enumerate(SortField):
            style = "bold yellow" if field is active else ""
            if index:
                chooser.append(" | ")
            chooser.append("[", style=style)
            chooser.append(field.mnemonic, style=f"{style} underline".strip())
            chooser.append(f"]{field.value[1:]}", style=style)
        chooser.append(" | Esc: cancel")
        return chooser

    def _make_footer(self) -> Panel:
        """Create the footer with connection state, filter and sort input."""
        state = self.state
        mode = state.mode
        health = self.connection.health.message

        if health is not None:
            footer = Text(health, style="red")
        elif isinstance(mode, SortMode):
            footer = self._make_sort_chooser(mode.pending)
        elif isinstance(mode, FilterMode):
            footer = Text(f"Filter: {mode.text}_ (Esc to clear)", style="bold yellow")
        elif state.filter_text:
            footer = Text(f"Filter: {state.filter_text} (Esc to clear)", style="yellow")
        else:
            footer = Text(CONNECTED_MESSAGE, style="green")

        if state.marks:
            footer.append("  │  ", style="dim")
            footer.append(f"{len(state.marks)} marked", style="bold magenta")
        footer.no_wrap = True
        footer.overflow = "ellipsis"
        return Panel(footer, border_style=BORDER_STYLE, height=3)

    def _make_table_panel(self, view: list[int]) -> Panel:
        """Create the task table, showing the window that holds the selection."""
        jobs = self.state.jobs
        if jobs is None:
            return Panel("Loading state from Pueue...", title=" Tasks ", border_style=BORDER_STYLE)

        table = Table(expand=True, box=None, show_header=True, header_style="bold cyan")
        table.add_column("", width=3, no_wrap=True)
        table.add_column("Id", justify="right", no_wrap=True)
        table.add_column("Status", no_wrap=True)
        table.add_column("Command", ratio=3, no_wrap=True, overflow="ellipsis")
        table.add_column("Path", ratio=3, no_wrap=True, overflow="ellipsis")
        table.add_column("Duration", justify="right", no_wrap=True)

        now = self.clock.now()
        offset = self.state.table_offset
        selected = self.state.selection.job_id
        for job_id in view[offset : offset + self._table_page()]:
            formatted = format_job(jobs[job_id], now, self.home)
            style = status_style(formatted.status)
            symbol = ">> " if job_id == selected else "   "
            if job_id in self.state.marks:
                symbol = symbol[:2] + "*"
                style = f"{style} underline"
            if job_id == selected:
                style = f"{style} {SELECTED_ROW_STYLE}"
            table.add_row(
                symbol,
                formatted.id,
                formatted.status,
                formatted.command,
                formatted.path,
                formatted.duration,
                style=style,
            )

        title = " Tasks "
        if len(view) != len(jobs):
            title = f" Tasks ({len(view)}/{len(jobs)}) "
        return Panel(table, title=title, border_style=BORDER_STYLE, padding=0)

    def _make_details_panel(self) -> Panel:
        job = self.state.selected_job()
        formatted = format_job(job, self.clock.now(), self.home) if job is not None else None
        return Panel(
            Text(details_text(formatted)),
            title=" Details (Esc to close) ",
            border_style=BORDER_STYLE,
        )

    def _make_help_panel(self) -> Panel:
        height, width = self._help_page()
        lines = wrap_log_lines(HELP_TEXT, width)
        return Panel(
            render_log_lines(lines, self.state.help_offset, height),
            title=" Keyboard Shortcuts ",
            subtitle="[dim]? / Esc to close[/dim]",
            border_style=BORDER_STYLE,
            padding=0,
        )

    def _make_error_panel(self) -> Panel:
        return Panel(
            Text(self.state.error or "", style="red"),
            title=" Error (Esc to dismiss) ",
            border_style="red",
            padding=0,
        )

    def _make_log_panel(self, viewport: LogViewport) -> Panel:
        """Create the full-screen log panel for one job."""
        height, width = self._log_page()
        subtitle = None
        if viewport.stream is None:
            subtitle = "[dim]stream closed[/dim]"
        elif not viewport.autoscroll:
            total = len(viewport.lines(width))
            subtitle = f"[dim]line {viewport.scroll_offset + 1}/{total} | G: follow[/dim]"
        return Panel(
            viewport.visible(height, width),
            title=f" Task {viewport.job_id} Log (Esc to close) ",
            subtitle=subtitle,
            border_style=BORDER_STYLE,
            padding=0,
        )

    def _make_layout(self, view: list[int]) -> Layout:
        """Create the complete TUI layout."""
        layout = Layout()

        viewport = self.state.log_viewport
        if viewport is not None:
            layout.update(self._make_log_panel(viewport))
            return layout

        layout.split_column(
            Layout(name="header", size=3),
            Layout(name="body"),
            Layout(name="footer", size=3),
        )
        layout["header"].update(self._make_header())
        layout["footer"].update(self._make_footer())

        body = layout["body"]
        if self.state.error is not None:
            body.split_column(
                Layout(name="main"),
                Layout(self._make_error_panel(), name="error", size=self._error_height()),
            )
            body = layout["main"]

        if self.state.show_help:
            body.update(self._make_help_panel())
        elif self.state.show_details and self.state.jobs is not None:
            body.split_row(
                Layout(self._make_table_panel(view), name="tasks", ratio=3),
                Layout(self._make_details_panel(), name="details", ratio=2),
            )
        else:
            body.update(self._make_table_panel(view))
        return layout

    # -------------------------------------------------------------------------
    # Main loop
    # -------------------------------------------------------------------------

    def run(self) -> None:
        """
        Run the TUI main loop until the user quits.

        The terminal is switched to cbreak mode for single-key input and
        restored on exit, including on Ctrl+C.
        """
        if not self.console.is_terminal:
            self.console.print("[yellow]Warning:[/yellow] pui needs an interactive terminal.")
            return

        try:
            import termios
            import tty
        except ImportError:
            # termios/tty not available (Windows without WSL)
            self.console.print("[red]Error:[/red] pui needs a POSIX terminal.")
            return

        fd = sys.stdin.fileno()
        old_settings = termios.tcgetattr(fd)
        terminal = TerminalInput(fd)
        multiplexer = EventMultiplexer(terminal, IntervalTimer(self.tick_rate, self.clock))

        try:
            tty.setcbreak(fd)
            terminal.install_resize_handler()
            self.refresh()

            with Live(
                self.render(),
                console=self.console,
                auto_refresh=False,
                screen=True,
                redirect_stdout=False,
                redirect_stderr=False,
            ) as live:
                self._live = live
                while self.state.running:
                    self._redraw()
                    event = multiplexer.wait(self._active_stream())
                    self.handle_event(event)

        except (KeyboardInterrupt, EOFError):
            pass  # Clean exit on Ctrl+C or a closed terminal
        finally:
            self._live = None
            self.close_log()
            terminal.uninstall_resize_handler()
            # Restore terminal settings
            termios.tcsetattr(fd, termios.TCSADRAIN, old_settings)
