"""The single application-state value the UI loop threads through.

Nothing in pui keeps UI state at module level. ``PuiTUI`` owns one
``AppState`` and every handler and render function receives it.
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field
from datetime import datetime

from pui.logview import LogViewport
from pui.models import Job
from pui.models import JobSet
from pui.modes import FilterMode
from pui.modes import LogMode
from pui.modes import Mode
from pui.modes import NormalMode
from pui.selection import SelectionTracker
from pui.selection import SortField
from pui.selection import compute_view


@dataclass
class AppState:
    """
    Everything the controller knows between two redraws.

    Attributes:
        jobs: Last job-set snapshot, or None until the first refresh.
        mode: Active input mode.
        filter_text: Committed filter.
        sort_field: Active sort column.
        selection: Selected job, tracked by id.
        marks: Ids of jobs marked for a bulk action.
        show_details: Details overlay is open.
        show_help: Help overlay is open.
        help_offset: First visible row of the help overlay.
        error: Text of the error modal, if one is open.
        table_offset: First visible row of the task table.
        running: False once the user asked to quit.
    """

    jobs: JobSet | None = None
    mode: Mode = field(default_factory=NormalMode)
    filter_text: str = ""
    sort_field: SortField = SortField.ID
    selection: SelectionTracker = field(default_factory=SelectionTracker)
    marks: set[int] = field(default_factory=set)
    show_details: bool = False
    show_help: bool = False
    help_offset: int = 0
    error: str | None = None
    table_offset: int = 0
    running: bool = True

    @property
    def active_filter(self) -> str:
        """Filter applied to the table; live while typing in filter mode."""
        if isinstance(self.mode, FilterMode):
            return self.mode.text
        return self.filter_text

    @property
    def log_viewport(self) -> LogViewport | None:
        """Viewport of the open log view, or None outside log mode."""
        if isinstance(self.mode, LogMode):
            return self.mode.viewport
        return None

    def set_jobs(self, jobs: JobSet) -> None:
        """Replace the snapshot and drop marks of jobs that are gone."""
        self.jobs = jobs
        self.marks &= set(jobs)

    def sync_selection(self, now: datetime, home: str | None = None) -> list[int]:
        """Recompute the table view and resolve the selection against it."""
        jobs = self.jobs or {}
        view = compute_view(jobs, self.active_filter, self.sort_field, now, home)
        self.selection.sync(view, jobs.keys())
        return view

    def selected_job(self) -> Job | None:
        if self.jobs is None or self.selection.job_id is None:
            return None
        return self.jobs.get(self.selection.job_id)

    def target_jobs(self) -> list[Job]:
        """Jobs a task action applies to: the marked ones, else the selected one."""
        if self.jobs is None:
            return []
        if self.marks:
            return [self.jobs[job_id] for job_id in sorted(self.marks) if job_id in self.jobs]
        job = self.selected_job()
        return [job] if job is not None else []

    def toggle_mark(self, job_id: int) -> None:
        if job_id in self.marks:
            self.marks.discard(job_id)
        else:
            self.marks.add(job_id)
