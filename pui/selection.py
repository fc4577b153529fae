"""Identity-preserving selection over the filtered and sorted job table.

The table order changes whenever the filter, the sort field or the job set
changes. The SelectionTracker therefore remembers *which job* is selected
and recomputes its row on every redraw.
"""

from __future__ import annotations

from collections.abc import Callable
from collections.abc import Collection
from collections.abc import Sequence
from datetime import datetime
from enum import Enum
from typing import Any

from pui.models import FormattedJob
from pui.models import Job
from pui.models import JobSet
from pui.models import format_job


class SortField(Enum):
    """Columns the table can be sorted by."""

    ID = "id"
    STATUS = "status"
    COMMAND = "command"
    PATH = "path"

    @property
    def mnemonic(self) -> str:
        """Key that selects this field in sort mode."""
        return self.value[0]

    @classmethod
    def from_mnemonic(cls, key: str) -> SortField | None:
        for field in cls:
            if field.mnemonic == key:
                return field
        return None


_SORT_KEYS: dict[SortField, Callable[[Job, FormattedJob], Any]] = {
    SortField.ID: lambda job, _fmt: job.id,
    SortField.STATUS: lambda _job, fmt: fmt.status,
    SortField.COMMAND: lambda job, _fmt: job.command,
    SortField.PATH: lambda job, _fmt: job.path,
}


def matches_filter(formatted: FormattedJob, filter_text: str) -> bool:
    """
    Case-insensitive substring match against the displayed row texts.

    Only what the table shows is searched: the id, the status text, the
    command basename and the shortened path.
    """
    if not filter_text:
        return True
    needle = filter_text.lower()
    return any(
        needle in text.lower()
        for text in (formatted.id, formatted.status, formatted.command, formatted.path)
    )


def compute_view(
    jobs: JobSet,
    filter_text: str,
    sort_field: SortField,
    now: datetime,
    home: str | None = None,
) -> list[int]:
    """
    Compute the ordered job ids shown in the table.

    Args:
        jobs: Current job set.
        filter_text: Active filter ("" for none).
        sort_field: Column to sort by; ties are broken by id.
        now: Reference time for formatting durations.
        home: Home directory collapsed in displayed paths.

    Returns:
        Job ids in display order.
    """
    rows = [(job, format_job(job, now, home)) for job in jobs.values()]
    rows = [(job, fmt) for job, fmt in rows if matches_filter(fmt, filter_text)]
    key = _SORT_KEYS[sort_field]
    rows.sort(key=lambda row: (key(row[0], row[1]), row[0].id))
    return [job.id for job, _ in rows]


class SelectionTracker:
    """
    Tracks the selected job by id and resolves it to a row.

    Attributes:
        job_id: Id of the selected job, or None when nothing is selected.
        row: Row the selected job currently occupies, or None.
    """

    def __init__(self) -> None:
        self.job_id: int | None = None
        self.row: int | None = None
        self._view: list[int] = []

    @property
    def view(self) -> list[int]:
        """The view the tracker was last synced against."""
        return self._view

    def sync(self, view: Sequence[int], known_ids: Collection[int]) -> None:
        """
        Resolve the tracked job against a freshly computed view.

        Args:
            view: Job ids in display order.
            known_ids: Every id in the job set, used to tell a deleted job
                from one that was only filtered out.
        """
        previous_row = self.row
        previous_len = len(self._view)
        self._view = list(view)

        if not self._view:
            self.job_id = None
            self.row = None
            return

        if self.job_id is not None and self.job_id in self._view:
            self.row = self._view.index(self.job_id)
            return

        deleted_last_row = (
            self.job_id is not None
            and self.job_id not in known_ids
            and previous_row is not None
            and previous_row == previous_len - 1
        )
        self.row = len(self._view) - 1 if deleted_last_row else 0
        self.job_id = self._view[self.row]

    def select_row(self, row: int) -> None:
        """Select a row of the current view and track the job on it."""
        if not self._view:
            self.job_id = None
            self.row = None
            return
        self.row = max(0, min(row, len(self._view) - 1))
        self.job_id = self._view[self.row]

    def next(self) -> None:
        """Move down one row, wrapping to the top."""
        if not self._view:
            return
        row = 0 if self.row is None else (self.row + 1) % len(self._view)
        self.select_row(row)

    def previous(self) -> None:
        """Move up one row, wrapping to the bottom."""
        if not self._view:
            return
        row = 0 if self.row is None else (self.row - 1) % len(self._view)
        self.select_row(row)

    def page_down(self, page: int) -> None:
        self.select_row((self.row or 0) + max(1, page))

    def page_up(self, page: int) -> None:
        self.select_row((self.row or 0) - max(1, page))

    def first(self) -> None:
        self.select_row(0)

    def last(self) -> None:
        self.select_row(len(self._view) - 1)
