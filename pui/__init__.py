"""Pui: A terminal UI for the Pueue task queue."""

from importlib.metadata import version

from pui.connection import ConnectionManager
from pui.models import Job
from pui.models import JobStatus
from pui.models import StatusKind
from pui.models import TaskResult
from pui.pueue import PueueClient
from pui.selection import SelectionTracker
from pui.selection import SortField
from pui.tui import PuiTUI
from pui.utils import format_duration

__version__ = version("pui")

__all__ = [
    "ConnectionManager",
    "Job",
    "JobStatus",
    "PueueClient",
    "PuiTUI",
    "SelectionTracker",
    "SortField",
    "StatusKind",
    "TaskResult",
    "format_duration",
]
