"""Input modes of the controller.

Exactly one mode is active at a time. Modes that need extra state carry it
themselves, so leaving a mode drops its state with it.
"""

from __future__ import annotations

from dataclasses import dataclass

from pui.logview import LogViewport
from pui.selection import SortField


@dataclass
class NormalMode:
    """Table navigation and task actions."""

    name = "normal"


@dataclass
class FilterMode:
    """Typing a filter string.

    Attributes:
        text: Characters typed so far.
    """

    text: str = ""
    name = "filter"


@dataclass
class SortMode:
    """Waiting for a sort-field mnemonic.

    Attributes:
        pending: Field highlighted in the chooser (the active sort field).
    """

    pending: SortField = SortField.ID
    name = "sort"


@dataclass
class LogMode:
    """Viewing the log of one job."""

    viewport: LogViewport
    name = "log"


Mode = NormalMode | FilterMode | SortMode | LogMode
