"""Centralized constants for pui.

This module consolidates timing constants, layout sizes and error signatures
used across multiple modules so they stay consistent.
"""

# =============================================================================
# Refresh Tick
# =============================================================================

#: Default period of the refresh tick in seconds
DEFAULT_TICK_RATE: float = 0.25

# =============================================================================
# Log Viewport
# =============================================================================

#: Number of columns a tab expands to in the log view
TAB_WIDTH: int = 8

#: Rows taken by the log panel border (top + bottom)
LOG_CHROME_ROWS: int = 2

#: Columns taken by the log panel border (left + right)
LOG_CHROME_COLUMNS: int = 2

#: Seconds to wait for the first output of a freshly opened log stream
INITIAL_LOG_TIMEOUT: float = 0.5

#: Bytes read from a log stream in one go
LOG_CHUNK_SIZE: int = 64 * 1024

# =============================================================================
# Main Layout
# =============================================================================

#: Rows used by the header and footer panels around the task table
MAIN_CHROME_ROWS: int = 3 + 3

#: Rows used by the task table border and header row
TABLE_CHROME_ROWS: int = 3

# =============================================================================
# Connection
# =============================================================================

#: Lowercase fragments of error messages that indicate a dropped transport
TRANSPORT_ERROR_SIGNATURES: tuple[str, ...] = (
    "broken pipe",
    "connection reset",
    "connection refused",
    "failed to connect",
)

#: Footer text while a reconnect attempt is in progress
RECONNECTING_MESSAGE: str = "Reconnecting..."

#: Prefix of the sticky footer text after a failed reconnect
RECONNECT_FAILED_PREFIX: str = "Reconnecting failed: "

#: Footer text when the daemon is reachable and nothing else is going on
CONNECTED_MESSAGE: str = "Connected to Pueue daemon"
