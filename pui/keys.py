"""Terminal input decoding.

Raw bytes from a cbreak-mode terminal are turned into KeyEvents. Window
size changes arrive through a SIGWINCH self-pipe so they can be waited on
with ``select`` just like key presses.
"""

from __future__ import annotations

import codecs
import logging
import os
import signal
import sys
from collections import deque
from dataclasses import dataclass
from types import FrameType
from typing import Any

logger = logging.getLogger(__name__)

# CSI / SS3 final sequences for keys without modifiers
_ESCAPE_SEQUENCES: dict[str, str] = {
    "A": "up",
    "B": "down",
    "C": "right",
    "D": "left",
    "H": "home",
    "F": "end",
    "Z": "backtab",
    "1~": "home",
    "7~": "home",
    "4~": "end",
    "8~": "end",
    "2~": "insert",
    "3~": "delete",
    "5~": "pageup",
    "6~": "pagedown",
}

# xterm modifier parameter is 1 + (shift=1 | alt=2 | ctrl=4)
_MOD_SHIFT = 1
_MOD_ALT = 2
_MOD_CTRL = 4


@dataclass(frozen=True)
class KeyEvent:
    """
    A single key press.

    Attributes:
        key: The character for printable keys (" " for space), otherwise a
            name such as "up", "pagedown", "enter", "esc" or "backspace".
            Control combinations carry the lowercase letter with ``ctrl``.
        ctrl: Control was held.
        alt: Alt/Meta was held.
        shift: Shift was held (uppercase letters and modified sequences).
    """

    key: str
    ctrl: bool = False
    alt: bool = False
    shift: bool = False

    @property
    def is_printable(self) -> bool:
        return len(self.key) == 1 and self.key.isprintable() and not (self.ctrl or self.alt)


@dataclass(frozen=True)
class ResizeEvent:
    """The terminal window changed size."""


InputEvent = KeyEvent | ResizeEvent


def _with_modifiers(name: str, param: str) -> KeyEvent:
    bits = 0
    if ";" in param:
        try:
            bits = int(param.rsplit(";", 1)[1]) - 1
        except ValueError:
            bits = 0
    return KeyEvent(
        name,
        ctrl=bool(bits & _MOD_CTRL),
        alt=bool(bits & _MOD_ALT),
        shift=bool(bits & _MOD_SHIFT),
    )


def _decode_char(ch: str, alt: bool = False) -> KeyEvent:
    if ch in "\r\n":
        return KeyEvent("enter", alt=alt)
    if ch == "\t":
        return KeyEvent("tab", alt=alt)
    if ch in "\x7f\x08":
        return KeyEvent("backspace", alt=alt)
    if ch == "\x1b":
        return KeyEvent("esc", alt=alt)
    if ord(ch) < 32:
        return KeyEvent(chr(ord(ch) + 96), ctrl=True, alt=alt)
    return KeyEvent(ch, alt=alt, shift=ch.isupper())


def decode_keys(data: str) -> list[KeyEvent]:
    """
    Decode a burst of terminal input into key events.

    Mouse reports are dropped. An escape that is the last character of the
    burst is taken as the Esc key.

    Args:
        data: Text read from the terminal in one go.

    Returns:
        Key events in input order.
    """
    events: list[KeyEvent] = []
    i = 0
    n = len(data)
    while i < n:
        ch = data[i]
        if ch != "\x1b" or i + 1 == n:
            events.append(_decode_char(ch))
            i += 1
            continue

        nxt = data[i + 1]
        if nxt == "[":
            j = i + 2
            while j < n and not ("@" <= data[j] <= "~"):
                j += 1
            if j >= n:
                # Truncated sequence
                i = n
                continue
            body = data[i + 2 : j + 1]
            i = j + 1
            if body.startswith("<"):
                continue  # SGR mouse report
            if body == "M":
                i += 3  # X10 mouse report carries three payload bytes
                continue
            final = body[-1]
            param = body[:-1]
            name = _ESCAPE_SEQUENCES.get(f"{param}~" if final == "~" and ";" not in param else final)
            if final == "~" and ";" in param:
                name = _ESCAPE_SEQUENCES.get(param.split(";", 1)[0] + "~")
            if name is None:
                logger.debug("Ignoring unknown escape sequence: %r", body)
                continue
            event = _with_modifiers(name, param)
            if name == "backtab":
                event = KeyEvent("tab", shift=True)
            events.append(event)
        elif nxt == "O" and i + 2 < n:
            name = _ESCAPE_SEQUENCES.get(data[i + 2])
            if name is not None:
                events.append(KeyEvent(name))
            i += 3
        elif nxt == "\x1b":
            events.append(KeyEvent("esc"))
            i += 1
        else:
            events.append(_decode_char(nxt, alt=True))
            i += 2
    return events


class TerminalInput:
    """
    Key and resize source for the event loop.

    Attributes:
        fd: File descriptor the keys are read from.
    """

    def __init__(self, fd: int | None = None) -> None:
        self.fd = sys.stdin.fileno() if fd is None else fd
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending: deque[InputEvent] = deque()
        self._wake_read: int | None = None
        self._wake_write: int | None = None
        self._previous_handler: Any = None

    def install_resize_handler(self) -> None:
        """Route SIGWINCH into a pipe the event loop waits on."""
        self._wake_read, self._wake_write = os.pipe()
        os.set_blocking(self._wake_read, False)
        os.set_blocking(self._wake_write, False)
        self._previous_handler = signal.signal(signal.SIGWINCH, self._on_resize)

    def uninstall_resize_handler(self) -> None:
        if self._wake_read is None or self._wake_write is None:
            return
        signal.signal(signal.SIGWINCH, self._previous_handler or signal.SIG_DFL)
        os.close(self._wake_read)
        os.close(self._wake_write)
        self._wake_read = None
        self._wake_write = None

    def _on_resize(self, signum: int, frame: FrameType | None) -> None:
        if self._wake_write is None:
            return
        try:
            os.write(self._wake_write, b"\0")
        except BlockingIOError:
            pass  # a wakeup is already pending

    def filenos(self) -> list[int]:
        """Descriptors to wait on for input."""
        fds = [self.fd]
        if self._wake_read is not None:
            fds.append(self._wake_read)
        return fds

    def pop(self) -> InputEvent | None:
        """Return the oldest decoded event, if any."""
        return self._pending.popleft() if self._pending else None

    def read(self, ready: list[int]) -> None:
        """
        Read from every ready input descriptor and queue the decoded events.

        Raises:
            EOFError: If the terminal was closed.
        """
        if self._wake_read is not None and self._wake_read in ready:
            try:
                while os.read(self._wake_read, 64):
                    pass
            except BlockingIOError:
                pass
            self._pending.append(ResizeEvent())
        if self.fd in ready:
            data = os.read(self.fd, 1024)
            if not data:
                raise EOFError("terminal input closed")
            self._pending.extend(decode_keys(self._decoder.decode(data)))
