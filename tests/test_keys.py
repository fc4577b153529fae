"""Tests for terminal key decoding."""

import os
from collections.abc import Generator

import pytest

from pui.keys import KeyEvent
from pui.keys import ResizeEvent
from pui.keys import TerminalInput
from pui.keys import decode_keys


class TestDecodeKeys:
    """Tests for decode_keys."""

    def test_printable(self) -> None:
        """Test plain characters, including space and uppercase."""
        assert decode_keys("aG ") == [
            KeyEvent("a"),
            KeyEvent("G", shift=True),
            KeyEvent(" "),
        ]

    def test_control_keys(self) -> None:
        """Test enter, tab, backspace and control letters."""
        assert decode_keys("\r\t\x7f\x03") == [
            KeyEvent("enter"),
            KeyEvent("tab"),
            KeyEvent("backspace"),
            KeyEvent("c", ctrl=True),
        ]

    def test_lone_escape(self) -> None:
        """Test that an escape at the end of a read is the Esc key."""
        assert decode_keys("\x1b") == [KeyEvent("esc")]

    @pytest.mark.parametrize(
        ("data", "name"),
        [
            ("\x1b[A", "up"),
            ("\x1b[B", "down"),
            ("\x1b[H", "home"),
            ("\x1b[F", "end"),
            ("\x1b[1~", "home"),
            ("\x1b[4~", "end"),
            ("\x1b[5~", "pageup"),
            ("\x1b[6~", "pagedown"),
            ("\x1b[3~", "delete"),
            ("\x1bOA", "up"),
            ("\x1bOH", "home"),
        ],
    )
    def test_sequences(self, data: str, name: str) -> None:
        """Test cursor and editing key sequences."""
        assert decode_keys(data) == [KeyEvent(name)]

    def test_modifiers(self) -> None:
        """Test xterm modifier parameters."""
        assert decode_keys("\x1b[1;5A") == [KeyEvent("up", ctrl=True)]
        assert decode_keys("\x1b[1;2B") == [KeyEvent("down", shift=True)]
        assert decode_keys("\x1b[5;3~") == [KeyEvent("pageup", alt=True)]

    def test_alt_character(self) -> None:
        """Test that escape followed by a character is alt+character."""
        assert decode_keys("\x1bx") == [KeyEvent("x", alt=True)]

    def test_mouse_reports_ignored(self) -> None:
        """Test that mouse input produces no key events."""
        assert decode_keys("\x1b[<0;10;5Mj") == [KeyEvent("j")]
        assert decode_keys("\x1b[M !!k") == [KeyEvent("k")]

    def test_burst(self) -> None:
        """Test several keys read in one go."""
        assert decode_keys("j\x1b[Bq") == [KeyEvent("j"), KeyEvent("down"), KeyEvent("q")]

    def test_is_printable(self) -> None:
        """Test which keys count as text input."""
        assert KeyEvent("a").is_printable
        assert KeyEvent(" ").is_printable
        assert not KeyEvent("up").is_printable
        assert not KeyEvent("a", ctrl=True).is_printable


class TestTerminalInput:
    """Tests for TerminalInput."""

    @pytest.fixture
    def pipe(self) -> Generator[tuple[int, int], None, None]:
        read_fd, write_fd = os.pipe()
        yield read_fd, write_fd
        for fd in (read_fd, write_fd):
            try:
                os.close(fd)
            except OSError:
                pass

    def test_read_queues_events(self, pipe: tuple[int, int]) -> None:
        """Test that a read decodes every key in the burst."""
        read_fd, write_fd = pipe
        terminal = TerminalInput(read_fd)
        os.write(write_fd, b"jk")
        terminal.read([read_fd])
        assert terminal.pop() == KeyEvent("j")
        assert terminal.pop() == KeyEvent("k")
        assert terminal.pop() is None

    def test_utf8_split_across_reads(self, pipe: tuple[int, int]) -> None:
        """Test that a multi-byte character split over two reads is decoded once."""
        read_fd, write_fd = pipe
        terminal = TerminalInput(read_fd)
        data = "é".encode()
        os.write(write_fd, data[:1])
        terminal.read([read_fd])
        assert terminal.pop() is None
        os.write(write_fd, data[1:])
        terminal.read([read_fd])
        assert terminal.pop() == KeyEvent("é")

    def test_eof(self, pipe: tuple[int, int]) -> None:
        """Test that a closed terminal raises EOFError."""
        read_fd, write_fd = pipe
        terminal = TerminalInput(read_fd)
        os.close(write_fd)
        with pytest.raises(EOFError):
            terminal.read([read_fd])

    def test_resize_wakeup(self, pipe: tuple[int, int]) -> None:
        """Test that SIGWINCH becomes a resize event."""
        read_fd, _write_fd = pipe
        terminal = TerminalInput(read_fd)
        terminal.install_resize_handler()
        try:
            terminal._on_resize(0, None)
            wake_fd = terminal.filenos()[1]
            terminal.read([wake_fd])
            assert terminal.pop() == ResizeEvent()
        finally:
            terminal.uninstall_resize_handler()
        assert terminal.filenos() == [read_fd]
