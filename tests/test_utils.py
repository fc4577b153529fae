"""Tests for display helpers."""

import pytest

from pui.utils import command_basename
from pui.utils import format_duration
from pui.utils import shorten_path


class TestFormatDuration:
    """Tests for format_duration."""

    def test_none_is_dash(self) -> None:
        """Test that a job that never started shows a dash."""
        assert format_duration(None) == "-"

    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [
            (0, "0s"),
            (59.9, "59s"),
            (60, "1m 0s"),
            (125, "2m 5s"),
            (3599, "59m 59s"),
            (3600, "1h 0m"),
            (7384, "2h 3m"),
        ],
    )
    def test_formats(self, seconds: float, expected: str) -> None:
        """Test the seconds, minutes and hours formats."""
        assert format_duration(seconds) == expected

    def test_negative_clamped_to_zero(self) -> None:
        """Test that clock skew never produces a negative duration."""
        assert format_duration(-5) == "0s"


class TestCommandBasename:
    """Tests for command_basename."""

    def test_absolute_command(self) -> None:
        """Test that the directory part of the command is dropped."""
        assert command_basename("/usr/bin/sleep 60") == "sleep 60"

    def test_plain_command_unchanged(self) -> None:
        """Test a command without slashes."""
        assert command_basename("make test") == "make test"

    def test_empty_command(self) -> None:
        """Test that an empty command stays empty."""
        assert command_basename("") == ""


class TestShortenPath:
    """Tests for shorten_path."""

    def test_home_collapsed(self) -> None:
        """Test that the home directory becomes ~ and parents are abbreviated."""
        assert shorten_path("/home/user/Workspace/Projects/pui", "/home/user") == "~/W/P/pui"

    def test_home_itself(self) -> None:
        """Test that the home directory alone is ~."""
        assert shorten_path("/home/user", "/home/user") == "~"

    def test_absolute_outside_home(self) -> None:
        """Test a path outside the home directory."""
        assert shorten_path("/usr/local/bin", "/home/user") == "/u/l/bin"

    def test_dot_directories_keep_two_characters(self) -> None:
        """Test that hidden directories keep the dot and one letter."""
        assert shorten_path("/home/user/.config/pueue", "/home/user") == "~/.c/pueue"

    def test_similar_prefix_not_collapsed(self) -> None:
        """Test that /home/username is not treated as inside /home/user."""
        assert shorten_path("/home/username/x", "/home/user") == "/h/u/x"

    def test_root(self) -> None:
        """Test the filesystem root."""
        assert shorten_path("/", "/home/user") == "/"
