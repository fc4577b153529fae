"""Tests for the connection manager and failure classification."""

import pytest

from pui.connection import ConnectionHealth
from pui.connection import ConnectionManager
from pui.connection import is_transport_error
from pui.constants import RECONNECTING_MESSAGE
from pui.exceptions import DaemonError
from pui.exceptions import OperationError
from pui.exceptions import ProtocolError
from pui.exceptions import TransportError
from pui.models import TaskToRestart
from tests.conftest import FakeClient


class TestIsTransportError:
    """Tests for is_transport_error."""

    @pytest.mark.parametrize(
        "error",
        [
            BrokenPipeError(),
            ConnectionResetError(),
            ConnectionRefusedError(),
            TransportError("gone"),
        ],
    )
    def test_by_kind(self, error: BaseException) -> None:
        """Test that disconnect exception kinds are transport errors."""
        assert is_transport_error(error)

    @pytest.mark.parametrize(
        "message",
        ["Broken pipe (os error 32)", "Connection reset by peer", "connection refused"],
    )
    def test_by_message(self, message: str) -> None:
        """Test that disconnect signatures in the text are recognized."""
        assert is_transport_error(DaemonError(message))

    def test_in_cause_chain(self) -> None:
        """Test that a wrapped disconnect is still a transport error."""
        assert is_transport_error(DaemonError("status failed", ConnectionResetError()))

    def test_in_implicit_chain(self) -> None:
        """Test that __cause__ is followed as well."""
        try:
            try:
                raise BrokenPipeError()
            except BrokenPipeError as e:
                raise DaemonError("write failed") from e
        except DaemonError as e:
            assert is_transport_error(e)

    def test_rejection_is_not_transport(self) -> None:
        """Test that a rejected request does not look like a disconnect."""
        assert not is_transport_error(OperationError("kill", "Task 3 does not exist"))
        assert not is_transport_error(ProtocolError("bad json"))


class TestConnectionHealth:
    """Tests for ConnectionHealth."""

    def test_healthy_has_no_message(self) -> None:
        """Test the default health."""
        assert ConnectionHealth().message is None

    def test_reconnecting_wins(self) -> None:
        """Test that an attempt in progress is shown over an old error."""
        health = ConnectionHealth(error="Error: x", reconnecting=True)
        assert health.message == RECONNECTING_MESSAGE

    def test_clear(self) -> None:
        """Test that clear resets both fields."""
        health = ConnectionHealth(error="Error: x", reconnecting=True)
        health.clear()
        assert health == ConnectionHealth()


class TestRefresh:
    """Tests for ConnectionManager.refresh."""

    def test_success(self, fake_client: FakeClient) -> None:
        """Test that a successful refresh returns the snapshot."""
        manager = ConnectionManager(fake_client)
        jobs = manager.refresh()
        assert jobs is not None
        assert sorted(jobs) == [0, 1, 2]
        assert manager.health.message is None

    def test_reset_then_reconnect_clears_error(self, fake_client: FakeClient) -> None:
        """Test a reset connection followed by a good reconnect and retry."""
        seen: list[str | None] = []
        manager = ConnectionManager(fake_client)
        manager.on_reconnecting = lambda: seen.append(manager.health.message)
        manager.health.error = "Error: stale"
        fake_client.state_errors = [TransportError("Connection reset by peer")]

        jobs = manager.refresh()

        assert jobs is not None
        assert fake_client.call_names() == ["get_state", "reconnect", "get_state"]
        assert seen == [RECONNECTING_MESSAGE]
        assert manager.health.message is None
        assert manager.epoch == 1

    def test_reconnect_failure_is_sticky(self, fake_client: FakeClient) -> None:
        """Test that a failed reconnect leaves a sticky message."""
        manager = ConnectionManager(fake_client)
        fake_client.state_errors = [BrokenPipeError("Broken pipe")]
        fake_client.reconnect_error = TransportError("Connection refused")

        assert manager.refresh() is None
        assert manager.health.message == "Reconnecting failed: Connection refused"
        assert manager.epoch == 0

        # Stays until a refresh succeeds
        fake_client.reconnect_error = None
        fake_client.state_errors = []
        assert manager.refresh() is not None
        assert manager.health.message is None

    def test_retry_failure(self, fake_client: FakeClient) -> None:
        """Test that the retry after a good reconnect is attempted only once."""
        manager = ConnectionManager(fake_client)
        fake_client.state_errors = [
            TransportError("Connection reset"),
            TransportError("Connection reset"),
        ]
        assert manager.refresh() is None
        assert fake_client.call_names() == ["get_state", "reconnect", "get_state"]
        assert manager.health.message == "Error: Connection reset"

    def test_non_transport_does_not_reconnect(self, fake_client: FakeClient) -> None:
        """Test that other failures are reported without reconnecting."""
        manager = ConnectionManager(fake_client)
        fake_client.state_errors = [ProtocolError("Status reply is not valid JSON")]
        assert manager.refresh() is None
        assert "reconnect" not in fake_client.call_names()
        assert manager.health.message == "Error: Status reply is not valid JSON"


class TestActions:
    """Tests for ConnectionManager actions."""

    def test_requests_forwarded(self, fake_client: FakeClient) -> None:
        """Test that each action reaches the client with its ids."""
        manager = ConnectionManager(fake_client)
        manager.start([1])
        manager.pause([0])
        manager.kill([0, 1])
        manager.remove([2])
        manager.restart([TaskToRestart(2, "cargo build", "/home/user/project", None, 0)])
        assert [name for name, _ in fake_client.calls] == ["start", "pause", "kill", "remove", "restart"]
        assert fake_client.calls[2] == ("kill", [0, 1])

    def test_failure_raised_without_reconnect(self, fake_client: FakeClient) -> None:
        """Test that action failures reach the caller and never reconnect."""
        manager = ConnectionManager(fake_client)
        fake_client.action_error = TransportError("Broken pipe")
        with pytest.raises(TransportError):
            manager.kill([0])
        assert "reconnect" not in fake_client.call_names()

    def test_os_error_wrapped(self, fake_client: FakeClient) -> None:
        """Test that raw OS errors are wrapped as daemon errors."""
        manager = ConnectionManager(fake_client)
        fake_client.action_error = ConnectionResetError("reset")
        with pytest.raises(TransportError):
            manager.start([1])

    def test_success_clears_error(self, fake_client: FakeClient) -> None:
        """Test that a successful operation clears a previous error."""
        manager = ConnectionManager(fake_client)
        manager.health.error = "Error: old"
        manager.pause([0])
        assert manager.health.message is None

    def test_is_current(self, fake_client: FakeClient) -> None:
        """Test stream epochs against reconnects."""
        manager = ConnectionManager(fake_client)
        assert manager.is_current(0)
        fake_client.state_errors = [TransportError("Connection reset")]
        manager.refresh()
        assert not manager.is_current(0)
        assert manager.is_current(1)
