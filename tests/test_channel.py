"""
Tests for the AT command channel: framing, timeouts, locking and the listener.
"""

import threading
import time

import pytest

from modemhub.core import CommandChannel, MockTransport, EventBus, scan_terminal, CTRL_Z
from modemhub.exceptions import (
    ATCommandError,
    ATTimeoutError,
    ChannelClosedError,
    DeviceDisconnectedError,
    TransportError,
)
from modemhub.types import ChannelState, ExchangeOutcome


class FlakyTransport(MockTransport):
    """MockTransport whose reads fail a given number of times."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures
        self.read_calls = 0

    def read(self, size: int = 256) -> bytes:
        self.read_calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise TransportError("simulated read error")
        return super().read(size)


class DyingTransport(MockTransport):
    """MockTransport that drops off the bus once its pending data is read."""

    def read(self, size: int = 256) -> bytes:
        if not self._pending and self.written:
            raise DeviceDisconnectedError("gone")
        return super().read(size)


class TestScanTerminal:
    """Test terminal token detection."""

    def test_ok(self):
        assert scan_terminal("+CSQ: 24,99\r\n\r\nOK\r\n") == ExchangeOutcome.OK

    def test_error(self):
        assert scan_terminal("ERROR\r\n") == ExchangeOutcome.ERROR

    def test_cme_error(self):
        assert scan_terminal("+CME ERROR: 10\r\n") == ExchangeOutcome.ERROR

    def test_cms_error(self):
        assert scan_terminal("+CMS ERROR: 500\r\n") == ExchangeOutcome.ERROR

    def test_incomplete_cme_error_not_terminal(self):
        """Test an error line is only terminal once it is complete."""
        assert scan_terminal("+CME ERROR: 1") is None

    def test_prompt(self):
        assert scan_terminal("\r\n> ") == ExchangeOutcome.PROMPT

    def test_not_terminal(self):
        assert scan_terminal("+CSQ: 24,99\r\n") is None

    def test_ok_must_start_line(self):
        """Test OK embedded in data is not a terminal token."""
        assert scan_terminal('+COPS: 0,0,"BOOK"\r\n') is None


class TestOpen:
    """Test channel lifecycle up to ACTIVE."""

    def test_open_verifies_modem(self, mock_transport):
        """Test open sends AT and moves to VERIFYING."""
        mock_transport.add_response(["OK"])
        chan = CommandChannel("mock", lambda: mock_transport)

        chan.open()

        assert chan.state == ChannelState.VERIFYING
        assert mock_transport.commands == ["AT\r\n"]

    def test_open_no_answer_fails(self, mock_transport):
        """Test a silent device fails verification and is released."""
        chan = CommandChannel("mock", lambda: mock_transport)

        with pytest.raises(ATTimeoutError):
            chan.open(verify_timeout=0.1)

        assert chan.state == ChannelState.FAILED
        assert mock_transport.is_open() is False

    def test_open_error_answer_fails(self, mock_transport):
        """Test an ERROR reply to the liveness check fails the channel."""
        mock_transport.add_response(["ERROR"])
        chan = CommandChannel("mock", lambda: mock_transport)

        with pytest.raises(ATCommandError):
            chan.open()

        assert chan.state == ChannelState.FAILED

    def test_opener_failure(self):
        """Test an OSError from the opener becomes TransportError."""
        def opener():
            raise OSError("No such file or directory")

        chan = CommandChannel("/dev/ttyUSB9", opener)

        with pytest.raises(TransportError):
            chan.open()

        assert chan.state == ChannelState.FAILED

    def test_initialize_is_best_effort(self, channel, mock_transport):
        """Test failing setup commands do not abort initialization."""
        mock_transport.add_response(["ERROR"])
        mock_transport.add_response(["OK"])

        channel.initialize(["ATE0", "AT+CMGF=0"])

        assert channel.state == ChannelState.INITIALIZED
        assert mock_transport.commands[-2:] == ["ATE0\r\n", "AT+CMGF=0\r\n"]

    def test_start_after_close_rejected(self, channel):
        """Test a closed channel cannot be restarted."""
        channel.close()

        with pytest.raises(ChannelClosedError):
            channel.start()


class TestSendCommand:
    """Test command/response exchanges."""

    def test_send_command(self, channel, mock_transport, mock_signal_response):
        """Test response is accumulated up to OK and stripped."""
        mock_transport.add_response(mock_signal_response)

        response = channel.send_command("AT+CSQ")

        assert response == "+CSQ: 24,99\r\nOK"
        assert mock_transport.commands[-1] == "AT+CSQ\r\n"
        assert channel.last_exchange.outcome == ExchangeOutcome.OK
        assert channel.last_exchange.succeeded is True

    def test_error_raises(self, channel, mock_transport):
        """Test an error token raises ATCommandError with the response."""
        mock_transport.add_response(["+CME ERROR: 10"])

        with pytest.raises(ATCommandError) as exc_info:
            channel.send_command("AT+CIMI")

        assert exc_info.value.command == "AT+CIMI"
        assert "+CME ERROR: 10" in exc_info.value.response

    def test_error_unchecked(self, channel, mock_transport):
        """Test check=False returns the error text."""
        mock_transport.add_response(["ERROR"])

        assert channel.send_command("AT+FOO", check=False) == "ERROR"
        assert channel.last_exchange.outcome == ExchangeOutcome.ERROR

    def test_timeout(self, channel):
        """Test a silent device times out no later than the deadline."""
        start = time.monotonic()

        with pytest.raises(ATTimeoutError):
            channel.send_command("AT+CSQ", timeout=0.2)

        assert time.monotonic() - start < 1.0
        assert channel.last_exchange.outcome == ExchangeOutcome.TIMEOUT
        # A timeout is recoverable
        assert channel.state != ChannelState.FAILED

    def test_timeout_keeps_partial_response(self, channel, mock_transport):
        """Test the partial response travels with the timeout error."""
        mock_transport.add_response(["+CSQ: 24,99"])

        with pytest.raises(ATTimeoutError) as exc_info:
            channel.send_command("AT+CSQ", timeout=0.2)

        assert exc_info.value.response == "+CSQ: 24,99"

    def test_prompt(self, channel, mock_transport):
        """Test the data prompt ends an exchange."""
        mock_transport.add_response(["> "])

        response = channel.send_command("AT+CMGS=18")

        assert response == ">"
        assert channel.last_exchange.outcome == ExchangeOutcome.PROMPT

    def test_custom_suffix(self, channel, mock_transport):
        """Test the terminator can be replaced (e.g. Ctrl+Z for payloads)."""
        mock_transport.add_response(["+CMGS: 5", "OK"])

        channel.send_command("0011000B91", suffix=CTRL_Z)

        assert mock_transport.written[-1] == b"0011000B91\x1a"

    def test_stale_input_flushed(self, channel, mock_transport):
        """Test data pending before the command is discarded."""
        mock_transport.inject("RING\r\n")
        mock_transport.add_response(["OK"])

        assert channel.send_command("AT") == "OK"

    def test_link_ends_mid_response(self):
        """Test a link that dies after some data returns the partial text."""
        transport = DyingTransport()
        transport.add_response(["OK"])  # AT
        chan = CommandChannel("mock", lambda: transport)
        chan.open()
        transport.add_response(["Quectel"])

        assert chan.send_command("AT+CGMI") == "Quectel"
        assert chan.last_exchange.outcome == ExchangeOutcome.INCOMPLETE

    def test_link_failure_fails_channel(self, channel, mock_transport):
        """Test a transport error with no data fails the channel."""
        mock_transport.close()

        with pytest.raises(TransportError):
            channel.send_command("AT")

        assert channel.state == ChannelState.FAILED
        with pytest.raises(ChannelClosedError):
            channel.send_command("AT")

    def test_closed_channel_rejects_commands(self, channel):
        """Test no commands are accepted after close."""
        channel.close()

        assert channel.state == ChannelState.CLOSED
        with pytest.raises(ChannelClosedError):
            channel.send_command("AT")


class TestListener:
    """Test the background listener."""

    def test_listener_broadcasts(self, channel, mock_transport, event_bus):
        """Test unsolicited data is broadcast tagged with the identifier."""
        sub = event_bus.subscribe()
        channel.start()
        assert channel.state == ChannelState.ACTIVE
        assert channel.is_listening() is True

        mock_transport.inject('+CMTI: "SM",3\r\n')

        assert sub.get(timeout=2.0) == '[mock] +CMTI: "SM",3\r\n'
        sub.cancel()

    def test_commands_work_while_listening(self, channel, mock_transport):
        """Test commands get their own responses while the listener runs."""
        channel.start()

        for i in range(10):
            mock_transport.add_response([f"+TEST: {i}", "OK"])
            assert channel.send_command("AT+TEST") == f"+TEST: {i}\r\nOK"

    def test_concurrent_commands_serialized(self, channel, mock_transport):
        """Test concurrent callers queue on the link."""
        channel.start()
        for _ in range(5):
            mock_transport.add_response(["OK"])

        results = []

        def worker():
            results.append(channel.send_command("AT", timeout=2.0))

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5.0)

        assert results == ["OK"] * 5

    def test_exclusive_blocks_other_commands(self, channel, mock_transport):
        """Test a held link keeps other callers out until released."""
        mock_transport.add_response(["OK"])
        done = threading.Event()

        def worker():
            channel.send_command("AT+OTHER", timeout=2.0)
            done.set()

        with channel.exclusive():
            t = threading.Thread(target=worker)
            t.start()
            time.sleep(0.1)
            assert not done.is_set()
            assert "AT+OTHER\r\n" not in mock_transport.commands

        t.join(timeout=3.0)
        assert done.is_set()

    def test_listener_survives_read_errors(self):
        """Test the listener backs off and keeps reading after errors."""
        transport = FlakyTransport(failures=0)
        transport.add_response(["OK"])
        bus = EventBus()
        chan = CommandChannel("flaky", lambda: transport, event_bus=bus, error_backoff=0.01)
        chan.open()
        sub = bus.subscribe()

        transport.failures = 3
        chan.start()
        transport.inject("RING\r\n")

        assert sub.get(timeout=2.0) == "[flaky] RING\r\n"
        assert chan.is_listening() is True

        chan.close()
        sub.cancel()

    def test_close_stops_listener(self, channel):
        """Test close ends the listener thread."""
        channel.start()
        channel.close()

        assert channel.is_listening() is False
        assert channel.state == ChannelState.CLOSED
