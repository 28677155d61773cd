"""
Tests for DeviceSession lifecycle and raw commands.
"""

import pytest

from modemhub import DeviceSession
from modemhub.core import MockTransport
from modemhub.exceptions import ATTimeoutError, ChannelClosedError
from modemhub.types import ChannelState


def test_requires_port_or_transport():
    """Test a session needs somewhere to talk to."""
    with pytest.raises(ValueError):
        DeviceSession()


def test_lifecycle(mock_transport):
    """Test the session walks through the channel states."""
    for _ in range(3):
        mock_transport.add_response(["OK"])
    session = DeviceSession(transport=mock_transport)
    assert session.state == ChannelState.OPENING

    session.connect()
    assert session.state == ChannelState.INITIALIZED

    session.start()
    assert session.state == ChannelState.ACTIVE

    session.close()
    assert session.state == ChannelState.CLOSED
    assert mock_transport.is_open() is False


def test_setup_failures_not_fatal(mock_transport):
    """Test rejected setup commands still leave the session usable."""
    mock_transport.add_response(["OK"])      # AT
    mock_transport.add_response(["ERROR"])   # ATE0
    mock_transport.add_response(["ERROR"])   # AT+CMGF=0
    session = DeviceSession(transport=mock_transport)

    session.connect()

    assert session.state == ChannelState.INITIALIZED
    session.close()


def test_transport_factory(event_bus):
    """Test the factory is called with the port path on connect."""
    transport = MockTransport()
    for _ in range(3):
        transport.add_response(["OK"])
    opened = []

    def factory(path):
        opened.append(path)
        return transport

    session = DeviceSession(port="/dev/ttyUSB3", transport_factory=factory, event_bus=event_bus)
    assert opened == []

    session.connect()

    assert opened == ["/dev/ttyUSB3"]
    assert repr(session) == "<DeviceSession port=/dev/ttyUSB3 state=initialized>"
    session.close()


def test_context_manager(mock_transport):
    """Test the context manager connects, starts and closes."""
    for _ in range(3):
        mock_transport.add_response(["OK"])

    with DeviceSession(transport=mock_transport) as session:
        assert session.state == ChannelState.ACTIVE
        assert session.channel.is_listening() is True

    assert session.state == ChannelState.CLOSED


def test_send_raw_command(session, mock_transport):
    """Test raw commands return the response text."""
    mock_transport.add_response(['+CREG: 0,1', "OK"])

    assert session.send_raw_command("AT+CREG?") == "+CREG: 0,1\r\nOK"


def test_send_raw_command_error_returned(session, mock_transport):
    """Test an error token is returned, not raised."""
    mock_transport.add_response(["ERROR"])

    assert session.send_raw_command("AT+BOGUS") == "ERROR"


def test_send_raw_command_timeout(session):
    """Test a silent device times out."""
    with pytest.raises(ATTimeoutError):
        session.send_raw_command("AT", timeout=0.1)

    # Still usable afterwards
    assert session.state == ChannelState.ACTIVE


def test_commands_after_close(session):
    """Test a closed session rejects commands."""
    session.close()

    with pytest.raises(ChannelClosedError):
        session.send_raw_command("AT")


def test_listener_output_on_bus(session, mock_transport, event_bus):
    """Test unsolicited data reaches subscribers tagged with the port."""
    sub = event_bus.subscribe()

    mock_transport.inject('+CMTI: "SM",4\r\n')

    assert sub.get(timeout=2.0) == '[mock] +CMTI: "SM",4\r\n'
    sub.cancel()
