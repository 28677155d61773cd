"""
Pytest configuration and fixtures.

Provides shared test fixtures for modemhub tests.
"""

import pytest
import logging

from modemhub.core import MockTransport, CommandChannel, EventBus
from modemhub import DeviceSession


# Enable logging for tests
logging.basicConfig(
    level=logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


@pytest.fixture
def mock_transport():
    """
    Create a MockTransport instance for testing.

    Example:
        def test_something(mock_transport):
            mock_transport.add_response(["OK"])
            # ... test code ...
    """
    transport = MockTransport()
    yield transport
    transport.close()


@pytest.fixture
def event_bus():
    """Create an EventBus instance."""
    return EventBus()


@pytest.fixture
def channel(mock_transport, event_bus):
    """
    Create a verified CommandChannel on MockTransport, listener not started.

    Example:
        def test_at_command(channel, mock_transport):
            mock_transport.add_response(["+CSQ: 24,99", "OK"])
            response = channel.send_command("AT+CSQ")
            assert "+CSQ: 24,99" in response
    """
    mock_transport.add_response(["OK"])  # AT
    chan = CommandChannel("mock", lambda: mock_transport, event_bus=event_bus)
    chan.open()
    yield chan
    chan.close()


@pytest.fixture
def session(mock_transport, event_bus):
    """
    Create a connected, started DeviceSession with MockTransport.

    The liveness check and PDU-mode setup commands are answered with OK.

    Example:
        def test_signal(session, mock_transport):
            mock_transport.add_response(["+CSQ: 24,99", "OK"])
            signal = session.get_signal()
            assert signal.rssi == 24
    """
    for _ in range(3):  # AT, ATE0, AT+CMGF=0
        mock_transport.add_response(["OK"])
    session_instance = DeviceSession(transport=mock_transport, event_bus=event_bus)
    session_instance.connect()
    session_instance.start()
    yield session_instance
    session_instance.close()


@pytest.fixture
def mock_signal_response():
    """Mock response for AT+CSQ command."""
    return ["+CSQ: 24,99", "OK"]


@pytest.fixture
def mock_operator_response():
    """Mock response for AT+COPS? command."""
    return ['+COPS: 0,0,"AT&T",7', "OK"]
