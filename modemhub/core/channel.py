"""
AT command channel over one physical link.

Owns the transport, serializes command/response exchanges, and runs the
background listener that forwards everything it reads to the event bus.
"""

import logging
import re
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, Sequence

from .events import EventBus
from .transport import Transport
from ..exceptions import (
    ATCommandError,
    ATTimeoutError,
    ChannelClosedError,
    ModemError,
    TransportError,
)
from ..types import ChannelState, CommandExchange, ExchangeOutcome

logger = logging.getLogger(__name__)

CRLF = "\r\n"
CTRL_Z = "\x1a"

DEFAULT_COMMAND_TIMEOUT = 1.0
DEFAULT_CHUNK_SIZE = 256
DEFAULT_ERROR_BACKOFF = 0.1

# Listener wait while a command is queued for the link
_YIELD_INTERVAL = 0.005

_OK_RE = re.compile(r"^OK[ \t]*\r?$", re.MULTILINE)
_ERROR_RE = re.compile(r"^(?:ERROR[ \t]*\r?$|\+CM[ES] ERROR:[^\r\n]*\r?\n)", re.MULTILINE)
_PROMPT_RE = re.compile(r">\s*$")


def scan_terminal(text: str) -> Optional[ExchangeOutcome]:
    """
    Look for a terminal token in an accumulated response.

    Args:
        text: Everything read so far for the current command

    Returns:
        OK, ERROR or PROMPT outcome, or None if the response is not finished
    """
    if _ERROR_RE.search(text):
        return ExchangeOutcome.ERROR
    if _OK_RE.search(text):
        return ExchangeOutcome.OK
    if _PROMPT_RE.search(text):
        return ExchangeOutcome.PROMPT
    return None


class CommandChannel:
    """
    AT command channel.

    Lifecycle: OPENING -> VERIFYING -> INITIALIZED -> ACTIVE -> CLOSED,
    with FAILED reachable from OPENING, VERIFYING or a link failure while in use.

    Only one physical read or write is outstanding at a time. Commands and
    the listener share one re-entrant lock; the listener steps aside while
    any command is waiting for it.
    """

    def __init__(
        self,
        identifier: str,
        opener: Callable[[], Transport],
        event_bus: Optional[EventBus] = None,
        command_timeout: float = DEFAULT_COMMAND_TIMEOUT,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        error_backoff: float = DEFAULT_ERROR_BACKOFF
    ) -> None:
        """
        Initialize command channel.

        Args:
            identifier: Device identifier used to tag broadcast events
            opener: Callable returning an open Transport
            event_bus: Bus receiving raw listener output (optional)
            command_timeout: Default timeout for AT commands in seconds
            chunk_size: Maximum bytes per read
            error_backoff: Listener sleep after a failed read
        """
        self.identifier = identifier
        self.event_bus = event_bus
        self.command_timeout = command_timeout
        self.chunk_size = chunk_size
        self.error_backoff = error_backoff

        self._opener = opener
        self.transport: Optional[Transport] = None
        self._state = ChannelState.OPENING
        self.last_exchange: Optional[CommandExchange] = None

        # One physical I/O at a time
        self._io_lock = threading.RLock()
        self._waiting = 0
        self._waiting_lock = threading.Lock()

        self._listener: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

        logger.debug(f"Initialized command channel for {identifier}")

    @property
    def state(self) -> ChannelState:
        """Current lifecycle state."""
        return self._state

    def open(self, verify_timeout: float = DEFAULT_COMMAND_TIMEOUT) -> None:
        """
        Acquire the link and verify a modem answers on it.

        Args:
            verify_timeout: Seconds to wait for the liveness reply

        Raises:
            TransportError: If the link cannot be opened
            ModemError: If the liveness check fails (link is released)
        """
        self._state = ChannelState.OPENING
        try:
            self.transport = self._opener()
        except ModemError:
            self._state = ChannelState.FAILED
            raise
        except OSError as e:
            self._state = ChannelState.FAILED
            raise TransportError(f"Failed to open {self.identifier}: {e}") from e

        self._state = ChannelState.VERIFYING
        try:
            response = self.send_command("AT", timeout=verify_timeout)
        except ModemError as e:
            logger.warning(f"Liveness check failed on {self.identifier}: {e}")
            self._fail()
            raise

        if "OK" not in response:
            self._fail()
            raise ATCommandError(
                f"Liveness check failed on {self.identifier}",
                command="AT",
                response=response
            )

        logger.info(f"Modem answered on {self.identifier}")

    def initialize(self, commands: Sequence[str]) -> None:
        """
        Issue setup commands, best-effort.

        Failures are logged and skipped.

        Args:
            commands: AT commands to send in order
        """
        for cmd in commands:
            try:
                self.send_command(cmd)
            except ModemError as e:
                logger.warning(f"Setup command {cmd} failed on {self.identifier}: {e}")
        self._state = ChannelState.INITIALIZED
        logger.debug(f"Channel {self.identifier} initialized")

    def start(self) -> None:
        """
        Start the background listener.

        The listener reads the link continuously and broadcasts every chunk
        as "[identifier] <data>".
        """
        if self._listener is not None and self._listener.is_alive():
            logger.warning(f"Listener for {self.identifier} already started")
            return
        if self._state in (ChannelState.CLOSED, ChannelState.FAILED):
            raise ChannelClosedError(f"Channel {self.identifier} is {self._state.value}")

        self._stop_event.clear()
        self._listener = threading.Thread(
            target=self._listen_loop,
            daemon=True,
            name=f"ModemListener[{self.identifier}]"
        )
        self._state = ChannelState.ACTIVE
        self._listener.start()
        logger.info(f"Started listener for {self.identifier}")

    def close(self) -> None:
        """
        Close the channel.

        Stops the listener and releases the link. No further commands are accepted.
        """
        if self._state == ChannelState.CLOSED:
            return

        logger.info(f"Closing channel {self.identifier}")
        self._stop_event.set()
        self._state = ChannelState.CLOSED

        # Closing the handle makes a blocked listener read fail and exit
        if self.transport is not None:
            self.transport.close()

        if self._listener is not None:
            self._listener.join(timeout=1.0)
            if self._listener.is_alive():
                logger.warning(f"Listener for {self.identifier} did not terminate in time")

        logger.info(f"Channel {self.identifier} closed")

    def is_listening(self) -> bool:
        """True while the listener thread is alive."""
        return self._listener is not None and self._listener.is_alive()

    @contextmanager
    def exclusive(self) -> Iterator["CommandChannel"]:
        """
        Hold the link across several exchanges.

        Used when a command needs a follow-up write that must not be
        interleaved with anything else (e.g. the SMS submit prompt).

        .. code-block:: python

            with channel.exclusive():
                channel.send_command('AT+CMGS=20')
                channel.send_command(pdu, suffix=CTRL_Z, timeout=60)
        """
        with self._waiting_lock:
            self._waiting += 1
        try:
            with self._io_lock:
                yield self
        finally:
            with self._waiting_lock:
                self._waiting -= 1

    def send_command(
        self,
        cmd: str,
        timeout: Optional[float] = None,
        suffix: str = CRLF,
        check: bool = True
    ) -> str:
        """
        Send a command and wait for its terminal token.

        Reads until the accumulated response contains OK, an error token or
        the data prompt, or until the deadline passes.

        Args:
            cmd: Command text (e.g., "AT+CSQ")
            timeout: Command timeout in seconds (uses default if None)
            suffix: Terminator written after the command
            check: Raise ATCommandError when the response has an error token

        Returns:
            Response text with surrounding whitespace stripped. If the link
            fails after some data arrived, the partial text is returned.

        Raises:
            ATTimeoutError: If no terminal token arrives in time
            ATCommandError: If check is set and the modem reported an error
            TransportError: If the link fails before any data arrived; the
                channel is left FAILED
        """
        timeout_val = timeout if timeout is not None else self.command_timeout
        exchange = CommandExchange(command=cmd)

        with self.exclusive():
            if self._state in (ChannelState.CLOSED, ChannelState.FAILED) or self.transport is None:
                raise ChannelClosedError(
                    f"Channel {self.identifier} is {self._state.value}",
                    command=cmd
                )

            start = time.monotonic()
            try:
                self._exchange(exchange, suffix, start + timeout_val)
            except TransportError as e:
                # The link is unusable; no further commands on this channel
                logger.error(f"Link failure on {self.identifier}: {e}")
                self._fail()
                raise
            finally:
                exchange.elapsed = time.monotonic() - start
                self.last_exchange = exchange

        logger.debug(
            f"{self.identifier} {cmd!r} -> {exchange.outcome.value} "
            f"in {exchange.elapsed:.3f}s: {exchange.response!r}"
        )

        if check and exchange.outcome == ExchangeOutcome.ERROR:
            raise ATCommandError(
                f"AT command returned error on {self.identifier}",
                command=cmd,
                response=exchange.response
            )
        return exchange.response

    def _exchange(self, exchange: CommandExchange, suffix: str, deadline: float) -> None:
        """Write the command and accumulate its response. Lock must be held."""
        cmd = exchange.command
        try:
            self.transport.reset_input_buffer()
            written = self.transport.write((cmd + suffix).encode("utf-8"))
        except TransportError:
            exchange.outcome = ExchangeOutcome.TRANSPORT_ERROR
            raise
        if not written:
            exchange.outcome = ExchangeOutcome.TRANSPORT_ERROR
            raise TransportError(f"Failed to write command to {self.identifier}", command=cmd)

        buffer = bytearray()
        while True:
            if time.monotonic() > deadline:
                exchange.outcome = ExchangeOutcome.TIMEOUT
                exchange.response = buffer.decode("utf-8", errors="replace").strip()
                logger.error(f"AT command timed out on {self.identifier}: {cmd}")
                raise ATTimeoutError(
                    f"AT command timed out on {self.identifier}",
                    command=cmd,
                    response=exchange.response
                )

            try:
                chunk = self.transport.read(self.chunk_size)
            except TransportError:
                exchange.response = buffer.decode("utf-8", errors="replace").strip()
                if buffer:
                    # Link ended early; treat what arrived as the final answer
                    exchange.outcome = ExchangeOutcome.INCOMPLETE
                    logger.warning(f"Link ended mid-response on {self.identifier}: {cmd}")
                    return
                exchange.outcome = ExchangeOutcome.TRANSPORT_ERROR
                raise

            if not chunk:
                continue

            buffer.extend(chunk)
            text = buffer.decode("utf-8", errors="replace")
            outcome = scan_terminal(text)
            if outcome is not None:
                exchange.outcome = outcome
                exchange.response = text.strip()
                return

    def _listen_loop(self) -> None:
        """
        Continuously read the link and broadcast what arrives.

        Read errors are retried after a fixed backoff; only close() ends the loop.
        """
        logger.debug(f"Listener for {self.identifier} started")
        failures = 0

        while not self._stop_event.is_set():
            if self._waiting:
                time.sleep(_YIELD_INTERVAL)
                continue

            try:
                with self._io_lock:
                    if self._stop_event.is_set():
                        break
                    data = self.transport.read(self.chunk_size)
            except Exception as e:
                if self._stop_event.is_set():
                    break
                failures += 1
                if failures == 1:
                    logger.warning(f"Listener read failed on {self.identifier}: {e}")
                else:
                    logger.debug(f"Listener read failed on {self.identifier} ({failures}x): {e}")
                time.sleep(self.error_backoff)
                continue

            if failures:
                logger.info(f"Listener on {self.identifier} recovered after {failures} failed reads")
                failures = 0

            if data and self.event_bus is not None:
                text = data.decode("utf-8", errors="replace")
                self.event_bus.broadcast(f"[{self.identifier}] {text}")

        logger.debug(f"Listener for {self.identifier} stopped")

    def _fail(self) -> None:
        self._state = ChannelState.FAILED
        if self.transport is not None:
            self.transport.close()
