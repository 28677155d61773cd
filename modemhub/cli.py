"""
CLI REPL (Read-Eval-Print Loop) for modemhub.

Provides an interactive terminal over every modem found on the host.
"""

import sys
import logging
import threading
from typing import Optional

from .core import EventBus, Subscription
from .pool import ConnectionPool, DEFAULT_PATTERNS
from .session import DeviceSession
from .types import MessageFormat
from .version import __version__
from .exceptions import ModemError


class ModemHubCLI:
    """Interactive multi-modem REPL."""

    def __init__(
        self,
        patterns: tuple[str, ...] = DEFAULT_PATTERNS,
        baudrate: int = 115200,
        sms_mode: MessageFormat = MessageFormat.PDU_MODE
    ):
        """
        Initialize CLI.

        Args:
            patterns: Glob patterns of candidate device paths
            baudrate: Baud rate
            sms_mode: SMS mode used by every session
        """
        self.event_bus = EventBus()
        self.pool = ConnectionPool(
            self.event_bus,
            baudrate=baudrate,
            patterns=patterns,
            sms_mode=sms_mode
        )
        self.current: Optional[DeviceSession] = None
        self._monitor: Optional[Subscription] = None
        self._monitor_thread: Optional[threading.Thread] = None

    def run(self):
        """Run the REPL."""
        print(f"modemhub CLI v{__version__}")
        print(f"Scanning {', '.join(self.pool.patterns)}...")
        print("Type 'help' for commands, 'quit' to exit\n")

        try:
            self._scan()

            # REPL loop
            while True:
                try:
                    prompt = f"{self.current.port}> " if self.current else "> "
                    line = input(prompt).strip()

                    if not line:
                        continue

                    name, _, arg = line.partition(" ")
                    name = name.lower()

                    if name in ("quit", "exit", "q"):
                        break
                    elif name == "help":
                        self._print_help()
                    elif name == "scan":
                        self._scan()
                    elif name == "devices":
                        self._show_devices()
                    elif name == "use":
                        self._use(arg.strip())
                    elif name == "info":
                        self._show_modem_info()
                    elif name == "signal":
                        self._show_signal()
                    elif name == "sms":
                        self._show_sms()
                    elif name == "send":
                        self._send_sms(arg)
                    elif name == "delete":
                        self._delete_sms(arg.strip())
                    elif name == "monitor":
                        self._toggle_monitor()
                    else:
                        # Send AT command
                        self._send_command(line)

                except KeyboardInterrupt:
                    print("\nUse 'quit' to exit")
                    continue
                except EOFError:
                    break

        except Exception as e:
            print(f"\nUnexpected error: {e}")
            logging.exception("CLI error")
            return 1
        finally:
            if self._monitor is not None:
                self._monitor.cancel()
            print("\nClosing connections...")
            self.pool.close()
            print("Goodbye!")

        return 0

    def _require_session(self) -> Optional[DeviceSession]:
        if self.current is None:
            print("No device selected (see 'devices' and 'use <port>')")
        return self.current

    def _scan(self):
        added = self.pool.scan()
        for port in added:
            print(f"Found modem on {port}")
        if self.current is None and len(self.pool):
            self.current = self.pool.get(self.pool.list()[0].identifier)
            print(f"Using {self.current.port}")
        if not len(self.pool):
            print("No modems found")

    def _show_devices(self):
        for status in self.pool.list():
            marker = "*" if self.current and self.current.port == status.identifier else " "
            state = "connected" if status.connected else "disconnected"
            print(f" {marker} {status.identifier}  {state}")

    def _use(self, port: str):
        try:
            self.current = self.pool.get(port)
            print(f"Using {port}")
        except ModemError as e:
            print(f"Error: {e}")

    def _send_command(self, cmd: str):
        """Send AT command and display response."""
        session = self._require_session()
        if session is None:
            return
        try:
            print(session.send_raw_command(cmd))
        except ModemError as e:
            print(f"Error: {e}")

    def _show_modem_info(self):
        """Show modem identity."""
        session = self._require_session()
        if session is None:
            return

        print("\nFetching modem information...")
        identity = session.get_identity()
        print(f"Manufacturer: {identity.manufacturer or '-'}")
        print(f"Model:        {identity.model or '-'}")
        print(f"IMEI:         {identity.imei or '-'}")
        print(f"IMSI:         {identity.imsi or '-'}")
        print(f"Operator:     {identity.operator or '-'}")
        print(f"Number:       {identity.phone_number or '-'}")

    def _show_signal(self):
        session = self._require_session()
        if session is None:
            return
        try:
            signal = session.get_signal()
            print(f"Signal: RSSI={signal.rssi} ({signal.dbm}), quality={signal.quality}")
        except ModemError as e:
            print(f"Error: {e}")

    def _show_sms(self):
        session = self._require_session()
        if session is None:
            return
        try:
            messages = session.list_sms()
        except ModemError as e:
            print(f"Error: {e}")
            return

        if not messages:
            print("No messages")
        for msg in messages:
            print(f"[{msg.index}] {msg.status} {msg.sender} {msg.timestamp}")
            print(f"    {msg.content}")

    def _send_sms(self, arg: str):
        session = self._require_session()
        if session is None:
            return
        number, _, text = arg.strip().partition(" ")
        if not number or not text:
            print("Usage: send <number> <text>")
            return
        try:
            refs = session.send_sms(number, text)
            print(f"Sent ({len(refs)} part(s), reference(s) {refs})")
        except ModemError as e:
            print(f"Error: {e}")

    def _delete_sms(self, arg: str):
        session = self._require_session()
        if session is None:
            return
        try:
            session.delete_sms(int(arg))
            print(f"Deleted message {arg}")
        except ValueError:
            print("Usage: delete <index>")
        except ModemError as e:
            print(f"Error: {e}")

    def _toggle_monitor(self):
        """Start or stop printing raw device output."""
        if self._monitor is not None:
            self._monitor.cancel()
            self._monitor = None
            print("Monitor off")
            return

        subscription = self.event_bus.subscribe()

        def display_events():
            for event in subscription:
                print(f"\n{event.rstrip()}")
                print("> ", end="", flush=True)

        self._monitor = subscription
        self._monitor_thread = threading.Thread(target=display_events, daemon=True, name="Monitor")
        self._monitor_thread.start()
        print("Monitor on")

    def _print_help(self):
        """Print help message."""
        print("""
Available commands:
  <AT command>         - Send AT command to the selected modem (e.g., AT+CSQ)
  scan                 - Look for newly attached modems
  devices              - List modems and their state
  use <port>           - Select a modem
  info                 - Show modem identity
  signal               - Show signal quality
  sms                  - List stored SMS
  send <number> <text> - Send an SMS
  delete <index>       - Delete a stored SMS
  monitor              - Toggle live display of raw device output
  help                 - Show this help message
  quit/exit/q          - Exit CLI

Common AT commands:
  AT+CSQ        - Check signal quality
  AT+CREG?      - Check network registration
  AT+COPS?      - Get current operator
  AT+CPIN?      - Check SIM status
  AT+CGSN       - Get IMEI
        """)


def main():
    """Main entry point for CLI."""
    import argparse

    parser = argparse.ArgumentParser(
        description="modemhub CLI - Interactive multi-modem terminal",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  modemhub-cli
  modemhub-cli --pattern '/dev/ttyUSB*' --baudrate 9600
  modemhub-cli --text-mode
        """
    )

    parser.add_argument(
        "-p", "--pattern",
        action="append",
        help="Device path glob, may be repeated (default: /dev/ttyUSB* and /dev/ttyACM*)"
    )
    parser.add_argument(
        "-b", "--baudrate",
        type=int,
        default=115200,
        help="Baud rate (default: 115200)"
    )
    parser.add_argument(
        "--text-mode",
        action="store_true",
        help="Use SMS text mode with the UCS2 character set instead of PDU mode"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )

    args = parser.parse_args()

    # Setup logging
    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
    else:
        logging.basicConfig(
            level=logging.WARNING,
            format='%(levelname)s: %(message)s'
        )

    # Run CLI
    cli = ModemHubCLI(
        patterns=tuple(args.pattern) if args.pattern else DEFAULT_PATTERNS,
        baudrate=args.baudrate,
        sms_mode=MessageFormat.TEXT_MODE if args.text_mode else MessageFormat.PDU_MODE
    )

    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
