#!/usr/bin/env python3
"""
SMS Operations Example

Demonstrates:
- Listing stored messages (long messages are shown merged)
- Sending SMS (GSM-7, Unicode and multi-part)
- Deleting messages

Usage:
    python examples/sms_operations.py /dev/ttyUSB2 [--text-mode]
"""

import sys

from modemhub import DeviceSession, MessageFormat, ModemError


def list_messages_example(session: DeviceSession):
    """Demonstrate listing messages."""
    print("\n" + "="*50)
    print("LISTING MESSAGES")
    print("="*50)

    try:
        messages = session.list_sms()
    except ModemError as e:
        print(f"Failed to list messages: {e}")
        return

    if not messages:
        print("\n No messages")
        return

    print(f"\n Found {len(messages)} message(s):\n")
    for msg in messages:
        parts = f" ({msg.parts} parts)" if msg.parts > 1 else ""
        print(f"  [{msg.index}] From: {msg.sender}{parts}")
        print(f"      Date: {msg.timestamp}")
        print(f"      Status: {msg.status}")
        print(f"      {msg.content}")
        print()


def send_sms_example(session: DeviceSession):
    """Demonstrate sending SMS."""
    print("\n" + "="*50)
    print("SENDING SMS")
    print("="*50)

    recipient = input("Enter recipient number (e.g., +1234567890): ").strip()
    message = input("Enter message text: ").strip()
    if not recipient or not message:
        print("Skipped - no input provided")
        return

    try:
        refs = session.send_sms(recipient, message)
        print(f"SMS sent in {len(refs)} part(s), reference(s): {refs}")
    except ModemError as e:
        print(f"Failed to send SMS: {e}")


def delete_message_example(session: DeviceSession):
    """Demonstrate deleting a message."""
    index = input("Enter message index to delete: ").strip()
    try:
        session.delete_sms(int(index))
        print(f"Message {index} deleted")
    except ValueError:
        print("Invalid index")
    except ModemError as e:
        print(f"Delete failed: {e}")


def main():
    """Main example program."""
    if len(sys.argv) < 2:
        print("Usage: python sms_operations.py <serial_port> [--text-mode]")
        sys.exit(1)

    port = sys.argv[1]
    mode = MessageFormat.TEXT_MODE if "--text-mode" in sys.argv else MessageFormat.PDU_MODE

    print(f"Port: {port} ({mode.name})")
    session = DeviceSession(port=port, sms_mode=mode)

    try:
        session.connect()
        session.start()

        while True:
            print("\n1. List messages  2. Send SMS  3. Delete message  4. Exit")
            choice = input("Choice (1-4): ").strip()

            if choice == '1':
                list_messages_example(session)
            elif choice == '2':
                send_sms_example(session)
            elif choice == '3':
                delete_message_example(session)
            elif choice == '4':
                break
            else:
                print("Invalid choice")

    except KeyboardInterrupt:
        print("\n\nInterrupted by user")

    except ModemError as e:
        print(f"\nError: {e}")

    finally:
        session.close()
        print("Done")


if __name__ == "__main__":
    main()
