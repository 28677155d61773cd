"""
Event monitor example.

Scans for every attached modem and prints all raw output they produce,
such as new-message notifications or registration changes.
"""

from modemhub import ConnectionPool, EventBus


def main():
    """Main function."""
    print("modemhub - Event Monitor Example\n")

    bus = EventBus()
    pool = ConnectionPool(bus)

    try:
        found = pool.scan()
        if not found:
            print("No modems found")
            return

        for status in pool.list():
            print(f"  {status.identifier}: {'connected' if status.connected else 'disconnected'}")

        print("\nWaiting for device output (Ctrl+C to stop)...\n")
        subscription = bus.subscribe()
        try:
            for event in subscription:
                # Events look like "[/dev/ttyUSB2] +CMTI: "SM",3"
                print(event.rstrip())
        except KeyboardInterrupt:
            print("\nStopping...")
        finally:
            subscription.cancel()
    finally:
        pool.close()


if __name__ == "__main__":
    main()
