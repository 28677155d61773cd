"""
Basic connection example.

Connects to one modem and prints its identity and signal quality.
"""

import sys

from modemhub import DeviceSession

# Replace with your serial port
PORT = "/dev/ttyUSB2"


def main():
    """Main function."""
    port = sys.argv[1] if len(sys.argv) > 1 else PORT
    print(f"modemhub - Basic Connection Example ({port})\n")

    # Connects, runs setup and starts the listener; closes on exit
    with DeviceSession(port=port) as session:
        print("Connected to modem!\n")

        print("=== Identity ===")
        identity = session.get_identity()
        print(f"Manufacturer: {identity.manufacturer}")
        print(f"Model:        {identity.model}")
        print(f"IMEI:         {identity.imei}")
        print(f"IMSI:         {identity.imsi}")
        print(f"Operator:     {identity.operator}")
        print(f"Number:       {identity.phone_number}")

        print("\n=== Signal ===")
        signal = session.get_signal()
        if signal.is_valid:
            print(f"RSSI: {signal.rssi} ({signal.dbm})")
        else:
            print("Signal unknown or not detectable")

    print("\nConnection closed.")


if __name__ == "__main__":
    main()
