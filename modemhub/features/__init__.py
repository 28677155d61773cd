"""
Feature managers for modem functionality.

Provides high-level managers for different modem capabilities:
- DeviceManager: Manufacturer, model, IMEI, IMSI, own number
- NetworkManager: Signal quality and operator
- SMSManager: SMS listing, sending and deletion
"""

from .device_info import DeviceManager
from .network import NetworkManager
from .sms import SMSManager

__all__ = [
    "DeviceManager",
    "NetworkManager",
    "SMSManager",
]
