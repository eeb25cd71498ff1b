"""Accessory discovery: providers, selection and attach/detach watching."""

from .provider import AccessoryProvider, select_accessory
from .serial_provider import ARDUINO_VENDOR_IDS, SerialAccessoryProvider, protocols_for_port
from .watcher import AccessoryWatcher

__all__ = [
    "AccessoryProvider",
    "AccessoryWatcher",
    "ARDUINO_VENDOR_IDS",
    "SerialAccessoryProvider",
    "protocols_for_port",
    "select_accessory",
]
