"""Arduino Controller - toggle a digital pin on an Arduino over USB serial."""

from .models import (
    AccessoryDescriptor,
    AccessoryEvent,
    AccessoryEventType,
    ConnectionState,
    ControllerState,
    SelectionPolicy,
    StreamEvent,
    StreamEventType,
)
from .errors import (
    AccessoryNotFoundError,
    ArduinoControllerError,
    ConfigError,
    DiscoveryError,
    SessionCreationError,
    StreamError,
)
from .config import ControllerConfig, load_config
from .accessory import AccessoryProvider, AccessoryWatcher, SerialAccessoryProvider, select_accessory
from .session import Session, SerialSession
from .manager import DeviceSessionManager
from .channel import CommandChannel
from .controller import ArduinoController

__all__ = [
    "AccessoryDescriptor",
    "AccessoryEvent",
    "AccessoryEventType",
    "ConnectionState",
    "ControllerState",
    "SelectionPolicy",
    "StreamEvent",
    "StreamEventType",
    "AccessoryNotFoundError",
    "ArduinoControllerError",
    "ConfigError",
    "DiscoveryError",
    "SessionCreationError",
    "StreamError",
    "ControllerConfig",
    "load_config",
    "AccessoryProvider",
    "AccessoryWatcher",
    "SerialAccessoryProvider",
    "select_accessory",
    "Session",
    "SerialSession",
    "DeviceSessionManager",
    "CommandChannel",
    "ArduinoController",
]
