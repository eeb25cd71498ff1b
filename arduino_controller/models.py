"""Immutable data models for accessories, connection state and events.

All models are frozen dataclasses so snapshots can be handed across threads
and to subscribers without copying.
"""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple, Union


class SelectionPolicy(Enum):
    """How connect() picks an accessory and protocol."""
    STRICT = "strict"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class AccessoryDescriptor:
    """An attached peripheral as reported by the platform.

    Attributes:
        name: Display name of the accessory.
        manufacturer: Manufacturer string, if known.
        model: Model string, if known.
        serial_number: Serial number string, if known.
        protocols: Protocol identifiers the accessory advertises, in order.
        port: Transport address used to open a session (e.g. '/dev/ttyACM0').
        hwid: Raw hardware ID string (for debugging).
    """
    name: str
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    serial_number: Optional[str] = None
    protocols: Tuple[str, ...] = ()
    port: Optional[str] = None
    hwid: Optional[str] = None

    @property
    def key(self) -> str:
        """Stable identifier: serial number, else port, else name."""
        return self.serial_number or self.port or self.name

    def supports(self, protocol: str) -> bool:
        return protocol in self.protocols


@dataclass(frozen=True)
class ConnectionState:
    """Snapshot of the session manager's connection.

    Attributes:
        connected: True while a session is open and healthy.
        status_message: Last human-readable status text.
        accessory: Accessory of the open session, if any.
        protocol: Negotiated protocol identifier, if any.
        timestamp: Local time the snapshot was taken.
    """
    connected: bool = False
    status_message: Optional[str] = None
    accessory: Optional[AccessoryDescriptor] = None
    protocol: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def disconnected(cls, status_message: Optional[str] = None) -> ConnectionState:
        return cls(connected=False, status_message=status_message)


@dataclass(frozen=True)
class ControllerState:
    """UI-facing snapshot published by ArduinoController."""
    connected: bool
    status_message: Optional[str]
    pin_state: bool
    accessory_name: Optional[str] = None


class StreamEventType(Enum):
    OPENED = "opened"
    READABLE = "readable"
    WRITE_SPACE_AVAILABLE = "write_space_available"
    ERROR = "error"
    ENDED = "ended"


@dataclass(frozen=True)
class StreamEvent:
    """Event emitted by a session's stream pair.

    Attributes:
        type: Event kind.
        session_id: Id of the session that emitted the event.
        data: Bytes read, for READABLE events.
        error: The failure, for ERROR events.
    """
    type: StreamEventType
    session_id: int
    data: bytes = b""
    error: Optional[BaseException] = None


class AccessoryEventType(Enum):
    ATTACHED = "attached"
    DETACHED = "detached"


@dataclass(frozen=True)
class AccessoryEvent:
    """Attach/detach notification for one accessory."""
    type: AccessoryEventType
    accessory: AccessoryDescriptor


Event = Union[StreamEvent, AccessoryEvent]
