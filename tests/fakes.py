"""In-memory accessory provider and session used by the tests."""
from __future__ import annotations

from typing import List, Optional

from arduino_controller.accessory import AccessoryProvider
from arduino_controller.errors import DiscoveryError, SessionCreationError
from arduino_controller.models import AccessoryDescriptor, StreamEvent, StreamEventType
from arduino_controller.session import Session

ARDUINO_PROTOCOL = "com.arduino.serial"


def make_accessory(name="UnoR4", protocols=(ARDUINO_PROTOCOL,), serial_number=None, port=None):
    return AccessoryDescriptor(
        name=name,
        manufacturer="Arduino LLC",
        model="Uno R4",
        serial_number=serial_number or f"SN-{name}",
        protocols=tuple(protocols),
        port=port or f"/dev/tty.{name}",
    )


class FakeSession(Session):
    """Session that records writes and lets tests emit stream events."""

    def __init__(self, accessory, protocol, session_id=0, fail_open=False):
        super().__init__(accessory, protocol, session_id)
        self.fail_open = fail_open
        self.space_available = True
        self.write_result: Optional[int] = None
        self.writes: List[bytes] = []
        self.closed = False
        self._open = False
        self._sink = None

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self, sink) -> None:
        if self.fail_open:
            raise SessionCreationError("platform refused session")
        self._sink = sink
        self._open = True
        self.emit(StreamEventType.OPENED)

    def close(self) -> None:
        self._open = False
        self.closed = True

    def has_space_available(self) -> bool:
        return self._open and self.space_available

    def write(self, data: bytes) -> int:
        self.writes.append(data)
        if self.write_result is not None:
            return self.write_result
        return len(data)

    def emit(self, event_type, data=b"", error=None) -> None:
        self._sink(StreamEvent(type=event_type, session_id=self.session_id, data=data, error=error))


class FakeProvider(AccessoryProvider):
    """Provider whose accessory list the test controls."""

    def __init__(self, accessories=None):
        self.accessories: List[AccessoryDescriptor] = list(accessories or [])
        self.sessions: List[FakeSession] = []
        self.discovery_calls = 0
        self.fail_discovery = False
        self.fail_open = False

    def connected_accessories(self) -> List[AccessoryDescriptor]:
        self.discovery_calls += 1
        if self.fail_discovery:
            raise DiscoveryError("usb subsystem unavailable")
        return list(self.accessories)

    def open_session(self, accessory, protocol, session_id=0) -> FakeSession:
        session = FakeSession(accessory, protocol, session_id, fail_open=self.fail_open)
        self.sessions.append(session)
        return session

    @property
    def last_session(self) -> Optional[FakeSession]:
        return self.sessions[-1] if self.sessions else None
