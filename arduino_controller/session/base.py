"""Abstract base class for accessory sessions.

A Session is one open input/output byte-stream pair negotiated against an
accessory for a single protocol identifier. Sessions report lifecycle and
data through StreamEvents delivered to a sink; they never touch connection
state themselves.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

from ..models import AccessoryDescriptor, StreamEvent

EventSink = Callable[[StreamEvent], None]


class Session(ABC):
    """Byte-stream pair between host and accessory.

    Implementations are responsible for:
    1. Opening and closing the underlying streams
    2. Emitting OPENED / READABLE / WRITE_SPACE_AVAILABLE / ERROR / ENDED
       events to the sink passed to open()
    3. Non-blocking, single-attempt writes
    """

    def __init__(self, accessory: AccessoryDescriptor, protocol: str, session_id: int = 0):
        self._accessory = accessory
        self._protocol = protocol
        self._session_id = session_id

    @property
    def accessory(self) -> AccessoryDescriptor:
        return self._accessory

    @property
    def protocol(self) -> str:
        return self._protocol

    @property
    def session_id(self) -> int:
        return self._session_id

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """True while both streams are open."""
        pass

    @abstractmethod
    def open(self, sink: EventSink) -> None:
        """Open both streams and start delivering events to ``sink``.

        Raises:
            SessionCreationError: if the streams could not be opened
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Close both streams and stop delivering events.

        Should be safe to call multiple times.
        """
        pass

    @abstractmethod
    def has_space_available(self) -> bool:
        """Check whether the output stream can accept a write now."""
        pass

    @abstractmethod
    def write(self, data: bytes) -> int:
        """Write ``data`` in a single attempt.

        Returns:
            Number of bytes written (0 on failure). Short writes are not retried.
        """
        pass
