"""Accessory discovery over USB serial ports.

Maps pyserial's ListPortInfo entries to AccessoryDescriptors. Serial ports
have no protocol negotiation, so protocol identifiers are derived from the
USB vendor ID: boards from known Arduino-compatible vendors advertise
``com.arduino.serial``; every port also advertises the generic ``serial``.
"""
from __future__ import annotations

import logging
from typing import Callable, Dict, List, Optional, Tuple

from serial.tools import list_ports

from ..config import (
    ARDUINO_PROTOCOL,
    DEFAULT_BAUDRATE,
    DEFAULT_READ_TIMEOUT,
    GENERIC_SERIAL_PROTOCOL,
    READ_CHUNK_SIZE,
    WRITE_HIGH_WATER_MARK,
    ControllerConfig,
)
from ..errors import DiscoveryError
from ..models import AccessoryDescriptor
from ..session import SerialSession
from .provider import AccessoryProvider

logger = logging.getLogger(__name__)

# USB vendor IDs of boards that run Arduino sketches
ARDUINO_VENDOR_IDS: Dict[int, str] = {
    0x2341: "Arduino",
    0x2A03: "Arduino.org",
    0x1B4F: "SparkFun",
    0x239A: "Adafruit",
    0x1A86: "WCH (CH340)",
    0x10C4: "Silicon Labs (CP210x)",
    0x0403: "FTDI",
}


def protocols_for_port(port) -> Tuple[str, ...]:
    """Default protocol resolver: vendor table plus the generic serial protocol."""
    if port.vid in ARDUINO_VENDOR_IDS:
        return (ARDUINO_PROTOCOL, GENERIC_SERIAL_PROTOCOL)
    return (GENERIC_SERIAL_PROTOCOL,)


def _port_to_descriptor(port, resolver: Callable[[object], Tuple[str, ...]]) -> AccessoryDescriptor:
    """Convert pyserial's ListPortInfo to an AccessoryDescriptor."""
    model = None
    if port.vid is not None and port.pid is not None:
        model = f"{port.vid:04X}:{port.pid:04X}"

    description = port.description if port.description and port.description != "n/a" else None
    return AccessoryDescriptor(
        name=port.product or description or port.device,
        manufacturer=port.manufacturer,
        model=model,
        serial_number=port.serial_number,
        protocols=tuple(resolver(port)),
        port=port.device,
        hwid=port.hwid,
    )


class SerialAccessoryProvider(AccessoryProvider):
    """Accessory provider backed by ``serial.tools.list_ports``."""

    def __init__(self,
                 usb_only: bool = True,
                 resolver: Optional[Callable[[object], Tuple[str, ...]]] = None,
                 baudrate: int = DEFAULT_BAUDRATE,
                 timeout: float = DEFAULT_READ_TIMEOUT,
                 chunk_size: int = READ_CHUNK_SIZE,
                 write_high_water_mark: int = WRITE_HIGH_WATER_MARK):
        """Initialize provider.

        Args:
            usb_only: Skip ports without a USB vendor ID (e.g. /dev/ttyS0)
            resolver: Callable mapping a ListPortInfo to its protocol tuple
            baudrate: Baud rate for sessions opened by this provider
            timeout: Read timeout for sessions
            chunk_size: Read size per readable event
            write_high_water_mark: Output backlog limit for sessions
        """
        self._usb_only = usb_only
        self._resolver = resolver or protocols_for_port
        self._baudrate = baudrate
        self._timeout = timeout
        self._chunk_size = chunk_size
        self._write_high_water_mark = write_high_water_mark

    @classmethod
    def from_config(cls, config: ControllerConfig) -> SerialAccessoryProvider:
        return cls(
            usb_only=config.usb_only,
            baudrate=config.baudrate,
            timeout=config.read_timeout,
            chunk_size=config.read_chunk_size,
            write_high_water_mark=config.write_high_water_mark,
        )

    def connected_accessories(self) -> List[AccessoryDescriptor]:
        try:
            ports = list_ports.comports()
        except OSError as e:
            raise DiscoveryError(f"Could not list serial ports: {e}") from e

        results: List[AccessoryDescriptor] = []
        for port in ports:
            if self._usb_only and port.vid is None:
                continue
            results.append(_port_to_descriptor(port, self._resolver))

        logger.debug(f"Found {len(results)} accessories: {[a.name for a in results]}")
        return results

    def open_session(self,
                     accessory: AccessoryDescriptor,
                     protocol: str,
                     session_id: int = 0) -> SerialSession:
        return SerialSession(
            accessory,
            protocol,
            session_id=session_id,
            baudrate=self._baudrate,
            timeout=self._timeout,
            chunk_size=self._chunk_size,
            write_high_water_mark=self._write_high_water_mark,
        )
