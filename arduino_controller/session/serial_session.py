"""USB serial session to an Arduino accessory.

Wraps a pyserial port as an input/output stream pair:
- A daemon reader thread reads fixed-size chunks and emits READABLE events
- Writes are non-blocking (write_timeout=0) and attempted once
- A SerialException on read ends the session: ENDED if the port has
  vanished from the system (cable pulled), ERROR otherwise

Note: This is a RAW BYTE STREAM layer. It does not interpret data and
      never mutates connection state; the session manager does that.
"""
from __future__ import annotations

import logging
import threading
from typing import Optional

import serial
from serial.tools import list_ports

from ..config import DEFAULT_BAUDRATE, DEFAULT_READ_TIMEOUT, READ_CHUNK_SIZE, WRITE_HIGH_WATER_MARK
from ..errors import SessionCreationError, StreamError
from ..models import AccessoryDescriptor, StreamEvent, StreamEventType
from .base import EventSink, Session

logger = logging.getLogger(__name__)


class SerialSession(Session):
    """Session over a USB CDC / USB-serial port.

    Example:
        >>> session = SerialSession(accessory, "com.arduino.serial", session_id=1)
        >>> session.open(events.put)
        >>> session.write(b"ON\\n")
        3
        >>> session.close()
    """

    def __init__(self,
                 accessory: AccessoryDescriptor,
                 protocol: str,
                 session_id: int = 0,
                 baudrate: int = DEFAULT_BAUDRATE,
                 timeout: float = DEFAULT_READ_TIMEOUT,
                 chunk_size: int = READ_CHUNK_SIZE,
                 write_high_water_mark: int = WRITE_HIGH_WATER_MARK):
        """Initialize serial session.

        Args:
            accessory: Accessory to open; its ``port`` must be set
            protocol: Negotiated protocol identifier
            session_id: Id stamped on every emitted event
            baudrate: Serial baud rate
            timeout: Read timeout in seconds
            chunk_size: Maximum bytes to read per event
            write_high_water_mark: Pending output bytes above which no space is reported
        """
        super().__init__(accessory, protocol, session_id)
        self._baudrate = baudrate
        self._timeout = timeout
        self._chunk_size = chunk_size
        self._write_high_water_mark = write_high_water_mark

        self._serial: Optional[serial.Serial] = None
        self._sink: Optional[EventSink] = None

        self._active = False
        self._reader_thread: Optional[threading.Thread] = None

    @property
    def is_open(self) -> bool:
        return self._active and self._serial is not None

    def open(self, sink: EventSink) -> None:
        if self.is_open:
            logger.warning("Session already open")
            return

        port = self._accessory.port
        if not port:
            raise SessionCreationError(f"Accessory {self._accessory.name} has no serial port")

        try:
            self._serial = serial.Serial(
                port=port,
                baudrate=self._baudrate,
                timeout=self._timeout,
                write_timeout=0,
            )
            self._serial.reset_input_buffer()
            self._serial.reset_output_buffer()
        except (serial.SerialException, ValueError, OSError) as e:
            self._discard_port()
            raise SessionCreationError(f"Failed to open {port}: {e}") from e

        logger.info(f"Opened session on {port} @ {self._baudrate} baud ({self._protocol})")

        self._sink = sink
        self._active = True
        self._emit(StreamEventType.OPENED)
        self._emit(StreamEventType.WRITE_SPACE_AVAILABLE)
        self._start_reader_thread()

    def close(self) -> None:
        self._active = False
        self._sink = None

        if self._reader_thread and self._reader_thread.is_alive() \
                and self._reader_thread is not threading.current_thread():
            self._reader_thread.join(timeout=1.0)
        self._reader_thread = None

        if self._serial:
            try:
                self._serial.close()
            except serial.SerialException as e:
                logger.error(f"Error closing serial port: {e}")
            finally:
                self._serial = None
            logger.info(f"Closed session on {self._accessory.port}")

    def has_space_available(self) -> bool:
        if not self.is_open:
            return False
        try:
            return self._serial.out_waiting < self._write_high_water_mark
        except NotImplementedError:
            # Backend cannot report queued output
            return True
        except (serial.SerialException, OSError) as e:
            logger.error(f"Output status error: {e}")
            return False

    def write(self, data: bytes) -> int:
        if not self.is_open:
            logger.warning("Cannot write, session not open")
            return 0

        try:
            written = self._serial.write(data)
        except serial.SerialTimeoutException:
            logger.warning("Write rejected, output buffer full")
            return 0
        except serial.SerialException as e:
            logger.error(f"Write error: {e}")
            self._emit(StreamEventType.ERROR, error=StreamError(f"Write failed on {self._accessory.port}: {e}"))
            return 0

        return written if written is not None else len(data)

    # Internal methods

    def _discard_port(self) -> None:
        """Close a port left half-configured by a failed open."""
        port, self._serial = self._serial, None
        if port is None:
            return
        try:
            port.close()
        except (serial.SerialException, OSError) as e:
            logger.error(f"Error closing serial port: {e}")

    def _start_reader_thread(self) -> None:
        self._reader_thread = threading.Thread(
            target=self._reader_loop,
            daemon=True,
            name=f"SerialSessionReader-{self._session_id}"
        )
        self._reader_thread.start()

    def _reader_loop(self) -> None:
        """Read raw chunks and emit them as READABLE events."""
        logger.debug("Reader thread started")

        while self._active and self._serial:
            try:
                chunk = self._serial.read(self._chunk_size)
            except serial.SerialException as e:
                if self._active:
                    self._handle_read_failure(e)
                break

            if chunk:
                self._emit(StreamEventType.READABLE, data=bytes(chunk))

        logger.debug("Reader thread exiting")

    def _handle_read_failure(self, error: Exception) -> None:
        if self._port_present():
            logger.error(f"Serial read error: {error}")
            self._emit(StreamEventType.ERROR, error=StreamError(f"Read failed on {self._accessory.port}: {error}"))
        else:
            logger.info(f"Port {self._accessory.port} went away: {error}")
            self._emit(StreamEventType.ENDED)
        self._active = False

    def _port_present(self) -> bool:
        try:
            return any(p.device == self._accessory.port for p in list_ports.comports())
        except OSError:
            return False

    def _emit(self, event_type: StreamEventType, data: bytes = b"",
              error: Optional[BaseException] = None) -> None:
        sink = self._sink
        if sink is None:
            return
        try:
            sink(StreamEvent(type=event_type, session_id=self._session_id, data=data, error=error))
        except Exception as e:
            logger.error(f"Error in session event sink: {e}")
