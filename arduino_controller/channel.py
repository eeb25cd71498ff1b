"""Text command channel.

Outbound commands are UTF-8 lines terminated by ``\\n``. Inbound bytes are
accumulated in a receive buffer and each chunk is decoded on its own and
surfaced as status text. No framing, message IDs or acknowledgements.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

from .config import ControllerConfig
from .manager import DeviceSessionManager

logger = logging.getLogger(__name__)

STREAM_UNAVAILABLE_MESSAGE = "Cannot send data - stream not available"
SEND_FAILED_MESSAGE = "Failed to send command"


def encode_command(command: str) -> bytes:
    """Frame a command for the wire: ``command + "\\n"`` in UTF-8."""
    return f"{command}\n".encode("utf-8")


class CommandChannel:
    """Frames and sends text commands over the manager's current session.

    ``pin_state`` mirrors the last on/off command sent. It is not confirmed
    by the board.
    """

    def __init__(self, manager: DeviceSessionManager, config: Optional[ControllerConfig] = None):
        self._manager = manager
        self._config = config or manager.config

        # Inbound bytes not yet consumed by read()/read_line(), oldest first
        self._received = bytearray()
        self._received_lock = threading.Lock()

        self._pin_state = False
        self._pin_lock = threading.Lock()
        self._pin_callbacks: List[Callable[[bool], None]] = []
        self._callback_lock = threading.Lock()

        self._unsubscribe_data = self._manager.subscribe_data(self.on_data)

    # --- Outbound ---

    def send(self, command: str) -> bool:
        """Send one command line.

        Never raises; the outcome is reported through the manager's status text.

        Returns:
            True if at least one byte was written.
        """
        session = self._manager.session
        if session is None or not session.has_space_available():
            logger.warning(f"Cannot send {command!r}, stream not available")
            self._manager.set_status(STREAM_UNAVAILABLE_MESSAGE)
            return False

        data = encode_command(command)
        written = session.write(data)

        if written <= 0:
            logger.error(f"Failed to send {command!r}")
            self._manager.set_status(SEND_FAILED_MESSAGE)
            return False

        if written < len(data):
            # TODO: queue the remainder and flush on WRITE_SPACE_AVAILABLE
            logger.warning(f"Short write for {command!r}: {written}/{len(data)} bytes")
        else:
            logger.debug(f"Sent {command!r}")
        self._manager.set_status(f"Sent: {command}")
        return True

    def toggle(self) -> bool:
        """Flip the pin state and send the matching command."""
        with self._pin_lock:
            self._pin_state = not self._pin_state
            state = self._pin_state
        self._notify_pin(state)
        return self.send(self._command_for(state))

    def set_pin(self, state: bool) -> bool:
        """Set the pin state and send the matching command."""
        with self._pin_lock:
            changed = self._pin_state != state
            self._pin_state = state
        if changed:
            self._notify_pin(state)
        return self.send(self._command_for(state))

    @property
    def pin_state(self) -> bool:
        with self._pin_lock:
            return self._pin_state

    def _command_for(self, state: bool) -> str:
        return self._config.on_command if state else self._config.off_command

    # --- Inbound ---

    def on_data(self, chunk: bytes) -> None:
        """Receive one inbound chunk from the session manager."""
        self._keep_received(chunk)

        try:
            text = chunk.decode("utf-8")
        except UnicodeDecodeError:
            logger.debug(f"Skipping non-UTF-8 chunk ({len(chunk)} bytes)")
            return

        text = text.strip()
        if not text:
            return

        logger.info(f"Arduino: {text}")
        self._manager.set_status(f"Arduino: {text}")

    def read(self, size: int = -1) -> bytes:
        """Take up to ``size`` received bytes (-1 for all)."""
        with self._received_lock:
            if size < 0:
                size = len(self._received)
            data = bytes(self._received[:size])
            del self._received[:size]
        return data

    def read_line(self) -> bytes:
        """Take one complete received line including its newline, or b"" if none."""
        with self._received_lock:
            end = self._received.find(b"\n")
            if end < 0:
                return b""
            line = bytes(self._received[:end + 1])
            del self._received[:end + 1]
        return line

    @property
    def buffer_size(self) -> int:
        with self._received_lock:
            return len(self._received)

    def _keep_received(self, chunk: bytes) -> None:
        limit = self._config.receive_buffer_size
        with self._received_lock:
            self._received.extend(chunk)
            excess = len(self._received) - limit
            if excess > 0:
                del self._received[:excess]
        if excess > 0:
            logger.warning(f"Receive buffer full, dropped {excess} unread bytes")

    # --- Subscriptions ---

    def subscribe_pin(self, callback: Callable[[bool], None]) -> Callable[[], None]:
        """Subscribe to pin state changes.

        Returns:
            Unsubscribe function
        """
        with self._callback_lock:
            self._pin_callbacks.append(callback)

        def unsubscribe():
            with self._callback_lock:
                if callback in self._pin_callbacks:
                    self._pin_callbacks.remove(callback)

        return unsubscribe

    def close(self) -> None:
        """Stop receiving data from the session manager."""
        self._unsubscribe_data()

    def _notify_pin(self, state: bool) -> None:
        with self._callback_lock:
            callbacks = list(self._pin_callbacks)

        for callback in callbacks:
            try:
                callback(state)
            except Exception as e:
                logger.error(f"Error in pin callback: {e}")
