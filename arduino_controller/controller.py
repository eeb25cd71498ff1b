"""High-level Arduino pin controller.

Facade over DeviceSessionManager and CommandChannel exposing the handful of
fields and actions a UI needs. State is published as immutable
ControllerState snapshots to subscribers instead of shared mutable fields.
"""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, List, Optional, Union

from .accessory import AccessoryProvider
from .channel import CommandChannel
from .config import ControllerConfig, load_config
from .manager import DeviceSessionManager
from .models import ConnectionState, ControllerState

logger = logging.getLogger(__name__)


class ArduinoController:
    """Connect to an Arduino accessory and toggle its pin.

    Example:
        >>> with ArduinoController() as arduino:
        ...     arduino.subscribe_state(print)
        ...     arduino.toggle()    # sends "ON\\n"
        ...     arduino.toggle()    # sends "OFF\\n"
    """

    def __init__(self,
                 provider: Optional[AccessoryProvider] = None,
                 config: Optional[ControllerConfig] = None,
                 manager: Optional[DeviceSessionManager] = None):
        """Initialize controller.

        Args:
            provider: Accessory provider (default: USB serial ports)
            config: Controller settings
            manager: Existing session manager, or None to create one
        """
        self._config = config or (manager.config if manager else ControllerConfig())
        self._manager = manager or DeviceSessionManager(provider=provider, config=self._config)
        self._channel = CommandChannel(self._manager, self._config)

        self._subscribers: List[Callable[[ControllerState], None]] = []
        self._subscriber_lock = threading.Lock()

        self._unsubscribers = [
            self._manager.subscribe_state(self._on_connection_state),
            self._channel.subscribe_pin(self._on_pin_state),
        ]

    @classmethod
    def from_config_file(cls,
                         path: Union[str, Path],
                         provider: Optional[AccessoryProvider] = None) -> ArduinoController:
        """Create a controller from the ``[controller]`` table of a TOML file."""
        return cls(provider=provider, config=load_config(path))

    # --- Lifecycle ---

    def start(self) -> bool:
        """Watch for attach/detach, dispatch events in the background and connect."""
        return self._manager.start()

    def close(self) -> None:
        """Stop watching, disconnect and detach all internal subscriptions."""
        self._manager.close()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self._channel.close()

    def __enter__(self) -> ArduinoController:
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # --- Actions ---

    def connect(self) -> bool:
        return self._manager.connect()

    def disconnect(self) -> None:
        self._manager.disconnect()

    def reconnect(self) -> bool:
        return self._manager.reconnect()

    def toggle(self) -> bool:
        return self._channel.toggle()

    def set_pin(self, state: bool) -> bool:
        return self._channel.set_pin(state)

    def send_command(self, command: str) -> bool:
        return self._channel.send(command)

    def process_events(self) -> int:
        """Handle queued session/accessory events on the calling thread."""
        return self._manager.process_events()

    def read_line(self) -> bytes:
        return self._channel.read_line()

    # --- State ---

    @property
    def is_connected(self) -> bool:
        return self._manager.is_connected

    @property
    def status_message(self) -> Optional[str]:
        return self._manager.status_message

    @property
    def pin_state(self) -> bool:
        return self._channel.pin_state

    @property
    def state(self) -> ControllerState:
        return self._snapshot(self._manager.state)

    @property
    def manager(self) -> DeviceSessionManager:
        return self._manager

    @property
    def channel(self) -> CommandChannel:
        return self._channel

    def subscribe_state(self, callback: Callable[[ControllerState], None]) -> Callable[[], None]:
        """Subscribe to controller state snapshots.

        The callback is invoked immediately with the current state.

        Returns:
            Unsubscribe function
        """
        with self._subscriber_lock:
            self._subscribers.append(callback)

        try:
            callback(self.state)
        except Exception as e:
            logger.error(f"Error in controller state callback: {e}")

        def unsubscribe():
            with self._subscriber_lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def _snapshot(self, connection: ConnectionState) -> ControllerState:
        return ControllerState(
            connected=connection.connected,
            status_message=connection.status_message,
            pin_state=self._channel.pin_state,
            accessory_name=connection.accessory.name if connection.accessory else None,
        )

    def _on_connection_state(self, connection: ConnectionState) -> None:
        self._notify(self._snapshot(connection))

    def _on_pin_state(self, pin_state: bool) -> None:
        self._notify(self.state)

    def _notify(self, state: ControllerState) -> None:
        with self._subscriber_lock:
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(state)
            except Exception as e:
                logger.error(f"Error in controller state callback: {e}")
