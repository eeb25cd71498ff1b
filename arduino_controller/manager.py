"""Device session manager.

Owns discovery, the single open session and the connection state. Session
reader threads and the accessory watcher only enqueue events; one consumer
(process_events() or the dispatcher thread started by start()) applies them.
"""
from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import replace
from typing import Callable, List, Optional

from .accessory import AccessoryProvider, AccessoryWatcher, SerialAccessoryProvider, select_accessory
from .config import ControllerConfig
from .errors import AccessoryNotFoundError, DiscoveryError, SessionCreationError
from .models import (
    AccessoryEvent,
    AccessoryEventType,
    ConnectionState,
    Event,
    StreamEvent,
    StreamEventType,
)
from .session import Session

logger = logging.getLogger(__name__)

EVENT_QUEUE_SIZE = 1000
NO_ACCESSORIES_MESSAGE = "No accessories found. Please connect your Arduino via USB."


class DeviceSessionManager:
    """Discovers an accessory, opens a session and tracks its liveness.

    Every failure is reported through ``status_message`` and the log; no
    method raises for device or stream problems.

    Example:
        >>> manager = DeviceSessionManager()
        >>> manager.subscribe_state(lambda s: print(s.status_message))
        >>> manager.start()       # watch attach/detach, dispatch events, connect
        >>> manager.is_connected
        True
        >>> manager.close()
    """

    def __init__(self,
                 provider: Optional[AccessoryProvider] = None,
                 config: Optional[ControllerConfig] = None,
                 watcher: Optional[AccessoryWatcher] = None):
        """Initialize manager.

        Args:
            provider: Accessory provider (default: USB serial ports)
            config: Controller settings (default: ControllerConfig())
            watcher: Attach/detach watcher (default: polls ``provider``)
        """
        self._config = config or ControllerConfig()
        self._provider = provider or SerialAccessoryProvider.from_config(self._config)
        self._watcher = watcher or AccessoryWatcher(self._provider, interval=self._config.poll_interval)

        self._session: Optional[Session] = None
        self._session_seq = 0
        self._state = ConnectionState.disconnected()
        self._lock = threading.RLock()

        self._state_callbacks: List[Callable[[ConnectionState], None]] = []
        self._data_callbacks: List[Callable[[bytes], None]] = []
        self._callback_lock = threading.Lock()

        # Event channel from session/watcher threads to the consumer
        self._events: queue.Queue[Optional[Event]] = queue.Queue(maxsize=EVENT_QUEUE_SIZE)
        self._running = False
        self._dispatcher: Optional[threading.Thread] = None
        self._unsubscribe_watcher: Optional[Callable[[], None]] = None

        self._retry_timer: Optional[threading.Timer] = None
        # Bumped by every teardown; a retry from an older generation is void
        self._retry_generation = 0

    # --- Lifecycle ---

    def start(self) -> bool:
        """Subscribe to attach/detach notifications, start dispatching and connect.

        Returns:
            True if the initial connect succeeded.
        """
        if self._unsubscribe_watcher is None:
            self._unsubscribe_watcher = self._watcher.subscribe(self._post)
            # Baseline scan so accessories already present are not reported as attached
            self._watcher.poll()
            self._watcher.start()

        if not self._running:
            self._running = True
            self._dispatcher = threading.Thread(
                target=self._dispatch_loop,
                daemon=True,
                name="SessionEventDispatcher"
            )
            self._dispatcher.start()

        return self.connect()

    def close(self) -> None:
        """Unsubscribe from notifications, stop threads and disconnect."""
        if self._unsubscribe_watcher is not None:
            self._unsubscribe_watcher()
            self._unsubscribe_watcher = None
            self._watcher.stop()

        if self._running:
            self._running = False
            self._events.put(None)
            if self._dispatcher and self._dispatcher.is_alive() \
                    and self._dispatcher is not threading.current_thread():
                self._dispatcher.join(timeout=1.0)
            self._dispatcher = None

        self.disconnect()
        self._drain()

    # --- Connection Management ---

    def connect(self) -> bool:
        """Find a matching accessory and open a session against it.

        Returns:
            True if connected (or already connected), False otherwise.
        """
        return self._connect(allow_retry=True)

    def disconnect(self, status: str = "Disconnected") -> None:
        """Close the session (if any) and mark the connection down.

        Also cancels a pending retry, including one whose timer already fired.
        """
        self._teardown(status)

    def reconnect(self) -> bool:
        """Disconnect, wait ``reconnect_delay`` for the platform to settle, connect."""
        self.disconnect()
        if self._config.reconnect_delay > 0:
            time.sleep(self._config.reconnect_delay)
        return self.connect()

    def _connect(self, allow_retry: bool, generation: Optional[int] = None) -> bool:
        with self._lock:
            if generation is not None and generation != self._retry_generation:
                logger.debug("Retry superseded by disconnect")
                return False
            if self.is_connected:
                logger.warning("Already connected")
                return True

            state = self._open_session()
            self._state = state
            generation = self._retry_generation

        self._notify_state(state)
        if state.connected:
            return True
        if allow_retry and self._config.retry_once:
            self._schedule_retry(generation)
        return False

    def _open_session(self) -> ConnectionState:
        """Discover, select and open. Caller holds ``_lock``."""
        try:
            accessories = self._provider.connected_accessories()
        except DiscoveryError as e:
            logger.error(f"Accessory discovery failed: {e}")
            return ConnectionState.disconnected(f"Accessory discovery failed: {e}")

        try:
            accessory, protocol = select_accessory(
                accessories, self._config.protocol, self._config.selection_policy
            )
        except AccessoryNotFoundError as e:
            if e.accessories:
                names = ", ".join(a.name for a in e.accessories)
                message = f"Arduino not found. Available accessories: {names}"
            else:
                message = NO_ACCESSORIES_MESSAGE
            logger.warning(message)
            return ConnectionState.disconnected(message)

        self._session_seq += 1
        try:
            session = self._provider.open_session(accessory, protocol, session_id=self._session_seq)
            session.open(self._post)
        except SessionCreationError as e:
            logger.error(f"Failed to create session with {accessory.name}: {e}")
            return ConnectionState.disconnected("Failed to create session")
        except Exception as e:
            logger.error(f"Unexpected error opening session with {accessory.name}: {e}")
            return ConnectionState.disconnected("Failed to create session")

        self._session = session
        logger.info(f"Connected to {accessory.name} ({protocol})")
        return ConnectionState(
            connected=True,
            status_message=f"Connected to {accessory.name}",
            accessory=accessory,
            protocol=protocol,
        )

    def _teardown(self, status: str, expected: Optional[Session] = None) -> None:
        """Drop the session and publish a disconnected state.

        With ``expected`` set, nothing happens unless it is still the
        current session.
        """
        with self._lock:
            session = self._session
            if expected is not None and session is not expected:
                return
            self._session = None
            self._retry_generation += 1
            timer, self._retry_timer = self._retry_timer, None
            state = ConnectionState.disconnected(status)
            self._state = state

        if timer is not None:
            timer.cancel()
        if session is not None:
            session.close()
            logger.info(f"Disconnected from {session.accessory.name}")
        self._notify_state(state)

    def _schedule_retry(self, generation: int) -> None:
        timer = threading.Timer(self._config.reconnect_delay, self._retry, args=(generation,))
        timer.daemon = True
        with self._lock:
            if generation != self._retry_generation:
                return
            previous, self._retry_timer = self._retry_timer, timer
        if previous is not None:
            previous.cancel()
        timer.start()
        logger.info(f"Retrying connect in {self._config.reconnect_delay}s")

    def _retry(self, generation: int) -> None:
        with self._lock:
            if self._retry_timer is threading.current_thread():
                self._retry_timer = None
        self._connect(allow_retry=False, generation=generation)

    # --- Event Handling ---

    def process_events(self) -> int:
        """Handle all queued events synchronously.

        Useful for testing or when the dispatcher thread is not running.

        Returns:
            Number of events handled.
        """
        handled = 0
        while True:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                break
            if event is not None:
                self._handle_event(event)
                handled += 1
        return handled

    def _post(self, event: Event) -> None:
        """Enqueue an event from any thread."""
        try:
            self._events.put(event, block=False)
        except queue.Full:
            # Drop oldest to make room
            try:
                self._events.get_nowait()
                self._events.put(event, block=False)
                logger.warning("Event queue full, dropped oldest event")
            except (queue.Empty, queue.Full):
                pass

    def _drain(self) -> None:
        while True:
            try:
                self._events.get_nowait()
            except queue.Empty:
                break

    def _dispatch_loop(self) -> None:
        logger.debug("Event dispatcher started")
        while self._running:
            try:
                event = self._events.get(timeout=0.1)
            except queue.Empty:
                continue
            if event is None:
                continue
            try:
                self._handle_event(event)
            except Exception as e:
                logger.error(f"Error handling {event}: {e}")
        logger.debug("Event dispatcher exiting")

    def _handle_event(self, event: Event) -> None:
        if isinstance(event, AccessoryEvent):
            self._handle_accessory_event(event)
        else:
            self._handle_stream_event(event)

    def _handle_stream_event(self, event: StreamEvent) -> None:
        with self._lock:
            session = self._session
        if session is None or event.session_id != session.session_id:
            logger.debug(f"Dropping {event.type.value} event from stale session {event.session_id}")
            return

        if event.type is StreamEventType.OPENED:
            logger.debug(f"Streams opened for {session.accessory.name}")
        elif event.type is StreamEventType.WRITE_SPACE_AVAILABLE:
            logger.debug("Output stream has space available")
        elif event.type is StreamEventType.READABLE:
            self._notify_data(event.data)
        elif event.type is StreamEventType.ERROR:
            message = f"Connection error: {event.error}" if event.error else "Connection error"
            logger.error(message)
            self._teardown(message, expected=session)
        elif event.type is StreamEventType.ENDED:
            logger.info("Stream ended")
            self._teardown("Stream ended", expected=session)

    def _handle_accessory_event(self, event: AccessoryEvent) -> None:
        if event.type is AccessoryEventType.ATTACHED:
            if self.is_connected:
                logger.debug(f"Ignoring attach of {event.accessory.name}, already connected")
                return
            self.set_status("Accessory connected")
            self.connect()
            return

        with self._lock:
            session = self._session
            if session is None or session.accessory.key != event.accessory.key:
                logger.debug(f"Ignoring detach of {event.accessory.name}")
                return
        self._teardown("Accessory disconnected", expected=session)

    # --- State Interface ---

    @property
    def config(self) -> ControllerConfig:
        return self._config

    @property
    def state(self) -> ConnectionState:
        with self._lock:
            return self._state

    @property
    def is_connected(self) -> bool:
        with self._lock:
            return self._state.connected and self._session is not None

    @property
    def status_message(self) -> Optional[str]:
        return self.state.status_message

    @property
    def session(self) -> Optional[Session]:
        with self._lock:
            return self._session

    @property
    def pending_events(self) -> int:
        return self._events.qsize()

    def set_status(self, message: str) -> None:
        """Replace the status text without touching the connection flag."""
        with self._lock:
            state = replace(self._state, status_message=message, timestamp=time.time())
            self._state = state
        self._notify_state(state)

    def subscribe_state(self, callback: Callable[[ConnectionState], None]) -> Callable[[], None]:
        """Subscribe to connection state snapshots.

        The callback is invoked immediately with the current state.

        Returns:
            Unsubscribe function
        """
        with self._callback_lock:
            self._state_callbacks.append(callback)

        try:
            callback(self.state)
        except Exception as e:
            logger.error(f"Error in state callback: {e}")

        def unsubscribe():
            with self._callback_lock:
                if callback in self._state_callbacks:
                    self._state_callbacks.remove(callback)

        return unsubscribe

    def subscribe_data(self, callback: Callable[[bytes], None]) -> Callable[[], None]:
        """Subscribe to raw inbound byte chunks.

        Returns:
            Unsubscribe function
        """
        with self._callback_lock:
            self._data_callbacks.append(callback)

        def unsubscribe():
            with self._callback_lock:
                if callback in self._data_callbacks:
                    self._data_callbacks.remove(callback)

        return unsubscribe

    def _notify_state(self, state: ConnectionState) -> None:
        with self._callback_lock:
            callbacks = list(self._state_callbacks)

        for callback in callbacks:
            try:
                callback(state)
            except Exception as e:
                logger.error(f"Error in state callback: {e}")

    def _notify_data(self, data: bytes) -> None:
        with self._callback_lock:
            callbacks = list(self._data_callbacks)

        if not callbacks:
            logger.debug(f"Received {len(data)} bytes with no subscribers")

        for callback in callbacks:
            try:
                callback(data)
            except Exception as e:
                logger.error(f"Error in data callback: {e}")
