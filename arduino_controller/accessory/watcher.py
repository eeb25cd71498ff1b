"""Attach/detach notifications for accessories.

Serial ports have no hotplug callback in pyserial, so the watcher polls the
provider on a background thread and diffs consecutive snapshots.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional

from ..config import POLL_INTERVAL
from ..errors import DiscoveryError
from ..models import AccessoryDescriptor, AccessoryEvent, AccessoryEventType
from .provider import AccessoryProvider

logger = logging.getLogger(__name__)


class AccessoryWatcher:
    """Publishes ATTACHED / DETACHED events for a provider's accessories.

    The first poll only records a baseline; accessories present at that
    point are not reported as attached.
    """

    def __init__(self, provider: AccessoryProvider, interval: float = POLL_INTERVAL):
        self._provider = provider
        self._interval = interval

        self._known: Optional[Dict[str, AccessoryDescriptor]] = None

        self._callbacks: List[Callable[[AccessoryEvent], None]] = []
        self._callback_lock = threading.Lock()

        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._watch_loop,
            daemon=True,
            name="AccessoryWatcher"
        )
        self._thread.start()
        logger.debug(f"Accessory watcher started (interval={self._interval}s)")

    def stop(self) -> None:
        self._stop.set()
        if self._thread and self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout=1.0)
        self._thread = None
        logger.debug("Accessory watcher stopped")

    def subscribe(self, callback: Callable[[AccessoryEvent], None]) -> Callable[[], None]:
        """Subscribe to attach/detach events.

        Returns:
            Unsubscribe function
        """
        with self._callback_lock:
            self._callbacks.append(callback)

        def unsubscribe():
            with self._callback_lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return unsubscribe

    def poll(self) -> List[AccessoryEvent]:
        """Run one scan and publish the differences since the last scan.

        Returns:
            The events published by this scan.
        """
        try:
            current = {a.key: a for a in self._provider.connected_accessories()}
        except DiscoveryError as e:
            logger.error(f"Accessory scan failed: {e}")
            return []

        if self._known is None:
            self._known = current
            return []

        events: List[AccessoryEvent] = []
        for key, accessory in self._known.items():
            if key not in current:
                events.append(AccessoryEvent(AccessoryEventType.DETACHED, accessory))
        for key, accessory in current.items():
            if key not in self._known:
                events.append(AccessoryEvent(AccessoryEventType.ATTACHED, accessory))
        self._known = current

        for event in events:
            logger.info(f"Accessory {event.type.value}: {event.accessory.name}")
            self._notify(event)
        return events

    def _watch_loop(self) -> None:
        while not self._stop.is_set():
            self.poll()
            self._stop.wait(self._interval)

    def _notify(self, event: AccessoryEvent) -> None:
        with self._callback_lock:
            callbacks = list(self._callbacks)

        for callback in callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Error in accessory callback: {e}")
