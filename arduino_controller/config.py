"""Controller configuration.

Defaults live as module constants; ``ControllerConfig`` bundles them so a
single object can be handed to the manager, channel and controller.
Settings can also be loaded from the ``[controller]`` table of a TOML file.
"""
from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Union

from .errors import ConfigError
from .models import SelectionPolicy

logger = logging.getLogger(__name__)

ARDUINO_PROTOCOL = "com.arduino.serial"
GENERIC_SERIAL_PROTOCOL = "serial"

DEFAULT_BAUDRATE = 9600
DEFAULT_READ_TIMEOUT = 0.1  # seconds
READ_CHUNK_SIZE = 1024  # bytes per readable event
RECONNECT_DELAY = 0.5  # seconds
POLL_INTERVAL = 1.0  # seconds between attach/detach scans
RECEIVE_BUFFER_SIZE = 64 * 1024  # 64KB
WRITE_HIGH_WATER_MARK = 4096  # bytes queued before output reports no space

ON_COMMAND = "ON"
OFF_COMMAND = "OFF"


@dataclass(frozen=True)
class ControllerConfig:
    """Settings shared by the session manager and command channel.

    Attributes:
        protocol: Protocol identifier the accessory must advertise.
        selection_policy: STRICT match or FALLBACK to first advertised protocol.
        baudrate: Serial baud rate (must match ``Serial.begin`` in the sketch).
        read_timeout: Serial read poll interval in seconds.
        read_chunk_size: Maximum bytes read per readable event.
        reconnect_delay: Pause between disconnect and connect in reconnect().
        retry_once: Schedule a single delayed retry after a failed connect.
        poll_interval: Seconds between accessory attach/detach scans.
        receive_buffer_size: Cap on accumulated inbound bytes.
        write_high_water_mark: Output bytes pending before writes are refused.
        usb_only: Ignore serial ports without USB identifiers.
        on_command: Command sent when the pin is switched on.
        off_command: Command sent when the pin is switched off.
    """
    protocol: str = ARDUINO_PROTOCOL
    selection_policy: SelectionPolicy = SelectionPolicy.STRICT
    baudrate: int = DEFAULT_BAUDRATE
    read_timeout: float = DEFAULT_READ_TIMEOUT
    read_chunk_size: int = READ_CHUNK_SIZE
    reconnect_delay: float = RECONNECT_DELAY
    retry_once: bool = False
    poll_interval: float = POLL_INTERVAL
    receive_buffer_size: int = RECEIVE_BUFFER_SIZE
    write_high_water_mark: int = WRITE_HIGH_WATER_MARK
    usb_only: bool = True
    on_command: str = ON_COMMAND
    off_command: str = OFF_COMMAND

    @classmethod
    def from_dict(cls, data: dict) -> ControllerConfig:
        """Build a config from a plain dict, ignoring unknown keys."""
        known = {f.name: f for f in fields(cls)}
        values = {}
        for key, value in data.items():
            if key not in known:
                logger.warning(f"Ignoring unknown config key: {key}")
                continue
            values[key] = value

        if "selection_policy" in values:
            try:
                values["selection_policy"] = SelectionPolicy(str(values["selection_policy"]).lower())
            except ValueError as e:
                raise ConfigError(f"Invalid selection_policy: {values['selection_policy']!r}") from e

        for key in ("baudrate", "read_chunk_size", "receive_buffer_size", "write_high_water_mark"):
            if key in values:
                values[key] = _positive_int(key, values[key])

        # Intervals of the reader and watcher loops
        for key in ("read_timeout", "poll_interval"):
            if key in values:
                values[key] = _float(key, values[key], allow_zero=False)

        if "reconnect_delay" in values:
            values["reconnect_delay"] = _float("reconnect_delay", values["reconnect_delay"])

        return replace(cls(), **values)


def _positive_int(key: str, value) -> int:
    try:
        result = int(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{key} must be an integer, got {value!r}") from e
    if result <= 0:
        raise ConfigError(f"{key} must be positive, got {result}")
    return result


def _float(key: str, value, allow_zero: bool = True) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{key} must be a number, got {value!r}") from e
    if result < 0 or (result == 0 and not allow_zero):
        qualifier = "not be negative" if allow_zero else "be positive"
        raise ConfigError(f"{key} must {qualifier}, got {result}")
    return result


def load_config(path: Union[str, Path] = "config.toml") -> ControllerConfig:
    """Load controller settings from a TOML file.

    Only the ``[controller]`` table is read. A missing file yields the
    defaults; a malformed file raises ConfigError.
    """
    path = Path(path)
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError:
        logger.warning(f"Config file {path} not found, using defaults")
        return ControllerConfig()
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Failed to parse {path}: {e}") from e

    return ControllerConfig.from_dict(data.get("controller", {}))
