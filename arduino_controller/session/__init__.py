"""Session layer: byte-stream pairs negotiated against an accessory."""

from .base import EventSink, Session
from .serial_session import SerialSession

__all__ = ["EventSink", "Session", "SerialSession"]
