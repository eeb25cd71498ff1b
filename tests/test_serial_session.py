"""Unit tests for SerialSession (pyserial byte streams)."""

import queue
import time
import unittest
from unittest.mock import MagicMock, PropertyMock, patch

import serial

from arduino_controller.errors import SessionCreationError, StreamError
from arduino_controller.models import AccessoryDescriptor, StreamEventType
from arduino_controller.session.serial_session import SerialSession


ACCESSORY = AccessoryDescriptor(
    name="Arduino Uno",
    manufacturer="Arduino (www.arduino.cc)",
    model="2341:0043",
    serial_number="8573531303635",
    protocols=("com.arduino.serial", "serial"),
    port="/dev/ttyACM0",
)


def idle_read(size):
    time.sleep(0.01)
    return b""


def drain(events, timeout=1.0):
    """Collect events until the queue stays empty for ``timeout``."""
    result = []
    while True:
        try:
            result.append(events.get(timeout=timeout))
        except queue.Empty:
            return result


class TestSerialSessionOpen(unittest.TestCase):
    """Tests for opening and closing the port."""

    @patch('arduino_controller.session.serial_session.serial.Serial')
    def test_open_configures_port(self, mock_serial_class):
        mock_serial = MagicMock()
        mock_serial.read.side_effect = idle_read
        mock_serial_class.return_value = mock_serial
        events = queue.Queue()

        session = SerialSession(ACCESSORY, "com.arduino.serial", session_id=7, baudrate=115200)
        session.open(events.put)

        self.assertTrue(session.is_open)
        mock_serial_class.assert_called_once_with(
            port="/dev/ttyACM0",
            baudrate=115200,
            timeout=0.1,
            write_timeout=0,
        )
        mock_serial.reset_input_buffer.assert_called_once()
        mock_serial.reset_output_buffer.assert_called_once()

        first, second = events.get(timeout=1.0), events.get(timeout=1.0)
        self.assertEqual(first.type, StreamEventType.OPENED)
        self.assertEqual(second.type, StreamEventType.WRITE_SPACE_AVAILABLE)
        self.assertEqual(first.session_id, 7)

        session.close()
        self.assertFalse(session.is_open)
        mock_serial.close.assert_called_once()

    @patch('arduino_controller.session.serial_session.serial.Serial')
    def test_open_failure_raises_session_creation_error(self, mock_serial_class):
        mock_serial_class.side_effect = serial.SerialException("Port busy")

        session = SerialSession(ACCESSORY, "com.arduino.serial")

        with self.assertRaises(SessionCreationError):
            session.open(lambda event: None)
        self.assertFalse(session.is_open)

    @patch('arduino_controller.session.serial_session.serial.Serial')
    def test_invalid_baudrate_raises_session_creation_error(self, mock_serial_class):
        mock_serial_class.side_effect = ValueError("Invalid baud rate: 12345678")

        session = SerialSession(ACCESSORY, "com.arduino.serial", baudrate=12345678)

        with self.assertRaises(SessionCreationError):
            session.open(lambda event: None)
        self.assertFalse(session.is_open)

    @patch('arduino_controller.session.serial_session.serial.Serial')
    def test_reset_failure_closes_port(self, mock_serial_class):
        mock_serial = MagicMock()
        mock_serial.reset_input_buffer.side_effect = serial.SerialException("Input/output error")
        mock_serial_class.return_value = mock_serial
        events = queue.Queue()

        session = SerialSession(ACCESSORY, "com.arduino.serial")

        with self.assertRaises(SessionCreationError):
            session.open(events.put)
        mock_serial.close.assert_called_once()
        self.assertFalse(session.is_open)
        self.assertTrue(events.empty())

    def test_open_without_port(self):
        session = SerialSession(AccessoryDescriptor(name="Ghost"), "com.arduino.serial")

        with self.assertRaises(SessionCreationError):
            session.open(lambda event: None)

    def test_close_when_never_opened(self):
        session = SerialSession(ACCESSORY, "com.arduino.serial")
        session.close()
        self.assertFalse(session.is_open)


class TestSerialSessionIO(unittest.TestCase):
    """Tests for reads and writes on an open session."""

    def setUp(self):
        self.patcher = patch('arduino_controller.session.serial_session.serial.Serial')
        mock_serial_class = self.patcher.start()
        self.mock_serial = MagicMock()
        self.mock_serial.read.side_effect = idle_read
        self.mock_serial.out_waiting = 0
        mock_serial_class.return_value = self.mock_serial

        self.events = queue.Queue()
        self.session = SerialSession(ACCESSORY, "com.arduino.serial", session_id=3)

    def tearDown(self):
        self.session.close()
        self.patcher.stop()

    def test_readable_events_carry_chunks(self):
        chunks = [b"OK\n", b"LED ON\n"]

        def read(size):
            if chunks:
                return chunks.pop(0)
            time.sleep(0.01)
            return b""

        self.mock_serial.read.side_effect = read
        self.session.open(self.events.put)

        readable = [e for e in drain(self.events, timeout=0.3) if e.type is StreamEventType.READABLE]

        self.assertEqual([e.data for e in readable], [b"OK\n", b"LED ON\n"])
        self.mock_serial.read.assert_called_with(1024)

    def test_write(self):
        self.mock_serial.write.return_value = 3
        self.session.open(self.events.put)

        self.assertEqual(self.session.write(b"ON\n"), 3)
        self.mock_serial.write.assert_called_once_with(b"ON\n")

    def test_write_when_closed(self):
        self.assertEqual(self.session.write(b"ON\n"), 0)

    def test_write_timeout_is_rejection(self):
        self.mock_serial.write.side_effect = serial.SerialTimeoutException("Write timeout")
        self.session.open(self.events.put)

        self.assertEqual(self.session.write(b"ON\n"), 0)

    def test_write_error_emits_error_event(self):
        self.mock_serial.write.side_effect = serial.SerialException("I/O error")
        self.session.open(self.events.put)

        self.assertEqual(self.session.write(b"ON\n"), 0)

        errors = [e for e in drain(self.events, timeout=0.2) if e.type is StreamEventType.ERROR]
        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0].error, StreamError)

    def test_has_space_available(self):
        self.assertFalse(self.session.has_space_available())

        self.session.open(self.events.put)
        self.assertTrue(self.session.has_space_available())

        self.mock_serial.out_waiting = 10_000
        self.assertFalse(self.session.has_space_available())

    def test_has_space_when_backend_cannot_report(self):
        self.session.open(self.events.put)
        type(self.mock_serial).out_waiting = PropertyMock(side_effect=NotImplementedError)

        self.assertTrue(self.session.has_space_available())

    @patch('arduino_controller.session.serial_session.list_ports.comports')
    def test_read_failure_with_port_gone_emits_ended(self, mock_comports):
        mock_comports.return_value = []
        self.mock_serial.read.side_effect = serial.SerialException("device disconnected")

        self.session.open(self.events.put)

        types = [e.type for e in drain(self.events, timeout=0.3)]
        self.assertIn(StreamEventType.ENDED, types)
        self.assertNotIn(StreamEventType.ERROR, types)
        self.assertFalse(self.session.is_open)

    @patch('arduino_controller.session.serial_session.list_ports.comports')
    def test_read_failure_with_port_present_emits_error(self, mock_comports):
        port = MagicMock()
        port.device = "/dev/ttyACM0"
        mock_comports.return_value = [port]
        self.mock_serial.read.side_effect = serial.SerialException("read failed")

        self.session.open(self.events.put)

        types = [e.type for e in drain(self.events, timeout=0.3)]
        self.assertIn(StreamEventType.ERROR, types)
        self.assertNotIn(StreamEventType.ENDED, types)

    def test_no_events_after_close(self):
        self.session.open(self.events.put)
        drain(self.events, timeout=0.1)

        self.session.close()
        self.session._emit(StreamEventType.READABLE, data=b"late")

        self.assertTrue(self.events.empty())

    def test_sink_exception_is_contained(self):
        def bad_sink(event):
            raise ValueError("Test exception")

        self.session.open(bad_sink)
        self.assertTrue(self.session.is_open)


if __name__ == '__main__':
    unittest.main()
