"""Unit tests for immutable data models."""

import unittest
from dataclasses import FrozenInstanceError

from arduino_controller.models import AccessoryDescriptor, ConnectionState


class TestAccessoryDescriptor(unittest.TestCase):

    def test_key_prefers_serial_number(self):
        accessory = AccessoryDescriptor(name="Uno", serial_number="SN1", port="/dev/ttyACM0")
        self.assertEqual(accessory.key, "SN1")

    def test_key_falls_back_to_port_then_name(self):
        self.assertEqual(AccessoryDescriptor(name="Uno", port="/dev/ttyACM0").key, "/dev/ttyACM0")
        self.assertEqual(AccessoryDescriptor(name="Uno").key, "Uno")

    def test_supports(self):
        accessory = AccessoryDescriptor(name="Uno", protocols=("com.arduino.serial",))
        self.assertTrue(accessory.supports("com.arduino.serial"))
        self.assertFalse(accessory.supports("serial"))

    def test_immutable(self):
        accessory = AccessoryDescriptor(name="Uno")
        with self.assertRaises(FrozenInstanceError):
            accessory.name = "Mega"


class TestConnectionState(unittest.TestCase):

    def test_default_is_disconnected(self):
        state = ConnectionState()
        self.assertFalse(state.connected)
        self.assertIsNone(state.status_message)
        self.assertIsNone(state.accessory)

    def test_disconnected_factory(self):
        state = ConnectionState.disconnected("Stream ended")
        self.assertFalse(state.connected)
        self.assertEqual(state.status_message, "Stream ended")
        self.assertGreater(state.timestamp, 0)


if __name__ == '__main__':
    unittest.main()
