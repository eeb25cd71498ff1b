#!/usr/bin/env python3
"""
Interactive Arduino pin toggle script.

Connects to the first attached Arduino, toggles the pin a few times and
prints whatever the sketch echoes back.
"""

import sys
import time
import logging
from pathlib import Path

# Add package to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from arduino_controller import ArduinoController, ControllerConfig, SelectionPolicy

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)


def main():
    config = ControllerConfig(selection_policy=SelectionPolicy.FALLBACK)
    arduino = ArduinoController(config=config)
    arduino.subscribe_state(
        lambda s: print(f"[{'CONNECTED' if s.connected else 'DISCONNECTED'}] "
                        f"pin={'HIGH' if s.pin_state else 'LOW'} | {s.status_message}")
    )

    print("Connecting (auto-detect)...")
    if not arduino.start():
        print("Failed to connect! Is the Arduino plugged in?")
        arduino.close()
        return

    try:
        for _ in range(6):
            arduino.toggle()
            time.sleep(1.0)
            line = arduino.read_line()
            while line:
                print(f"Received: {line!r}")
                line = arduino.read_line()
    except KeyboardInterrupt:
        print("\nInterrupted by user.")
    finally:
        print("Disconnecting...")
        arduino.close()
        print("Done.")


if __name__ == "__main__":
    main()
