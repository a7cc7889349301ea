#!/usr/bin/env python3
"""
Example usage of the estim package

This script demonstrates:
- Connecting and handshaking only if needed
- Overriding the front-panel dials
- Writing raw register values
- Queuing a ramp, a pulse and a callback on a knob
- Proper cleanup
"""

import sys
import time

# Add src to path so we can import estim
sys.path.insert(0, "src")

from estim import Register, Setting, get_device
from estim.scheduler import KnobQueue


def main():
    """Run example knob sequence"""

    port = sys.argv[1] if len(sys.argv) > 1 else "/dev/ttyUSB0"

    print("ET232 - Example Usage")
    print("=" * 60)

    with get_device(port) as et232:
        # If this doesn't connect right away, turn the device off and on again.
        print("Performing handshake...")
        et232.handshake_if_needed()
        print("Connected!")

        # Override the A, B, and MA dials.
        et232.write_setting(Register.ANALOG_OVERRIDE, Setting.OVERRIDE_ALL)

        # Set A and B to 80 (out of 255).
        et232.write(Register.POT_A, 80)
        et232.write(Register.POT_B, 80)

        time.sleep(1)

        # A knob controls a register with a value between 0.0 and 1.0, and a
        # KnobQueue schedules changes to it without blocking.
        a = KnobQueue(et232.new_knob(Register.POT_A))

        # Increase A from 20% to 40% over 3 seconds, hold 50% for 1 second,
        # log a message, then set A to 0%.
        a.ramp(0.2, 0.4, 3.0)
        a.pulse(0.5, 1.0)
        a.callback(lambda: print("Setting A to 0!"))
        a.pulse(0.0, 1.0)

        # Block until all queued operations are done.
        a.wait_done()

        # Disable mode override so the device can be switched off.
        et232.write_setting(Register.MODE_OVERRIDE, Setting.OVERRIDE_OFF)

        print("\n" + "=" * 60)
        print("Example complete!")


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
    except Exception as e:
        print(f"\nError: {e}")
        sys.exit(1)
