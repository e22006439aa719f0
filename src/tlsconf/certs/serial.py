"""Process-wide certificate serial number source.

Serial numbers are wall-clock milliseconds. Each call waits for the clock to
tick past the millisecond it started in, so two certificates forged in the
same millisecond never share a serial number.
"""

import threading
import time


def _now_millis() -> int:
    return time.time_ns() // 1_000_000


class SerialNumberSource:
    """Hands out strictly increasing, never repeated serial numbers."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._last = 0

    def next(self) -> int:
        """Return the next serial number.

        Blocks until the wall clock advances to a new millisecond.
        """
        with self._lock:
            current = _now_millis()
            while True:
                serial = _now_millis()
                if serial != current:
                    break
            # the wall clock may step backwards
            if serial <= self._last:
                serial = self._last + 1
            self._last = serial
            return serial


# Singleton instance
serial_numbers = SerialNumberSource()
