"""Time sources. Fix timestamps and clock readings are epoch milliseconds."""

import time


class SystemClock:

    def now_ms(self):
        return time.time() * 1000.0


class ReplayClock:
    """Manually driven clock so recorded sessions replay with their own timestamps."""

    def __init__(self, start_ms=0.0):
        self._value = float(start_ms)

    def set(self, value_ms):
        self._value = float(value_ms)

    def advance(self, delta_ms):
        self._value += delta_ms

    def now_ms(self):
        return self._value
