"""
MicroSim: Heater with Thermometer (port 0x03)

OUT 0x03: bit 7 of AL switches the burner on (1) or off (0).
IN  0x03: status byte
  bit 7  burner on
  bit 1  temperature has reached 20°
  bit 0  temperature has reached 15°

The thermometer is a level on a 130 (cold) .. 15 (hot) scale; smaller is
warmer. Each tick moves it one unit toward hot while the burner is on,
toward cold otherwise. The 15° and 20° marks sit at 105 and 81, and each
status bit switches with a hysteresis of 3 units either side of its mark.

tick() advances the model by hand; start() runs it on a daemon thread
every HEATER_TICK_SECONDS.
"""

import logging
import threading
from typing import Optional

from ..config import (
    PORT_HEATER, HEATER_TEMP_COLD, HEATER_TEMP_HOT,
    HEATER_THRESHOLD_15, HEATER_THRESHOLD_20, HEATER_HYSTERESIS,
    HEATER_TICK_SECONDS,
)

log = logging.getLogger(__name__)

STATUS_BURNER = 0x80
STATUS_REACHED_20 = 0x02
STATUS_REACHED_15 = 0x01


class Heater:
    """Burner + thermometer model."""

    def __init__(self):
        self.port = PORT_HEATER
        self.level = HEATER_TEMP_COLD
        self._status = 0
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()

    def register(self, bus):
        bus.register_port(self.port, read_fn=self._read_port, write_fn=self._write_port)

    def _read_port(self, port: int) -> int:
        return self.status

    def _write_port(self, port: int, value: int):
        self.set_burner(bool(value & 0x80))

    # --- State ---

    @property
    def status(self) -> int:
        with self._lock:
            return self._status

    @property
    def burner(self) -> bool:
        return bool(self.status & STATUS_BURNER)

    def set_burner(self, on: bool):
        with self._lock:
            self._status = (self._status & 0x7F) | (STATUS_BURNER if on else 0)
        log.debug("Burner %s", "on" if on else "off")

    def tick(self, count: int = 1):
        """Advance the thermometer by count steps."""
        for _ in range(count):
            with self._lock:
                if self._status & STATUS_BURNER:
                    if self.level > HEATER_TEMP_HOT:
                        self.level -= 1
                elif self.level < HEATER_TEMP_COLD:
                    self.level += 1
                self._status = _threshold(self._status, self.level,
                                          HEATER_THRESHOLD_15, STATUS_REACHED_15)
                self._status = _threshold(self._status, self.level,
                                          HEATER_THRESHOLD_20, STATUS_REACHED_20)

    # --- Background thermometer ---

    def start(self, interval: float = HEATER_TICK_SECONDS):
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, args=(interval,),
                                        name="heater-thermometer", daemon=True)
        self._thread.start()

    def stop(self):
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def _run(self, interval: float):
        while not self._stop.wait(interval):
            self.tick()

    def reset(self):
        with self._lock:
            self.level = HEATER_TEMP_COLD
            self._status = 0


def _threshold(status: int, level: int, mark: int, bit: int) -> int:
    if level < mark - HEATER_HYSTERESIS:
        status |= bit
    if level > mark + HEATER_HYSTERESIS:
        status &= ~bit
    return status
