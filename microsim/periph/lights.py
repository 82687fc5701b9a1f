"""
MicroSim: Traffic Lights (port 0x02)

OUT 0x02 latches AL into the lamp register. Two three-lamp signals:

  bit 7  left red        bit 4  right red
  bit 6  left orange     bit 3  right orange
  bit 5  left green      bit 2  right green
  bits 1–0 unused

Power-on state is 0b11111100 (all six lamps lit).
"""

from typing import Callable, Dict, List

from ..config import PORT_LIGHTS, LIGHTS_POWER_ON

LAMP_BITS = {
    'left_red':     0x80,
    'left_orange':  0x40,
    'left_green':   0x20,
    'right_red':    0x10,
    'right_orange': 0x08,
    'right_green':  0x04,
}


class TrafficLights:
    """Lamp latch with change callbacks.

    lights.on_change(lambda old, new: print(f"{new:08b}"))
    """

    def __init__(self):
        self.port = PORT_LIGHTS
        self._state = LIGHTS_POWER_ON
        self._change_callbacks: List[Callable[[int, int], None]] = []

    def register(self, bus):
        bus.register_port(self.port, write_fn=self._write_port)

    def _write_port(self, port: int, value: int):
        self.update(value)

    def update(self, value: int):
        old = self._state
        self._state = value & 0xFF
        if old != self._state:
            for cb in self._change_callbacks:
                cb(old, self._state)

    @property
    def state(self) -> int:
        return self._state

    def lights(self) -> Dict[str, bool]:
        """Decode the latch into named lamp states."""
        return {name: bool(self._state & mask) for name, mask in LAMP_BITS.items()}

    def on_change(self, callback: Callable[[int, int], None]):
        self._change_callbacks.append(callback)

    def render(self) -> str:
        """One-line text view, e.g. 'L[R . G] R[. O .]'."""
        def side(prefix):
            return ' '.join(
                ch if self._state & LAMP_BITS[f'{prefix}_{color}'] else '.'
                for ch, color in (('R', 'red'), ('O', 'orange'), ('G', 'green'))
            )
        return f"L[{side('left')}] R[{side('right')}]"

    def reset(self):
        self._state = LIGHTS_POWER_ON
