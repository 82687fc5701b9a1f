"""
MicroSim: I/O Port Bus

IN/OUT instructions address 256 ports through this bus. Devices attach
handlers for the ports they own; a port with no handler reads as 0 and
ignores writes.

Port map (default_bus):
  0x01  Keyboard       IN   blocks until a key is pressed
  0x02  Traffic lights OUT  lamp latch
  0x03  Heater         IN   status byte / OUT burner control
"""

from typing import Callable, Dict, List, Optional
import logging

log = logging.getLogger(__name__)

ReadHandler = Callable[[int], int]
WriteHandler = Callable[[int, int], None]


class PortBus:
    """Port number → device handler routing.

    Port change callbacks let a test harness watch OUT traffic:
      bus.on_write(0x02, lambda port, value: print(f"lights: {value:08b}"))
    """

    def __init__(self):
        self._read_handlers: Dict[int, ReadHandler] = {}
        self._write_handlers: Dict[int, WriteHandler] = {}
        self._write_callbacks: Dict[int, List[WriteHandler]] = {}
        # Standard devices, set by default_bus()
        self.keyboard = None
        self.lights = None
        self.heater = None

    def register_port(self, port: int, read_fn: Optional[ReadHandler] = None,
                      write_fn: Optional[WriteHandler] = None):
        """Attach read_fn(port) -> int and/or write_fn(port, value) to a port."""
        if not 0 <= port <= 0xFF:
            raise ValueError(f"Port out of range: {port}")
        if read_fn is not None:
            self._read_handlers[port] = read_fn
        if write_fn is not None:
            self._write_handlers[port] = write_fn

    def on_write(self, port: int, callback: WriteHandler):
        """callback(port, value) fires after every OUT to port."""
        self._write_callbacks.setdefault(port, []).append(callback)

    def read(self, port: int) -> int:
        handler = self._read_handlers.get(port)
        if handler is None:
            return 0
        return handler(port) & 0xFF

    def write(self, port: int, value: int):
        value &= 0xFF
        handler = self._write_handlers.get(port)
        if handler is not None:
            handler(port, value)
        else:
            log.debug("OUT to unbound port %#04x ignored", port)
        for cb in self._write_callbacks.get(port, ()):
            cb(port, value)

    def bound_ports(self) -> List[int]:
        return sorted(set(self._read_handlers) | set(self._write_handlers))


def default_bus(keyboard=None, lights=None, heater=None) -> PortBus:
    """Bus with the standard keyboard, traffic lights and heater attached.

    Devices not supplied are created fresh. The devices are reachable as
    bus.keyboard, bus.lights and bus.heater.
    """
    from .keyboard import Keyboard
    from .lights import TrafficLights
    from .heater import Heater

    bus = PortBus()
    bus.keyboard = keyboard if keyboard is not None else Keyboard()
    bus.lights = lights if lights is not None else TrafficLights()
    bus.heater = heater if heater is not None else Heater()
    bus.keyboard.register(bus)
    bus.lights.register(bus)
    bus.heater.register(bus)
    return bus
