# MicroSim peripherals: devices reached through IN/OUT ports plus the
# memory-mapped ASCII display. Devices attach to a PortBus with
# register(bus); none of them are process-wide singletons.

from .ports import PortBus, default_bus
from .keyboard import Keyboard, InputAborted
from .lights import TrafficLights
from .heater import Heater
from .display import AsciiDisplay

__all__ = [
    'PortBus', 'default_bus', 'Keyboard', 'InputAborted',
    'TrafficLights', 'Heater', 'AsciiDisplay',
]
