"""
MicroSim: CPU Fault Types

Traps are raised inside instruction handlers; CPU.step() catches them
(and MemoryBoundsError) at its boundary, latches the FAULTED state and
re-raises a CPUFault to the caller. Any other exception escaping a
handler comes from a port, display or watchpoint callback and is
reported as DeviceError.
"""

from enum import Enum
from typing import Optional


class FaultKind(Enum):
    INVALID_OPCODE = 'InvalidOpcode'
    DIVISION_BY_ZERO = 'DivisionByZero'
    STACK_OVERFLOW = 'StackOverflow'
    STACK_UNDERFLOW = 'StackUnderflow'
    IP_OUT_OF_BOUNDS = 'InstructionPointerOutOfBounds'
    ADDRESS_OUT_OF_BOUNDS = 'AddressOutOfBounds'
    INVALID_REGISTER = 'InvalidRegister'
    FAULT_FLAG = 'FaultFlag'
    DEVICE_ERROR = 'DeviceError'


class Trap(Exception):
    """Raised by a handler when an instruction cannot complete."""
    def __init__(self, kind: FaultKind, message: str):
        self.kind = kind
        super().__init__(message)


class CPUFault(Exception):
    """The CPU stopped on a runtime fault. Only reset() clears it."""
    def __init__(self, kind: FaultKind, message: str, ip: Optional[int] = None):
        self.kind = kind
        self.ip = ip
        where = f" at IP={ip:#04x}" if ip is not None else ""
        super().__init__(f"{kind.value}: {message}{where}")
