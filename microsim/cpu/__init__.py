"""CPU: register file, ALU and the fetch/decode/execute engine."""

from .core import CPU, CPUState
from .faults import CPUFault, FaultKind
from .regs import Registers

__all__ = ['CPU', 'CPUState', 'CPUFault', 'FaultKind', 'Registers']
