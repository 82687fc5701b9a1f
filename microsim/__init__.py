"""
MicroSim: Assembler + Emulator for an 8-bit Teaching CPU
=========================================================
A two-pass assembler and a byte-level emulator for a small 8-bit
machine: four general registers (AL, BL, CL, DL), a stack pointer, an
instruction pointer, five status flags, 256 bytes of memory with a
memory-mapped text display, and three port-mapped devices.

Architecture:
    ┌──────────┐    ┌───────────┐    ┌──────────┐    ┌──────────┐
    │  Source  │───>│ Assembler │───>│  Memory  │<──>│   CPU    │<──> PortBus
    │  (.asm)  │    │ (2 passes)│    │ (256 B)  │    │  step()  │     (devices)
    └──────────┘    └───────────┘    └──────────┘    └──────────┘

    - opcodes.py:    Instruction Set Table shared by encoder and decoder
    - assembler.py:  Source text → machine code + address→line map
    - mem/memory.py: Flat memory, display region 0xC0–0xFF
    - cpu/:          Registers, ALU flag rules, fetch/decode/execute
    - periph/:       Keyboard, traffic lights, heater, ASCII display
    - sim.py:        Run loop with step mode, breakpoints and stop
    - disasm.py:     Machine code → assembly text
"""

__version__ = "1.0.0"

from .assembler import Assembler, AssemblyError, AssemblyErrorKind, AssemblyResult, assemble
from .cpu import CPU, CPUState, CPUFault, FaultKind
from .mem import Memory, MemoryBoundsError
from .periph import PortBus, default_bus, InputAborted
from .sim import Simulator, StopReason


def run_source(source: str, *, max_steps: int = 100_000) -> Simulator:
    """Assemble source, run it on a fresh Simulator and return the machine.

    The machine is returned in whatever state it stopped in; check
    sim.last_reason for why.
    """
    sim = Simulator()
    sim.assemble(source)
    sim.run(max_steps=max_steps)
    return sim
