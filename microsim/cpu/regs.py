"""
MicroSim: CPU Register Set + Status Register

Register model:
  AL, BL, CL, DL   8-bit general purpose (operand index 0–3)
  SP               8-bit stack pointer, grows downward from 0xBF
  IP               instruction pointer
  SR               status register:
                   bit 4: S (Sign: bit 7 of result)
                   bit 3: Z (Zero: result == 0)
                   bit 2: O (Overflow: signed overflow)
                   bit 1: C (Carry: unsigned carry / borrow)
                   bit 0: F (Fault: CPU stopped on a fault)

Register-indirect operands use index 4 for SP, so operand bytes address
AL=0, BL=1, CL=2, DL=3, SP=4.
"""

from typing import List

from ..config import STACK_TOP, STACK_LIMIT
from .faults import FaultKind, Trap

# SR bit masks
SR_F = 0x01
SR_C = 0x02
SR_O = 0x04
SR_Z = 0x08
SR_S = 0x10

SR_MASK = SR_F | SR_C | SR_O | SR_Z | SR_S

REGISTER_NAMES = ('AL', 'BL', 'CL', 'DL')
SP_INDEX = 4


class Registers:
    """Register file and status flags."""

    __slots__ = ('gpr', 'SP', 'IP', 'SR')

    def __init__(self):
        self.gpr: List[int] = [0, 0, 0, 0]  # AL, BL, CL, DL
        self.SP: int = STACK_TOP
        self.IP: int = 0
        self.SR: int = 0

    def reset(self):
        self.gpr = [0, 0, 0, 0]
        self.SP = STACK_TOP
        self.IP = 0
        self.SR = 0

    # --- General registers by operand index ---

    def get(self, index: int) -> int:
        if not 0 <= index < 4:
            raise Trap(FaultKind.INVALID_REGISTER, f"Invalid register index {index}")
        return self.gpr[index]

    def set(self, index: int, value: int):
        if not 0 <= index < 4:
            raise Trap(FaultKind.INVALID_REGISTER, f"Invalid register index {index}")
        self.gpr[index] = value & 0xFF

    @property
    def AL(self) -> int:
        return self.gpr[0]

    @AL.setter
    def AL(self, value: int):
        self.gpr[0] = value & 0xFF

    @property
    def BL(self) -> int:
        return self.gpr[1]

    @BL.setter
    def BL(self, value: int):
        self.gpr[1] = value & 0xFF

    @property
    def CL(self) -> int:
        return self.gpr[2]

    @CL.setter
    def CL(self, value: int):
        self.gpr[2] = value & 0xFF

    @property
    def DL(self) -> int:
        return self.gpr[3]

    @DL.setter
    def DL(self, value: int):
        self.gpr[3] = value & 0xFF

    # --- SR flag access ---

    def set_CZOS(self, flags: int):
        """Set C, O, Z, S from flags. Preserves F."""
        self.SR = (self.SR & SR_F) | (flags & (SR_C | SR_O | SR_Z | SR_S))

    def set_ZOS(self, flags: int):
        """Set O, Z, S from flags. Preserves F and C."""
        self.SR = (self.SR & (SR_F | SR_C)) | (flags & (SR_O | SR_Z | SR_S))

    def set_status(self, value: int):
        """Replace the whole status byte (POPF)."""
        self.SR = value & SR_MASK

    def _flag(self, mask: int, on: bool):
        if on:
            self.SR |= mask
        else:
            self.SR &= ~mask & 0xFF

    @property
    def carry(self) -> bool:
        return bool(self.SR & SR_C)

    @property
    def zero(self) -> bool:
        return bool(self.SR & SR_Z)

    @property
    def overflow(self) -> bool:
        return bool(self.SR & SR_O)

    @property
    def sign(self) -> bool:
        return bool(self.SR & SR_S)

    @property
    def fault(self) -> bool:
        return bool(self.SR & SR_F)

    @fault.setter
    def fault(self, on: bool):
        self._flag(SR_F, on)

    # --- Stack operations ---

    def push8(self, memory, value: int):
        """Push 8-bit value (store at SP, then decrement)."""
        memory.store(self.SP, value)
        self.SP -= 1
        if self.SP < STACK_LIMIT:
            raise Trap(FaultKind.STACK_OVERFLOW, "Stack overflow")

    def pull8(self, memory) -> int:
        """Pop 8-bit value (increment SP, then read)."""
        self.SP += 1
        value = memory.load(self.SP)
        if self.SP > STACK_TOP:
            raise Trap(FaultKind.STACK_UNDERFLOW, "Stack underflow")
        return value

    def display(self) -> str:
        """Format registers for trace output."""
        flags = ''.join(
            ch if self.SR & mask else '-'
            for ch, mask in (('S', SR_S), ('Z', SR_Z), ('O', SR_O), ('C', SR_C), ('F', SR_F))
        )
        return (f"AL={self.AL:02X} BL={self.BL:02X} CL={self.CL:02X} DL={self.DL:02X} "
                f"SP={self.SP:02X} IP={self.IP:02X} SR=[{flags}]")

    def __repr__(self):
        return f"Registers({self.display()})"
