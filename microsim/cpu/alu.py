"""
MicroSim: ALU Operations

Every function works on unsigned 8-bit inputs, computes in a full-width
Python int, and returns (result_byte, sr_flag_bits). The caller decides
which flag group to apply (set_CZOS for most ops, set_ZOS for DEC).

Overflow formulas (two's complement):
  add: V = (a7 & b7 & ~r7) | (~a7 & ~b7 & r7)  same-sign operands, sign flipped
  sub: V = (a7 & ~b7 & ~r7) | (~a7 & b7 & r7)  operands differ, result sign != a
"""

from .faults import FaultKind, Trap
from .regs import SR_C, SR_O, SR_Z, SR_S


def _zs(result: int) -> int:
    """Z and S bits for a (possibly wide) result."""
    flags = 0
    if not (result & 0xFF):
        flags |= SR_Z
    if result & 0x80:
        flags |= SR_S
    return flags


def add8(a: int, b: int) -> tuple:
    """Add. Sets C, O, Z, S."""
    result = a + b
    flags = _zs(result)
    if result > 0xFF:
        flags |= SR_C
    if (a & b & ~result | ~a & ~b & result) & 0x80:
        flags |= SR_O
    return (result & 0xFF, flags)


def sub8(a: int, b: int) -> tuple:
    """Subtract (also used by CMP). Sets C, O, Z, S."""
    result = a - b
    flags = _zs(result)
    if a < b:
        flags |= SR_C
    if (a & ~b & ~result | ~a & b & result) & 0x80:
        flags |= SR_O
    return (result & 0xFF, flags)


def inc8(a: int) -> tuple:
    result = a + 1
    flags = _zs(result)
    if a == 0xFF:
        flags |= SR_C
    if a == 0x7F:
        flags |= SR_O
    return (result & 0xFF, flags)


def dec8(a: int) -> tuple:
    """Decrement. Sets O, Z, S; carry is left alone by the caller."""
    result = a - 1
    flags = _zs(result)
    if a == 0x80:
        flags |= SR_O
    return (result & 0xFF, flags)


def neg8(a: int) -> tuple:
    result = -a
    flags = _zs(result)
    if a != 0:
        flags |= SR_C
    if a == 0x80:
        flags |= SR_O
    return (result & 0xFF, flags)


def mul8(a: int, b: int) -> tuple:
    """Unsigned multiply, low byte kept. C = O = product > 0xFF."""
    result = a * b
    flags = _zs(result)
    if result > 0xFF:
        flags |= SR_C | SR_O
    return (result & 0xFF, flags)


def div8(a: int, b: int) -> tuple:
    """Unsigned integer divide. C and O always cleared."""
    if b == 0:
        raise Trap(FaultKind.DIVISION_BY_ZERO, "Division by zero")
    result = a // b
    return (result & 0xFF, _zs(result))


def and8(a: int, b: int) -> tuple:
    result = a & b
    return (result, _zs(result))


def or8(a: int, b: int) -> tuple:
    result = a | b
    return (result, _zs(result))


def xor8(a: int, b: int) -> tuple:
    result = a ^ b
    return (result, _zs(result))


def not8(a: int) -> tuple:
    result = ~a & 0xFF
    return (result, _zs(result))


def shl8(a: int, count: int) -> tuple:
    """Shift left. C = bit 7 of (a << (count - 1)).

    count must be >= 1; a zero-count shift is a no-op handled by the caller.
    """
    result = a << count
    flags = _zs(result)
    if (a << (count - 1)) & 0x80:
        flags |= SR_C
    return (result & 0xFF, flags)


def shr8(a: int, count: int) -> tuple:
    """Shift right. C = bit 0 of (a >> (count - 1)). count >= 1."""
    result = a >> count
    flags = _zs(result)
    if (a >> (count - 1)) & 0x01:
        flags |= SR_C
    return (result & 0xFF, flags)


def to_signed8(value: int) -> int:
    """Interpret an 8-bit value as two's complement."""
    value &= 0xFF
    return value - 0x100 if value & 0x80 else value
