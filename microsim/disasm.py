"""
MicroSim Disassembler

Turns machine code back into assembly text using the Instruction Set
Table. Undefined opcodes, and instructions cut short by the end of the
buffer, come out as DB lines so every byte is accounted for.

    for addr, raw, text in disassemble(code):
        print(f"{addr:02X}  {raw.hex(' ')}  {text}")
"""

from typing import Iterator, List, Tuple

from . import opcodes
from .opcodes import REG, IMM, ADDR, RIND, SPOFF, TARGET
from .cpu.regs import REGISTER_NAMES


def format_operand(shape: str, byte: int) -> str:
    """Render one operand byte in assembler notation."""
    if shape == REG:
        return REGISTER_NAMES[byte] if byte < 4 else f'?{byte}'
    if shape in (IMM, TARGET):
        return f'0x{byte:02X}'
    if shape == ADDR:
        return f'[0x{byte:02X}]'
    if shape == RIND:
        reg = byte % 8
        name = REGISTER_NAMES[reg] if reg < 4 else 'SP'
        offset = byte // 8
        if offset > 15:
            offset -= 32
        if offset:
            return f'[{name}{offset:+d}]'
        return f'[{name}]'
    if shape == SPOFF:
        offset = byte - 0x100 if byte & 0x80 else byte
        return f'[SP{offset:+d}]'
    raise ValueError(f"Unknown operand shape: {shape}")


def disassemble(code: bytes, start: int = 0) -> Iterator[Tuple[int, bytes, str]]:
    """Yield (address, raw_bytes, text) for each instruction in code."""
    code = bytes(code)
    pos = 0
    while pos < len(code):
        opcode = code[pos]
        info = opcodes.decode(opcode)
        if info is None or pos + info.size > len(code):
            yield start + pos, code[pos:pos + 1], f'DB 0x{opcode:02X}'
            pos += 1
            continue
        raw = code[pos:pos + info.size]
        operands = [format_operand(shape, b) for shape, b in zip(info.shapes, raw[1:])]
        text = info.mnemonic
        if operands:
            text += ' ' + ', '.join(operands)
        yield start + pos, raw, text
        pos += info.size


def disassemble_text(code: bytes, start: int = 0) -> str:
    lines: List[str] = []
    for addr, raw, text in disassemble(code, start):
        hex_str = ' '.join(f'{b:02X}' for b in raw)
        lines.append(f"{addr:02X}  {hex_str:<9}  {text}")
    return '\n'.join(lines)
