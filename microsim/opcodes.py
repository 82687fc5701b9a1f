"""
MicroSim: Instruction Set Table

Single source of truth for the 85 opcodes (0–84) shared by the assembler,
the CPU decoder and the disassembler. Opcode numbers are fixed: existing
machine-code fixtures depend on them.

Operand shapes:
  REG     general register AL/BL/CL/DL, one byte (index 0–3)
  IMM     immediate byte, e.g. MOV AL, 0x10 / OUT 2
  ADDR    direct memory address in brackets, e.g. [0x40]
  RIND    register-indirect in brackets, e.g. [BL] or [BL+2]
  SPOFF   stack-relative, e.g. [SP+3] / [SP-1]
  TARGET  jump/call destination written as a bare number or label
  LABEL   a bare label in an IMM or TARGET slot (encoder only; resolved
          to the label's address in pass 2)

Every opcode takes a fixed number of operand bytes (0, 1 or 2), one per
shape, emitted left to right after the opcode byte. There are no prefixes
and no variable-length forms.

Encoding table layout:
  ENCODINGS: { (MNEMONIC, (shape, ...)): opcode }    assembler
  DECODINGS: { opcode: OpcodeInfo }                   CPU / disassembler
"""

from __future__ import annotations
from itertools import product
from typing import Dict, NamedTuple, Optional, Tuple

__all__ = [
    'REG', 'IMM', 'ADDR', 'RIND', 'SPOFF', 'TARGET', 'LABEL',
    'OpcodeInfo', 'ENCODINGS', 'DECODINGS', 'ALIASES',
    'lookup', 'decode', 'operand_size', 'mnemonics',
]


# ──────────────────────────────────────────────
# Operand shapes
# ──────────────────────────────────────────────

REG = 'REG'
IMM = 'IMM'
ADDR = 'ADDR'
RIND = 'RIND'
SPOFF = 'SPOFF'
TARGET = 'TARGET'
LABEL = 'LABEL'


class OpcodeInfo(NamedTuple):
    """Decoded view of one opcode."""
    opcode: int
    mnemonic: str
    shapes: Tuple[str, ...]

    @property
    def size(self) -> int:
        """Total instruction length in bytes, opcode included."""
        return 1 + len(self.shapes)


ENCODINGS: Dict[Tuple[str, Tuple[str, ...]], int] = {}
DECODINGS: Dict[int, OpcodeInfo] = {}


def _op(mnemonic: str, opcode: int, *shapes: str, label_ok: bool = True):
    """Register an opcode entry.

    The assembler writes a TARGET as a plain number (IMM). With label_ok,
    a bare label is also accepted in every IMM or TARGET slot (the
    label's address becomes the operand byte).
    """
    if opcode in DECODINGS:
        raise ValueError(f"Opcode {opcode} registered twice")
    DECODINGS[opcode] = OpcodeInfo(opcode, mnemonic, shapes)
    ENCODINGS[(mnemonic, shapes)] = opcode

    accepted = []
    for shape in shapes:
        if shape in (IMM, TARGET):
            accepted.append((IMM, LABEL) if label_ok else (IMM,))
        else:
            accepted.append((shape,))
    for combo in product(*accepted):
        ENCODINGS.setdefault((mnemonic, combo), opcode)


def _alias(mnemonic: str, shapes: Tuple[str, ...], opcode: int):
    """Map an extra operand-shape combination onto an existing opcode."""
    ENCODINGS[(mnemonic, shapes)] = opcode


def _binary(mnemonic: str, base: int):
    """Register the four addressing variants of a two-operand ALU op."""
    _op(mnemonic, base,     REG, IMM)
    _op(mnemonic, base + 1, REG, REG)
    _op(mnemonic, base + 2, REG, ADDR)
    _op(mnemonic, base + 3, REG, RIND)


def _jump(mnemonic: str, base: int):
    """Register the direct and register forms of a jump/call."""
    _op(mnemonic, base,     TARGET)
    _op(mnemonic, base + 1, REG)


# ── Control ──
_op('HLT', 0)

# ── Data movement ──
_op('MOV', 1,  REG, IMM)
_op('MOV', 2,  REG, REG)
_op('MOV', 3,  REG, ADDR)
_op('MOV', 4,  REG, RIND)
_op('MOV', 5,  REG, SPOFF)
_op('MOV', 6,  ADDR, IMM)
_op('MOV', 7,  ADDR, REG)
_op('MOV', 8,  RIND, IMM)
_op('MOV', 9,  RIND, REG)
_op('MOV', 10, SPOFF, REG)

# ── Arithmetic ──
_binary('ADD', 11)
_binary('SUB', 15)
_op('INC', 19, REG)
_op('DEC', 20, REG)
_op('NEG', 21, REG)
_binary('CMP', 22)

# ── Jumps ──
_jump('JMP', 26)
_jump('JC',  28)
_jump('JNC', 30)
_jump('JZ',  32)
_jump('JNZ', 34)
_jump('JA',  36)
_jump('JNA', 38)
_jump('JS',  40)
_jump('JNS', 42)

# ── Stack ──
_op('PUSH', 44, IMM, label_ok=False)
_op('PUSH', 45, REG)
_op('PUSH', 46, ADDR)
_op('PUSH', 47, RIND)
_alias('PUSH', (LABEL,), 46)        # PUSH label pushes the byte stored there
_op('POP', 48, REG)
_op('PUSHF', 49)
_op('POPF', 50)

# ── Subroutines ──
_jump('CALL', 51)
_op('RET', 53)

# ── Multiply / divide ──
_binary('MUL', 54)
_binary('DIV', 58)

# ── Logical ──
_binary('AND', 62)
_binary('OR',  66)
_binary('XOR', 70)
_op('NOT', 74, REG)
_binary('SHL', 75)
_binary('SHR', 79)

# ── I/O ──
_op('OUT', 83, IMM, label_ok=False)
_op('IN',  84, IMM, label_ok=False)


# Alternative jump mnemonics accepted by the assembler
ALIASES: Dict[str, str] = {
    'JE':   'JZ',
    'JNE':  'JNZ',
    'JB':   'JC',
    'JNB':  'JNC',
    'JAE':  'JNC',
    'JNBE': 'JA',
    'JBE':  'JNA',
}


# ──────────────────────────────────────────────
# Lookups
# ──────────────────────────────────────────────

def lookup(mnemonic: str, shapes: Tuple[str, ...]) -> Optional[int]:
    """Return the opcode for a mnemonic + operand shapes, or None."""
    mnemonic = ALIASES.get(mnemonic, mnemonic)
    return ENCODINGS.get((mnemonic, tuple(shapes)))


def decode(opcode: int) -> Optional[OpcodeInfo]:
    """Return the OpcodeInfo for an opcode byte, or None if undefined."""
    return DECODINGS.get(opcode)


def operand_size(opcode: int) -> int:
    """Number of operand bytes following the opcode byte."""
    return len(DECODINGS[opcode].shapes)


def mnemonics() -> frozenset:
    """Every mnemonic the assembler accepts, aliases included."""
    return frozenset(info.mnemonic for info in DECODINGS.values()) | frozenset(ALIASES)
