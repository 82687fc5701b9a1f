"""
MicroSim Two-Pass Assembler.

Assembles MicroSim assembly text into machine code loaded at address 0.

Input:  Assembly source text
Output: AssemblyResult(machine_code, address_to_line, symbols)

Source format:
  label:  MNEMONIC op1, op2   ; comment

  - Mnemonics and register names are case-insensitive; labels are not.
  - Labels start with a letter or '.', followed by word characters.
  - Numbers are decimal (10, -3) or hex (0x0A).

Operand notation:
  AL BL CL DL        register                          REG
  10  0x0A  'A'      immediate byte (-128..255)        IMM
  label              label address as a byte           LABEL
  [0x40] [label]     direct memory address             ADDR
  [BL] [BL+2] [SP]   register-indirect (offset -16..15) RIND
  [SP+3] [SP-1]      stack-relative (offset -128..127) SPOFF
  "text"             character codes (DB only)

Directives:
  ORG addr   move the write cursor (0..255)
  DB value   emit one byte, a character code, a label address or a string

How the two passes work:
  Pass 1: Walk the lines in order. Labels get the current write address,
          every instruction is encoded immediately, and any byte that
          names a label is written as a 0 placeholder and recorded.
  Pass 2: Overwrite every placeholder with its label's address.

Every emitted byte is mapped back to its 1-based source line so a
debugger can highlight the line for any IP.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple
import logging
import re

from . import opcodes
from .opcodes import REG, IMM, ADDR, RIND, SPOFF, LABEL
from .config import PROGRAM_LIMIT, MEMORY_SIZE

__all__ = [
    'Assembler', 'AssemblyError', 'AssemblyErrorKind', 'AssemblyResult',
    'Operand', 'assemble',
]

log = logging.getLogger(__name__)


class AssemblyErrorKind(Enum):
    SYNTAX_ERROR = 'SyntaxError'
    DUPLICATE_LABEL = 'DuplicateLabel'
    UNDEFINED_LABEL = 'UndefinedLabel'
    UNSUPPORTED_OPERAND = 'UnsupportedOperand'
    ADDRESS_OUT_OF_BOUNDS = 'AddressOutOfBounds'


class AssemblyError(Exception):
    """Raised on assembly errors."""
    def __init__(self, kind: AssemblyErrorKind, message: str,
                 line_num: int = 0, line_text: str = ""):
        self.kind = kind
        self.line_num = line_num
        self.line_text = line_text
        super().__init__(f"Line {line_num}: {message}" if line_num else message)


# ──────────────────────────────────────────────
# Lexical rules
# ──────────────────────────────────────────────

REGISTERS = {'AL': 0, 'BL': 1, 'CL': 2, 'DL': 3, 'SP': 4}

_LABEL_RE = re.compile(r'^[.A-Za-z]\w*$')
_NUMBER_RE = re.compile(r'^-?(0[xX][0-9A-Fa-f]+|\d+)$')
_OFFSET_RE = re.compile(r'^(AL|BL|CL|DL|SP)\s*([+-])\s*(\S+)$', re.IGNORECASE)
_LABEL_DEF_RE = re.compile(r'^\s*([^\s:"\';]+)\s*:(.*)$')

# Constant expressions: numbers / character literals joined by + or -
_TERM = r"(?:'[^']'|0[xX][0-9A-Fa-f]+|\d+)"
_EXPR_RE = re.compile(rf"^[+-]?\s*{_TERM}(?:\s*[+-]\s*{_TERM})+$")
_EXPR_TERM_RE = re.compile(rf"([+-]?)\s*({_TERM})")

STRING = 'STRING'   # operand shape for "text" (DB only)


# ──────────────────────────────────────────────
# Source lines + operands
# ──────────────────────────────────────────────

@dataclass
class AsmLine:
    """Parsed assembly source line."""
    line_num: int = 0
    raw: str = ""
    label: Optional[str] = None
    mnemonic: Optional[str] = None
    operands: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class Operand:
    """One classified operand.

    shape is an opcodes shape (REG, IMM, ADDR, RIND, SPOFF, LABEL) or
    STRING. value holds the payload byte; label names an unresolved
    address; data holds the character codes of a STRING.
    """
    shape: str
    value: int = 0
    label: Optional[str] = None
    data: Tuple[int, ...] = ()


@dataclass(frozen=True)
class AssemblyResult:
    """Immutable output of one assemble() call."""
    machine_code: bytes
    address_to_line: Mapping[int, int]
    symbols: Mapping[str, int]

    def line_for(self, address: int) -> Optional[int]:
        """1-based source line that emitted the byte at address."""
        return self.address_to_line.get(address)

    def __len__(self):
        return len(self.machine_code)


def _unquoted(text: str):
    """Yield (index, char) for characters outside strings and 'c' literals."""
    quote = None
    i = 0
    while i < len(text):
        ch = text[i]
        if quote:
            if ch == quote:
                quote = None
        elif ch == "'" and i + 2 < len(text) and text[i + 2] == "'":
            # 'c' is always three characters, even when c is a quote
            i += 3
            continue
        elif ch in ('"', "'"):
            quote = ch
        else:
            yield i, ch
        i += 1


def _strip_comment(text: str) -> str:
    """Remove a ';' comment, ignoring semicolons inside quotes."""
    for i, ch in _unquoted(text):
        if ch == ';':
            return text[:i]
    return text


def _split_operands(text: str) -> List[str]:
    """Split on commas that are outside quotes and brackets."""
    parts: List[str] = []
    start = 0
    depth = 0
    for i, ch in _unquoted(text):
        if ch == '[':
            depth += 1
        elif ch == ']':
            depth -= 1
        elif ch == ',' and depth == 0:
            parts.append(text[start:i].strip())
            start = i + 1
    parts.append(text[start:].strip())
    return parts


def _parse_line(line: str, line_num: int) -> AsmLine:
    """Parse one line of assembly into label, mnemonic and operand texts."""
    result = AsmLine(line_num=line_num, raw=line)
    text = _strip_comment(line).strip()
    if not text:
        return result

    m = _LABEL_DEF_RE.match(text)
    if m:
        result.label = m.group(1)
        text = m.group(2).strip()
        if not text:
            return result

    parts = text.split(None, 1)
    result.mnemonic = parts[0].upper()
    if len(parts) > 1:
        result.operands = _split_operands(parts[1])
    return result


def is_label(text: str) -> bool:
    return bool(_LABEL_RE.match(text)) and text.upper() not in REGISTERS


def parse_number(text: str) -> Optional[int]:
    """Decimal or 0x-hex integer, or None if text is not a number."""
    text = text.strip()
    if not _NUMBER_RE.match(text):
        return None
    negative = text.startswith('-')
    if negative:
        text = text[1:]
    value = int(text, 16) if text[:2].lower() == '0x' else int(text)
    return -value if negative else value


def evaluate_expression(text: str) -> Optional[int]:
    """Value of e.g. "'A' - 10" or "0x30 + 5", or None if not an expression."""
    text = text.strip()
    if not _EXPR_RE.match(text):
        return None
    total = 0
    for sign, term in _EXPR_TERM_RE.findall(text):
        value = ord(term[1]) if term.startswith("'") else parse_number(term)
        total += -value if sign == '-' else value
    return total


# ──────────────────────────────────────────────
# Operand classification
# ──────────────────────────────────────────────

def classify_operand(text: str, line_num: int = 0, line_text: str = "") -> Operand:
    """Classify one operand by its lexical form."""
    def error(kind, message):
        return AssemblyError(kind, message, line_num, line_text)

    if not text:
        raise error(AssemblyErrorKind.SYNTAX_ERROR, "Missing operand")

    if text.startswith('['):
        if not text.endswith(']'):
            raise error(AssemblyErrorKind.SYNTAX_ERROR, f"Missing ']' in '{text}'")
        inner = text[1:-1].strip()
        return _classify_memory(inner, error)

    if text.startswith('"'):
        if len(text) < 2 or not text.endswith('"'):
            raise error(AssemblyErrorKind.SYNTAX_ERROR, f"Unterminated string {text}")
        codes = tuple(ord(ch) for ch in text[1:-1])
        if any(c > 0xFF for c in codes):
            raise error(AssemblyErrorKind.SYNTAX_ERROR, f"Non 8-bit character in {text}")
        return Operand(STRING, data=codes)

    value = evaluate_expression(text)
    if value is not None:
        if not -128 <= value <= 0xFF:
            raise error(AssemblyErrorKind.SYNTAX_ERROR, f"Value out of byte range: {text}")
        return Operand(IMM, value & 0xFF)

    if text.startswith("'"):
        if len(text) != 3 or not text.endswith("'"):
            raise error(AssemblyErrorKind.SYNTAX_ERROR,
                        f"Character literal must hold exactly one character: {text}")
        code = ord(text[1])
        if code > 0xFF:
            raise error(AssemblyErrorKind.SYNTAX_ERROR, f"Non 8-bit character {text}")
        return Operand(IMM, code)

    upper = text.upper()
    if upper in REGISTERS:
        if upper == 'SP':
            raise error(AssemblyErrorKind.UNSUPPORTED_OPERAND,
                        "SP can only be used inside brackets")
        return Operand(REG, REGISTERS[upper])

    if _LABEL_RE.match(text):
        return Operand(LABEL, label=text)

    value = parse_number(text)
    if value is None:
        raise error(AssemblyErrorKind.SYNTAX_ERROR, f"Invalid operand '{text}'")
    if not -128 <= value <= 0xFF:
        raise error(AssemblyErrorKind.SYNTAX_ERROR, f"Value out of byte range: {text}")
    return Operand(IMM, value & 0xFF)


def _classify_memory(inner: str, error) -> Operand:
    upper = inner.upper()
    if upper in REGISTERS:
        return Operand(RIND, REGISTERS[upper])

    m = _OFFSET_RE.match(inner)
    if m:
        reg = m.group(1).upper()
        offset = parse_number(m.group(3))
        if offset is None:
            raise error(AssemblyErrorKind.SYNTAX_ERROR, f"Invalid offset in [{inner}]")
        if m.group(2) == '-':
            offset = -offset
        if reg == 'SP':
            if not -128 <= offset <= 127:
                raise error(AssemblyErrorKind.SYNTAX_ERROR,
                            f"Stack offset out of range (-128..127): [{inner}]")
            return Operand(SPOFF, offset & 0xFF)
        if not -16 <= offset <= 15:
            raise error(AssemblyErrorKind.SYNTAX_ERROR,
                        f"Register offset out of range (-16..15): [{inner}]")
        return Operand(RIND, REGISTERS[reg] | ((offset & 0x1F) << 3))

    value = parse_number(inner)
    if value is not None:
        if not 0 <= value <= 0xFF:
            raise error(AssemblyErrorKind.ADDRESS_OUT_OF_BOUNDS,
                        f"Address out of bounds (0-255): [{inner}]")
        return Operand(ADDR, value)

    if is_label(inner):
        return Operand(ADDR, label=inner)
    raise error(AssemblyErrorKind.SYNTAX_ERROR, f"Invalid memory operand [{inner}]")


# ──────────────────────────────────────────────
# Assembler
# ──────────────────────────────────────────────

class Assembler:
    """Two-pass MicroSim assembler.

    Usage:
        asm = Assembler()
        result = asm.assemble(source_text)
        result.machine_code        # bytes, loadable at 0
        print(asm.get_listing())
    """

    def __init__(self):
        self._reset()

    def _reset(self):
        self.symbols: Dict[str, int] = {}          # label -> address
        self.address_to_line: Dict[int, int] = {}  # address -> 1-based line
        self.pc: int = 0                           # write cursor
        self._code = bytearray(MEMORY_SIZE)
        self._high: int = -1                       # highest written address
        self._fixups: List[Tuple[int, str]] = []   # (address, label) placeholders
        self._lines: List[AsmLine] = []
        self._segments: Dict[int, Tuple[int, int]] = {}  # line_num -> (start, end)

    def assemble(self, source: str) -> AssemblyResult:
        """Assemble source text.

        Raises AssemblyError (with kind and 1-based line) on the first error.
        """
        self._reset()

        for i, raw in enumerate(source.splitlines(), 1):
            self._lines.append(_parse_line(raw, i))

        # Pass 1: labels + encoding with placeholders
        for line in self._lines:
            self._pass1_line(line)

        # Pass 2: resolve placeholders
        self._pass2()

        code = bytes(self._code[:self._high + 1])
        log.debug("Assembled %d bytes, %d labels", len(code), len(self.symbols))
        return AssemblyResult(
            machine_code=code,
            address_to_line=MappingProxyType(dict(self.address_to_line)),
            symbols=MappingProxyType(dict(self.symbols)),
        )

    # --- Pass 1 ---

    def _error(self, line: AsmLine, kind: AssemblyErrorKind, message: str) -> AssemblyError:
        return AssemblyError(kind, message, line.line_num, line.raw.strip())

    def _pass1_line(self, line: AsmLine):
        if line.label is not None:
            self._define_label(line)

        mnem = line.mnemonic
        if mnem is None:
            return

        start = self.pc
        if mnem == 'ORG':
            self._directive_org(line)
            return
        if mnem == 'DB':
            self._directive_db(line)
        else:
            self._encode_instruction(line)
        self._segments[line.line_num] = (start, self.pc)

    def _define_label(self, line: AsmLine):
        name = line.label
        if not is_label(name):
            raise self._error(line, AssemblyErrorKind.SYNTAX_ERROR, f"Invalid label '{name}'")
        if name in self.symbols:
            raise self._error(line, AssemblyErrorKind.DUPLICATE_LABEL, f"Duplicate label '{name}'")
        self.symbols[name] = self.pc

    def _directive_org(self, line: AsmLine):
        if len(line.operands) != 1:
            raise self._error(line, AssemblyErrorKind.SYNTAX_ERROR, "ORG takes one address")
        value = parse_number(line.operands[0])
        if value is None:
            raise self._error(line, AssemblyErrorKind.SYNTAX_ERROR,
                              "ORG requires a numeric address")
        if not 0 <= value <= 0xFF:
            raise self._error(line, AssemblyErrorKind.ADDRESS_OUT_OF_BOUNDS,
                              f"ORG address out of memory bounds (0-255): {value}")
        self.pc = value

    def _directive_db(self, line: AsmLine):
        if not line.operands:
            raise self._error(line, AssemblyErrorKind.SYNTAX_ERROR, "DB requires a value")
        for text in line.operands:
            op = classify_operand(text, line.line_num, line.raw.strip())
            if op.shape == STRING:
                for code in op.data:
                    self._emit(line, code)
            elif op.shape in (IMM, LABEL):
                self._emit_operand(line, op)
            else:
                raise self._error(line, AssemblyErrorKind.UNSUPPORTED_OPERAND,
                                  f"DB does not support operand '{text}'")

    def _encode_instruction(self, line: AsmLine):
        mnem = line.mnemonic
        if mnem not in opcodes.mnemonics():
            raise self._error(line, AssemblyErrorKind.SYNTAX_ERROR, f"Unknown mnemonic '{mnem}'")

        texts = line.operands
        ops = [classify_operand(t, line.line_num, line.raw.strip()) for t in texts]
        shapes = tuple(op.shape for op in ops)
        opcode = opcodes.lookup(mnem, shapes)
        if opcode is None:
            shown = ', '.join(texts) if texts else 'no operands'
            raise self._error(line, AssemblyErrorKind.UNSUPPORTED_OPERAND,
                              f"{mnem} does not support operands: {shown}")

        self._emit(line, opcode)
        for op in ops:
            self._emit_operand(line, op)

    def _emit_operand(self, line: AsmLine, op: Operand):
        if op.label is not None:
            self._fixups.append((self.pc, op.label))
            self._emit(line, 0)
        else:
            self._emit(line, op.value)

    def _emit(self, line: AsmLine, value: int):
        if self.pc >= PROGRAM_LIMIT:
            raise self._error(line, AssemblyErrorKind.ADDRESS_OUT_OF_BOUNDS,
                              f"Code does not fit below {PROGRAM_LIMIT:#04x} "
                              f"(write at {self.pc:#04x})")
        self._code[self.pc] = value & 0xFF
        self.address_to_line[self.pc] = line.line_num
        self._high = max(self._high, self.pc)
        self.pc += 1

    # --- Pass 2 ---

    def _pass2(self):
        """Overwrite label placeholders with resolved addresses."""
        for address, label in self._fixups:
            if label not in self.symbols:
                line_num = self.address_to_line[address]
                line = self._lines[line_num - 1]
                raise self._error(line, AssemblyErrorKind.UNDEFINED_LABEL,
                                  f"Undefined label '{label}'")
            self._code[address] = self.symbols[label]

    # --- Listing ---

    def get_listing(self) -> str:
        """Return a human-readable listing showing address, bytes, and source."""
        lines = [f"{'ADDR':>4}  {'BYTES':<12}  SOURCE", "-" * 60]
        for asmline in self._lines:
            raw = asmline.raw.rstrip()
            seg = self._segments.get(asmline.line_num)
            if seg and seg[1] > seg[0]:
                start, end = seg
                data = self._code[start:end]
                hex_str = ' '.join(f'{b:02X}' for b in data[:4])
                if len(data) > 4:
                    hex_str += ' ..'
                lines.append(f"  {start:02X}  {hex_str:<12}  {raw}")
            elif raw.strip():
                lines.append(f"      {'':12}  {raw}")
        return '\n'.join(lines)


# ──────────────────────────────────────────────
# Convenience functions
# ──────────────────────────────────────────────

def assemble(source: str) -> AssemblyResult:
    """Assemble source text with a fresh Assembler."""
    return Assembler().assemble(source)
