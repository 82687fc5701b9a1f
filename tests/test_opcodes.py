"""
Instruction Set Table + Disassembler Tests.

The opcode numbers are a compatibility contract with existing machine
code, so the table is checked against the documented numbering.
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from microsim import opcodes
from microsim.opcodes import REG, IMM, ADDR, RIND, SPOFF, TARGET, LABEL
from microsim.assembler import assemble
from microsim.disasm import disassemble, disassemble_text, format_operand


class TestTable:
    """Table completeness and fixed numbering."""

    def test_85_contiguous_opcodes(self):
        assert sorted(opcodes.DECODINGS) == list(range(85))

    def test_family_bases(self):
        """First opcode of each family matches the documented numbering."""
        expected = {
            ('HLT', ()): 0,
            ('MOV', (REG, IMM)): 1,
            ('MOV', (SPOFF, REG)): 10,
            ('ADD', (REG, IMM)): 11,
            ('SUB', (REG, IMM)): 15,
            ('INC', (REG,)): 19,
            ('DEC', (REG,)): 20,
            ('NEG', (REG,)): 21,
            ('CMP', (REG, IMM)): 22,
            ('JMP', (TARGET,)): 26,
            ('JC', (TARGET,)): 28,
            ('JNS', (REG,)): 43,
            ('PUSH', (IMM,)): 44,
            ('POP', (REG,)): 48,
            ('PUSHF', ()): 49,
            ('POPF', ()): 50,
            ('CALL', (TARGET,)): 51,
            ('CALL', (REG,)): 52,
            ('RET', ()): 53,
            ('MUL', (REG, IMM)): 54,
            ('DIV', (REG, IMM)): 58,
            ('AND', (REG, IMM)): 62,
            ('OR', (REG, IMM)): 66,
            ('XOR', (REG, IMM)): 70,
            ('NOT', (REG,)): 74,
            ('SHL', (REG, IMM)): 75,
            ('SHR', (REG, RIND)): 82,
            ('OUT', (IMM,)): 83,
            ('IN', (IMM,)): 84,
        }
        for key, opcode in expected.items():
            assert opcodes.ENCODINGS[key] == opcode, key

    def test_operand_byte_counts(self):
        """Every opcode takes 0, 1 or 2 operand bytes."""
        assert opcodes.operand_size(0) == 0
        assert opcodes.operand_size(1) == 2
        assert opcodes.operand_size(26) == 1
        assert opcodes.operand_size(49) == 0
        assert opcodes.operand_size(84) == 1
        assert all(len(info.shapes) in (0, 1, 2) for info in opcodes.DECODINGS.values())

    def test_decode_unknown(self):
        assert opcodes.decode(85) is None
        assert opcodes.decode(0xFF) is None


class TestLookup:
    """Encoder side: mnemonic + operand shapes → opcode."""

    def test_jump_forms(self):
        assert opcodes.lookup('JMP', (IMM,)) == 26
        assert opcodes.lookup('JMP', (LABEL,)) == 26
        assert opcodes.lookup('JMP', (REG,)) == 27

    def test_aliases(self):
        cases = {
            'JE': 32, 'JNE': 34, 'JB': 28, 'JNB': 30,
            'JAE': 30, 'JNBE': 36, 'JBE': 38,
        }
        for alias, opcode in cases.items():
            assert opcodes.lookup(alias, (IMM,)) == opcode, alias
            assert opcodes.lookup(alias, (REG,)) == opcode + 1, alias

    def test_label_as_immediate(self):
        assert opcodes.lookup('MOV', (REG, LABEL)) == 1
        assert opcodes.lookup('MOV', (ADDR, LABEL)) == 6
        assert opcodes.lookup('CMP', (REG, LABEL)) == 22

    def test_push_label_reads_memory(self):
        assert opcodes.lookup('PUSH', (LABEL,)) == 46
        assert opcodes.lookup('PUSH', (IMM,)) == 44

    def test_io_ports_take_numbers_only(self):
        assert opcodes.lookup('OUT', (LABEL,)) is None
        assert opcodes.lookup('IN', (REG,)) is None

    def test_unsupported_combinations(self):
        assert opcodes.lookup('ADD', (REG, SPOFF)) is None
        assert opcodes.lookup('MOV', (IMM, REG)) is None
        assert opcodes.lookup('INC', (IMM,)) is None
        assert opcodes.lookup('HLT', (IMM,)) is None

    def test_encoding_bijection(self):
        """Each opcode's own shape signature maps back to that opcode."""
        for opcode, info in opcodes.DECODINGS.items():
            assert opcodes.ENCODINGS[(info.mnemonic, info.shapes)] == opcode
        for (mnemonic, _), opcode in opcodes.ENCODINGS.items():
            assert opcodes.DECODINGS[opcode].mnemonic == mnemonic

    def test_mnemonics_include_aliases(self):
        names = opcodes.mnemonics()
        assert 'MOV' in names and 'JE' in names and 'JNBE' in names
        assert 'DB' not in names


class TestDisassembler:
    """Machine code back to assembly text."""

    def test_operand_notation(self):
        assert format_operand(REG, 2) == 'CL'
        assert format_operand(IMM, 5) == '0x05'
        assert format_operand(ADDR, 0x40) == '[0x40]'
        assert format_operand(RIND, 1) == '[BL]'
        assert format_operand(RIND, 1 | (2 << 3)) == '[BL+2]'
        assert format_operand(RIND, 1 | (31 << 3)) == '[BL-1]'
        assert format_operand(SPOFF, 3) == '[SP+3]'
        assert format_operand(SPOFF, 0xFF) == '[SP-1]'

    def test_disassemble_program(self):
        code = assemble("MOV AL, 5\nJMP 0\nPUSH [BL+2]\nHLT").machine_code
        listing = list(disassemble(code))
        assert [addr for addr, _, _ in listing] == [0, 3, 5, 7]
        assert [text for _, _, text in listing] == [
            'MOV AL, 0x05', 'JMP 0x00', 'PUSH [BL+2]', 'HLT',
        ]

    def test_unknown_and_truncated_bytes(self):
        listing = list(disassemble(bytes([0xFF, 1, 0])))
        assert listing[0][2] == 'DB 0xFF'
        # MOV needs two operand bytes but only one remains
        assert listing[1][2] == 'DB 0x01'
        assert listing[2][2] == 'HLT'

    def test_round_trip(self):
        source = """
            MOV AL, [SP+3]
            MOV [BL-4], DL
            CMP AL, [0x30]
            JNA 0x10
            CALL CL
            SHR AL, [DL]
            OUT 2
            HLT
        """
        code = assemble(source).machine_code
        text = '\n'.join(t for _, _, t in disassemble(code))
        assert assemble(text).machine_code == code

    def test_text_output_has_addresses(self):
        text = disassemble_text(bytes([1, 0, 0x41, 0]), start=0x10)
        assert text.splitlines()[0].startswith('10  01 00 41')
        assert text.splitlines()[1].endswith('HLT')
