"""
MicroSim: CPU Fetch / Decode / Execute Engine

Integrates:
  - Register file + SR flags (regs.py)
  - ALU flag arithmetic (alu.py)
  - Memory (mem/memory.py)
  - Port bus for IN/OUT (periph/ports.py)
  - Instruction Set Table for decode (opcodes.py)

Execution model for one step():
  1. Refuse to run if FAULTED (re-raise the latched fault)
  2. Validate IP, fetch the opcode byte at IP
  3. Look up the handler in the per-opcode dispatch table
  4. The handler pre-increments IP for each operand byte it reads,
     computes, stores the masked result, updates SR and leaves IP on the
     next instruction (jumps, CALL and RET set IP themselves)
  5. Any Trap or MemoryBoundsError raised on the way latches FAULTED,
     sets the F flag and propagates as CPUFault

Operand addressing:
  IMM     literal byte
  REG     register index 0–3
  ADDR    memory[byte]
  RIND    byte = reg | offset << 3   reg 0–3 → AL..DL, 4–7 → SP
                                      offset is a signed 5-bit value (−16..15)
  SPOFF   memory[SP + signed byte]
  TARGET  literal jump destination

The CPU is single-threaded: step() must not be called concurrently on one
instance. IN from the keyboard port is the only call that can block.
"""

from enum import Enum
from typing import Callable, Dict, List, Optional
import logging

from .. import opcodes
from ..opcodes import REG, IMM, ADDR, RIND, SPOFF, TARGET
from ..mem.memory import Memory, MemoryBoundsError
from ..periph.ports import PortBus
from ..periph.keyboard import InputAborted
from . import alu
from .faults import CPUFault, FaultKind, Trap
from .regs import Registers, SP_INDEX

log = logging.getLogger(__name__)


class CPUState(Enum):
    READY = 'Ready'
    HALTED = 'Halted'
    FAULTED = 'Faulted'


# Jump conditions, evaluated against the register file
_CONDITIONS: Dict[str, Callable[[Registers], bool]] = {
    'JMP':  lambda r: True,
    'JC':   lambda r: r.carry,
    'JNC':  lambda r: not r.carry,
    'JZ':   lambda r: r.zero,
    'JNZ':  lambda r: not r.zero,
    'JA':   lambda r: not r.zero and not r.carry,
    'JNA':  lambda r: r.zero or r.carry,
    'JS':   lambda r: r.sign,
    'JNS':  lambda r: not r.sign,
}

_BINARY_ALU = {
    'ADD': alu.add8,
    'SUB': alu.sub8,
    'MUL': alu.mul8,
    'DIV': alu.div8,
    'AND': alu.and8,
    'OR':  alu.or8,
    'XOR': alu.xor8,
}

_UNARY_ALU = {
    'INC': alu.inc8,
    'DEC': alu.dec8,
    'NEG': alu.neg8,
    'NOT': alu.not8,
}


class CPU:
    """Byte-level CPU.

    Usage:
        mem = Memory()
        cpu = CPU(mem, ports=default_bus())
        mem.load_program(result.machine_code)
        cpu.reset()
        while cpu.state is CPUState.READY:
            cpu.step()
        print(cpu.registers)
    """

    def __init__(self, memory: Optional[Memory] = None, ports: Optional[PortBus] = None):
        self.regs = Registers()
        self.mem = memory if memory is not None else Memory()
        self.ports = ports if ports is not None else PortBus()
        self.state = CPUState.READY
        self.last_fault: Optional[CPUFault] = None
        self.instructions = 0

        self._trace = False
        self._trace_output: List[str] = []

        self._dispatch = self._build_dispatch()

    # ══════════════════════════════════════════════
    # Lifecycle
    # ══════════════════════════════════════════════

    def reset(self):
        """Zero registers and flags, SP = top of stack, IP = 0, state READY."""
        self.regs.reset()
        self.state = CPUState.READY
        self.last_fault = None
        self.instructions = 0
        self._trace_output = []

    def resume(self):
        """Continue after HLT: a HALTED CPU becomes READY at the next instruction."""
        if self.state is CPUState.HALTED:
            self.state = CPUState.READY

    def enable_trace(self, enabled: bool = True):
        """Record one line per executed instruction in trace_output."""
        self._trace = enabled

    @property
    def trace_output(self) -> List[str]:
        return list(self._trace_output)

    # ══════════════════════════════════════════════
    # Query surface
    # ══════════════════════════════════════════════

    @property
    def registers(self) -> List[int]:
        """Snapshot of [AL, BL, CL, DL]."""
        return list(self.regs.gpr)

    @property
    def sp(self) -> int:
        return self.regs.SP

    @property
    def ip(self) -> int:
        return self.regs.IP

    @property
    def status(self) -> int:
        return self.regs.SR

    @property
    def zero(self) -> bool:
        return self.regs.zero

    @property
    def carry(self) -> bool:
        return self.regs.carry

    @property
    def overflow(self) -> bool:
        return self.regs.overflow

    @property
    def sign(self) -> bool:
        return self.regs.sign

    def is_fault(self) -> bool:
        return self.state is CPUState.FAULTED

    def is_halted(self) -> bool:
        return self.state is CPUState.HALTED

    # ══════════════════════════════════════════════
    # Execution
    # ══════════════════════════════════════════════

    def step(self):
        """Execute one instruction. A HALTED CPU does nothing.

        Raises CPUFault on any runtime fault (and on every call after one,
        until reset()). Raises InputAborted if a blocking keyboard read is
        abandoned; IP is left on the IN instruction so it can be retried.
        """
        if self.state is CPUState.HALTED:
            return
        if self.state is CPUState.FAULTED:
            if self.last_fault is None:
                self.last_fault = CPUFault(FaultKind.FAULT_FLAG, "CPU is faulted", self.regs.IP)
            raise self.last_fault

        ip = self.regs.IP
        try:
            if not 0 <= ip < self.mem.size:
                raise Trap(FaultKind.IP_OUT_OF_BOUNDS,
                           f"Instruction pointer out of bounds: {ip}")
            opcode = self.mem.load(ip)
            handler = self._dispatch.get(opcode)
            if handler is None:
                raise Trap(FaultKind.INVALID_OPCODE, f"Invalid opcode {opcode}")
            if self._trace:
                info = opcodes.decode(opcode)
                self._trace_output.append(f"{ip:02X}: {info.mnemonic:5s} {self.regs.display()}")
            handler()
        except Trap as e:
            self._fault(e.kind, str(e), ip, e)
        except MemoryBoundsError as e:
            self._fault(FaultKind.ADDRESS_OUT_OF_BOUNDS, str(e), ip, e)
        except InputAborted:
            self.regs.IP = ip
            raise
        except Exception as e:
            self._fault(FaultKind.DEVICE_ERROR, f"{type(e).__name__}: {e}", ip, e)

        self.instructions += 1
        if self.regs.fault:
            # POPF restored a status byte with F set
            self.state = CPUState.FAULTED
            self.last_fault = CPUFault(FaultKind.FAULT_FLAG, "Fault flag set", ip)
            log.warning("%s", self.last_fault)

    def _fault(self, kind: FaultKind, message: str, ip: int, cause: Exception):
        self.regs.fault = True
        self.state = CPUState.FAULTED
        self.last_fault = CPUFault(kind, message, ip)
        log.warning("%s", self.last_fault)
        raise self.last_fault from cause

    # ══════════════════════════════════════════════
    # Operand access
    # ══════════════════════════════════════════════

    def _fetch8(self) -> int:
        """Advance IP to the next operand byte and read it."""
        self.regs.IP += 1
        if self.regs.IP >= self.mem.size:
            raise Trap(FaultKind.IP_OUT_OF_BOUNDS,
                       f"Instruction pointer out of bounds: {self.regs.IP}")
        return self.mem.load(self.regs.IP)

    def _advance(self):
        """Move IP past the last operand byte."""
        self.regs.IP += 1

    def _indirect(self, encoded: int) -> int:
        """Effective address of a register-indirect operand."""
        reg = encoded % 8
        base = self.regs.get(reg) if reg < SP_INDEX else self.regs.SP
        offset = encoded // 8
        if offset > 15:
            offset -= 32
        return base + offset

    def _stack_address(self, offset: int) -> int:
        return self.regs.SP + alu.to_signed8(offset)

    def _read(self, shape: str, byte: int) -> int:
        """Value of an operand."""
        if shape == IMM or shape == TARGET:
            return byte
        if shape == REG:
            return self.regs.get(byte)
        if shape == ADDR:
            return self.mem.load(byte)
        if shape == RIND:
            return self.mem.load(self._indirect(byte))
        if shape == SPOFF:
            return self.mem.load(self._stack_address(byte))
        raise ValueError(f"Unknown operand shape: {shape}")

    def _write(self, shape: str, byte: int, value: int):
        """Store value to a destination operand."""
        if shape == REG:
            self.regs.set(byte, value)
        elif shape == ADDR:
            self.mem.store(byte, value)
        elif shape == RIND:
            self.mem.store(self._indirect(byte), value)
        elif shape == SPOFF:
            self.mem.store(self._stack_address(byte), value)
        else:
            raise ValueError(f"Operand shape {shape} is not writable")

    # ══════════════════════════════════════════════
    # Dispatch table
    # ══════════════════════════════════════════════

    def _build_dispatch(self) -> Dict[int, Callable[[], None]]:
        """Build the opcode → handler table from the instruction set."""
        table: Dict[int, Callable[[], None]] = {}
        for opcode, info in opcodes.DECODINGS.items():
            mnem, shapes = info.mnemonic, info.shapes
            if mnem == 'HLT':
                handler = self._op_hlt
            elif mnem == 'MOV':
                handler = self._make_mov(*shapes)
            elif mnem in _BINARY_ALU:
                handler = self._make_binary(_BINARY_ALU[mnem], shapes[1])
            elif mnem == 'CMP':
                handler = self._make_binary(alu.sub8, shapes[1], store=False)
            elif mnem in ('SHL', 'SHR'):
                handler = self._make_shift(alu.shl8 if mnem == 'SHL' else alu.shr8, shapes[1])
            elif mnem in _UNARY_ALU:
                handler = self._make_unary(_UNARY_ALU[mnem], keep_carry=(mnem == 'DEC'))
            elif mnem in _CONDITIONS:
                handler = self._make_jump(_CONDITIONS[mnem], shapes[0])
            elif mnem == 'CALL':
                handler = self._make_call(shapes[0])
            elif mnem == 'PUSH':
                handler = self._make_push(shapes[0])
            else:
                handler = getattr(self, f'_op_{mnem.lower()}')
            table[opcode] = handler
        return table

    # --- Handler factories ---

    def _make_mov(self, dst_shape: str, src_shape: str):
        def handler():
            dst = self._fetch8()
            src = self._fetch8()
            self._write(dst_shape, dst, self._read(src_shape, src))
            self._advance()
        return handler

    def _make_binary(self, fn, src_shape: str, store: bool = True):
        def handler():
            dst = self._fetch8()
            src = self._read(src_shape, self._fetch8())
            result, flags = fn(self.regs.get(dst), src)
            if store:
                self.regs.set(dst, result)
            self.regs.set_CZOS(flags)
            self._advance()
        return handler

    def _make_shift(self, fn, src_shape: str):
        def handler():
            dst = self._fetch8()
            count = self._read(src_shape, self._fetch8())
            if count:
                result, flags = fn(self.regs.get(dst), count)
                self.regs.set(dst, result)
                self.regs.set_CZOS(flags)
            else:
                self.regs.get(dst)  # validate destination only
            self._advance()
        return handler

    def _make_unary(self, fn, keep_carry: bool = False):
        def handler():
            reg = self._fetch8()
            result, flags = fn(self.regs.get(reg))
            self.regs.set(reg, result)
            if keep_carry:
                self.regs.set_ZOS(flags)
            else:
                self.regs.set_CZOS(flags)
            self._advance()
        return handler

    def _make_jump(self, condition, shape: str):
        def handler():
            target = self._read(shape, self._fetch8())
            if condition(self.regs):
                self.regs.IP = target
            else:
                self._advance()
        return handler

    def _make_call(self, shape: str):
        def handler():
            target = self._read(shape, self._fetch8())
            self.regs.push8(self.mem, self.regs.IP + 1)
            self.regs.IP = target
        return handler

    def _make_push(self, shape: str):
        def handler():
            value = self._read(shape, self._fetch8())
            self.regs.push8(self.mem, value)
            self._advance()
        return handler

    # --- Fixed handlers ---

    def _op_hlt(self):
        self.state = CPUState.HALTED
        self._advance()
        log.debug("HLT at %#04x after %d instructions", self.regs.IP - 1, self.instructions + 1)

    def _op_pop(self):
        reg = self._fetch8()
        self.regs.get(reg)
        self.regs.set(reg, self.regs.pull8(self.mem))
        self._advance()

    def _op_pushf(self):
        self.regs.push8(self.mem, self.regs.SR)
        self._advance()

    def _op_popf(self):
        self.regs.set_status(self.regs.pull8(self.mem))
        self._advance()

    def _op_ret(self):
        self.regs.IP = self.regs.pull8(self.mem)

    def _op_out(self):
        port = self._fetch8()
        self.ports.write(port, self.regs.AL)
        self._advance()

    def _op_in(self):
        port = self._fetch8()
        self.regs.AL = self.ports.read(port)
        self._advance()
