"""
MicroSim: 256-byte Memory with Display Region

Memory map:
  0x00–0xBF  Program, data and stack. Cleared on every program load.
  0xC0–0xFF  Display buffer. Power-on contents are spaces (0x20); every
             store here is forwarded to the registered display listener.

Out-of-range access raises MemoryBoundsError immediately. The CPU turns
that into an ADDRESS_OUT_OF_BOUNDS fault at its step() boundary.
"""

from typing import Callable, Dict, List, Optional
import logging

from ..config import (
    MEMORY_SIZE, PROGRAM_LIMIT, DISPLAY_START, DISPLAY_END, DISPLAY_FILL,
)

log = logging.getLogger(__name__)

# listener(addr, value)
DisplayListener = Callable[[int, int], None]


class MemoryBoundsError(IndexError):
    """Raised on a load/store outside the address space."""
    def __init__(self, addr: int, size: int = MEMORY_SIZE):
        self.addr = addr
        super().__init__(f"Address out of bounds: {addr} (valid 0..{size - 1})")


class Memory:
    """Flat byte-addressable memory.

    Usage:
        mem = Memory()
        mem.load_program(code)
        mem.store(0xC0, ord('H'))    # notifies the display listener
        mem.load(0x00)
    """

    def __init__(self, size: int = MEMORY_SIZE,
                 display_listener: Optional[DisplayListener] = None):
        self._size = size
        self._mem = bytearray(size)
        self._display_listeners: List[DisplayListener] = []
        # Watchpoints: addr → [callback(addr, old, new)]
        self._watchpoints: Dict[int, List[Callable]] = {}
        if display_listener is not None:
            self._display_listeners.append(display_listener)
        self._fill_display()

    @property
    def size(self) -> int:
        return self._size

    # --- Core read/write ---

    def load(self, addr: int) -> int:
        """Read one byte."""
        if not 0 <= addr < self._size:
            raise MemoryBoundsError(addr, self._size)
        return self._mem[addr]

    def store(self, addr: int, value: int):
        """Write one byte (masked to 8 bits).

        Stores into the display region notify every display listener.
        """
        if not 0 <= addr < self._size:
            raise MemoryBoundsError(addr, self._size)
        value &= 0xFF
        old = self._mem[addr]
        self._mem[addr] = value

        if addr in self._watchpoints:
            for cb in self._watchpoints[addr]:
                cb(addr, old, value)

        if DISPLAY_START <= addr <= DISPLAY_END:
            for listener in self._display_listeners:
                listener(addr, value)

    # --- Program loading ---

    def load_program(self, program):
        """Clear the program region and copy machine code in from address 0.

        The display region is left untouched.
        """
        data = bytes(program)
        if len(data) > PROGRAM_LIMIT:
            raise ValueError(
                f"Program too large: {len(data)} bytes (max {PROGRAM_LIMIT})"
            )
        self._mem[0:PROGRAM_LIMIT] = bytes(PROGRAM_LIMIT)
        self._mem[0:len(data)] = data
        log.debug("Loaded %d bytes of machine code", len(data))

    def reset(self):
        """Clear the program region and repaint the display with spaces."""
        self._mem[0:PROGRAM_LIMIT] = bytes(PROGRAM_LIMIT)
        self._fill_display()

    def _fill_display(self):
        for addr in range(DISPLAY_START, min(DISPLAY_END + 1, self._size)):
            self._mem[addr] = DISPLAY_FILL
            for listener in self._display_listeners:
                listener(addr, DISPLAY_FILL)

    # --- Listeners / watchpoints ---

    def add_display_listener(self, listener: DisplayListener):
        """Register listener(addr, value) for stores into the display region."""
        self._display_listeners.append(listener)

    def add_watchpoint(self, addr: int, callback: Callable):
        """callback(addr, old, new) fires on every store to addr."""
        self._watchpoints.setdefault(addr, []).append(callback)

    def clear_watchpoints(self):
        self._watchpoints.clear()

    # --- Inspection ---

    def snapshot(self) -> bytes:
        """Copy of the whole address space."""
        return bytes(self._mem)

    def hexdump(self, start: int = 0, length: int = MEMORY_SIZE) -> str:
        """Return a hex dump of a memory region, 16 bytes per row."""
        lines = []
        end = min(start + length, self._size)
        for addr in range(start, end, 16):
            row = self._mem[addr:min(addr + 16, end)]
            hex_part = ' '.join(f'{b:02X}' for b in row)
            ascii_part = ''.join(chr(b) if 32 <= b < 127 else '.' for b in row)
            lines.append(f"{addr:02X}: {hex_part:<48s} {ascii_part}")
        return '\n'.join(lines)
