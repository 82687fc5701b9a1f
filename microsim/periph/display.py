"""
MicroSim: Memory-mapped ASCII Display

Shows memory 0xC0–0xFF as 4 rows × 16 columns. Register it as the
Memory display listener so every store refreshes the buffer. Bytes
outside printable ASCII (32–126) are shown as '?'.
"""

from typing import List

from ..config import DISPLAY_START, DISPLAY_ROWS, DISPLAY_COLS, DISPLAY_FILL


class AsciiDisplay:

    def __init__(self):
        self._cells = bytearray([DISPLAY_FILL] * (DISPLAY_ROWS * DISPLAY_COLS))
        self.updates = 0

    def __call__(self, addr: int, value: int):
        index = addr - DISPLAY_START
        if 0 <= index < len(self._cells):
            self._cells[index] = value & 0xFF
            self.updates += 1

    def rows(self) -> List[str]:
        out = []
        for r in range(DISPLAY_ROWS):
            row = self._cells[r * DISPLAY_COLS:(r + 1) * DISPLAY_COLS]
            out.append(''.join(chr(b) if 32 <= b <= 126 else '?' for b in row))
        return out

    def render(self) -> str:
        return '\n'.join(self.rows())

    def text(self) -> str:
        """All rows joined, trailing spaces stripped."""
        return ''.join(self.rows()).rstrip()
