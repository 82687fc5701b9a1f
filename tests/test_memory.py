"""
Memory Tests: bounds, program loading and the display region.
"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from microsim.mem import Memory, MemoryBoundsError


class TestMemoryAccess:
    """load / store behaviour."""

    def test_power_on_contents(self):
        mem = Memory()
        assert mem.size == 256
        assert mem.load(0x00) == 0
        assert mem.load(0xBF) == 0
        assert all(mem.load(a) == 0x20 for a in range(0xC0, 0x100))

    def test_store_masks_to_byte(self):
        mem = Memory()
        mem.store(0x10, 0x1FF)
        assert mem.load(0x10) == 0xFF

    def test_out_of_bounds(self):
        mem = Memory()
        with pytest.raises(MemoryBoundsError):
            mem.load(256)
        with pytest.raises(MemoryBoundsError):
            mem.store(-1, 0)
        with pytest.raises(IndexError):
            mem.load(1000)

    def test_watchpoint(self):
        mem = Memory()
        seen = []
        mem.add_watchpoint(0x20, lambda addr, old, new: seen.append((addr, old, new)))
        mem.store(0x20, 5)
        mem.store(0x21, 6)
        mem.store(0x20, 7)
        assert seen == [(0x20, 0, 5), (0x20, 5, 7)]
        mem.clear_watchpoints()
        mem.store(0x20, 8)
        assert len(seen) == 2


class TestProgramLoading:
    """load_program / reset."""

    def test_load_clears_program_region(self):
        mem = Memory()
        mem.store(0x90, 0xAA)
        mem.store(0xC5, ord('x'))
        mem.load_program(bytes([1, 2, 3]))
        assert [mem.load(a) for a in range(4)] == [1, 2, 3, 0]
        assert mem.load(0x90) == 0
        # display region survives a load
        assert mem.load(0xC5) == ord('x')

    def test_max_program_size(self):
        mem = Memory()
        mem.load_program(bytes([7]) * 0xC0)
        assert mem.load(0xBF) == 7
        with pytest.raises(ValueError):
            mem.load_program(bytes(0xC1))

    def test_reset_repaints_display(self):
        seen = []
        mem = Memory(display_listener=lambda a, v: seen.append((a, v)))
        assert len(seen) == 64
        mem.store(0xC0, ord('A'))
        mem.store(0x05, 9)
        mem.reset()
        assert mem.load(0xC0) == 0x20
        assert mem.load(0x05) == 0
        assert seen[-1] == (0xFF, 0x20)


class TestDisplayRegion:
    """Stores at 0xC0–0xFF notify listeners."""

    def test_listener_only_for_display(self):
        seen = []
        mem = Memory()
        mem.add_display_listener(lambda a, v: seen.append((a, v)))
        mem.store(0xBF, 1)
        mem.store(0xC0, ord('H'))
        mem.store(0xFF, ord('!'))
        assert seen == [(0xC0, ord('H')), (0xFF, ord('!'))]

    def test_snapshot_and_hexdump(self):
        mem = Memory()
        mem.load_program(b'Hi')
        snap = mem.snapshot()
        assert len(snap) == 256 and snap[:2] == b'Hi'
        dump = mem.hexdump(0, 16)
        assert dump.startswith("00: 48 69 00")
        assert dump.endswith("Hi" + "." * 14)
        assert len(mem.hexdump().splitlines()) == 16
