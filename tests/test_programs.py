"""
Program Tests: assemble and run the sample programs in tests/programs/.

Several programs are split into sections ending in HLT; each section is
checked, then the CPU is resumed into the next one.
"""
import sys
import os
import time
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from microsim import Simulator, StopReason
from microsim.cpu import FaultKind

PROGRAMS = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'programs')


def _load(name: str) -> Simulator:
    sim = Simulator()
    sim.load_file(os.path.join(PROGRAMS, name))
    return sim


def _section(sim: Simulator, max_steps: int = 1000) -> StopReason:
    """Run to the next HLT (continuing past the previous one)."""
    sim.cpu.resume()
    return sim.run(max_steps=max_steps)


def _al(sim: Simulator) -> int:
    return sim.cpu.registers[0]


class TestArithmeticPrograms:
    """flags.asm, mul.asm, div.asm"""

    def test_flags(self):
        sim = _load('flags.asm')
        cpu = sim.cpu

        assert _section(sim) is StopReason.HALT
        assert _al(sim) == 0xC8
        assert cpu.overflow and cpu.sign and not cpu.carry

        _section(sim)
        assert _al(sim) == 0x38
        assert cpu.overflow and not cpu.carry and not cpu.sign

        _section(sim)
        assert _al(sim) == 0x00
        assert cpu.carry and cpu.zero

        _section(sim)
        assert _al(sim) == 0xFF
        assert cpu.carry and cpu.sign and not cpu.overflow

        _section(sim)
        assert _al(sim) == 0x0A
        assert cpu.carry and cpu.sign

    def test_mul(self):
        sim = _load('mul.asm')
        for expected in (50, 12, 16, 56):
            assert _section(sim) is StopReason.HALT
            assert _al(sim) == expected
        _section(sim)
        assert _al(sim) == 0x90
        assert sim.cpu.carry and sim.cpu.overflow

    def test_div(self):
        sim = _load('div.asm')
        for expected in (5, 3, 2, 7):
            assert _section(sim) is StopReason.HALT
            assert _al(sim) == expected
        assert _section(sim) is StopReason.FAULT
        assert sim.cpu.last_fault.kind is FaultKind.DIVISION_BY_ZERO
        assert sim.current_line() == 24

    def test_logical(self):
        sim = _load('logical.asm')
        for expected in (0x88, 0xEE, 0x66, 0x33):
            _section(sim)
            assert _al(sim) == expected
        _section(sim)
        assert _al(sim) == 0x54
        assert sim.cpu.carry
        _section(sim)
        assert _al(sim) == 0x55
        assert not sim.cpu.carry


class TestControlPrograms:
    """jumps.asm, stack.asm, pushf.asm, print_hex.asm"""

    def test_jump_aliases(self):
        sim = _load('jumps.asm')
        assert sim.run() is StopReason.HALT
        assert sim.cpu.registers[2] == 0x01
        assert sim.cpu.registers[3] == 0x01

    def test_stack_offsets(self):
        sim = _load('stack.asm')
        assert sim.run() is StopReason.HALT
        assert sim.cpu.registers == [0x33, 0xFF, 0x11, 0xFF]
        assert sim.cpu.sp == 0xBF

    def test_pushf_restores_flags(self):
        sim = _load('pushf.asm')
        assert sim.run(max_steps=200) is StopReason.TIMEOUT
        assert not sim.cpu.is_halted()
        assert sim.cpu.ip == sim.result.symbols['SUCCESS']

    def test_print_hex(self):
        sim = _load('print_hex.asm')
        assert len(sim.result.machine_code) == 0x51
        assert sim.run() is StopReason.HALT
        assert sim.display.text() == "B7"
        assert sim.cpu.sp == 0xBF


class TestDevicePrograms:
    """lights.asm, heater.asm, keyboard.asm"""

    def test_traffic_lights(self):
        sim = _load('lights.asm')
        written = []
        sim.ports.on_write(2, lambda port, value: written.append(value))
        assert sim.run(max_steps=13) is StopReason.TIMEOUT
        assert written == [0x84, 0x88, 0x90, 0x30, 0x50, 0x90]
        assert sim.ports.lights.state == 0x90
        assert sim.cpu.ip == 0

    def test_thermostat(self):
        sim = _load('heater.asm')
        heater = sim.ports.heater

        sim.run(max_steps=50)
        assert heater.burner

        heater.tick(60)
        assert heater.status & 0x02
        sim.run(max_steps=50)
        assert not heater.burner

    def test_keyboard_echo(self):
        sim = _load('keyboard.asm')
        sim.start(max_steps=10_000)
        keyboard = sim.ports.keyboard
        for key in ('H', 'i', 'enter'):
            for _ in range(5000):
                if keyboard.press(key):
                    break
                time.sleep(0.001)
            else:
                pytest.fail(f"key {key!r} was never accepted")
        assert sim.wait(timeout=5) is StopReason.HALT
        assert sim.display.text() == "Hi"
