"""
Simulator Tests: run loop, breakpoints, step mode and stopping.
"""
import sys
import os
import threading
import time
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from microsim import AssemblyError, Simulator, StopReason, run_source
from microsim.cpu import FaultKind

INPUT_PROGRAM = "MOV AL, 5\nIN 1\nHLT"


def _wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.001)
    return False


class TestRun:
    """Synchronous run() termination reasons."""

    def test_halt(self):
        sim = Simulator()
        sim.assemble("MOV AL, 1\nHLT")
        assert sim.run() is StopReason.HALT
        assert sim.last_reason is StopReason.HALT
        assert sim.cpu.registers[0] == 1

    def test_unlimited_steps(self):
        sim = Simulator()
        sim.assemble("MOV CL, 50\nloop: DEC CL\nJNZ loop\nHLT")
        assert sim.run(max_steps=None) is StopReason.HALT
        assert sim.cpu.instructions == 1 + 50 * 2 + 1

    def test_timeout(self):
        sim = Simulator()
        sim.assemble("loop: JMP loop")
        assert sim.run(max_steps=10) is StopReason.TIMEOUT
        assert sim.cpu.instructions == 10

    def test_fault(self):
        sim = Simulator()
        sim.assemble("MOV AL, 1\nDIV AL, 0\nHLT")
        assert sim.run() is StopReason.FAULT
        assert sim.cpu.last_fault.kind is FaultKind.DIVISION_BY_ZERO
        assert sim.current_line() == 2
        # a faulted machine stays faulted until reset
        assert sim.run() is StopReason.FAULT

    def test_halted_machine_stays_halted(self):
        sim = Simulator()
        sim.assemble("HLT\nINC AL\nHLT")
        sim.run()
        assert sim.run() is StopReason.HALT
        assert sim.cpu.registers[0] == 0

    def test_run_source(self):
        sim = run_source("MOV [0xC0], 'A'\nHLT")
        assert sim.last_reason is StopReason.HALT
        assert sim.display.text() == "A"


class TestLoading:
    """assemble / load_binary / reset."""

    def test_failed_assembly_keeps_machine(self):
        sim = Simulator()
        first = sim.assemble("MOV AL, 9\nHLT")
        with pytest.raises(AssemblyError):
            sim.assemble("MOV AL, 9\nJMP nowhere")
        assert sim.result is first
        assert sim.run() is StopReason.HALT
        assert sim.cpu.registers[0] == 9

    def test_reassemble_resets_cpu(self):
        sim = Simulator()
        sim.assemble("MOV AL, 9\nHLT")
        sim.run()
        sim.assemble("HLT")
        assert sim.cpu.ip == 0
        assert sim.cpu.registers == [0, 0, 0, 0]
        assert sim.mem.load(1) == 0

    def test_load_binary(self):
        sim = Simulator()
        sim.load_binary(bytes([1, 0, 7, 0]))
        assert sim.result is None
        assert sim.current_line() is None
        assert sim.run() is StopReason.HALT
        assert sim.cpu.registers[0] == 7

    def test_load_file(self, tmp_path):
        path = tmp_path / "prog.asm"
        path.write_text("MOV BL, 3\nHLT\n")
        sim = Simulator()
        sim.load_file(path)
        assert sim.run() is StopReason.HALT
        assert sim.cpu.registers[1] == 3

    def test_reset_restores_power_on_state(self):
        sim = Simulator()
        sim.assemble("MOV AL, 0x84\nOUT 2\nMOV [0xC0], 'x'\nHLT")
        sim.run()
        assert sim.ports.lights.state == 0x84
        sim.reset()
        assert sim.ports.lights.state == 0xFC
        assert sim.cpu.registers == [0, 0, 0, 0]
        assert sim.mem.load(0) == 0
        assert sim.display.text() == ""
        assert sim.last_reason is None


class TestBreakpoints:
    """Breakpoints stop before the instruction at their address."""

    def test_break_and_continue(self):
        sim = Simulator()
        sim.assemble("INC AL\nINC AL\nINC AL\nHLT")
        sim.add_breakpoint(4)
        assert sim.run() is StopReason.BREAK
        assert sim.cpu.ip == 4
        assert sim.cpu.registers[0] == 2
        assert sim.current_line() == 3
        # continuing from a breakpoint executes it
        assert sim.run() is StopReason.HALT
        assert sim.cpu.registers[0] == 3

    def test_breakpoint_at_start_is_skipped(self):
        sim = Simulator()
        sim.assemble("INC AL\nHLT")
        sim.add_breakpoint(0)
        assert sim.run() is StopReason.HALT

    def test_remove_and_clear(self):
        sim = Simulator()
        sim.assemble("INC AL\nINC AL\nHLT")
        sim.add_breakpoint(2)
        sim.remove_breakpoint(2)
        assert sim.run() is StopReason.HALT
        sim.assemble("INC AL\nINC AL\nHLT")
        sim.add_breakpoint(2)
        sim.clear_breakpoints()
        assert sim.run() is StopReason.HALT


class TestBackground:
    """start() / stop() / step mode on the worker thread."""

    def test_start_and_wait(self):
        sim = Simulator()
        sim.assemble("MOV AL, 1\nHLT")
        sim.start()
        assert sim.wait(timeout=5) is StopReason.HALT
        assert not sim.is_running()

    def test_step_mode(self):
        sim = Simulator()
        sim.assemble("MOV AL, 1\nMOV AL, 2\nHLT")
        sim.step_mode = True
        sim.start()
        try:
            time.sleep(0.05)
            assert sim.cpu.instructions == 0

            sim.request_step()
            assert _wait_for(lambda: sim.cpu.instructions == 1)
            time.sleep(0.05)
            assert sim.cpu.instructions == 1
            assert sim.cpu.registers[0] == 1

            sim.resume()
            assert sim.wait(timeout=5) is StopReason.HALT
            assert sim.cpu.registers[0] == 2
        finally:
            sim.stop()

    def test_stop_while_waiting_for_step(self):
        sim = Simulator()
        sim.assemble("HLT")
        sim.step_mode = True
        sim.start()
        sim.stop()
        assert sim.last_reason is StopReason.STOPPED
        assert not sim.cpu.is_halted()

    def test_stop_cancels_blocked_input(self):
        sim = Simulator()
        sim.assemble(INPUT_PROGRAM)
        sim.start()
        assert _wait_for(lambda: sim.ports.keyboard.waiting)
        time.sleep(0.05)
        sim.stop()
        assert not sim.is_running()
        assert sim.last_reason is StopReason.STOPPED
        assert sim.cpu.ip == 3
        assert not sim.cpu.is_fault()
        assert not sim.ports.keyboard.pending

        # the IN is retried on the next run
        sim.ports.keyboard.press('k')
        assert sim.run() is StopReason.HALT
        assert sim.cpu.registers[0] == ord('k')

    def test_abort_without_stop(self):
        sim = Simulator()
        sim.assemble(INPUT_PROGRAM)
        sim.start()
        assert _wait_for(lambda: sim.ports.keyboard.waiting)
        sim.ports.keyboard.abort()
        assert sim.wait(timeout=5) is StopReason.ABORTED
        assert sim.cpu.ip == 3

    def test_stop_run_on_plain_thread(self):
        sim = Simulator()
        sim.assemble(INPUT_PROGRAM)
        reasons = []
        runner = threading.Thread(target=lambda: reasons.append(sim.run()))
        runner.start()
        assert _wait_for(lambda: sim.ports.keyboard.waiting)
        assert sim.is_running()
        sim.stop()
        runner.join(timeout=5)
        assert not runner.is_alive()
        assert reasons == [StopReason.STOPPED]
        assert sim.last_reason is StopReason.STOPPED
        assert not sim.is_running()
        assert sim.cpu.ip == 3
        assert not sim.ports.keyboard.pending

    def test_stop_run_loop_on_plain_thread(self):
        sim = Simulator()
        sim.assemble("loop: JMP loop")
        reasons = []
        runner = threading.Thread(target=lambda: reasons.append(sim.run(max_steps=None)))
        runner.start()
        assert _wait_for(lambda: sim.cpu.instructions > 0)
        sim.stop()
        runner.join(timeout=5)
        assert reasons == [StopReason.STOPPED]

    def test_stop_from_port_callback(self):
        sim = Simulator()
        sim.assemble("MOV AL, 1\nOUT 2\nINC AL\nHLT")
        sim.ports.on_write(2, lambda port, value: sim.stop())
        assert sim.run() is StopReason.STOPPED
        assert sim.cpu.ip == 5
        assert not sim.ports.keyboard.pending

    def test_start_twice(self):
        sim = Simulator()
        sim.assemble(INPUT_PROGRAM)
        sim.start()
        try:
            with pytest.raises(RuntimeError):
                sim.start()
        finally:
            sim.stop()

    def test_stop_when_idle(self):
        sim = Simulator()
        sim.stop()
        assert sim.last_reason is None
