"""
MicroSim: Execution Driver

Owns one complete machine (Memory, CPU, PortBus with keyboard / traffic
lights / heater, ASCII display) and drives CPU.step() in a loop.

Termination reasons:
  - HALT:     HLT executed
  - FAULT:    CPU raised a CPUFault
  - STOPPED:  stop() called
  - TIMEOUT:  max_steps instructions executed
  - BREAK:    breakpoint address reached
  - ABORTED:  a blocking keyboard read was cancelled

Step mode: with step_mode set, the loop waits before every instruction
until request_step() grants one; resume() leaves step mode. start() runs
the loop on a worker thread; stop() cancels it, including a blocked IN.
"""

from enum import Enum
from pathlib import Path
from typing import Optional, Set
import logging
import threading

from .assembler import AssemblyResult, assemble
from .config import DEFAULT_MAX_STEPS, DEFAULT_STEP_DELAY
from .cpu.core import CPU
from .cpu.faults import CPUFault
from .mem.memory import Memory
from .periph.display import AsciiDisplay
from .periph.keyboard import InputAborted
from .periph.ports import PortBus, default_bus

log = logging.getLogger(__name__)


class StopReason(Enum):
    HALT = 'HALT'
    FAULT = 'FAULT'
    STOPPED = 'STOPPED'
    TIMEOUT = 'TIMEOUT'
    BREAK = 'BREAK'
    ABORTED = 'ABORTED'


class Simulator:
    """Headless MicroSim machine.

    Usage:
        sim = Simulator()
        sim.assemble(source)
        reason = sim.run(max_steps=10_000)
        print(sim.cpu.registers, sim.display.render())
    """

    def __init__(self, ports: Optional[PortBus] = None):
        self.display = AsciiDisplay()
        self.mem = Memory(display_listener=self.display)
        self.ports = ports if ports is not None else default_bus()
        self.cpu = CPU(self.mem, self.ports)

        self.result: Optional[AssemblyResult] = None
        self.last_reason: Optional[StopReason] = None
        self.step_mode = False

        self._breakpoints: Set[int] = set()
        self._stop = threading.Event()
        self._cond = threading.Condition()
        self._step_tokens = 0
        self._thread: Optional[threading.Thread] = None
        self._active = False
        self._idle = threading.Event()
        self._idle.set()
        self._loop_thread: Optional[threading.Thread] = None

    # ══════════════════════════════════════════════
    # Loading
    # ══════════════════════════════════════════════

    def assemble(self, source: str) -> AssemblyResult:
        """Assemble, load at 0 and reset the CPU.

        On AssemblyError nothing is loaded and the machine is unchanged.
        """
        result = assemble(source)
        self.stop()
        self.mem.load_program(result.machine_code)
        self.cpu.reset()
        self.result = result
        log.info("Program loaded: %d bytes", len(result.machine_code))
        return result

    def load_file(self, path) -> AssemblyResult:
        return self.assemble(Path(path).read_text(encoding="utf-8"))

    def load_binary(self, data):
        """Load raw machine code (no line map) and reset the CPU."""
        self.stop()
        self.mem.load_program(data)
        self.cpu.reset()
        self.result = None

    def reset(self):
        """Stop, then reset CPU, memory and devices. The program is cleared."""
        self.stop()
        self.cpu.reset()
        self.mem.reset()
        for device in (self.ports.keyboard, self.ports.lights, self.ports.heater):
            if device is not None:
                device.reset()
        self.last_reason = None

    # ══════════════════════════════════════════════
    # Debugging helpers
    # ══════════════════════════════════════════════

    def current_line(self) -> Optional[int]:
        """Source line of the instruction at IP, if known."""
        if self.result is None:
            return None
        return self.result.line_for(self.cpu.ip)

    def add_breakpoint(self, addr: int):
        self._breakpoints.add(addr)

    def remove_breakpoint(self, addr: int):
        self._breakpoints.discard(addr)

    def clear_breakpoints(self):
        self._breakpoints.clear()

    # ══════════════════════════════════════════════
    # Execution
    # ══════════════════════════════════════════════

    def run(self, max_steps: Optional[int] = DEFAULT_MAX_STEPS,
            delay: float = DEFAULT_STEP_DELAY) -> StopReason:
        """Step until a termination condition and return the StopReason.

        max_steps=None runs without an instruction limit. stop() from
        another thread ends the run with STOPPED.
        """
        if self.is_running():
            raise RuntimeError("Simulator is already running")
        self._begin()
        self._stop.clear()
        return self._execute(max_steps, delay)

    def _begin(self):
        self._idle.clear()
        self._active = True

    def _execute(self, max_steps: Optional[int], delay: float) -> StopReason:
        self._loop_thread = threading.current_thread()
        try:
            reason = self._loop(max_steps, delay)
            self.last_reason = reason
        finally:
            if self._stop.is_set() and self.ports.keyboard is not None:
                # drop an abort the loop never consumed
                self.ports.keyboard.clear()
            self._loop_thread = None
            self._active = False
            self._idle.set()
        log.info("Stopped: %s after %d instructions (IP=%#04x)",
                 reason.value, self.cpu.instructions, self.cpu.ip)
        return reason

    def _loop(self, max_steps: Optional[int], delay: float) -> StopReason:
        steps = 0
        while True:
            if self._stop.is_set():
                return StopReason.STOPPED
            if self.cpu.is_halted():
                return StopReason.HALT
            if self.cpu.is_fault():
                return StopReason.FAULT
            if max_steps is not None and steps >= max_steps:
                return StopReason.TIMEOUT
            if steps and self.cpu.ip in self._breakpoints:
                return StopReason.BREAK
            if self.step_mode and not self._wait_for_step():
                return StopReason.STOPPED

            try:
                self.cpu.step()
            except CPUFault as e:
                log.warning("Fault on line %s: %s", self.current_line(), e)
                return StopReason.FAULT
            except InputAborted:
                if self._stop.is_set():
                    return StopReason.STOPPED
                return StopReason.ABORTED
            steps += 1

            if delay:
                self._stop.wait(delay)

    def _wait_for_step(self) -> bool:
        """Block until a step is granted. False if stopped meanwhile."""
        with self._cond:
            while self.step_mode and self._step_tokens == 0 and not self._stop.is_set():
                self._cond.wait()
            if self._stop.is_set():
                return False
            if self._step_tokens:
                self._step_tokens -= 1
            return True

    def request_step(self):
        """Let a step-mode loop execute one instruction."""
        with self._cond:
            self._step_tokens += 1
            self._cond.notify_all()

    def resume(self):
        """Leave step mode and run freely."""
        with self._cond:
            self.step_mode = False
            self._cond.notify_all()

    # ══════════════════════════════════════════════
    # Background thread
    # ══════════════════════════════════════════════

    def start(self, max_steps: Optional[int] = None,
              delay: float = DEFAULT_STEP_DELAY) -> threading.Thread:
        """Run the loop on a worker thread."""
        if self.is_running():
            raise RuntimeError("Simulator is already running")
        self._stop.clear()
        with self._cond:
            self._step_tokens = 0
        self._begin()
        self._thread = threading.Thread(target=self._execute, args=(max_steps, delay),
                                        name="microsim-cpu", daemon=True)
        self._thread.start()
        return self._thread

    def is_running(self) -> bool:
        """True while a run() or start() loop is active on any thread."""
        return self._active or (self._thread is not None and self._thread.is_alive())

    def wait(self, timeout: Optional[float] = None) -> Optional[StopReason]:
        """Join the worker thread; returns its StopReason (None if still running)."""
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                return None
            self._thread = None
        return self.last_reason

    def stop(self, timeout: float = 5.0):
        """Stop the active loop, cancelling a blocked keyboard read.

        Works for start() and for run() on any other thread. Called from
        inside the loop (a device callback), it only requests the stop.
        """
        if not self.is_running():
            self._thread = None
            return
        self._stop.set()
        with self._cond:
            self._cond.notify_all()
        keyboard = self.ports.keyboard
        if keyboard is not None:
            keyboard.abort()
        if threading.current_thread() is self._loop_thread:
            return
        if self._thread is not None:
            self._thread.join(timeout)
        else:
            self._idle.wait(timeout)
        if keyboard is not None:
            keyboard.clear()
        self._thread = None
