#!/usr/bin/env python3
"""
msim: MicroSim assembler / emulator CLI

Usage:
    python msim.py asm  <input.asm> [-o out.bin] [--listing]
    python msim.py run  <input.asm> [--max-steps N] [--delay S] [--keys TEXT]
                                    [--heater] [--dump] [--trace]
    python msim.py dis  <input.bin>

Examples:
    python msim.py asm hello.asm -o hello.bin
    python msim.py asm hello.asm --listing
    python msim.py run lights.asm --max-steps 5000
    python msim.py run echo.asm --keys "HI" --dump
    python msim.py dis hello.bin

Exit status: 0 on success / HLT, 1 on assembly errors, 2 on CPU faults,
timeouts or I/O errors.
"""

import argparse
import logging
import sys
import os
import threading
import time

# Allow running from project root or as module
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from microsim import __version__
from microsim.assembler import Assembler, AssemblyError
from microsim.config import DEFAULT_MAX_STEPS, DEFAULT_STEP_DELAY
from microsim.disasm import disassemble_text
from microsim.log import setup_logging
from microsim.sim import Simulator, StopReason


def parse_int_arg(value: str) -> int:
    """Parse an integer argument that may be hex (0x...) or decimal."""
    value = value.strip()
    if value.startswith("0x") or value.startswith("0X"):
        return int(value, 16)
    return int(value)


def _read_source(path: str) -> str:
    with open(path, 'r', encoding='utf-8') as f:
        return f.read()


def cmd_asm(args) -> int:
    asm = Assembler()
    result = asm.assemble(_read_source(args.input))
    if args.output:
        with open(args.output, 'wb') as f:
            f.write(result.machine_code)
        print(f"{args.input}: {len(result.machine_code)} bytes -> {args.output}",
              file=sys.stderr)
    if args.listing:
        print(asm.get_listing())
    elif not args.output:
        print(result.machine_code.hex(' ').upper())
    return 0


def cmd_dis(args) -> int:
    with open(args.input, 'rb') as f:
        data = f.read()
    print(disassemble_text(data, parse_int_arg(args.start)))
    return 0


def format_registers(sim: Simulator) -> str:
    cpu = sim.cpu
    al, bl, cl, dl = cpu.registers
    flags = ' '.join(
        f"{name}={int(on)}" for name, on in (
            ('Z', cpu.zero), ('C', cpu.carry), ('O', cpu.overflow),
            ('S', cpu.sign), ('F', cpu.is_fault()),
        )
    )
    return (f"AL={al:02X} BL={bl:02X} CL={cl:02X} DL={dl:02X} "
            f"SP={cpu.sp:02X} IP={cpu.ip:02X}  SR={cpu.status:05b}  {flags}")


def cmd_run(args) -> int:
    sim = Simulator()
    sim.assemble(_read_source(args.input))
    sim.cpu.enable_trace(args.trace)

    keyboard = sim.ports.keyboard

    def feed():
        # the keyboard holds one key at a time
        for ch in args.keys:
            while not keyboard.press(ch):
                if not sim.is_running():
                    return
                time.sleep(0.01)

    if args.heater:
        sim.ports.heater.start()
    try:
        sim.start(max_steps=args.max_steps, delay=args.delay)
        if args.keys:
            threading.Thread(target=feed, name="msim-keys", daemon=True).start()
        reason = sim.wait()
    except KeyboardInterrupt:
        sim.stop()
        reason = StopReason.STOPPED
    finally:
        if args.heater:
            sim.ports.heater.stop()

    if args.trace:
        print('\n'.join(sim.cpu.trace_output))
    print(f"Stopped: {reason.value}")
    if sim.cpu.last_fault is not None:
        print(f"Fault:   {sim.cpu.last_fault} (line {sim.current_line()})")
    print(format_registers(sim))
    print(f"Lights:  {sim.ports.lights.render()}")
    print("Display:")
    for row in sim.display.rows():
        print(f"  |{row}|")
    if args.dump:
        print(sim.mem.hexdump())

    return 0 if reason is StopReason.HALT else 2


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="msim",
        description="MicroSim 8-bit assembler and emulator",
    )
    parser.add_argument("--version", action="version", version=f"msim {__version__}")
    parser.add_argument("--log-level", default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Console log level (default: WARNING)")
    parser.add_argument("--log-dir", default=None,
                        help="Also write a DEBUG log file into this directory")
    sub = parser.add_subparsers(dest="command", required=True)

    p_asm = sub.add_parser("asm", help="Assemble a source file")
    p_asm.add_argument("input", help="Assembly source file")
    p_asm.add_argument("-o", "--output", help="Write raw machine code here")
    p_asm.add_argument("--listing", action="store_true",
                       help="Print an address / bytes / source listing")
    p_asm.set_defaults(func=cmd_asm)

    p_run = sub.add_parser("run", help="Assemble and execute a source file")
    p_run.add_argument("input", help="Assembly source file")
    p_run.add_argument("--max-steps", type=int, default=DEFAULT_MAX_STEPS,
                       help=f"Instruction limit (default {DEFAULT_MAX_STEPS})")
    p_run.add_argument("--delay", type=float, default=DEFAULT_STEP_DELAY,
                       help="Seconds to sleep between instructions")
    p_run.add_argument("--keys", default="",
                       help="Characters typed on the keyboard (port 1)")
    p_run.add_argument("--heater", action="store_true",
                       help="Run the heater thermometer in real time")
    p_run.add_argument("--dump", action="store_true", help="Print a memory hex dump")
    p_run.add_argument("--trace", action="store_true", help="Print an instruction trace")
    p_run.set_defaults(func=cmd_run)

    p_dis = sub.add_parser("dis", help="Disassemble raw machine code")
    p_dis.add_argument("input", help="Binary file")
    p_dis.add_argument("--start", default="0", help="Address of the first byte")
    p_dis.set_defaults(func=cmd_dis)

    args = parser.parse_args(argv)
    setup_logging(console_level=getattr(logging, args.log_level), log_dir=args.log_dir)

    try:
        sys.exit(args.func(args))
    except AssemblyError as e:
        print(f"Assembler error ({e.kind.value}): {e}", file=sys.stderr)
        sys.exit(1)
    except (IOError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
