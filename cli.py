#!/usr/bin/env python3
"""
Intcode Runner / Monitor
========================
Command-line front end for the Intcode machine.

Provides:
  - Running a program with queued input values and memory pokes
  - Running a chain or feedback ring of machines
  - Disassembly listings
  - An interactive monitor (run / step / breakpoints / memory inspection)

Usage:
  python cli.py PROGRAM [-i N ...] [--set ADDR=VALUE ...] [--show-mem0]
  python cli.py PROGRAM --phases 9,8,7,6,5 [--signal 0] [--chain]
  python cli.py PROGRAM --disasm
  python cli.py PROGRAM --monitor
"""

from __future__ import annotations
import argparse
import cmd
import logging
import shlex
import sys
from typing import Optional

from intcode import (
    Machine, Memory, HaltReason, IntcodeError, HaltError, decode,
    MODE_POSITION, MODE_IMMEDIATE, MODE_RELATIVE,
)
from loader import load_program, parse_program, ParseError
from pipeline import Pipeline

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
#  Disassembler
# ---------------------------------------------------------------------------

def _format_param(value: int, mode: int) -> str:
    if mode == MODE_IMMEDIATE:
        return str(value)
    if mode == MODE_RELATIVE:
        return f"[rb{value:+d}]"
    return f"[{value}]"


def disasm_one(memory: Memory, addr: int) -> tuple[str, int]:
    """Disassemble one instruction at `addr`. Returns (text, word_count)."""
    word = memory.read(addr)
    try:
        inst = decode(word)
    except IntcodeError:
        return f".word {word}", 1
    params = [_format_param(memory.read(addr + 1 + i), inst.modes[i])
              for i in range(inst.arity)]
    text = inst.name if not params else f"{inst.name} {', '.join(params)}"
    return text, 1 + inst.arity


def disasm(memory: Memory, addr: int = 0,
           count: Optional[int] = None) -> list[tuple[int, str]]:
    """Disassemble from `addr` to the end of memory (or `count` instructions)."""
    out = []
    end = len(memory)
    while addr < end and (count is None or len(out) < count):
        text, size = disasm_one(memory, addr)
        out.append((addr, text))
        addr += size
    return out

# ---------------------------------------------------------------------------
#  Monitor
# ---------------------------------------------------------------------------

class IntcodeCLI(cmd.Cmd):
    """Interactive monitor for one Intcode machine."""

    intro = (
        "\n"
        "Intcode Monitor.  Type 'help' for commands, 'quit' to exit.\n"
    )
    prompt = "IC> "

    def __init__(self, program: Memory, stdout=None):
        super().__init__(stdout=stdout)
        self.program = program
        self.machine = Machine(program)
        self.breakpoints: set[int] = set()
        self._shown = 0   # outputs already printed

    def _print(self, *args):
        print(*args, file=self.stdout)

    def _parse_int(self, s: str) -> int:
        return int(s.strip(), 0)

    def _show_new_output(self):
        new = self.machine.output[self._shown:]
        if new:
            self._print("  Output: " + ", ".join(str(v) for v in new))
        self._shown = len(self.machine.output)

    def _report(self, reason: Optional[HaltReason]):
        self._show_new_output()
        if reason is HaltReason.HALT_INSTRUCTION:
            self._print(f"Halted at {self.machine.pc} after "
                        f"{self.machine.steps} steps.")
        elif reason is HaltReason.WAITING_FOR_INPUT:
            self._print(f"Waiting for input at {self.machine.pc}.  "
                        "Use 'feed <values>' then 'run' to continue.")

    def onecmd(self, line):
        """Run one command; bad arguments print usage instead of exiting."""
        try:
            return super().onecmd(line)
        except (ValueError, IntcodeError) as e:
            self._print(f"  Error: {e}")
            name = self.parseline(line)[0]
            doc = getattr(getattr(self, f"do_{name}", None), "__doc__", None)
            if doc:
                self._print(f"  {doc.splitlines()[0]}")
            return False

    # ================================================================
    #  Commands
    # ================================================================

    # -- Execution --

    def do_run(self, arg):
        """Run until halt, input starvation or a breakpoint."""
        m = self.machine
        if m.halted:
            self._print("Machine is halted.")
            return
        try:
            if not self.breakpoints:
                self._report(m.execute())
                return
            # Step so breakpoints are honoured; always leave the current pc.
            reason = m.step()
            while reason is None:
                if m.pc in self.breakpoints:
                    self._show_new_output()
                    self._print(f"Breakpoint hit at {m.pc}")
                    return
                reason = m.step()
            self._report(reason)
        except IntcodeError as e:
            self._print(f"Fault: {e}")

    do_continue = do_run

    def do_step(self, arg):
        """Step N instructions: step [count]"""
        count = self._parse_int(arg) if arg.strip() else 1
        m = self.machine
        for _ in range(count):
            addr_before = m.pc
            try:
                text, _ = disasm_one(m.memory, addr_before)
                reason = m.step()
            except HaltError:
                self._print("Machine is halted.")
                break
            except IntcodeError as e:
                self._print(f"Fault: {e}")
                break
            self._print(f"  {addr_before:>6d}: {text}")
            if reason is not None:
                self._report(reason)
                break
        self._show_new_output()

    def do_feed(self, arg):
        """Queue input values: feed <value> [value] ..."""
        parts = shlex.split(arg.replace(",", " "))
        if not parts:
            self._print("Usage: feed <value> [value] ...")
            return
        try:
            values = [self._parse_int(p) for p in parts]
        except ValueError:
            self._print("  Error: values must be integers.")
            return
        self.machine.feed(*values)
        self._print(f"  Queued {len(values)} value(s).")

    def do_reset(self, arg):
        """Discard the machine and start again from the loaded program."""
        self.machine = Machine(self.program)
        self._shown = 0
        self._print("Machine reset.")

    # -- Breakpoints --

    def do_bp(self, arg):
        """Set breakpoint: bp <address>   (no argument lists breakpoints)"""
        if not arg.strip():
            for addr in sorted(self.breakpoints):
                self._print(f"  {addr}")
            return
        addr = self._parse_int(arg)
        self.breakpoints.add(addr)
        self._print(f"Breakpoint set at {addr}.")

    def do_bpd(self, arg):
        """Delete breakpoint: bpd <address> | all"""
        if arg.strip().lower() == "all":
            self.breakpoints.clear()
            self._print("All breakpoints cleared.")
            return
        addr = self._parse_int(arg)
        self.breakpoints.discard(addr)
        self._print(f"Breakpoint at {addr} removed.")

    # -- Inspection --

    def do_regs(self, arg):
        """Show pc, relative base, I/O and step counters."""
        self._print(self.machine.dump_state())

    def do_output(self, arg):
        """Show all output produced so far."""
        self._print("  " + ", ".join(str(v) for v in self.machine.output))
        self._shown = len(self.machine.output)

    def do_dump(self, arg):
        """Dump memory: dump <address> [count]   (count defaults to 32)"""
        parts = shlex.split(arg)
        if not parts:
            self._print("Usage: dump <address> [count]")
            return
        addr = self._parse_int(parts[0])
        count = self._parse_int(parts[1]) if len(parts) > 1 else 32
        mem = self.machine.memory
        for row_start in range(addr, addr + count, 8):
            row_end = min(row_start + 8, addr + count)
            vals = " ".join(f"{mem.read(a):>8d}" for a in range(row_start, row_end))
            self._print(f"  {row_start:>6d}: {vals}")

    def do_setmem(self, arg):
        """Set memory: setmem <address> <value> [value] ..."""
        parts = shlex.split(arg)
        if len(parts) < 2:
            self._print("Usage: setmem <addr> <value...>")
            return
        addr = self._parse_int(parts[0])
        for i, tok in enumerate(parts[1:]):
            self.machine.memory.write(addr + i, self._parse_int(tok))
        self._print(f"  Wrote {len(parts) - 1} value(s) at {addr}")

    def do_disasm(self, arg):
        """Disassemble: disasm [address] [count]
        Defaults to current pc, 16 instructions."""
        parts = shlex.split(arg)
        addr = self._parse_int(parts[0]) if parts else self.machine.pc
        count = self._parse_int(parts[1]) if len(parts) > 1 else 16
        mem = self.machine.memory
        for _ in range(count):
            text, size = disasm_one(mem, addr)
            raw = ",".join(str(mem.read(addr + i)) for i in range(size))
            marker = ">>>" if addr == self.machine.pc else "   "
            self._print(f"  {marker} {addr:>6d}: {raw:<24s} {text}")
            addr += size

    # -- Misc --

    def do_quit(self, arg):
        """Exit the monitor."""
        self._print("Goodbye.")
        return True
    do_exit = do_quit
    do_q = do_quit

    def do_EOF(self, arg):
        self._print()
        return self.do_quit(arg)

    def default(self, line):
        """Handle unknown commands gracefully."""
        self._print(f"Unknown command: {line.split()[0]!r}. "
                    "Type 'help' for available commands.")

    def emptyline(self):
        """Don't repeat the last command on empty input."""
        pass

# ---------------------------------------------------------------------------
#  Main
# ---------------------------------------------------------------------------

def _parse_poke(spec: str) -> tuple[int, int]:
    addr_s, sep, val_s = spec.partition("=")
    if not sep:
        raise argparse.ArgumentTypeError(f"expected ADDR=VALUE, got {spec!r}")
    try:
        return int(addr_s, 0), int(val_s, 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid poke {spec!r}") from None


def _parse_phases(spec: str) -> list[int]:
    try:
        return [int(p) for p in spec.split(",") if p.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid phase list {spec!r}") from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="intcode",
        description="Intcode program runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Examples:\n"
               "  intcode prog.txt -i 1\n"
               "  intcode prog.txt --set 1=12 --set 2=2 --show-mem0\n"
               "  intcode prog.txt --phases 9,8,7,6,5\n"
               "  intcode prog.txt --phases 4,3,2,1,0 --chain\n"
               "  intcode prog.txt --monitor\n"
    )
    parser.add_argument("program",
                        help="Program file ('-' reads standard input)")
    parser.add_argument("-i", "--input", type=int, action="append", default=[],
                        metavar="N", help="Queue an input value (can repeat)")
    parser.add_argument("--set", type=_parse_poke, action="append", default=[],
                        metavar="ADDR=VALUE",
                        help="Overwrite memory before running (can repeat)")
    parser.add_argument("--show-mem0", action="store_true",
                        help="Print memory[0] after the program halts")
    parser.add_argument("--phases", type=_parse_phases, default=None,
                        metavar="A,B,...",
                        help="Run one machine per phase setting, wired in a ring "
                             "(not combinable with -i)")
    parser.add_argument("--signal", type=int, default=0,
                        help="Initial signal for the first machine (default: 0)")
    parser.add_argument("--chain", action="store_true",
                        help="With --phases: wire machines in series, not a ring")
    parser.add_argument("--disasm", action="store_true",
                        help="Print a disassembly listing and exit")
    parser.add_argument("--monitor", action="store_true",
                        help="Enter the interactive monitor")
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="More logging (-v info, -vv debug trace)")
    return parser


def _load(path: str) -> Memory:
    if path == "-":
        return parse_program(sys.stdin.read())
    return load_program(path)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.phases is not None and args.input:
        parser.error("-i/--input cannot be combined with --phases; "
                     "use --signal for the first machine's input")

    level = {0: logging.WARNING, 1: logging.INFO}.get(args.verbose, logging.DEBUG)
    logging.basicConfig(level=level,
                        format='%(asctime)s - %(levelname)s - %(message)s')

    try:
        program = _load(args.program)
    except (OSError, ParseError) as e:
        print(f"Error loading '{args.program}': {e}", file=sys.stderr)
        return 1

    try:
        for addr, value in args.set:
            program.write(addr, value)
    except IntcodeError as e:
        print(f"Error: --set: {e}", file=sys.stderr)
        return 1

    # ---- Disassemble-only mode ----------------------------------------
    if args.disasm:
        for addr, text in disasm(program):
            print(f"{addr:>6d}: {text}")
        return 0

    # ---- Interactive monitor -------------------------------------------
    if args.monitor:
        cli = IntcodeCLI(program)
        cli.machine.feed(*args.input)
        try:
            cli.cmdloop()
        except KeyboardInterrupt:
            print("\nInterrupted. Goodbye.")
        return 0

    try:
        # ---- Pipeline mode ---------------------------------------------
        if args.phases is not None:
            if not args.phases:
                print("Error: --phases needs at least one value", file=sys.stderr)
                return 1
            pipe = Pipeline(program, len(args.phases), feedback=not args.chain)
            pipe.seed(args.phases, args.signal)
            pipe.run()
            print(pipe.last_output)
            return 0

        # ---- Single machine --------------------------------------------
        machine = Machine(program)
        machine.feed(*args.input)
        reason = machine.execute()
        for value in machine.output:
            print(value)
        if args.show_mem0:
            print(machine.memory.read(0))
        if reason is HaltReason.WAITING_FOR_INPUT:
            print(f"Program is waiting for input at {machine.pc} "
                  f"(consumed {machine.input_loc} values)", file=sys.stderr)
            return 1
    except IntcodeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
