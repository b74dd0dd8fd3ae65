"""
Intcode Virtual Machine
=======================
A resumable fetch/decode/execute engine for Intcode programs.

Every instruction is decoded from the integer word at the program counter:
the low two decimal digits select the opcode, each further digit gives the
addressing mode of one parameter.  Memory is unbounded and reads as zero
until written.

Execution suspends (rather than blocks) when a Store-Input instruction finds
no unread input: ``Machine.execute`` returns ``HaltReason.WAITING_FOR_INPUT``
with the program counter rewound to the blocked opcode, so a later call
re-attempts the same instruction once input has been appended.
"""

from __future__ import annotations

import enum
import logging
from typing import Iterable, MutableSequence, Optional

import numpy as np

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
#  Constants
# ---------------------------------------------------------------------------

MASK64 = (1 << 64) - 1
SIGN64 = 1 << 63

# Opcodes
OP_ADD        = 1
OP_MUL        = 2
OP_IN         = 3   # store input
OP_OUT        = 4
OP_JUMP_TRUE  = 5
OP_JUMP_FALSE = 6
OP_LESS_THAN  = 7
OP_EQUALS     = 8
OP_ADJUST_RB  = 9   # adjust relative base
OP_HALT       = 99

# Parameter modes
MODE_POSITION  = 0
MODE_IMMEDIATE = 1
MODE_RELATIVE  = 2

MODE_NAMES = {
    MODE_POSITION:  "position",
    MODE_IMMEDIATE: "immediate",
    MODE_RELATIVE:  "relative",
}

# Debug mnemonics
OP_NAMES = {
    OP_ADD:        "add",
    OP_MUL:        "mul",
    OP_IN:         "in",
    OP_OUT:        "out",
    OP_JUMP_TRUE:  "jt",
    OP_JUMP_FALSE: "jf",
    OP_LESS_THAN:  "lt",
    OP_EQUALS:     "eq",
    OP_ADJUST_RB:  "arb",
    OP_HALT:       "halt",
}

# Number of parameters consumed by each opcode
OP_ARITY = {
    OP_ADD:        3,
    OP_MUL:        3,
    OP_IN:         1,
    OP_OUT:        1,
    OP_JUMP_TRUE:  2,
    OP_JUMP_FALSE: 2,
    OP_LESS_THAN:  3,
    OP_EQUALS:     3,
    OP_ADJUST_RB:  1,
    OP_HALT:       0,
}

# Memory layout: a dense int64 array for low addresses, grown on demand,
# and a sparse dict above DENSE_LIMIT.
INITIAL_CAPACITY = 1 << 10
DENSE_LIMIT      = 1 << 20

# ---------------------------------------------------------------------------
#  Helpers
# ---------------------------------------------------------------------------

def u64(v: int) -> int:
    """Mask to unsigned 64 bits."""
    return v & MASK64

def s64(v: int) -> int:
    """Interpret a 64-bit value as signed."""
    v = u64(v)
    return v - (1 << 64) if v >= SIGN64 else v

def op_name(opcode: int) -> str:
    """Human-readable mnemonic for *opcode*."""
    try:
        return OP_NAMES[opcode]
    except KeyError:
        raise DecodeError(f"Unknown op: {opcode}") from None

# ---------------------------------------------------------------------------
#  Errors
# ---------------------------------------------------------------------------

class IntcodeError(Exception):
    """Base for engine-generated faults."""
    pass

class DecodeError(IntcodeError):
    def __init__(self, message: str, pc: Optional[int] = None,
                 word: Optional[int] = None):
        self.pc = pc
        self.word = word
        if pc is not None:
            message = f"[{pc}] {message}"
        super().__init__(message)

class AddressError(IntcodeError):
    def __init__(self, address: int, message: str = ""):
        self.address = address
        super().__init__(message or f"Invalid address {address}")

class HaltError(IntcodeError):
    pass


class HaltReason(enum.Enum):
    """Why a call to ``Machine.execute`` returned."""
    # Input exhausted; call execute() again once more input is available.
    WAITING_FOR_INPUT = "waiting-for-input"
    # Executed a Halt instruction; the program is complete.
    HALT_INSTRUCTION = "halt-instruction"

# ---------------------------------------------------------------------------
#  Memory
# ---------------------------------------------------------------------------

class Memory:
    """Unbounded Intcode memory.  Unwritten addresses read as zero.

    Addresses below ``DENSE_LIMIT`` live in a contiguous int64 array that
    doubles in size as writes reach past its end; anything higher goes to
    a sparse dict.  Values are stored as signed 64-bit integers.
    """

    def __init__(self, capacity: int = INITIAL_CAPACITY):
        self._dense = np.zeros(max(1, min(capacity, DENSE_LIMIT)),
                               dtype=np.int64)
        self._sparse: dict[int, int] = {}
        self._extent = 0   # one past the highest address written

    @classmethod
    def from_values(cls, values: Iterable[int]) -> "Memory":
        """Build memory holding *values* at consecutive addresses from 0."""
        values = [s64(int(v)) for v in values]
        mem = cls(capacity=max(len(values), INITIAL_CAPACITY))
        if values:
            n = min(len(values), DENSE_LIMIT)
            mem._dense[:n] = values[:n]
            for addr in range(n, len(values)):
                mem._sparse[addr] = values[addr]
            mem._extent = len(values)
        return mem

    # -- Access --

    def _check(self, addr: int):
        if addr < 0:
            raise AddressError(addr, f"Negative address {addr}")

    def read(self, addr: int) -> int:
        self._check(addr)
        if addr < len(self._dense):
            return int(self._dense[addr])
        return self._sparse.get(addr, 0)

    def write(self, addr: int, val: int):
        self._check(addr)
        val = s64(val)
        if addr < DENSE_LIMIT:
            if addr >= len(self._dense):
                self._grow(addr + 1)
            self._dense[addr] = val
        else:
            self._sparse[addr] = val
        if addr >= self._extent:
            self._extent = addr + 1

    def _grow(self, needed: int):
        size = len(self._dense)
        while size < needed:
            size *= 2
        size = min(size, DENSE_LIMIT)
        grown = np.zeros(size, dtype=np.int64)
        grown[:len(self._dense)] = self._dense
        self._dense = grown

    __getitem__ = read
    __setitem__ = write

    def __len__(self) -> int:
        return self._extent

    def __eq__(self, other) -> bool:
        if isinstance(other, Memory):
            return self.snapshot() == other.snapshot()
        return NotImplemented

    def __repr__(self) -> str:
        return f"Memory(extent={self._extent}, sparse={len(self._sparse)})"

    # -- Copy / inspection --

    def copy(self) -> "Memory":
        """Deep copy; the result shares no state with this memory."""
        dup = Memory.__new__(Memory)
        dup._dense = self._dense.copy()
        dup._sparse = dict(self._sparse)
        dup._extent = self._extent
        return dup

    def snapshot(self, count: Optional[int] = None) -> list[int]:
        """Values at addresses ``0 .. count-1`` (default: up to the extent)."""
        if count is None:
            count = self._extent
        n = min(count, len(self._dense))
        out = [int(v) for v in self._dense[:n]]
        out.extend(self._sparse.get(a, 0) for a in range(n, count))
        return out

# ---------------------------------------------------------------------------
#  Instruction decode
# ---------------------------------------------------------------------------

class Instruction:
    """An opcode plus the modes of its (up to three) parameters."""

    __slots__ = ("opcode", "modes")

    def __init__(self, opcode: int, modes: tuple[int, int, int]):
        self.opcode = opcode
        self.modes = modes

    @property
    def name(self) -> str:
        return OP_NAMES[self.opcode]

    @property
    def arity(self) -> int:
        return OP_ARITY[self.opcode]

    def __repr__(self) -> str:
        return f"Instruction({self.name}, modes={self.modes})"


def decode(word: int, pc: Optional[int] = None) -> Instruction:
    """Decode an instruction word.  Raises DecodeError if it is malformed."""
    if word <= 0:
        raise DecodeError(f"Invalid instruction word {word}", pc, word)
    opcode = word % 100
    if opcode not in OP_NAMES:
        raise DecodeError(f"Unknown opcode {opcode} in word {word}", pc, word)
    modes = [MODE_POSITION] * 3
    rest = word // 100
    i = 0
    while rest > 0:
        mode = rest % 10
        if mode not in MODE_NAMES:
            raise DecodeError(f"Invalid mode {mode} in word {word}", pc, word)
        if i >= OP_ARITY[opcode]:
            raise DecodeError(f"Too many parameter modes in word {word}",
                              pc, word)
        modes[i] = mode
        rest //= 10
        i += 1
    return Instruction(opcode, (modes[0], modes[1], modes[2]))

# ---------------------------------------------------------------------------
#  Machine
# ---------------------------------------------------------------------------

class Machine:
    """Intcode machine state plus the fetch/decode/execute loop.

    A machine owns its memory and output.  Its input is either an owned
    list (the default) or a reference to a list owned by someone else,
    typically another machine's ``output``; see ``set_external_input``.
    The read cursor into the input always belongs to this machine.
    """

    def __init__(self, memory: Memory | Iterable[int]):
        if isinstance(memory, Memory):
            self._memory = memory.copy()
        else:
            self._memory = Memory.from_values(memory)

        self._owned_input: list[int] = []
        self._input: MutableSequence[int] = self._owned_input
        self._output: list[int] = []

        self.pc: int = 0
        self.relative_base: int = 0
        self.input_loc: int = 0     # next unread index into the input
        self.halted: bool = False
        self.steps: int = 0         # instructions completed

    # -- Wiring / accessors --

    def set_external_input(self, external: MutableSequence[int]):
        """Read input from *external* instead of the owned input list.

        The list is shared, not copied.  The read cursor is left where it
        is, so redirecting after input has been consumed continues from
        the same index in the new source.
        """
        if external is None:
            raise ValueError("external input must not be None")
        self._input = external

    @property
    def memory(self) -> Memory:
        return self._memory

    @property
    def input(self) -> MutableSequence[int]:
        """The current input source."""
        return self._input

    @property
    def output(self) -> list[int]:
        """Program output.  Append-only; usable as another machine's input."""
        return self._output

    @property
    def waiting(self) -> bool:
        """True if the next instruction would block on missing input."""
        return (not self.halted
                and self.pc >= 0
                and self._memory.read(self.pc) % 100 == OP_IN
                and self.input_loc >= len(self._input))

    def feed(self, *values: int):
        """Append *values* to the current input source."""
        self._input.extend(values)

    # -- Parameter access --

    def _read(self, mode: int) -> int:
        """Consume the parameter at pc and return its value under *mode*."""
        param = self._memory.read(self.pc)
        self.pc += 1
        if mode == MODE_POSITION:
            return self._memory.read(param)
        if mode == MODE_IMMEDIATE:
            return param
        if mode == MODE_RELATIVE:
            return self._memory.read(param + self.relative_base)
        raise DecodeError(f"Unknown mode: {mode}", self.pc - 1)

    def _store(self, value: int, mode: int):
        """Consume the parameter at pc as a destination and write *value*."""
        address = self._memory.read(self.pc)
        self.pc += 1
        if mode == MODE_POSITION:
            self._memory.write(address, value)
        elif mode == MODE_RELATIVE:
            self._memory.write(address + self.relative_base, value)
        elif mode == MODE_IMMEDIATE:
            raise DecodeError("Writes never use immediate mode", self.pc - 1)
        else:
            raise DecodeError(f"Unknown mode: {mode}", self.pc - 1)

    # =====================================================================
    #  STEP: one fetch/decode/execute cycle
    # =====================================================================

    def step(self) -> Optional[HaltReason]:
        """Execute one instruction.

        Returns None if the instruction completed, otherwise the reason
        execution cannot continue.  On WAITING_FOR_INPUT nothing has
        changed: pc still points at the blocked opcode.
        """
        if self.halted:
            raise HaltError("Machine is halted")

        start = self.pc
        word = self._read(MODE_IMMEDIATE)
        inst = decode(word, start)
        op = inst.opcode
        modes = inst.modes

        if op == OP_HALT:
            self.pc = start
            self.halted = True
            log.debug("[%d] halt", start)
            return HaltReason.HALT_INSTRUCTION

        if op == OP_IN and self.input_loc >= len(self._input):
            # Not enough input yet: undo the opcode fetch and suspend.
            self.pc = start
            log.debug("[%d] waiting for input", start)
            return HaltReason.WAITING_FOR_INPUT

        log.debug("[%d] %s", start, inst.name)

        if op == OP_ADD:
            a = self._read(modes[0])
            b = self._read(modes[1])
            self._store(s64(a + b), modes[2])

        elif op == OP_MUL:
            a = self._read(modes[0])
            b = self._read(modes[1])
            self._store(s64(a * b), modes[2])

        elif op == OP_IN:
            val = self._input[self.input_loc]
            self.input_loc += 1
            log.debug("Read %d from input.", val)
            self._store(val, modes[0])

        elif op == OP_OUT:
            self._output.append(self._read(modes[0]))

        elif op in (OP_JUMP_TRUE, OP_JUMP_FALSE):
            val = self._read(modes[0])
            target = self._read(modes[1])
            if (val != 0) == (op == OP_JUMP_TRUE):
                log.debug("Jumping to %d", target)
                self.pc = target
            else:
                log.debug("No jump.")

        elif op in (OP_LESS_THAN, OP_EQUALS):
            a = self._read(modes[0])
            b = self._read(modes[1])
            if op == OP_EQUALS:
                result = 1 if a == b else 0
            else:
                result = 1 if a < b else 0
            self._store(result, modes[2])

        elif op == OP_ADJUST_RB:
            self.relative_base += self._read(modes[0])
            log.debug("RB is: %d", self.relative_base)

        self.steps += 1
        return None

    # -- Run loop --

    def execute(self) -> HaltReason:
        """Run from the current pc until halt or input starvation.

        If WAITING_FOR_INPUT is returned, append input to the source and
        call execute() again to continue.  Once HALT_INSTRUCTION has been
        returned, further calls return it again without touching memory.
        """
        if self.halted:
            return HaltReason.HALT_INSTRUCTION
        step = self.step
        while True:
            reason = step()
            if reason is not None:
                return reason

    # -- Debug / introspection --

    def dump_state(self) -> str:
        state = "halted" if self.halted else (
            "waiting" if self.waiting else "running")
        unread = max(0, len(self._input) - self.input_loc)
        return (f"  PC = {self.pc}  RB = {self.relative_base}  [{state}]\n"
                f"  Input: {unread} unread (cursor {self.input_loc})  "
                f"Output: {len(self._output)} values\n"
                f"  Steps: {self.steps}  Memory extent: {len(self._memory)}")


def run_machine(memory: Memory | Iterable[int], *inputs: int) -> list[int]:
    """Run a fresh machine on *memory* with *inputs*; return its output.

    The program must halt; blocking for more input is an error.
    """
    machine = Machine(memory)
    machine.feed(*inputs)
    if machine.execute() is not HaltReason.HALT_INSTRUCTION:
        raise IntcodeError(
            f"Program blocked for input at pc={machine.pc} after "
            f"{machine.input_loc} values")
    for value in machine.output:
        log.info("%d", value)
    return machine.output
