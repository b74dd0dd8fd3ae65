"""
Intcode Pipeline
================
Wires N Intcode machines output-to-input and steps them cooperatively.

Machine i+1 reads machine i's output list directly.  In feedback mode the
first machine also reads the last machine's output, closing a ring; in
chain mode it keeps its own input.  Each round calls ``execute`` once on
every machine that has not halted, in index order, until a round ends
with no machine waiting for input.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

from intcode import Machine, Memory, HaltReason, IntcodeError

log = logging.getLogger(__name__)


class DeadlockError(IntcodeError):
    """Every live machine is waiting and none can make progress."""
    pass


class Pipeline:
    """
    A chain or ring of machines built from one program.

    All machines start from their own copy of *program*.  Values reach a
    machine only through its input source, so configuration values are
    seeded into those sources (see ``seed``) before the first round.
    """

    def __init__(self, program: Memory | Iterable[int], size: int,
                 feedback: bool = True):
        if size < 1:
            raise ValueError(f"pipeline needs at least one machine, got {size}")
        if not isinstance(program, Memory):
            program = Memory.from_values(program)
        self.feedback = feedback
        self.machines: list[Machine] = [Machine(program) for _ in range(size)]

        # Hook up the output of each machine to the input of the next.
        for prev, cur in zip(self.machines, self.machines[1:]):
            cur.set_external_input(prev.output)
        if feedback:
            self.machines[0].set_external_input(self.machines[-1].output)

        self.rounds = 0

    def __len__(self) -> int:
        return len(self.machines)

    def seed(self, settings: Sequence[int], signal: Optional[int] = None):
        """Queue one setting per machine, then *signal* for machine 0."""
        if len(settings) != len(self.machines):
            raise ValueError(f"expected {len(self.machines)} settings, "
                             f"got {len(settings)}")
        for machine, setting in zip(self.machines, settings):
            machine.feed(setting)
        if signal is not None:
            self.machines[0].feed(signal)

    # -----------------------------------------------------------------
    #  Stepping
    # -----------------------------------------------------------------

    def step(self) -> bool:
        """Run one round.  Returns True if any machine is waiting for input."""
        any_waiting = False
        for machine in self.machines:
            if machine.halted:
                continue
            if machine.execute() is HaltReason.WAITING_FOR_INPUT:
                any_waiting = True
        self.rounds += 1
        return any_waiting

    def run(self, max_rounds: Optional[int] = None) -> int:
        """Run rounds until every machine has halted.  Returns rounds run."""
        start = self.rounds
        while True:
            before = self.total_steps
            waiting = self.step()
            if not waiting:
                break
            if self.total_steps == before:
                raise DeadlockError(
                    f"no machine made progress in round {self.rounds}; "
                    f"{self._waiting_summary()}")
            if max_rounds is not None and self.rounds - start >= max_rounds:
                raise DeadlockError(
                    f"still waiting after {max_rounds} rounds; "
                    f"{self._waiting_summary()}")
            log.debug("Round %d: %s", self.rounds, self._waiting_summary())
        ran = self.rounds - start
        log.info("Pipeline of %d halted after %d rounds, last output %s",
                 len(self.machines), ran, self.last_output)
        return ran

    # -----------------------------------------------------------------
    #  State queries
    # -----------------------------------------------------------------

    @property
    def all_halted(self) -> bool:
        """True if every machine is halted."""
        return all(m.halted for m in self.machines)

    @property
    def total_steps(self) -> int:
        return sum(m.steps for m in self.machines)

    @property
    def outputs(self) -> list[list[int]]:
        return [m.output for m in self.machines]

    @property
    def last_output(self) -> Optional[int]:
        """Most recent value emitted by the final machine, if any."""
        out = self.machines[-1].output
        return out[-1] if out else None

    def _waiting_summary(self) -> str:
        waiting = [i for i, m in enumerate(self.machines) if m.waiting]
        return f"waiting={waiting}"

    def dump_state(self) -> str:
        mode = "feedback" if self.feedback else "chain"
        lines = [f"=== Pipeline ({mode}, {len(self.machines)} machines, "
                 f"{self.rounds} rounds) ==="]
        for i, m in enumerate(self.machines):
            lines.append(f"--- Machine {i} ---")
            lines.append(m.dump_state())
        return "\n".join(lines)


# ---------------------------------------------------------------------------
#  Convenience
# ---------------------------------------------------------------------------

def run_chain(program: Memory | Iterable[int], settings: Sequence[int],
              signal: int = 0) -> Optional[int]:
    """Run machines in series, one setting each; return the final output."""
    pipe = Pipeline(program, len(settings), feedback=False)
    pipe.seed(settings, signal)
    pipe.run()
    return pipe.last_output


def run_feedback_loop(program: Memory | Iterable[int],
                      settings: Sequence[int],
                      signal: int = 0) -> Optional[int]:
    """Run machines in a ring until all halt; return the final output."""
    pipe = Pipeline(program, len(settings), feedback=True)
    pipe.seed(settings, signal)
    pipe.run()
    return pipe.last_output
