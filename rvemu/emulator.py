"""The emulator: load a program, run it, or drive it step by step under a debugger."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Dict, Iterable, List, Optional, Set

from rvemu import log
from rvemu.errors import (
    BreakpointHit,
    BreakpointNotFound,
    EmulatorError,
    Exited,
    InternalError,
    RepeatedBreakpoint,
    RepeatedWatchpoint,
    WatchpointNotFound,
)
from rvemu.guest import GuestMem, MemFlags
from rvemu.hart import Hart
from rvemu.isa.instruction import BreakCause, InsnSet
from rvemu.syscalls import SyscallHandler
from rvemu.util import POLL_INTERVAL, STACK_SIZE

STACK_TOP = 0x8000_0000
"""Guest address just above the stack; the initial stack pointer."""

_STACK_ALIGN = 0x1000
_SP = 2


class EmuMode(Enum):
    """Whether the emulator runs freely or under a debugger."""

    RUN = auto()
    DEBUG = auto()


class ExecMode(Enum):
    """How a debug session advances the guest."""

    STEP = auto()
    CONTINUE = auto()


class ExitKind(Enum):
    DONE_STEP = auto()
    INCOMING_DATA = auto()
    EXITED = auto()
    BREAKPOINT_HIT = auto()


@dataclass(frozen=True)
class ExitReason:
    """Why execution stopped; ``value`` is the exit code or breakpoint address."""

    kind: ExitKind
    value: Optional[int] = None

    @classmethod
    def done_step(cls) -> ExitReason:
        return cls(ExitKind.DONE_STEP)

    @classmethod
    def incoming_data(cls) -> ExitReason:
        return cls(ExitKind.INCOMING_DATA)

    @classmethod
    def exited(cls, code: int) -> ExitReason:
        return cls(ExitKind.EXITED, code)

    @classmethod
    def breakpoint_hit(cls, addr: int) -> ExitReason:
        return cls(ExitKind.BREAKPOINT_HIT, addr)


class WatchMode(Enum):
    READ = auto()
    WRITE = auto()
    ACCESS = auto()


class Emulator:
    """A single-hart RISC-V userland emulator."""

    def __init__(
        self,
        syscall: Optional[SyscallHandler] = None,
        isa: Iterable[InsnSet] = (),
        stack_size: int = STACK_SIZE,
        debug: bool = False,
    ) -> None:
        if syscall is None:
            raise EmulatorError("Syscall handler not set")
        self.hart = Hart(0)
        self.isa: List[InsnSet] = []
        for insn_set in isa:
            self.hart.add_decoder(insn_set)
            self.isa.append(insn_set)
        self.guest = GuestMem()
        self.syscall = syscall
        self.stack_size = stack_size
        self.breakpoints: Set[int] = set()
        self.watchpoints: Dict[int, WatchMode] = {}
        self.mode = EmuMode.DEBUG if debug else EmuMode.RUN
        self.exec_mode = ExecMode.STEP

    def load_elf(self, program: bytes) -> None:
        """Load an ELF image, map a stack below ``STACK_TOP`` and point sp at it."""
        entry = self.guest.load_elf(program)
        self.hart.state.pc = entry
        self.guest.add_segment(
            STACK_TOP - self.stack_size,
            self.stack_size,
            _STACK_ALIGN,
            MemFlags.READ | MemFlags.WRITE,
            None,
        )
        self.hart.state.x[_SP] = STACK_TOP

    def run(self) -> ExitReason:
        """Run until the guest exits; other failures propagate."""
        if self.mode is not EmuMode.RUN:
            raise InternalError("run() is only available outside debug mode")
        while True:
            try:
                self.force_step()
            except Exited as exc:
                return ExitReason.exited(exc.code)

    def step(self) -> ExitReason:
        """Execute one instruction unless a breakpoint sits at the current pc."""
        if self.hart.state.pc in self.breakpoints:
            raise BreakpointHit()
        return self.force_step()

    def force_step(self) -> ExitReason:
        """Execute one instruction, ignoring breakpoints, and service any ecall."""
        cause = self.hart.step(self.guest)
        if cause is BreakCause.ECALL:
            self.syscall.handle(self.hart.state, self.guest)
        elif cause is BreakCause.EBREAK:
            raise InternalError("ebreak is not supported")
        return ExitReason.done_step()

    # Debugging support.

    def read_u8(self, gaddr: int) -> int:
        return self.guest.read_u8(gaddr)

    def write_u8(self, gaddr: int, value: int) -> None:
        self.guest.write_u8(gaddr, value)

    def set_breakpoint(self, gaddr: int) -> None:
        if gaddr in self.breakpoints:
            raise RepeatedBreakpoint(gaddr)
        self.breakpoints.add(gaddr)

    def rm_breakpoint(self, gaddr: int) -> None:
        try:
            self.breakpoints.remove(gaddr)
        except KeyError:
            raise BreakpointNotFound(gaddr) from None

    def set_watchpoint(self, gaddr: int, mode: WatchMode) -> None:
        if gaddr in self.watchpoints:
            raise RepeatedWatchpoint(gaddr)
        self.watchpoints[gaddr] = mode

    def rm_watchpoint(self, gaddr: int) -> None:
        if self.watchpoints.pop(gaddr, None) is None:
            raise WatchpointNotFound(gaddr)

    def resume(self) -> None:
        """Continue execution on the next ``run_debug``."""
        self.mode = EmuMode.DEBUG
        self.exec_mode = ExecMode.CONTINUE

    def single_step(self) -> None:
        """Execute a single instruction on the next ``run_debug``."""
        self.mode = EmuMode.DEBUG
        self.exec_mode = ExecMode.STEP

    def run_debug(self, poller: Callable[[], bool]) -> ExitReason:
        """Advance the guest in debug mode.

        When continuing, a breakpoint at the starting pc is stepped over; the
        poller is consulted every ``POLL_INTERVAL`` instructions and a true
        result stops execution with ``INCOMING_DATA``.
        """
        if self.mode is not EmuMode.DEBUG:
            raise InternalError("run_debug() requires debug mode")

        if self.exec_mode is ExecMode.STEP:
            try:
                return self.force_step()
            except Exited as exc:
                return ExitReason.exited(exc.code)

        cycles = 0
        first_step = True
        while True:
            try:
                try:
                    self.step()
                except BreakpointHit:
                    if not first_step:
                        log.debug("breakpoint hit at {:#x}", self.hart.state.pc)
                        return ExitReason.breakpoint_hit(self.hart.state.pc)
                    self.force_step()
            except Exited as exc:
                return ExitReason.exited(exc.code)
            first_step = False
            cycles += 1
            if cycles % POLL_INTERVAL == 0 and poller():
                return ExitReason.incoming_data()