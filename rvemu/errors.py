"""Exceptions raised by the emulator."""

from __future__ import annotations

from enum import Enum
from typing import Any


class MemAccess(Enum):
    """Kind of guest memory access."""

    READ = "Read"
    WRITE = "Write"
    EXECUTE = "Execute"


class EmulatorError(Exception):
    """Base class of all emulator errors; used directly for generic failures."""

    def __str__(self) -> str:
        return f"Error: {super().__str__()}"


class _Described(EmulatorError):
    """Error whose message is complete as given."""

    def __str__(self) -> str:
        return Exception.__str__(self)


class InvalidElf(_Described):
    def __init__(self) -> None:
        super().__init__("Invalid ELF file")


class MemAccessFault(_Described):
    def __init__(self, access: MemAccess, addr: int) -> None:
        self.access = access
        self.addr = addr
        super().__init__(f"Memory access fault: {access.value} at {addr:#x}")


class StackOverflow(_Described):
    def __init__(self) -> None:
        super().__init__("Stack overflow")


class InsnSetUnimplemented(_Described):
    def __init__(self, insn_set: Any) -> None:
        self.insn_set = insn_set
        name = getattr(insn_set, "name", insn_set)
        super().__init__(f"Instruction set unimplemented: {name}")


class InsnUnimplemented(_Described):
    def __init__(self, insn: int) -> None:
        self.insn = insn
        super().__init__(f"Instruction unimplemented: {insn:#x}")


class UnknownInsn(_Described):
    def __init__(self, insn: int, pc: int) -> None:
        self.insn = insn
        self.pc = pc
        super().__init__(f"Unknown instruction: {insn:#x} at {pc:#x}")


class SyscallUnimplemented(_Described):
    def __init__(self, syscall: int, pc: int) -> None:
        self.syscall = syscall
        self.pc = pc
        super().__init__(f"Syscall unimplemented: {syscall} at {pc:#x}")


class InternalError(_Described):
    def __init__(self, message: str) -> None:
        self.detail = message
        super().__init__(f"Internal error: {message}")


class RepeatedBreakpoint(_Described):
    def __init__(self, addr: int) -> None:
        self.addr = addr
        super().__init__(f"Repeated breakpoint at {addr:#x}")


class RepeatedWatchpoint(_Described):
    def __init__(self, addr: int) -> None:
        self.addr = addr
        super().__init__(f"Repeated watchpoint at {addr:#x}")


class BreakpointNotFound(_Described):
    def __init__(self, addr: int) -> None:
        self.addr = addr
        super().__init__(f"Breakpoint not found at {addr:#x}")


class WatchpointNotFound(_Described):
    def __init__(self, addr: int) -> None:
        self.addr = addr
        super().__init__(f"Watchpoint not found at {addr:#x}")


class BreakpointHit(_Described):
    def __init__(self) -> None:
        super().__init__("Breakpoint hit")


class Exited(_Described):
    """Raised when the guest program exits; carries its exit code."""

    def __init__(self, code: int) -> None:
        self.code = code
        super().__init__(f"Exit with code {code}")