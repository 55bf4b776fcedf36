"""System call handlers invoked when the guest executes ``ecall``."""

from __future__ import annotations

import sys
from abc import ABC, abstractmethod

from rvemu import log
from rvemu.errors import Exited, MemAccessFault, SyscallUnimplemented
from rvemu.guest import GuestMem
from rvemu.isa.instruction import State
from rvemu.util import sign_extend

SYS_EXIT = 0
SYS_PUTCHAR = 1
SYS_PUTS = 2
SYS_EXIT_LINUX = 93

_A0 = 10
_A7 = 17
_U64_MAX = (1 << 64) - 1


class SyscallHandler(ABC):
    """Services a guest system call, given the hart state and guest memory."""

    @abstractmethod
    def handle(self, state: State, guest: GuestMem) -> None:
        """Perform the call selected by a7; raise ``Exited`` to stop the guest."""


class MinilibSyscallHandler(SyscallHandler):
    """A tiny syscall set for test programs: exit, putchar and puts."""

    def handle(self, state: State, guest: GuestMem) -> None:
        number = state.x[_A7]
        if number in (SYS_EXIT, SYS_EXIT_LINUX):
            code = sign_extend(state.x[_A0], 64)
            log.debug("sys_exit called with code {}", code)
            raise Exited(code)
        if number == SYS_PUTCHAR:
            sys.stdout.write(chr(state.x[_A0] & 0xFF))
            return
        if number == SYS_PUTS:
            self._puts(state, guest, state.x[_A0])
            return
        raise SyscallUnimplemented(number, state.pc)

    @staticmethod
    def _puts(state: State, guest: GuestMem, addr: int) -> None:
        buf = bytearray()
        ptr = addr
        while True:
            try:
                byte = guest.read_u8(ptr)
            except MemAccessFault:
                log.warn("sys_puts: memory access fault at {:#x}", addr)
                state.x[0] = _U64_MAX
                return
            if byte == 0:
                break
            buf.append(byte)
            ptr += 1
        sys.stdout.write(buf.decode("utf-8", errors="replace"))


class NewlibSyscallHandler(SyscallHandler):
    """Newlib system calls; none are implemented yet."""

    def handle(self, state: State, guest: GuestMem) -> None:
        raise SyscallUnimplemented(state.x[_A7], state.pc)