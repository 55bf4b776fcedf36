"""A virtual RISC-V hart: register state plus the decoders it understands."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from rvemu import log
from rvemu.errors import InsnSetUnimplemented, InternalError, UnknownInsn
from rvemu.guest import GuestMem
from rvemu.isa.instruction import BreakCause, Decoder, Executor, InsnSet, Instruction, State
from rvemu.isa.rv64i import Rv64IDecoder
from rvemu.isa.zicsr import ZicsrDecoder
from rvemu.isa.zifencei import ZifenceiDecoder
from rvemu.log import Level

_MASK64 = (1 << 64) - 1

_DECODERS = {
    InsnSet.I: Rv64IDecoder,
    InsnSet.Zifencei: ZifenceiDecoder,
    InsnSet.Ziscr: ZicsrDecoder,
}


@dataclass
class Hart:
    """One RISC-V core; ``id`` is a logical thread id, not a hardware id."""

    id: int = 0
    state: State = field(default_factory=State)
    decoders: List[Decoder] = field(default_factory=list)

    def add_decoder(self, insn_set: InsnSet) -> None:
        """Enable an instruction set; raises if it is not implemented."""
        factory = _DECODERS.get(insn_set)
        if factory is None:
            raise InsnSetUnimplemented(insn_set)
        self.decoders.append(factory())

    def decode(self, raw: int) -> Optional[Tuple[Instruction, Executor]]:
        """Ask each decoder in turn; the first match wins."""
        for decoder in self.decoders:
            decoded = decoder.decode(raw)
            if decoded is not None:
                return decoded
        return None

    def step(self, guest: GuestMem) -> Optional[BreakCause]:
        """Fetch, decode and execute one instruction; return any break it raised."""
        state = self.state
        state.x[0] = 0
        state.break_on = None

        cur_pc = state.pc
        if cur_pc % 2 != 0:
            raise InternalError(f"PC is not aligned: {cur_pc:#x}")

        raw = guest.fetch_insn(cur_pc)
        decoded = self.decode(raw)
        if decoded is None:
            raise UnknownInsn(raw, cur_pc)
        insn, executor = decoded

        log.log(Level.TRACE, "pc@{:#x}: executing instruction: {!r}", cur_pc, insn)
        log.log(Level.TRACE, "state before: {!r}", state)
        executor(state, guest, insn)

        if state.pc == cur_pc:
            state.pc = (cur_pc + insn.step_size()) & _MASK64

        cause, state.break_on = state.break_on, None
        if cause is not None:
            log.log(Level.TRACE, "break on: {}", cause)
        return cause