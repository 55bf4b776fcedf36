"""Zifencei extension; fence.i has no architectural effect here."""

from __future__ import annotations

from typing import Optional, Tuple

from rvemu.isa.instruction import Decoder, Executor, InsnType, Instruction, noop_executor

ZIFENCEI_INSN = 0x0000100F


class ZifenceiDecoder(Decoder):
    """Recognises the single fence.i encoding."""

    def decode(self, raw: int) -> Optional[Tuple[Instruction, Executor]]:
        if raw != ZIFENCEI_INSN:
            return None
        insn = Instruction(
            kind=InsnType.R,
            opcode=0b1110011,
            raw=raw,
            rd=0,
            rs1=0,
            rs2=0,
            funct3=0,
            funct7=0,
        )
        return insn, noop_executor