"""Minimal Zicsr support: only mhartid and mepc, plus mret, for test programs."""

from __future__ import annotations

from typing import Any, Callable, Optional, Tuple

from rvemu import log
from rvemu.isa.instruction import Decoder, Executor, InsnType, Instruction, State
from rvemu.util import zero_extend

ZICSR_OPCODE = 0b1110011
ZICSR_FUNCT3_CSRRW = 0b001
ZICSR_FUNCT3_CSRRS = 0b010
ZICSR_FUNCT3_CSRRC = 0b011
ZICSR_FUNCT3_CSRRWI = 0b101
ZICSR_FUNCT3_CSRRSI = 0b110
ZICSR_FUNCT3_CSRRCI = 0b111

CSR_MHARTID = 0xF14
CSR_MEPC = 0x341

_MRET_IMM = 770
_MASK64 = (1 << 64) - 1


class _CsrFile:
    """Process-wide machine CSRs shared by every hart."""

    def __init__(self) -> None:
        self.mepc = 0


_csrs = _CsrFile()

_Update = Callable[[int, int], int]


def _csr_op(state: State, insn: Instruction, operand: Callable[[], int], update: _Update) -> None:
    csr, rd, rs1 = insn.imm, insn.rd, insn.rs1
    if csr == CSR_MHARTID:
        state.x[rd] = 0
    elif csr == CSR_MEPC:
        state.x[rd] = _csrs.mepc
        # The operand is read after rd is written, so rd == rs1 sees the old CSR.
        _csrs.mepc = update(_csrs.mepc, operand()) & _MASK64
    else:
        log.debug("Unsupported CSR operation: CSR={:#x}, rd={}, rs1={}", csr, rd, rs1)


def _write(old: int, value: int) -> int:
    return value


def _set(old: int, value: int) -> int:
    return old | value


def _clear(old: int, value: int) -> int:
    return old & ~value


def _register_executor(update: _Update) -> Executor:
    def execute(state: State, guest: Any, insn: Instruction) -> None:
        _csr_op(state, insn, lambda: state.x[insn.rs1], update)
    return execute


def _immediate_executor(update: _Update) -> Executor:
    def execute(state: State, guest: Any, insn: Instruction) -> None:
        _csr_op(state, insn, lambda: zero_extend(insn.rs1, 5), update)
    return execute


def _mret(state: State, guest: Any, insn: Instruction) -> None:
    state.pc = _csrs.mepc


_EXECUTORS = {
    ZICSR_FUNCT3_CSRRW: _register_executor(_write),
    ZICSR_FUNCT3_CSRRS: _register_executor(_set),
    ZICSR_FUNCT3_CSRRC: _register_executor(_clear),
    ZICSR_FUNCT3_CSRRWI: _immediate_executor(_write),
    ZICSR_FUNCT3_CSRRSI: _immediate_executor(_set),
    ZICSR_FUNCT3_CSRRCI: _immediate_executor(_clear),
}


class ZicsrDecoder(Decoder):
    """Decodes CSR access instructions and mret."""

    def decode(self, raw: int) -> Optional[Tuple[Instruction, Executor]]:
        opcode = raw & 0x7F
        if opcode != ZICSR_OPCODE:
            return None
        imm = Instruction.extract_imm(raw, InsnType.I)
        funct3 = (raw >> 12) & 0x7
        rd = (raw >> 7) & 0x1F
        rs1 = (raw >> 15) & 0x1F
        insn = Instruction(
            kind=InsnType.I, opcode=opcode, raw=raw,
            rd=rd, rs1=rs1, funct3=funct3, imm=imm,
        )

        executor = _EXECUTORS.get(funct3)
        if executor is not None:
            return insn, executor
        if funct3 == 0:
            if (rs1, rd, imm) == (0, 0, _MRET_IMM):
                return insn, _mret
            log.debug("Unsupported Zicsr instruction: funct3={:#x}, rd={}, rs1={}, imm={:#x}",
                      funct3, rd, rs1, imm)
        return None