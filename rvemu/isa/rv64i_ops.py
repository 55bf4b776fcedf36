"""Executors for the RV64I base integer instruction set."""

from __future__ import annotations

from typing import Any, Callable, Tuple

from rvemu import log
from rvemu.errors import InternalError
from rvemu.isa.instruction import BreakCause, InsnType, Instruction, State
from rvemu.log import Level
from rvemu.util import sign_extend, zero_extend

_MASK64 = (1 << 64) - 1
_MASK32 = (1 << 32) - 1


def _fields(insn: Instruction, kind: InsnType, *names: str) -> Tuple[int, ...]:
    """Return the named fields of ``insn``, which must be of format ``kind``."""
    if insn.kind is not kind:
        raise InternalError(f"Internal decoding error for {insn!r}")
    return tuple(getattr(insn, name) for name in names)


def _signed64(value: int) -> int:
    return sign_extend(value, 64)


def _word(value: int) -> int:
    """Sign-extend the low 32 bits of ``value`` to a 64-bit register value."""
    return sign_extend(value, 32) & _MASK64


def _effective_addr(state: State, rs1: int, imm: int) -> int:
    return (state.x[rs1] + sign_extend(imm, 12)) & _MASK64


def _load(state: State, insn: Instruction, read: Callable[[int], int],
          bits: int, signed: bool) -> None:
    rd, rs1, imm = _fields(insn, InsnType.I, "rd", "rs1", "imm")
    value = read(_effective_addr(state, rs1, imm))
    state.x[rd] = (sign_extend(value, bits) & _MASK64) if signed else zero_extend(value, bits)


def _store(state: State, insn: Instruction, write: Callable[[int, int], None], bits: int) -> None:
    rs2, rs1, imm = _fields(insn, InsnType.S, "rs2", "rs1", "imm")
    write(_effective_addr(state, rs1, imm), zero_extend(state.x[rs2], bits))


def _op_imm(state: State, insn: Instruction, op: Callable[[int, int], int]) -> None:
    """Apply ``op(rs1 value, raw imm)`` and write the 64-bit result to rd."""
    rd, rs1, imm = _fields(insn, InsnType.I, "rd", "rs1", "imm")
    state.x[rd] = op(state.x[rs1], imm) & _MASK64


def _op(state: State, insn: Instruction, op: Callable[[int, int], int]) -> None:
    """Apply ``op(rs1 value, rs2 value)`` and write the 64-bit result to rd."""
    rd, rs1, rs2 = _fields(insn, InsnType.R, "rd", "rs1", "rs2")
    state.x[rd] = op(state.x[rs1], state.x[rs2]) & _MASK64


def _branch(state: State, insn: Instruction, taken: Callable[[int, int], bool]) -> None:
    rs1, rs2, imm = _fields(insn, InsnType.B, "rs1", "rs2", "imm")
    if taken(state.x[rs1], state.x[rs2]):
        state.pc = (state.pc + sign_extend(imm, 13)) & _MASK64


def _imm12(imm: int) -> int:
    return sign_extend(imm, 12) & _MASK64


# 32-bit shifts wrap their amount modulo 32.
def _shamt32(amount: int) -> int:
    return (amount & 0x3F) & 0x1F


def rv64i_lui(state: State, guest: Any, insn: Instruction) -> None:
    rd, imm = _fields(insn, InsnType.U, "rd", "imm")
    state.x[rd] = sign_extend(imm, 32) & _MASK64


def rv64i_auipc(state: State, guest: Any, insn: Instruction) -> None:
    rd, imm = _fields(insn, InsnType.U, "rd", "imm")
    state.x[rd] = (state.pc + sign_extend(imm, 32)) & _MASK64


def rv64i_lb(state: State, guest: Any, insn: Instruction) -> None:
    _load(state, insn, guest.read_u8, 8, True)


def rv64i_lbu(state: State, guest: Any, insn: Instruction) -> None:
    _load(state, insn, guest.read_u8, 8, False)


def rv64i_lh(state: State, guest: Any, insn: Instruction) -> None:
    _load(state, insn, guest.read_u16, 16, True)


def rv64i_lhu(state: State, guest: Any, insn: Instruction) -> None:
    _load(state, insn, guest.read_u16, 16, False)


def rv64i_lw(state: State, guest: Any, insn: Instruction) -> None:
    _load(state, insn, guest.read_u32, 32, True)


def rv64i_lwu(state: State, guest: Any, insn: Instruction) -> None:
    _load(state, insn, guest.read_u32, 32, False)


def rv64i_ld(state: State, guest: Any, insn: Instruction) -> None:
    _load(state, insn, guest.read_u64, 64, False)


def rv64i_sb(state: State, guest: Any, insn: Instruction) -> None:
    _store(state, insn, guest.write_u8, 8)


def rv64i_sh(state: State, guest: Any, insn: Instruction) -> None:
    _store(state, insn, guest.write_u16, 16)


def rv64i_sw(state: State, guest: Any, insn: Instruction) -> None:
    _store(state, insn, guest.write_u32, 32)


def rv64i_sd(state: State, guest: Any, insn: Instruction) -> None:
    _store(state, insn, guest.write_u64, 64)


def rv64i_addi(state: State, guest: Any, insn: Instruction) -> None:
    _op_imm(state, insn, lambda a, imm: a + _imm12(imm))


def rv64i_slli(state: State, guest: Any, insn: Instruction) -> None:
    _op_imm(state, insn, lambda a, imm: a << (imm & 0x3F))


def rv64i_srli(state: State, guest: Any, insn: Instruction) -> None:
    _op_imm(state, insn, lambda a, imm: a >> (imm & 0x3F))


def rv64i_srai(state: State, guest: Any, insn: Instruction) -> None:
    _op_imm(state, insn, lambda a, imm: _signed64(a) >> (imm & 0x3F))


def rv64i_xori(state: State, guest: Any, insn: Instruction) -> None:
    _op_imm(state, insn, lambda a, imm: a ^ _imm12(imm))


def rv64i_ori(state: State, guest: Any, insn: Instruction) -> None:
    _op_imm(state, insn, lambda a, imm: a | _imm12(imm))


def rv64i_andi(state: State, guest: Any, insn: Instruction) -> None:
    _op_imm(state, insn, lambda a, imm: a & _imm12(imm))


def rv64i_slti(state: State, guest: Any, insn: Instruction) -> None:
    _op_imm(state, insn, lambda a, imm: int(_signed64(a) < sign_extend(imm, 12)))


def rv64i_sltiu(state: State, guest: Any, insn: Instruction) -> None:
    _op_imm(state, insn, lambda a, imm: int(a < _imm12(imm)))


def rv64i_add(state: State, guest: Any, insn: Instruction) -> None:
    _op(state, insn, lambda a, b: a + b)


def rv64i_sub(state: State, guest: Any, insn: Instruction) -> None:
    _op(state, insn, lambda a, b: a - b)


def rv64i_sll(state: State, guest: Any, insn: Instruction) -> None:
    _op(state, insn, lambda a, b: a << (b & 0x3F))


def rv64i_srl(state: State, guest: Any, insn: Instruction) -> None:
    _op(state, insn, lambda a, b: a >> (b & 0x3F))


def rv64i_sra(state: State, guest: Any, insn: Instruction) -> None:
    _op(state, insn, lambda a, b: _signed64(a) >> (b & 0x3F))


def rv64i_xor(state: State, guest: Any, insn: Instruction) -> None:
    _op(state, insn, lambda a, b: a ^ b)


def rv64i_or(state: State, guest: Any, insn: Instruction) -> None:
    _op(state, insn, lambda a, b: a | b)


def rv64i_and(state: State, guest: Any, insn: Instruction) -> None:
    _op(state, insn, lambda a, b: a & b)


def rv64i_slt(state: State, guest: Any, insn: Instruction) -> None:
    _op(state, insn, lambda a, b: int(_signed64(a) < _signed64(b)))


def rv64i_sltu(state: State, guest: Any, insn: Instruction) -> None:
    _op(state, insn, lambda a, b: int(a < b))


def rv64i_beq(state: State, guest: Any, insn: Instruction) -> None:
    _branch(state, insn, lambda a, b: a == b)


def rv64i_bne(state: State, guest: Any, insn: Instruction) -> None:
    _branch(state, insn, lambda a, b: a != b)


def rv64i_blt(state: State, guest: Any, insn: Instruction) -> None:
    _branch(state, insn, lambda a, b: _signed64(a) < _signed64(b))


def rv64i_bge(state: State, guest: Any, insn: Instruction) -> None:
    _branch(state, insn, lambda a, b: _signed64(a) >= _signed64(b))


def rv64i_bltu(state: State, guest: Any, insn: Instruction) -> None:
    _branch(state, insn, lambda a, b: a < b)


def rv64i_bgeu(state: State, guest: Any, insn: Instruction) -> None:
    _branch(state, insn, lambda a, b: a >= b)


def rv64i_jal(state: State, guest: Any, insn: Instruction) -> None:
    rd, imm = _fields(insn, InsnType.J, "rd", "imm")
    target = (state.pc + sign_extend(imm, 21)) & _MASK64
    state.x[rd] = (state.pc + insn.step_size()) & _MASK64
    state.pc = target


def rv64i_jalr(state: State, guest: Any, insn: Instruction) -> None:
    rd, rs1, imm = _fields(insn, InsnType.I, "rd", "rs1", "imm")
    target = _effective_addr(state, rs1, imm) & ~1
    state.x[rd] = (state.pc + insn.step_size()) & _MASK64
    state.pc = target


def rv64i_addiw(state: State, guest: Any, insn: Instruction) -> None:
    _op_imm(state, insn, lambda a, imm: _word(a + sign_extend(imm, 12)))


def rv64i_slliw(state: State, guest: Any, insn: Instruction) -> None:
    _op_imm(state, insn, lambda a, imm: _word((a & _MASK32) << _shamt32(imm)))


def rv64i_srliw(state: State, guest: Any, insn: Instruction) -> None:
    _op_imm(state, insn, lambda a, imm: _word((a & _MASK32) >> _shamt32(imm)))


def rv64i_sraiw(state: State, guest: Any, insn: Instruction) -> None:
    _op_imm(state, insn, lambda a, imm: _word(sign_extend(a, 32) >> _shamt32(imm)))


def rv64i_addw(state: State, guest: Any, insn: Instruction) -> None:
    _op(state, insn, lambda a, b: _word(a + b))


def rv64i_subw(state: State, guest: Any, insn: Instruction) -> None:
    _op(state, insn, lambda a, b: _word(a - b))


def rv64i_sllw(state: State, guest: Any, insn: Instruction) -> None:
    _op(state, insn, lambda a, b: _word((a & _MASK32) << _shamt32(b)))


def rv64i_srlw(state: State, guest: Any, insn: Instruction) -> None:
    _op(state, insn, lambda a, b: _word((a & _MASK32) >> _shamt32(b)))


def rv64i_sraw(state: State, guest: Any, insn: Instruction) -> None:
    _op(state, insn, lambda a, b: _word(sign_extend(a, 32) >> _shamt32(b)))


def rv64i_ecall(state: State, guest: Any, insn: Instruction) -> None:
    state.break_on = BreakCause.ECALL


def rv64i_ebreak(state: State, guest: Any, insn: Instruction) -> None:
    state.break_on = BreakCause.EBREAK


def rv64i_fence(state: State, guest: Any, insn: Instruction) -> None:
    log.log(Level.TRACE, "dummy fence")