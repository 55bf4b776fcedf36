"""Decoder for the RV64I base integer instruction set."""

from __future__ import annotations

from typing import Dict, Optional, Tuple, Union

from rvemu.isa.instruction import Decoder, Executor, InsnType, Instruction
from rvemu.isa.rv64i_ops import (
    rv64i_add, rv64i_addi, rv64i_addiw, rv64i_addw, rv64i_and, rv64i_andi,
    rv64i_auipc, rv64i_beq, rv64i_bge, rv64i_bgeu, rv64i_blt, rv64i_bltu,
    rv64i_bne, rv64i_ecall, rv64i_fence, rv64i_jal, rv64i_jalr, rv64i_lb,
    rv64i_lbu, rv64i_ld, rv64i_lh, rv64i_lhu, rv64i_lui, rv64i_lw, rv64i_lwu,
    rv64i_or, rv64i_ori, rv64i_sb, rv64i_sd, rv64i_sh, rv64i_sll, rv64i_slli,
    rv64i_slliw, rv64i_sllw, rv64i_slt, rv64i_slti, rv64i_sltiu, rv64i_sltu,
    rv64i_sra, rv64i_srai, rv64i_sraiw, rv64i_sraw, rv64i_srl, rv64i_srli,
    rv64i_srliw, rv64i_srlw, rv64i_sub, rv64i_subw, rv64i_sw, rv64i_xor,
    rv64i_xori,
)

RV64I_OPCODE_LOAD = 0b0000011
RV64I_OPCODE_STORE = 0b0100011
RV64I_OPCODE_OP_IMM = 0b0010011
RV64I_OPCODE_OP = 0b0110011
RV64I_OPCODE_BRANCH = 0b1100011
RV64I_OPCODE_OP_W = 0b0111011
RV64I_OPCODE_OP_IMM_W = 0b0011011
RV64I_OPCODE_JAL = 0b1101111
RV64I_OPCODE_JALR = 0b1100111
RV64I_OPCODE_LUI = 0b0110111
RV64I_OPCODE_AUIPC = 0b0010111
RV64I_OPCODE_FENCE = 0b0001111
RV64I_OPCODE_SYSTEM = 0b1110011

_ALT = 0b0100000

# funct3 -> executor, or funct3 -> {funct7 -> executor}
_Table = Dict[int, Union[Executor, Dict[int, Executor]]]

_BY_FUNCT3: Dict[int, Tuple[InsnType, _Table]] = {
    RV64I_OPCODE_FENCE: (InsnType.I, {0b000: rv64i_fence}),
    RV64I_OPCODE_LOAD: (InsnType.I, {
        0b000: rv64i_lb, 0b001: rv64i_lh, 0b010: rv64i_lw, 0b011: rv64i_ld,
        0b100: rv64i_lbu, 0b101: rv64i_lhu, 0b110: rv64i_lwu,
    }),
    RV64I_OPCODE_STORE: (InsnType.S, {
        0b000: rv64i_sb, 0b001: rv64i_sh, 0b010: rv64i_sw, 0b011: rv64i_sd,
    }),
    RV64I_OPCODE_OP_IMM: (InsnType.I, {
        0b000: rv64i_addi, 0b001: rv64i_slli, 0b010: rv64i_slti,
        0b011: rv64i_sltiu, 0b100: rv64i_xori,
        0b101: {0: rv64i_srli, _ALT: rv64i_srai},
        0b110: rv64i_ori, 0b111: rv64i_andi,
    }),
    RV64I_OPCODE_BRANCH: (InsnType.B, {
        0b000: rv64i_beq, 0b001: rv64i_bne, 0b100: rv64i_blt,
        0b101: rv64i_bge, 0b110: rv64i_bltu, 0b111: rv64i_bgeu,
    }),
    RV64I_OPCODE_JALR: (InsnType.I, {0b000: rv64i_jalr}),
    RV64I_OPCODE_OP: (InsnType.R, {
        0b000: {0: rv64i_add, _ALT: rv64i_sub},
        0b001: rv64i_sll, 0b010: rv64i_slt, 0b011: rv64i_sltu, 0b100: rv64i_xor,
        0b101: {0: rv64i_srl, _ALT: rv64i_sra},
        0b110: rv64i_or, 0b111: rv64i_and,
    }),
    RV64I_OPCODE_OP_W: (InsnType.R, {
        0b000: {0: rv64i_addw, _ALT: rv64i_subw},
        0b001: rv64i_sllw,
        0b101: {0: rv64i_srlw, _ALT: rv64i_sraw},
    }),
    RV64I_OPCODE_OP_IMM_W: (InsnType.I, {
        0b000: rv64i_addiw, 0b001: rv64i_slliw,
        0b101: {0: rv64i_srliw, _ALT: rv64i_sraiw},
    }),
}

_UNCONDITIONAL: Dict[int, Tuple[InsnType, Executor]] = {
    RV64I_OPCODE_LUI: (InsnType.U, rv64i_lui),
    RV64I_OPCODE_AUIPC: (InsnType.U, rv64i_auipc),
    RV64I_OPCODE_JAL: (InsnType.J, rv64i_jal),
}


def _build(kind: InsnType, raw: int) -> Instruction:
    opcode = raw & 0x7F
    rd = (raw >> 7) & 0x1F
    funct3 = (raw >> 12) & 0x07
    rs1 = (raw >> 15) & 0x1F
    rs2 = (raw >> 20) & 0x1F
    funct7 = (raw >> 25) & 0x7F
    imm = Instruction.extract_imm(raw, kind) if kind is not InsnType.R else None
    if kind is InsnType.R:
        return Instruction(kind, opcode, raw, rd=rd, rs1=rs1, rs2=rs2,
                           funct3=funct3, funct7=funct7)
    if kind is InsnType.I:
        return Instruction(kind, opcode, raw, rd=rd, rs1=rs1, funct3=funct3, imm=imm)
    if kind in (InsnType.S, InsnType.B):
        return Instruction(kind, opcode, raw, rs1=rs1, rs2=rs2, funct3=funct3, imm=imm)
    return Instruction(kind, opcode, raw, rd=rd, imm=imm)


class Rv64IDecoder(Decoder):
    """Decodes RV64I instructions into their executors."""

    def decode(self, raw: int) -> Optional[Tuple[Instruction, Executor]]:
        opcode = raw & 0x7F

        fixed = _UNCONDITIONAL.get(opcode)
        if fixed is not None:
            kind, executor = fixed
            return _build(kind, raw), executor

        if opcode == RV64I_OPCODE_SYSTEM:
            if Instruction.extract_imm(raw, InsnType.I) == 0:
                return _build(InsnType.I, raw), rv64i_ecall
            return None

        entry = _BY_FUNCT3.get(opcode)
        if entry is None:
            return None
        kind, table = entry
        choice = table.get((raw >> 12) & 0x07)
        if isinstance(choice, dict):
            choice = choice.get((raw >> 25) & 0x7F)
        if choice is None:
            return None
        return _build(kind, raw), choice