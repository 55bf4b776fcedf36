import pytest

from rvemu.errors import InsnSetUnimplemented, InternalError, MemAccessFault, UnknownInsn
from rvemu.guest import GuestMem, MemFlags
from rvemu.hart import Hart
from rvemu.isa.instruction import BreakCause, InsnSet

BASE = 0x1000


def _i_type(imm, rs1, funct3, rd, opcode):
    return ((imm & 0xFFF) << 20) | (rs1 << 15) | (funct3 << 12) | (rd << 7) | opcode


def _b_type(offset, rs2, rs1, funct3):
    return (((offset >> 12) & 1) << 31) | (((offset >> 5) & 0x3F) << 25) \
        | (rs2 << 20) | (rs1 << 15) | (funct3 << 12) \
        | (((offset >> 1) & 0xF) << 8) | (((offset >> 11) & 1) << 7) | 0b1100011


def _j_type(offset, rd):
    return (((offset >> 20) & 1) << 31) | (((offset >> 1) & 0x3FF) << 21) \
        | (((offset >> 11) & 1) << 20) | (((offset >> 12) & 0xFF) << 12) \
        | (rd << 7) | 0b1101111


def _addi(rd, rs1, imm):
    return _i_type(imm, rs1, 0, rd, 0b0010011)


def _machine(words, *sets, flags=MemFlags.READ | MemFlags.EXECUTE):
    guest = GuestMem()
    code = b"".join(w.to_bytes(4, "little") for w in words)
    guest.add_segment(BASE, 0x1000, 0x1000, flags, code)
    hart = Hart(0)
    for insn_set in sets or (InsnSet.I,):
        hart.add_decoder(insn_set)
    hart.state.pc = BASE
    return hart, guest


def test_unimplemented_set_rejected():
    hart = Hart(0)
    with pytest.raises(InsnSetUnimplemented):
        hart.add_decoder(InsnSet.M)
    assert hart.decoders == []


def test_decode_without_decoders():
    assert Hart(0).decode(_addi(1, 0, 1)) is None


def test_step_executes_and_advances():
    hart, guest = _machine([_addi(5, 0, 5), _addi(6, 5, 7)])
    assert hart.step(guest) is None
    assert hart.state.x[5] == 5
    assert hart.state.pc == BASE + 4
    hart.step(guest)
    assert hart.state.x[6] == 5 + 7
    assert hart.state.pc == BASE + 8


def test_x0_is_cleared_before_step():
    hart, guest = _machine([_addi(5, 0, 5)])
    hart.state.x[0] = 99
    hart.step(guest)
    assert hart.state.x[0] == 0
    assert hart.state.x[5] == 5


def test_taken_branch_sets_pc():
    hart, guest = _machine([_b_type(8, 0, 0, 0b000)])
    hart.step(guest)
    assert hart.state.pc == BASE + 8


def test_jal_links_and_jumps():
    hart, guest = _machine([_j_type(16, 1)])
    hart.step(guest)
    assert hart.state.pc == BASE + 16
    assert hart.state.x[1] == BASE + 4


def test_ecall_reports_break():
    hart, guest = _machine([0x00000073])
    assert hart.step(guest) is BreakCause.ECALL
    assert hart.state.break_on is None
    assert hart.state.pc == BASE + 4


def test_unknown_instruction():
    hart, guest = _machine([0xFFFFFFFF])
    with pytest.raises(UnknownInsn) as info:
        hart.step(guest)
    assert info.value.insn == 0xFFFFFFFF
    assert info.value.pc == BASE


def test_misaligned_pc():
    hart, guest = _machine([_addi(1, 0, 1)])
    hart.state.pc = BASE + 1
    with pytest.raises(InternalError):
        hart.step(guest)


def test_fetch_needs_execute_permission():
    hart, guest = _machine([_addi(1, 0, 1)], flags=MemFlags.READ)
    with pytest.raises(MemAccessFault):
        hart.step(guest)


def test_csr_falls_through_to_zicsr():
    csrr_mhartid = _i_type(0xF14, 0, 0b010, 5, 0b1110011)
    hart, guest = _machine([csrr_mhartid], InsnSet.I, InsnSet.Ziscr)
    hart.state.x[5] = 123
    hart.step(guest)
    assert hart.state.x[5] == 0

    only_i, guest = _machine([csrr_mhartid])
    with pytest.raises(UnknownInsn):
        only_i.step(guest)


def test_fence_i_with_zifencei():
    hart, guest = _machine([0x0000100F], InsnSet.I, InsnSet.Zifencei)
    assert hart.step(guest) is None
    assert hart.state.pc == BASE + 4