import pytest

from rvemu.isa.instruction import (
    Decoder,
    InsnSet,
    InsnType,
    Instruction,
    State,
    noop_executor,
)
from rvemu.util import sign_extend


def test_extract_imm_i_type():
    assert Instruction.extract_imm(0x02010113, InsnType.I) == 0x20
    assert Instruction.extract_imm(0x06400293, InsnType.I) == 0x64
    assert sign_extend(Instruction.extract_imm(0xFFF00313, InsnType.I), 12) == -1
    assert Instruction.extract_imm(0x00842303, InsnType.I) == 0x8
    assert sign_extend(Instruction.extract_imm(0xFFC50483, InsnType.I), 12) == -4


def test_extract_imm_s_type():
    assert Instruction.extract_imm(0x00532623, InsnType.S) == 12
    assert sign_extend(Instruction.extract_imm(0xFE740C23, InsnType.S), 12) == -8


def test_extract_imm_b_type():
    assert Instruction.extract_imm(0x00000463, InsnType.B) == 8
    assert sign_extend(Instruction.extract_imm(0xFFD11EE3, InsnType.B), 13) == -4


def test_extract_imm_u_type():
    assert Instruction.extract_imm(0x12345537, InsnType.U) == 0x12345 << 12
    assert Instruction.extract_imm(0xFFFFF5BB, InsnType.U) == 0xFFFFF << 12


def test_extract_imm_j_type():
    assert Instruction.extract_imm(0x028000EF, InsnType.J) == 40
    imm = Instruction.extract_imm(0xFF80006F, InsnType.J)
    assert sign_extend(imm, 21) == -1046536


def test_extract_imm_unsupported_type():
    with pytest.raises(ValueError):
        Instruction.extract_imm(0, InsnType.R)


def test_step_size():
    compressed = Instruction(kind=InsnType.C, opcode=1, raw=0x4501)
    regular = Instruction(kind=InsnType.R, opcode=0b0110011, raw=0x00B50533,
                          rd=10, rs1=10, rs2=11, funct3=0, funct7=0)
    assert compressed.step_size() == 2
    assert regular.step_size() == 4
    assert regular.imm is None


@pytest.mark.parametrize("letter", ["I", "M", "F", "D", "A", "C"])
def test_insn_set_from_str_known(letter):
    assert InsnSet.from_str(letter) is InsnSet[letter]


@pytest.mark.parametrize("text", ["Zifencei", "P", "i", "", "IM"])
def test_insn_set_from_str_unknown(text):
    assert InsnSet.from_str(text) is None


def test_state_defaults_are_independent():
    first, second = State(), State()
    first.x[5] = 7
    assert second.x == [0] * 32
    assert len(first.x) == 32
    assert first.pc == 0 and first.break_on is None


def test_noop_executor_leaves_state():
    state = State(pc=0x100)
    insn = Instruction(kind=InsnType.I, opcode=0b0010011, raw=0x13, rd=0, rs1=0, funct3=0, imm=0)
    assert noop_executor(state, None, insn) is None
    assert state.pc == 0x100
    assert state.x == [0] * 32


def test_decoder_is_abstract():
    with pytest.raises(TypeError):
        Decoder()

    class Only(Decoder):
        def decode(self, raw):
            if raw == 0x13:
                return Instruction(kind=InsnType.I, opcode=0x13, raw=raw), noop_executor
            return None

    decoder = Only()
    assert decoder.decode(0) is None
    insn, executor = decoder.decode(0x13)
    assert insn.raw == 0x13 and executor is noop_executor