"""Hart state, decoded instruction forms and the decoder interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Optional, Tuple


class BreakCause(Enum):
    ECALL = auto()
    EBREAK = auto()


@dataclass
class State:
    """Architectural state of one hart: program counter and integer registers."""

    pc: int = 0
    x: list = field(default_factory=lambda: [0] * 32)
    break_on: Optional[BreakCause] = None


class InsnType(Enum):
    R = auto()
    I = auto()  # noqa: E741
    S = auto()
    B = auto()
    U = auto()
    J = auto()
    R4 = auto()
    C = auto()


@dataclass(frozen=True)
class Instruction:
    """A decoded instruction. ``imm`` is not yet sign-extended."""

    kind: InsnType
    opcode: int
    raw: int
    rd: Optional[int] = None
    rs1: Optional[int] = None
    rs2: Optional[int] = None
    funct3: Optional[int] = None
    funct7: Optional[int] = None
    imm: Optional[int] = None
    fs1: Optional[int] = None
    fs2: Optional[int] = None
    fs3: Optional[int] = None
    funct2: Optional[int] = None
    fd: Optional[int] = None

    @staticmethod
    def extract_imm(raw: int, insn_type: InsnType) -> int:
        """Gather the immediate bits of ``raw`` for the given format."""
        if insn_type is InsnType.I:
            return raw >> 20
        if insn_type is InsnType.S:
            return (((raw >> 25) & 0x7F) << 5) | ((raw >> 7) & 0x1F)
        if insn_type is InsnType.B:
            return ((((raw >> 31) & 0x1) << 12)
                    | (((raw >> 25) & 0x3F) << 5)
                    | (((raw >> 8) & 0xF) << 1)
                    | (((raw >> 7) & 0x1) << 11))
        if insn_type is InsnType.U:
            return raw & 0xFFFFF000
        if insn_type is InsnType.J:
            return ((((raw >> 31) & 0x1) << 20)
                    | (((raw >> 21) & 0x3FF) << 1)
                    | (((raw >> 20) & 0x1) << 11)
                    | (((raw >> 12) & 0xFF) << 12))
        raise ValueError(f"extract_imm called with unsupported instruction type: {insn_type}")

    def step_size(self) -> int:
        """Bytes the instruction occupies: 2 for compressed, else 4."""
        return 2 if self.kind is InsnType.C else 4


class InsnSet(Enum):
    I = auto()  # noqa: E741
    M = auto()
    F = auto()
    D = auto()
    A = auto()
    C = auto()
    Zifencei = auto()
    P = auto()
    Ziscr = auto()

    @classmethod
    def from_str(cls, s: str) -> Optional[InsnSet]:
        """Map a single-letter ISA name to its set, or None if unknown."""
        return _LETTER_SETS.get(s)


_LETTER_SETS = {name: InsnSet[name] for name in ("I", "M", "F", "D", "A", "C")}

Executor = Callable[[State, Any, Instruction], None]
"""Executes a decoded instruction against a state and guest memory."""


class Decoder(ABC):
    """Turns raw instruction words into an instruction and its executor."""

    @abstractmethod
    def decode(self, raw: int) -> Optional[Tuple[Instruction, Executor]]:
        """Return the decoded instruction and executor, or None if not recognised."""


def noop_executor(state: State, guest: Any, insn: Instruction) -> None:
    """Executor with no architectural effect; it only keeps x0 hard-wired to zero."""
    state.x[0] = 0