"""ELF64 header structures."""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import ClassVar

from rvemu import log
from rvemu.errors import InvalidElf

EI_NIDENT = 16
ELF_MAGIC = b"\x7fELF"
EM_RISCV = 0xF3
EI_CLASS = 4

ELF_CLASS_NONE = 0
ELF_CLASS_32 = 1
ELF_CLASS_64 = 2
ELF_CLASS_NUM = 3

PT_LOAD = 1

PF_X = 0x1
PF_W = 0x2
PF_R = 0x4

R_X86_64_PC32 = 2


@dataclass
class ElfHeader:
    e_ident: bytes
    e_type: int
    e_machine: int
    e_version: int
    e_entry: int
    e_phoff: int
    e_shoff: int
    e_flags: int
    e_ehsize: int
    e_phentsize: int
    e_phnum: int
    e_shentsize: int
    e_shnum: int
    e_shstrndx: int

    FORMAT: ClassVar[struct.Struct] = struct.Struct("<16sHHIQQQIHHHHHH")
    SIZE: ClassVar[int] = FORMAT.size

    @classmethod
    def from_bytes(cls, src: bytes) -> ElfHeader:
        """Parse and validate a RISC-V ELF64 header of exactly ``SIZE`` bytes."""
        if len(src) != cls.SIZE:
            log.warn("ELF header size mismatch: expected {}, got {}", cls.SIZE, len(src))
            raise InvalidElf()
        header = cls(*cls.FORMAT.unpack(bytes(src)))

        magic = header.e_ident[:4]
        if magic != ELF_MAGIC:
            log.warn("Invalid ELF magic number: expected {!r}, got {!r}", ELF_MAGIC, magic)
            raise InvalidElf()
        if header.e_ident[EI_CLASS] != ELF_CLASS_64:
            log.warn("Unsupported ELF class: expected {}, got {}",
                     ELF_CLASS_64, header.e_ident[EI_CLASS])
            raise InvalidElf()
        if header.e_machine != EM_RISCV:
            log.warn("Unsupported machine type: expected {}, got {}", EM_RISCV, header.e_machine)
            raise InvalidElf()
        return header


@dataclass
class ProgramHeader:
    p_type: int
    p_flags: int
    p_offset: int
    p_vaddr: int
    p_paddr: int
    p_filesz: int
    p_memsz: int
    p_align: int

    FORMAT: ClassVar[struct.Struct] = struct.Struct("<IIQQQQQQ")
    SIZE: ClassVar[int] = FORMAT.size

    @classmethod
    def from_bytes(cls, src: bytes) -> ProgramHeader:
        """Parse a program header of exactly ``SIZE`` bytes."""
        if len(src) != cls.SIZE:
            log.warn("Program header size mismatch: expected {}, got {}", cls.SIZE, len(src))
            raise InvalidElf()
        return cls(*cls.FORMAT.unpack(bytes(src)))


@dataclass
class SectionHeader:
    sh_name: int
    sh_type: int
    sh_flags: int
    sh_addr: int
    sh_offset: int
    sh_size: int
    sh_link: int
    sh_info: int
    sh_addralign: int
    sh_entsize: int


@dataclass
class Symbol:
    st_name: int
    st_info: int
    st_other: int
    st_shndx: int
    st_value: int
    st_size: int


@dataclass
class Relocation:
    r_offset: int
    r_type: int
    r_sym: int
    r_addend: int