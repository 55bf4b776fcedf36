"""Memory management for guest programs."""

from __future__ import annotations

from bisect import bisect_right, insort
from dataclasses import dataclass, field
from enum import Flag
from typing import Dict, List, Optional, Tuple

from rvemu import log
from rvemu.elf import PF_R, PF_W, PF_X, PT_LOAD, ElfHeader, ProgramHeader
from rvemu.errors import InternalError, InvalidElf, MemAccess, MemAccessFault
from rvemu.log import Level
from rvemu.util import round_down, round_up

PAGE_SIZE = 4096


class MemFlags(Flag):
    """Access permissions of a guest memory segment."""

    NONE = 0
    READ = 1 << 0
    WRITE = 1 << 1
    EXECUTE = 1 << 2

    @classmethod
    def from_p_flags(cls, p_flags: int) -> MemFlags:
        """Translate ELF program-header flags into segment permissions."""
        flags = cls.NONE
        if p_flags & PF_R:
            flags |= cls.READ
        if p_flags & PF_W:
            flags |= cls.WRITE
        if p_flags & PF_X:
            flags |= cls.EXECUTE
        return flags


_ACCESS_FLAGS = {
    MemAccess.READ: MemFlags.READ,
    MemAccess.WRITE: MemFlags.WRITE,
    MemAccess.EXECUTE: MemFlags.EXECUTE,
}


@dataclass
class MemSegment:
    """A contiguous guest region ``[gaddr_start, gaddr_end)`` backed by host memory.

    The ``m_`` bounds are the region rounded out to its alignment; the host
    buffer spans them.
    """

    gaddr_start: int
    gaddr_end: int
    m_gaddr_start: int
    m_gaddr_end: int
    host: bytearray = field(repr=False)
    flags: MemFlags

    def __post_init__(self) -> None:
        if not self.gaddr_start < self.gaddr_end:
            raise ValueError("Invalid memory segment range")

    def num_pages(self) -> int:
        return (self.m_gaddr_end - self.m_gaddr_start) // PAGE_SIZE

    def contains(self, guest_addr: int) -> bool:
        return self.gaddr_start <= guest_addr < self.m_gaddr_end

    def allows(self, access: MemAccess) -> bool:
        return bool(self.flags & _ACCESS_FLAGS[access])


class GuestMem:
    """The guest address space: a set of non-overlapping segments."""

    def __init__(self) -> None:
        self.segments: Dict[int, MemSegment] = {}
        self._bases: List[int] = []
        self.init_brk_gaddr = 0
        self.cur_brk_gaddr = 0
        self.stk_base_gaddr = 0
        self.stk_size = 0

    def load_elf(self, elf: bytes) -> int:
        """Map the loadable segments of ``elf`` and return its entry point."""
        if len(elf) < ElfHeader.SIZE:
            log.warn("ELF file too small: {} bytes", len(elf))
            raise InvalidElf()
        ehdr = ElfHeader.from_bytes(elf[:ElfHeader.SIZE])

        for i in range(ehdr.e_phnum):
            offset = ehdr.e_phoff + i * ProgramHeader.SIZE
            phdr = ProgramHeader.from_bytes(elf[offset:offset + ProgramHeader.SIZE])
            if phdr.p_type != PT_LOAD:
                continue
            end = phdr.p_offset + phdr.p_filesz
            if end > len(elf):
                log.warn("Segment data out of bounds: {:#x} > {:#x}", end, len(elf))
                raise InvalidElf()
            self.add_segment(
                phdr.p_vaddr,
                phdr.p_memsz,
                phdr.p_align,
                MemFlags.from_p_flags(phdr.p_flags),
                elf[phdr.p_offset:end],
            )

        for segment in self.segments.values():
            log.log(Level.TRACE, "loaded segment {!r}", segment)
        brk = max((seg.m_gaddr_end for seg in self.segments.values()), default=0)
        self.init_brk_gaddr = brk
        self.cur_brk_gaddr = brk
        return ehdr.e_entry

    def add_segment(
        self,
        gaddr_start: int,
        length: int,
        align: int,
        flags: MemFlags,
        init_data: Optional[bytes],
    ) -> None:
        """Map ``length`` bytes at ``gaddr_start``, zero-filled apart from ``init_data``."""
        if length == 0:
            raise ValueError("segment length must be non-zero")
        gaddr_end = gaddr_start + length
        m_start = round_down(gaddr_start, align)
        m_end = round_up(gaddr_end, align)

        for seg in self.segments.values():
            if (m_start < seg.m_gaddr_start < m_end
                    or seg.m_gaddr_start <= m_start < seg.m_gaddr_end):
                raise InternalError("Memory segment overlaps with existing segment")

        host = bytearray(m_end - m_start)
        if init_data is not None:
            if len(init_data) > length:
                raise ValueError("initial data larger than the segment")
            offset = gaddr_start - m_start
            host[offset:offset + len(init_data)] = init_data

        self.segments[m_start] = MemSegment(gaddr_start, gaddr_end, m_start, m_end, host, flags)
        insort(self._bases, m_start)

    def decompose(self, gaddr: int, access: MemAccess) -> Tuple[int, MemSegment]:
        """Find the segment holding ``gaddr`` and check it permits ``access``."""
        for base in reversed(self._bases[:bisect_right(self._bases, gaddr)]):
            segment = self.segments[base]
            if segment.contains(gaddr):
                if segment.allows(access):
                    return base, segment
                raise MemAccessFault(access, gaddr)
        raise MemAccessFault(access, gaddr)

    def fetch_insn(self, pc: int) -> int:
        """Read a 32-bit little-endian instruction word with execute permission."""
        data = bytes(self.read_u8_raw(pc + i, MemAccess.EXECUTE) for i in range(4))
        return int.from_bytes(data, "little")

    def read_u8_raw(self, gaddr: int, access: MemAccess) -> int:
        _, segment = self.decompose(gaddr, access)
        return segment.host[gaddr - segment.m_gaddr_start]

    def read_u8(self, gaddr: int) -> int:
        return self.read_u8_raw(gaddr, MemAccess.READ)

    def write_u8(self, gaddr: int, value: int) -> None:
        _, segment = self.decompose(gaddr, MemAccess.WRITE)
        segment.host[gaddr - segment.m_gaddr_start] = value & 0xFF

    # Addresses may be unaligned or span segments, so wider accesses go byte by byte.
    def _read(self, gaddr: int, size: int) -> int:
        data = bytes(self.read_u8(gaddr + i) for i in range(size))
        return int.from_bytes(data, "little")

    def _write(self, gaddr: int, value: int, size: int) -> None:
        mask = (1 << (8 * size)) - 1
        for i, byte in enumerate((value & mask).to_bytes(size, "little")):
            self.write_u8(gaddr + i, byte)

    def read_u16(self, gaddr: int) -> int:
        return self._read(gaddr, 2)

    def write_u16(self, gaddr: int, value: int) -> None:
        self._write(gaddr, value, 2)

    def read_u32(self, gaddr: int) -> int:
        return self._read(gaddr, 4)

    def write_u32(self, gaddr: int, value: int) -> None:
        self._write(gaddr, value, 4)

    def read_u64(self, gaddr: int) -> int:
        return self._read(gaddr, 8)

    def write_u64(self, gaddr: int, value: int) -> None:
        self._write(gaddr, value, 8)