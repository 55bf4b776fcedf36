"""A userland RISC-V (RV64I) emulator with ELF loading, minimal syscalls and a GDB stub."""

__version__ = "0.1.0"