"""Bit-manipulation helpers and emulator-wide configuration constants."""

from __future__ import annotations

STACK_SIZE = 0x00800000
"""Default guest stack size in bytes (8 MiB)."""

POLL_INTERVAL = 1024
"""Number of instructions between polls for events in the debug loop."""

GDB_PORT = 3777
"""Default TCP port for the gdb remote stub."""

EFAULT = 14
"""Errno reported to the debugger on a bad address."""


def _check_align(align: int) -> None:
    if align <= 0:
        raise ValueError(f"alignment must be positive, got {align}")


def round_up(val: int, align: int) -> int:
    """Round ``val`` up to a multiple of the power-of-two ``align``."""
    _check_align(align)
    return (val + align - 1) & ~(align - 1)


def round_down(val: int, align: int) -> int:
    """Round ``val`` down to a multiple of the power-of-two ``align``."""
    _check_align(align)
    return val & ~(align - 1)


def sign_extend(val: int, bits: int) -> int:
    """Interpret the low ``bits`` bits of ``val`` as a two's-complement number."""
    if not 1 <= bits <= 64:
        raise ValueError(f"bit width must be in 1..64, got {bits}")
    value = val & ((1 << bits) - 1)
    if value & (1 << (bits - 1)):
        value -= 1 << bits
    return value


def zero_extend(val: int, bits: int) -> int:
    """Keep only the low ``bits`` bits of ``val``, as an unsigned number."""
    if not 1 <= bits <= 64:
        raise ValueError(f"bit width must be in 1..64, got {bits}")
    return val & ((1 << bits) - 1)