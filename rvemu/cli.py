"""Command-line entry point for running RISC-V programs."""

from __future__ import annotations

import argparse
import contextlib
import sys
from pathlib import Path
from typing import Optional, Sequence, Set

from rvemu.emulator import Emulator
from rvemu.errors import EmulatorError
from rvemu.isa.instruction import InsnSet
from rvemu.log import Level, log_init
from rvemu.syscalls import MinilibSyscallHandler

_SYSCALLS = {
    "glibc": None,
    "newlib": None,
    "minilib": MinilibSyscallHandler,
}


def parse_isa(isas: Optional[str]) -> Set[InsnSet]:
    """Turn a string of ISA letters such as ``"IM"`` into instruction sets."""
    if isas is None:
        return {InsnSet.I}
    sets = set()
    for letter in isas:
        insn_set = InsnSet.from_str(letter)
        if insn_set is None:
            raise EmulatorError(f"unsupported instruction set: {letter}")
        sets.add(insn_set)
    return sets


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="rvemu", description="A userland RISC-V emulator")
    parser.add_argument("--version", action="version", version="%(prog)s 0.1.0")
    parser.add_argument("-v", "--verbose", action="store_true")
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Run a RISC-V elf")
    run.add_argument("path", help="Path to the RISC-V elf file")
    run.add_argument("-i", "--isa", default="I", help="ISA to use (I, M, A, F, D, C)")
    run.add_argument("-s", "--syscall", choices=sorted(_SYSCALLS), default="glibc",
                     help="Syscall implementation to use")
    run.add_argument("--stack-size", type=int, default=8192,
                     help="Stack size in kb (default: 8 MiB)")
    run.add_argument("args", nargs="*", help="Arguments to pass to the program")
    return parser


def _cmd_run(args: argparse.Namespace) -> int:
    insn_sets = parse_isa(args.isa)
    stack_size = args.stack_size * 1024
    handler = _SYSCALLS[args.syscall]
    if handler is None:
        raise EmulatorError(f"syscall implementation '{args.syscall}' is unimplemented")

    emulator = Emulator(
        syscall=handler(),
        isa=sorted(insn_sets, key=lambda s: s.value),
        stack_size=stack_size,
    )
    emulator.load_elf(Path(args.path).read_bytes())

    try:
        reason = emulator.run()
    except EmulatorError as exc:
        print(f"[rvemu] program exited with error: {exc}", file=sys.stderr)
        return 1
    print(f"[rvemu] program exited with code {reason.value}")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Parse ``argv`` and run the selected command; returns the exit status."""
    args = _build_parser().parse_args(argv)
    with contextlib.suppress(RuntimeError):
        log_init(Level.DEBUG)
    try:
        return _cmd_run(args)
    except EmulatorError as exc:
        print(str(exc), file=sys.stderr)
    except OSError as exc:
        print(f"I/O error: {exc}", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())