# rvemu

rvemu is a userland RISC-V emulator. It loads a 64-bit RISC-V ELF executable into its own guest memory, maps a stack just below address `0x80000000`, and runs the program one instruction at a time. When the program makes a system call (`ecall`), rvemu handles the call itself.

It supports the following:

- The RV64I base integer instruction set.
- Minimal Zicsr support (only the `mhartid` and `mepc` CSRs, plus `mret`) and Zifencei (`fence.i` has no effect). This is enough to run simple test programs.
- A small "minilib" system call interface. The call number is taken from `a7` and the argument from `a0`:
  - exit (number 0 or 93)
  - putchar (number 1)
  - puts (number 2)
- Breakpoints and single stepping, with a GDB remote stub that listens on port 3777 by default.

## Installation

```
pip install .
```

To install with the test dependencies:

```
pip install .[test]
```

## Command line

```
rvemu run path/to/program --syscall minilib
```

The `run` command takes these options:

| Option | Description |
| --- | --- |
| `-i`, `--isa` | Instruction sets to enable, one letter each. The letters `I`, `M`, `F`, `D`, `A` and `C` are recognised. Only `I` is implemented, so any other letter makes the run fail. The default is `I`. |
| `-s`, `--syscall` | System call interface to use: `glibc`, `newlib` or `minilib`. The default is `glibc`. Only `minilib` is implemented, so you must pass `--syscall minilib`. |
| `--stack-size` | Stack size in KiB. The default is 8192, which is 8 MiB. |

Extra positional arguments after the path are accepted, but they are not passed to the program. The top-level flag `-v`/`--verbose` is also accepted and has no effect. `--version` prints the version.

When the program exits, rvemu prints its exit code and returns status 0:

```
[rvemu] program exited with code 0
```

If the program fails while running, rvemu prints `[rvemu] program exited with error: ...` to standard error and returns status 1. Examples of such failures are an unknown instruction, a memory access fault, or an unimplemented system call. Setup errors return status 1 too, such as an unreadable file, an invalid ELF or an unimplemented option.

## Library use

```python
from rvemu.emulator import Emulator, ExitKind
from rvemu.isa.instruction import InsnSet
from rvemu.syscalls import MinilibSyscallHandler

emu = Emulator(syscall=MinilibSyscallHandler(), isa=[InsnSet.I, InsnSet.Ziscr, InsnSet.Zifencei])
with open("program", "rb") as f:
    emu.load_elf(f.read())
reason = emu.run()
assert reason.kind is ExitKind.EXITED
print(reason.value)          # the guest's exit code
print(emu.hart.state.x[10])  # registers are in emu.hart.state.x, pc in emu.hart.state.pc
```

`Emulator` takes these arguments:

- `syscall`: required.
- `isa`: the instruction sets to decode, in order. `InsnSet.I`, `InsnSet.Ziscr` and `InsnSet.Zifencei` are implemented.
- `stack_size`: in bytes.
- `debug`: a flag.

The emulator has these methods:

- `step()` executes one instruction. It raises `BreakpointHit` if a breakpoint is set at the current pc.
- `force_step()` executes one instruction and ignores breakpoints.
- `set_breakpoint`, `rm_breakpoint`, `read_u8` and `write_u8` support debuggers.

Guest memory is available as `emu.guest`, a `rvemu.guest.GuestMem`. It has byte, halfword, word and doubleword read and write methods that check permissions.

Errors are raised as subclasses of `rvemu.errors.EmulatorError`. A guest exit seen by `step()` or `force_step()` is raised as `rvemu.errors.Exited`, which carries the exit code in `code`.

## Debugging with GDB

`rvemu.gdb.debug_session(emulator, port)` waits for a GDB connection on `127.0.0.1`, then serves the remote protocol until the session ends. It supports the following:

- reading and writing registers and memory
- software breakpoints
- continue and single step
- interrupting with Ctrl-C

```python
from rvemu.gdb import debug_session

debug_session(emu)  # port 3777 by default
```

Then attach GDB from another terminal:

```
(gdb) target remote 127.0.0.1:3777
```

If GDB detaches, `debug_session` returns `DisconnectReason.DISCONNECT` and switches the emulator back to run mode. You can then call `emu.run()` to finish the program.

## Limitations

- There is no command-line option to start a GDB session. Debugging is available only through `rvemu.gdb.debug_session`.
- Only the minilib system calls exist. The `glibc` interface is not implemented, and the `newlib` handler rejects every call.
- The M, A, F, D and C extensions are not implemented, and `ebreak` is not supported.
- Program arguments are not passed to the guest.
- Watchpoints can be set and removed, but they do not stop execution.