import pytest

from rvemu.errors import Exited, SyscallUnimplemented
from rvemu.guest import GuestMem, MemFlags
from rvemu.isa.instruction import State
from rvemu.syscalls import MinilibSyscallHandler, NewlibSyscallHandler

DATA = 0x2000


def _guest(data=b""):
    guest = GuestMem()
    guest.add_segment(DATA, 0x1000, 0x1000, MemFlags.READ | MemFlags.WRITE, data)
    return guest


def _state(number, arg=0, pc=0x1000):
    state = State(pc=pc)
    state.x[17] = number
    state.x[10] = arg
    return state


@pytest.mark.parametrize("number", [0, 93])
def test_exit(number):
    with pytest.raises(Exited) as info:
        MinilibSyscallHandler().handle(_state(number, 3), _guest())
    assert info.value.code == 3


def test_exit_code_is_signed():
    with pytest.raises(Exited) as info:
        MinilibSyscallHandler().handle(_state(0, (1 << 64) - 1), _guest())
    assert info.value.code == -1


def test_putchar(capsys):
    MinilibSyscallHandler().handle(_state(1, ord("A")), _guest())
    assert capsys.readouterr().out == "A"


def test_putchar_uses_low_byte(capsys):
    MinilibSyscallHandler().handle(_state(1, 0x100 | ord("z")), _guest())
    assert capsys.readouterr().out == "z"


def test_puts(capsys):
    guest = _guest(b"hello, guest\0trailing")
    state = _state(2, DATA)
    MinilibSyscallHandler().handle(state, guest)
    assert capsys.readouterr().out == "hello, guest"
    assert state.x[0] == 0


def test_puts_fault_sets_x0(capsys):
    state = _state(2, 0x9000)
    MinilibSyscallHandler().handle(state, _guest())
    assert capsys.readouterr().out == ""
    assert state.x[0] == (1 << 64) - 1


def test_minilib_unknown_syscall():
    with pytest.raises(SyscallUnimplemented) as info:
        MinilibSyscallHandler().handle(_state(64, pc=0x1234), _guest())
    assert info.value.syscall == 64
    assert info.value.pc == 0x1234


@pytest.mark.parametrize("number", [0, 1, 93])
def test_newlib_unimplemented(number):
    with pytest.raises(SyscallUnimplemented) as info:
        NewlibSyscallHandler().handle(_state(number, pc=0x1000), _guest())
    assert info.value.syscall == number
    assert info.value.pc == 0x1000