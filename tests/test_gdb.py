import socket
import struct

import pytest

from rvemu.emulator import Emulator
from rvemu.errors import InternalError
from rvemu.gdb import (
    REPLY_OK,
    SIGSTOP,
    SIGTRAP,
    DisconnectReason,
    GdbStub,
)
from rvemu.guest import MemFlags
from rvemu.isa.instruction import InsnSet
from rvemu.syscalls import MinilibSyscallHandler
from rvemu.util import EFAULT

BASE = 0x1000
ADDI_X1_5 = 0x00500093
ADDI_A7_93 = 0x05D00893
ECALL = 0x00000073
RWX = MemFlags.READ | MemFlags.WRITE | MemFlags.EXECUTE


def _make_stub(words, conn=None):
    emu = Emulator(syscall=MinilibSyscallHandler(), isa=[InsnSet.I], debug=True)
    code = b"".join(w.to_bytes(4, "little") for w in words)
    emu.guest.add_segment(BASE, len(code), 0x1000, RWX, code)
    emu.hart.state.pc = BASE
    return GdbStub(emu, conn)


def test_register_write_then_read_round_trips():
    stub = _make_stub([ADDI_X1_5])
    value_hex = (0x1122334455667788).to_bytes(8, "little").hex()
    assert stub.handle_packet(f"P5={value_hex}") == REPLY_OK
    assert stub.handle_packet(b"p5") == value_hex.encode()
    assert stub.emulator.hart.state.x[5] == 0x1122334455667788


def test_pc_register_readable_by_number():
    stub = _make_stub([ADDI_X1_5])
    assert stub.handle_packet(b"p20") == BASE.to_bytes(8, "little").hex().encode()


def test_unknown_register_is_error():
    stub = _make_stub([ADDI_X1_5])
    assert stub.handle_packet(b"p41").startswith(b"E")


def test_read_all_registers_ends_with_pc():
    stub = _make_stub([ADDI_X1_5])
    reply = stub.handle_packet(b"g")
    assert len(reply) == 33 * 8 * 2
    assert reply[-16:] == BASE.to_bytes(8, "little").hex().encode()


def test_write_all_registers_round_trips():
    stub = _make_stub([ADDI_X1_5])
    payload = struct.pack("<33Q", *range(33)).hex().encode()
    assert stub.handle_packet(b"G" + payload) == REPLY_OK
    assert stub.handle_packet(b"g") == payload
    assert stub.emulator.hart.state.pc == 32


def test_memory_write_then_read_round_trips():
    stub = _make_stub([ADDI_X1_5])
    assert stub.handle_packet(b"M1100,4:deadbeef") == REPLY_OK
    assert stub.handle_packet(b"m1100,4") == b"deadbeef"


def test_binary_memory_write():
    stub = _make_stub([ADDI_X1_5])
    assert stub.handle_packet(b"X1200,3:abc") == REPLY_OK
    assert stub.handle_packet(b"m1200,3") == b"abc".hex().encode()


def test_memory_read_of_unmapped_address_reports_efault():
    stub = _make_stub([ADDI_X1_5])
    assert stub.handle_packet(b"m90000000,4") == f"E{EFAULT:02x}".encode()


def test_memory_write_to_unmapped_address_reports_efault():
    stub = _make_stub([ADDI_X1_5])
    assert stub.handle_packet(b"M90000000,1:00") == f"E{EFAULT:02x}".encode()


def test_memory_read_stops_at_segment_end():
    stub = _make_stub([ADDI_X1_5])
    reply = stub.handle_packet(b"m1ffc,8")
    assert len(reply) == 4 * 2


def test_breakpoint_insert_and_remove():
    stub = _make_stub([ADDI_X1_5])
    assert stub.handle_packet(b"Z0,1008,4") == REPLY_OK
    assert 0x1008 in stub.emulator.breakpoints
    assert stub.handle_packet(b"Z0,1008,4").startswith(b"E")
    assert stub.handle_packet(b"z0,1008,4") == REPLY_OK
    assert 0x1008 not in stub.emulator.breakpoints
    assert stub.handle_packet(b"z0,1008,4").startswith(b"E")


def test_single_step_executes_one_instruction():
    stub = _make_stub([ADDI_X1_5, ADDI_X1_5])
    reply = stub.handle_packet(b"s")
    assert reply == f"S{SIGTRAP:02x}".encode()
    assert stub.emulator.hart.state.x[1] == 5
    assert stub.emulator.hart.state.pc == BASE + 4


def test_continue_stops_at_breakpoint():
    stub = _make_stub([ADDI_X1_5, ADDI_X1_5, ADDI_X1_5])
    stub.handle_packet(b"Z0,1000,4")
    stub.handle_packet(b"Z0,1008,4")
    reply = stub.handle_packet(b"c")
    assert reply.startswith(f"T{SIGTRAP:02x}".encode())
    assert stub.emulator.hart.state.pc == 0x1008


def test_continue_until_exit_terminates_session():
    stub = _make_stub([ADDI_A7_93, ECALL])
    reply = stub.handle_packet(b"c")
    assert reply == f"X{SIGSTOP:02x}".encode()
    assert stub.outcome is DisconnectReason.TARGET_TERMINATED
    assert stub.exit_code == 0


def test_continue_with_signal_is_rejected():
    stub = _make_stub([ADDI_X1_5])
    with pytest.raises(InternalError):
        stub.handle_packet(b"C05")


def test_unknown_packet_gets_empty_reply():
    stub = _make_stub([ADDI_X1_5])
    assert stub.handle_packet(b"qSomethingUnknown") == b""


def test_detach_ends_session():
    stub = _make_stub([ADDI_X1_5])
    assert stub.handle_packet(b"D") == REPLY_OK
    assert stub.outcome is DisconnectReason.DISCONNECT


def _exchange(request):
    server, client = socket.socketpair()
    with server, client:
        client.sendall(request)
        client.shutdown(socket.SHUT_WR)
        stub = _make_stub([ADDI_X1_5], server)
        reason = stub.run()
        server.shutdown(socket.SHUT_WR)
        received = bytearray()
        while True:
            chunk = client.recv(4096)
            if not chunk:
                break
            received += chunk
    return reason, bytes(received)


def test_run_over_socket_answers_and_detaches():
    reason, received = _exchange(b"$?#3f$D#44")
    assert reason is DisconnectReason.DISCONNECT
    assert received == b"+$S05#b8+$OK#9a"


def test_run_rejects_bad_checksum():
    reason, received = _exchange(b"$?#00$D#44")
    assert reason is DisconnectReason.DISCONNECT
    assert received == b"-+$OK#9a"


def test_run_treats_end_of_stream_as_disconnect():
    reason, received = _exchange(b"")
    assert reason is DisconnectReason.DISCONNECT
    assert received == b""