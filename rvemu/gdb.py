"""GDB remote serial protocol stub for debugging a guest program."""

from __future__ import annotations

import select
import socket
import struct
import sys
from enum import Enum, auto
from typing import Optional, Union

from rvemu import log
from rvemu.emulator import Emulator, EmuMode, ExitKind
from rvemu.errors import (
    BreakpointNotFound,
    EmulatorError,
    InternalError,
    MemAccessFault,
    RepeatedBreakpoint,
)
from rvemu.util import EFAULT, GDB_PORT

SIGINT = 2
SIGTRAP = 5
SIGSTOP = 19

REPLY_OK = b"OK"
_NONFATAL = b"E01"

_NUM_GPRS = 32
_PC_REGNUM = 32
_REGS = struct.Struct("<33Q")
_MASK64 = (1 << 64) - 1
_ESCAPED = b"#$}*"
_INTERRUPT = 0x03


class DisconnectReason(Enum):
    """Why a debug session ended."""

    DISCONNECT = auto()
    TARGET_EXITED = auto()
    TARGET_TERMINATED = auto()
    KILL = auto()


def _checksum(data: bytes) -> int:
    return sum(data) & 0xFF


def _frame(payload: bytes) -> bytes:
    out = bytearray(b"$")
    for byte in payload:
        if byte in _ESCAPED:
            out += bytes((0x7D, byte ^ 0x20))
        else:
            out.append(byte)
    out += b"#%02x" % _checksum(out[1:])
    return bytes(out)


def _unescape(body: bytes) -> bytes:
    out = bytearray()
    escaped = False
    for byte in body:
        if escaped:
            out.append(byte ^ 0x20)
            escaped = False
        elif byte == 0x7D:
            escaped = True
        else:
            out.append(byte)
    return bytes(out)


def _stop_signal(signal: int) -> bytes:
    return b"S%02x" % signal


def _errno(code: int) -> bytes:
    return b"E%02x" % code


class GdbStub:
    """Serves gdb remote protocol packets against an emulator over a socket."""

    def __init__(self, emulator: Emulator, conn: Optional[socket.socket] = None) -> None:
        self.emulator = emulator
        self.conn = conn
        self.outcome: Optional[DisconnectReason] = None
        self.exit_code: Optional[int] = None
        self._buffer = bytearray()
        self._eof = False
        self._last_sent = b""

    # Connection handling.

    def _fill(self) -> bool:
        if self.conn is None or self._eof:
            return False
        data = self.conn.recv(4096)
        if not data:
            self._eof = True
            return False
        self._buffer += data
        return True

    def _read_byte(self) -> Optional[int]:
        if not self._buffer and not self._fill():
            return None
        byte = self._buffer[0]
        del self._buffer[0]
        return byte

    def _write(self, data: bytes) -> None:
        if self.conn is None:
            raise ValueError("no connection attached")
        self.conn.sendall(data)

    def _send(self, payload: bytes) -> None:
        frame = _frame(payload)
        self._last_sent = frame
        log.debug("gdb <- {!r}", frame)
        self._write(frame)

    def _poll(self) -> bool:
        if self.conn is None or self._eof:
            return False
        readable, _, _ = select.select([self.conn], [], [], 0)
        return bool(readable)

    def _read_packet(self) -> Optional[bytes]:
        """Read the next packet, acknowledging it; None at end of stream."""
        while True:
            byte = self._read_byte()
            if byte is None:
                return None
            if byte == ord("+"):
                continue
            if byte == ord("-"):
                if self._last_sent:
                    self._write(self._last_sent)
                continue
            if byte == _INTERRUPT:
                self._send(_stop_signal(SIGINT))
                continue
            if byte != ord("$"):
                continue

            body = bytearray()
            while True:
                byte = self._read_byte()
                if byte is None:
                    return None
                if byte == ord("#"):
                    break
                body.append(byte)
            digits = bytearray()
            for _ in range(2):
                byte = self._read_byte()
                if byte is None:
                    return None
                digits.append(byte)
            try:
                expected = int(digits, 16)
            except ValueError:
                expected = -1
            if _checksum(body) != expected:
                self._write(b"-")
                continue
            self._write(b"+")
            packet = _unescape(bytes(body))
            log.debug("gdb -> {!r}", packet)
            return packet

    def run(self) -> DisconnectReason:
        """Serve packets until the session ends and return why it ended."""
        if self.conn is None:
            raise ValueError("no connection attached")
        while self.outcome is None:
            packet = self._read_packet()
            if packet is None:
                self.outcome = DisconnectReason.DISCONNECT
                break
            reply = self.handle_packet(packet)
            if reply is not None:
                self._send(reply)
        return self.outcome

    # Execution.

    def _wait_for_stop(self) -> bytes:
        while True:
            reason = self.emulator.run_debug(self._poll)
            if reason.kind is ExitKind.DONE_STEP:
                return _stop_signal(SIGTRAP)
            if reason.kind is ExitKind.BREAKPOINT_HIT:
                return b"T%02xswbreak:;" % SIGTRAP
            if reason.kind is ExitKind.EXITED:
                self.exit_code = reason.value
                self.outcome = DisconnectReason.TARGET_TERMINATED
                return b"X%02x" % SIGSTOP
            start = len(self._buffer)
            self._fill()
            index = self._buffer.find(bytes((_INTERRUPT,)), start)
            if index >= 0:
                del self._buffer[index]
                return _stop_signal(SIGINT)

    # Registers and memory.

    def _read_register(self, regnum: int) -> Optional[int]:
        state = self.emulator.hart.state
        if 0 <= regnum < _NUM_GPRS:
            return state.x[regnum]
        if regnum == _PC_REGNUM:
            return state.pc
        return None

    def _write_register(self, regnum: int, value: int) -> bool:
        state = self.emulator.hart.state
        if 0 <= regnum < _NUM_GPRS:
            state.x[regnum] = value & _MASK64
        elif regnum == _PC_REGNUM:
            state.pc = value & _MASK64
        else:
            return False
        return True

    @staticmethod
    def _addr_len(spec: bytes) -> tuple:
        addr, _, length = spec.partition(b",")
        return int(addr, 16), int(length, 16)

    def _read_memory(self, body: bytes) -> bytes:
        addr, length = self._addr_len(body)
        out = bytearray()
        for offset in range(length):
            try:
                out.append(self.emulator.read_u8(addr + offset))
            except MemAccessFault as exc:
                if not out:
                    log.debug("Failed to read byte: {}", exc)
                    return _errno(EFAULT)
                break
        return out.hex().encode()

    def _write_memory(self, addr: int, data: bytes) -> bytes:
        try:
            for offset, byte in enumerate(data):
                self.emulator.write_u8(addr + offset, byte)
        except MemAccessFault:
            return _errno(EFAULT)
        return REPLY_OK

    # Packet dispatch.

    def handle_packet(self, packet: Union[bytes, str]) -> Optional[bytes]:
        """Answer one unframed packet; None means no reply is due."""
        data = packet.encode("latin-1") if isinstance(packet, str) else bytes(packet)
        if not data:
            return b""
        head, body = data[:1], data[1:]
        try:
            return self._dispatch(head, body, data)
        except ValueError:
            return _NONFATAL

    def _dispatch(self, head: bytes, body: bytes, data: bytes) -> Optional[bytes]:
        state = self.emulator.hart.state
        if head == b"?":
            return _stop_signal(SIGTRAP)
        if head == b"g":
            return _REGS.pack(*state.x, state.pc).hex().encode()
        if head == b"G":
            raw = bytes.fromhex(body.decode())
            if len(raw) < _REGS.size:
                return _NONFATAL
            *gprs, pc = _REGS.unpack_from(raw)
            state.x[:] = gprs
            state.pc = pc
            return REPLY_OK
        if head == b"p":
            value = self._read_register(int(body, 16))
            if value is None:
                return _NONFATAL
            return value.to_bytes(8, "little").hex().encode()
        if head == b"P":
            regnum, _, hexval = body.partition(b"=")
            raw = bytes.fromhex(hexval.decode())
            if len(raw) != 8:
                return _NONFATAL
            if not self._write_register(int(regnum, 16), int.from_bytes(raw, "little")):
                return _NONFATAL
            return REPLY_OK
        if head == b"m":
            return self._read_memory(body)
        if head == b"M":
            spec, _, hexdata = body.partition(b":")
            addr, length = self._addr_len(spec)
            payload = bytes.fromhex(hexdata.decode())
            if len(payload) != length:
                return _NONFATAL
            return self._write_memory(addr, payload)
        if head == b"X":
            spec, _, payload = body.partition(b":")
            addr, length = self._addr_len(spec)
            if len(payload) != length:
                return _NONFATAL
            return self._write_memory(addr, payload)
        if head in (b"c", b"s"):
            if body:
                state.pc = int(body, 16) & _MASK64
            if head == b"c":
                self.emulator.resume()
            else:
                self.emulator.single_step()
            return self._wait_for_stop()
        if head in (b"C", b"S"):
            raise InternalError("Signal not supported")
        if head in (b"Z", b"z"):
            return self._breakpoint(head == b"Z", body)
        if head == b"D":
            self.outcome = DisconnectReason.DISCONNECT
            return REPLY_OK
        if head == b"k":
            self.outcome = DisconnectReason.KILL
            return None
        if data == b"vKill" or data.startswith(b"vKill;"):
            self.outcome = DisconnectReason.KILL
            return REPLY_OK
        if head in (b"H", b"T"):
            return REPLY_OK
        if data.startswith(b"qSupported"):
            return b"PacketSize=4000;swbreak+"
        if data.startswith(b"qAttached"):
            return b"1"
        if data == b"qfThreadInfo":
            return b"m1"
        if data == b"qsThreadInfo":
            return b"l"
        return b""

    def _breakpoint(self, insert: bool, body: bytes) -> bytes:
        kind, _, rest = body.partition(b",")
        if kind != b"0":
            return b""
        addr_text, _, _ = rest.partition(b",")
        addr = int(addr_text, 16)
        try:
            if insert:
                self.emulator.set_breakpoint(addr)
            else:
                self.emulator.rm_breakpoint(addr)
        except (RepeatedBreakpoint, BreakpointNotFound):
            return _NONFATAL
        return REPLY_OK


def wait_for_tcp(port: int) -> socket.socket:
    """Listen on localhost at ``port`` and return the first accepted connection."""
    host = "127.0.0.1"
    print(f"Waiting for GDB to connect on {host}:{port}", file=sys.stderr)
    with socket.create_server((host, port)) as listener:
        conn, peer = listener.accept()
    print(f"GDB connected from {peer[0]}:{peer[1]}", file=sys.stderr)
    return conn


def debug_session(emulator: Emulator, port: int = GDB_PORT) -> Optional[DisconnectReason]:
    """Run a gdb session on ``port``; returns how it ended, or None on error."""
    conn = wait_for_tcp(port)
    with conn:
        stub = GdbStub(emulator, conn)
        try:
            reason = stub.run()
        except EmulatorError as exc:
            print(f"Target error: {exc}", file=sys.stderr)
            return None
        except OSError as exc:
            print(f"Connection error: {exc}", file=sys.stderr)
            return None

    if reason is DisconnectReason.DISCONNECT:
        print("GDB session disconnected. Running to completion...", file=sys.stderr)
        emulator.mode = EmuMode.RUN
    elif reason is DisconnectReason.TARGET_EXITED:
        print(f"GDB session exited with code: {stub.exit_code}")
    elif reason is DisconnectReason.TARGET_TERMINATED:
        print("GDB session terminated with signal: SIGSTOP")
    else:
        print("GDB session killed", file=sys.stderr)
    return reason