"""RTMP simple (version 3) handshake: state machine plus server and client flows.

A connection is any socket-like object offering ``recv``, ``sendall`` and
``settimeout`` with :mod:`socket` semantics.
"""

from __future__ import annotations

import enum
import logging
import os
import time

VERSION = 0x03
PACKET_SIZE = 1536
_RANDOM_FIELD_OFFSET = 8

SERVER_READ_TIMEOUT = 5.0
SERVER_WRITE_TIMEOUT = 5.0
CLIENT_READ_TIMEOUT = 5.0
CLIENT_WRITE_TIMEOUT = 5.0
_EARLY_S2_TIMEOUT = 0.001

_log = logging.getLogger(__name__)


class HandshakeError(Exception):
    """A protocol failure during the handshake, tagged with the failing operation."""

    def __init__(self, op: str, cause: BaseException | str):
        self.op = op
        self.cause = cause
        super().__init__(f"handshake {op}: {cause}")


class HandshakeTimeoutError(HandshakeError):
    """A handshake read or write did not finish within its timeout."""

    def __init__(self, op: str, timeout: float, cause: BaseException | str):
        self.timeout = timeout
        super().__init__(op, cause)
        self.args = (f"handshake {op}: timed out after {timeout}s: {cause}",)


class State(enum.IntEnum):
    """Progression of the server-side simple handshake."""

    INITIAL = 0
    RECV_C0C1 = 1
    SENT_S0S1S2 = 2
    RECV_C2 = 3
    COMPLETED = 4

    def __str__(self) -> str:
        return _STATE_LABELS[self]


_STATE_LABELS = {
    State.INITIAL: "Initial",
    State.RECV_C0C1: "RecvC0C1",
    State.SENT_S0S1S2: "SentS0S1S2",
    State.RECV_C2: "RecvC2",
    State.COMPLETED: "Completed",
}


def _timestamp_of(block: bytes) -> int:
    return int.from_bytes(block[:4], "big")


class Handshake:
    """In-memory state needed to validate and complete a simple handshake."""

    def __init__(self) -> None:
        self._state = State.INITIAL
        self._c1: bytes | None = None
        self._s1: bytes | None = None
        self._have_c2 = False
        self.c1_timestamp = 0
        self.s1_timestamp = 0

    @property
    def state(self) -> State:
        return self._state

    @property
    def c1(self) -> bytes | None:
        """The recorded C1 block, or None before it was accepted."""
        return self._c1

    @property
    def s1(self) -> bytes | None:
        """The recorded S1 block, or None before it was set."""
        return self._s1

    @property
    def has_completed(self) -> bool:
        return self._state is State.COMPLETED

    def _require(self, expected: State, op: str) -> None:
        if self._state is not expected:
            raise HandshakeError(op, f"invalid state {self._state}")

    def accept_c0c1(self, c0: int, c1: bytes) -> None:
        """Record the client's version byte and C1 block (Initial -> RecvC0C1)."""
        op = "accept C0+C1"
        self._require(State.INITIAL, op)
        if c0 != VERSION:
            raise HandshakeError(op, f"unsupported version 0x{c0:02x}")
        if len(c1) != PACKET_SIZE:
            raise HandshakeError(op, f"invalid C1 size {len(c1)}")
        self._c1 = bytes(c1)
        self.c1_timestamp = _timestamp_of(self._c1)
        self._state = State.RECV_C0C1

    def set_s1(self, s1: bytes) -> None:
        """Record the server's S1 block (RecvC0C1 -> SentS0S1S2)."""
        op = "set S1"
        self._require(State.RECV_C0C1, op)
        if len(s1) != PACKET_SIZE:
            raise HandshakeError(op, f"invalid S1 size {len(s1)}")
        self._s1 = bytes(s1)
        self.s1_timestamp = _timestamp_of(self._s1)
        self._state = State.SENT_S0S1S2

    def accept_c2(self, c2: bytes) -> None:
        """Register the client's C2 block (SentS0S1S2 -> RecvC2)."""
        op = "accept C2"
        self._require(State.SENT_S0S1S2, op)
        if len(c2) != PACKET_SIZE:
            raise HandshakeError(op, f"invalid C2 size {len(c2)}")
        self._have_c2 = True
        self._state = State.RECV_C2

    def complete(self) -> None:
        """Mark the handshake as finished (RecvC2 -> Completed)."""
        self._require(State.RECV_C2, "complete")
        self._state = State.COMPLETED


def _make_block() -> tuple[bytes, int]:
    ts = int(time.time() * 1000) & 0xFFFFFFFF
    block = ts.to_bytes(4, "big") + bytes(4) + os.urandom(PACKET_SIZE - _RANDOM_FIELD_OFFSET)
    return block, ts


def _set_timeout(conn, timeout: float | None, op: str) -> None:
    try:
        conn.settimeout(timeout)
    except OSError as exc:
        raise HandshakeError(op, exc) from exc


def _read_exact(conn, size: int, op: str, timeout: float) -> bytes:
    buf = bytearray()
    while len(buf) < size:
        try:
            chunk = conn.recv(size - len(buf))
        except TimeoutError as exc:
            raise HandshakeTimeoutError(op, timeout, exc) from exc
        except OSError as exc:
            raise HandshakeError(op, exc) from exc
        if not chunk:
            raise HandshakeError(op, EOFError(f"unexpected EOF after {len(buf)} of {size} bytes"))
        buf += chunk
    return bytes(buf)


def _write_all(conn, data: bytes, op: str, timeout: float) -> None:
    try:
        conn.sendall(data)
    except TimeoutError as exc:
        raise HandshakeTimeoutError(op, timeout, exc) from exc
    except OSError as exc:
        raise HandshakeError(op, exc) from exc


def _read_available(conn, size: int, timeout: float) -> bytes:
    """Read up to ``size`` bytes that arrive within ``timeout``; never raises."""
    buf = bytearray()
    try:
        conn.settimeout(timeout)
        while len(buf) < size:
            chunk = conn.recv(size - len(buf))
            if not chunk:
                break
            buf += chunk
    except OSError:
        pass
    return bytes(buf)


def _clear_timeouts(conn, log: logging.LoggerAdapter) -> None:
    try:
        conn.settimeout(None)
    except OSError as exc:
        log.warning("Failed to clear timeout: %s", exc)


def server_handshake(conn) -> Handshake:
    """Run the server side: read C0+C1, send S0+S1+S2, read C2.

    Returns the completed :class:`Handshake`; raises :class:`HandshakeError`
    (or :class:`HandshakeTimeoutError`) on failure.
    """
    if conn is None:
        raise HandshakeError("init", "nil conn")
    log = logging.LoggerAdapter(_log, {"phase": "handshake", "side": "server"})
    h = Handshake()

    _set_timeout(conn, SERVER_READ_TIMEOUT, "set read deadline")
    c0c1 = _read_exact(conn, 1 + PACKET_SIZE, "read C0+C1", SERVER_READ_TIMEOUT)
    h.accept_c0c1(c0c1[0], c0c1[1:])

    s1, _ = _make_block()
    h.set_s1(s1)
    s2 = h.c1

    _set_timeout(conn, SERVER_WRITE_TIMEOUT, "set write deadline")
    _write_all(conn, bytes([VERSION]) + s1 + s2, "write S0+S1+S2", SERVER_WRITE_TIMEOUT)

    _set_timeout(conn, SERVER_READ_TIMEOUT, "set read deadline")
    c2 = _read_exact(conn, PACKET_SIZE, "read C2", SERVER_READ_TIMEOUT)
    h.accept_c2(c2)
    if c2 != s1:
        log.warning("C2 echo mismatch (expected_echo_len=%d got_len=%d)", len(s1), len(c2))
    h.complete()

    _clear_timeouts(conn, log)
    log.info("Handshake completed c1_ts=%d s1_ts=%d", h.c1_timestamp, h.s1_timestamp)
    return h


def client_handshake(conn) -> None:
    """Run the client side: send C0+C1, read S0+S1, send C2, then read S2 if sent.

    Raises :class:`HandshakeError` (or :class:`HandshakeTimeoutError`) on failure.
    A missing or mismatched S2 is only logged.
    """
    if conn is None:
        raise HandshakeError("init", "nil conn")
    log = logging.LoggerAdapter(_log, {"phase": "handshake", "side": "client"})

    c1, ts = _make_block()
    _set_timeout(conn, CLIENT_WRITE_TIMEOUT, "set write deadline")
    _write_all(conn, bytes([VERSION]) + c1, "write C0+C1", CLIENT_WRITE_TIMEOUT)

    _set_timeout(conn, CLIENT_READ_TIMEOUT, "set read deadline")
    s0s1 = _read_exact(conn, 1 + PACKET_SIZE, "read S0+S1", CLIENT_READ_TIMEOUT)
    if s0s1[0] != VERSION:
        raise HandshakeError("validate S0", f"unsupported version 0x{s0s1[0]:02x}")
    s1 = s0s1[1:]

    # Servers usually send S2 together with S0+S1; take it now if it is already here.
    s2 = _read_available(conn, PACKET_SIZE, _EARLY_S2_TIMEOUT)
    have_s2 = len(s2) == PACKET_SIZE
    if have_s2 and s2 != c1:
        log.warning("S2 early echo mismatch (expected_echo_len=%d)", len(c1))

    _set_timeout(conn, CLIENT_WRITE_TIMEOUT, "set write deadline")
    _write_all(conn, s1, "write C2", CLIENT_WRITE_TIMEOUT)

    if not have_s2:
        try:
            _set_timeout(conn, CLIENT_READ_TIMEOUT, "set read deadline")
            s2 += _read_exact(conn, PACKET_SIZE - len(s2), "read S2", CLIENT_READ_TIMEOUT)
        except HandshakeError:
            pass
        else:
            if s2 != c1:
                log.warning("S2 echo mismatch (expected_echo_len=%d)", len(c1))

    _clear_timeouts(conn, log)
    log.info("Handshake completed c1_ts=%d", ts)