"""RTMP protocol control messages (types 1-6): encoding, decoding and handling."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Union

TYPE_SET_CHUNK_SIZE = 1
TYPE_ABORT_MESSAGE = 2
TYPE_ACKNOWLEDGEMENT = 3
TYPE_USER_CONTROL = 4
TYPE_WINDOW_ACKNOWLEDGEMENT = 5
TYPE_SET_PEER_BANDWIDTH = 6

UC_STREAM_BEGIN = 0
UC_PING_REQUEST = 6
UC_PING_RESPONSE = 7

CONTROL_CSID = 2
CONTROL_MSID = 0


class ControlError(Exception):
    """A control message could not be decoded or handled."""


@dataclass(kw_only=True)
class Message:
    """A fully reassembled RTMP message."""

    type_id: int = 0
    payload: bytes = b""
    timestamp: int = 0
    csid: int = 0
    message_stream_id: int = 0
    message_length: Optional[int] = None

    def __post_init__(self) -> None:
        self.payload = bytes(self.payload)
        if self.message_length is None:
            self.message_length = len(self.payload)


@dataclass(frozen=True)
class SetChunkSize:
    size: int


@dataclass(frozen=True)
class AbortMessage:
    csid: int


@dataclass(frozen=True)
class Acknowledgement:
    sequence_number: int


@dataclass(frozen=True)
class UserControl:
    """A user control event; only the field relevant to ``event_type`` is set."""

    event_type: int
    stream_id: int = 0
    timestamp: int = 0
    raw_data: bytes = b""


@dataclass(frozen=True)
class WindowAcknowledgementSize:
    size: int


@dataclass(frozen=True)
class SetPeerBandwidth:
    bandwidth: int
    limit_type: int  # 0 = Hard, 1 = Soft, 2 = Dynamic


ControlMessage = Union[
    SetChunkSize,
    AbortMessage,
    Acknowledgement,
    UserControl,
    WindowAcknowledgementSize,
    SetPeerBandwidth,
]


def _u32(value: int) -> bytes:
    return value.to_bytes(4, "big")


def _control_message(type_id: int, payload: bytes) -> Message:
    return Message(
        type_id=type_id,
        payload=payload,
        timestamp=0,
        csid=CONTROL_CSID,
        message_stream_id=CONTROL_MSID,
    )


def encode_set_chunk_size(size: int) -> Message:
    """Build a Set Chunk Size (type 1) message."""
    return _control_message(TYPE_SET_CHUNK_SIZE, _u32(size))


def encode_abort_message(csid: int) -> Message:
    """Build an Abort Message (type 2) carrying the chunk stream id to abort."""
    return _control_message(TYPE_ABORT_MESSAGE, _u32(csid))


def encode_acknowledgement(seq: int) -> Message:
    """Build an Acknowledgement (type 3) message."""
    return _control_message(TYPE_ACKNOWLEDGEMENT, _u32(seq))


def encode_user_control(event: int, data: int, include_data: bool) -> Message:
    """Build a User Control (type 4) message, with or without 4 bytes of event data."""
    payload = event.to_bytes(2, "big")
    if include_data:
        payload += _u32(data)
    return _control_message(TYPE_USER_CONTROL, payload)


def encode_user_control_stream_begin(stream_id: int) -> Message:
    return encode_user_control(UC_STREAM_BEGIN, stream_id, True)


def encode_user_control_ping_request(ts: int) -> Message:
    return encode_user_control(UC_PING_REQUEST, ts, True)


def encode_user_control_ping_response(ts: int) -> Message:
    return encode_user_control(UC_PING_RESPONSE, ts, True)


def encode_window_acknowledgement_size(size: int) -> Message:
    """Build a Window Acknowledgement Size (type 5) message."""
    return _control_message(TYPE_WINDOW_ACKNOWLEDGEMENT, _u32(size))


def encode_set_peer_bandwidth(bandwidth: int, limit_type: int) -> Message:
    """Build a Set Peer Bandwidth (type 6) message."""
    return _control_message(TYPE_SET_PEER_BANDWIDTH, _u32(bandwidth) + bytes([limit_type]))


def _expect_len(payload: bytes, size: int, what: str) -> None:
    if len(payload) != size:
        raise ControlError(f"{what}: expected {size} bytes got={len(payload)}")


def decode(type_id: int, payload: bytes) -> ControlMessage:
    """Decode a control message payload into its structured form."""
    payload = bytes(payload)
    if type_id == TYPE_SET_CHUNK_SIZE:
        _expect_len(payload, 4, "set chunk size")
        size = int.from_bytes(payload, "big")
        if size == 0:
            raise ControlError("set chunk size: size must be > 0")
        if size & 0x80000000:
            raise ControlError(f"set chunk size: high bit (bit 31) must be 0 size={size}")
        return SetChunkSize(size)
    if type_id == TYPE_ABORT_MESSAGE:
        _expect_len(payload, 4, "abort message")
        return AbortMessage(int.from_bytes(payload, "big"))
    if type_id == TYPE_ACKNOWLEDGEMENT:
        _expect_len(payload, 4, "acknowledgement")
        return Acknowledgement(int.from_bytes(payload, "big"))
    if type_id == TYPE_USER_CONTROL:
        if len(payload) < 2:
            raise ControlError(f"user control: expected at least 2 bytes got={len(payload)}")
        event = int.from_bytes(payload[:2], "big")
        if event == UC_STREAM_BEGIN:
            _expect_len(payload, 6, "user control stream begin")
            return UserControl(event, stream_id=int.from_bytes(payload[2:6], "big"))
        if event in (UC_PING_REQUEST, UC_PING_RESPONSE):
            _expect_len(payload, 6, "user control ping")
            return UserControl(event, timestamp=int.from_bytes(payload[2:6], "big"))
        return UserControl(event, raw_data=payload[2:])
    if type_id == TYPE_WINDOW_ACKNOWLEDGEMENT:
        _expect_len(payload, 4, "window ack size")
        size = int.from_bytes(payload, "big")
        if size == 0:
            raise ControlError("window ack size: must be > 0")
        return WindowAcknowledgementSize(size)
    if type_id == TYPE_SET_PEER_BANDWIDTH:
        _expect_len(payload, 5, "set peer bandwidth")
        limit_type = payload[4]
        if limit_type > 2:
            raise ControlError(f"set peer bandwidth: invalid limit type={limit_type}")
        return SetPeerBandwidth(int.from_bytes(payload[:4], "big"), limit_type)
    raise ControlError(f"unsupported control message type id={type_id}")


@dataclass
class ControlState:
    """Mutable control-related state of one connection plus a sender for replies."""

    send: Optional[Callable[[Message], None]] = None
    read_chunk_size: int = 128
    window_ack_size: int = 0
    peer_bandwidth: int = 0
    limit_type: int = 0
    last_peer_ack: int = 0
    log: Optional[logging.Logger] = field(default=None, repr=False)


def handle(state: ControlState, msg: Message) -> None:
    """Decode a control message, update ``state`` and answer pings via ``state.send``."""
    if state is None or state.send is None:
        raise ControlError("control handler: invalid context (missing state or sender)")
    if msg is None:
        raise ControlError("control handler: nil message")
    try:
        decoded = decode(msg.type_id, msg.payload)
    except ControlError as exc:
        raise ControlError(f"control handler decode: {exc}") from exc

    log = state.log if state.log is not None else logging.getLogger(__name__)

    match decoded:
        case SetChunkSize(size=size):
            old = state.read_chunk_size
            state.read_chunk_size = size
            log.debug("Set Chunk Size received old=%d new=%d", old, size)
        case Acknowledgement(sequence_number=seq):
            state.last_peer_ack = seq
            log.debug("Acknowledgement received seq=%d", seq)
        case UserControl(event_type=event):
            if event == UC_STREAM_BEGIN:
                log.info("User Control: Stream Begin stream_id=%d", decoded.stream_id)
            elif event == UC_PING_REQUEST:
                log.debug("Ping Request received ts=%d", decoded.timestamp)
                try:
                    state.send(encode_user_control_ping_response(decoded.timestamp))
                except Exception as exc:
                    raise ControlError(f"control handler: send ping response: {exc}") from exc
            elif event == UC_PING_RESPONSE:
                log.debug("Ping Response received ts=%d", decoded.timestamp)
            else:
                log.debug("User Control: unhandled event event_type=%d", event)
        case WindowAcknowledgementSize(size=size):
            old = state.window_ack_size
            state.window_ack_size = size
            log.debug("Window Ack Size received old=%d new=%d", old, size)
        case SetPeerBandwidth(bandwidth=bw, limit_type=lt):
            old_bw, old_lt = state.peer_bandwidth, state.limit_type
            state.peer_bandwidth = bw
            state.limit_type = lt
            log.debug(
                "Set Peer Bandwidth received old_bw=%d new_bw=%d old_lt=%d new_lt=%d",
                old_bw, bw, old_lt, lt,
            )
        case AbortMessage(csid=csid):
            log.debug("Abort Message received (ignored) csid=%d", csid)