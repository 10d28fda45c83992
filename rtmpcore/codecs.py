"""Lightweight parsing of RTMP audio/video tags and one-shot codec detection."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

AUDIO_CODEC_MP3 = "MP3"
AUDIO_CODEC_AAC = "AAC"
AUDIO_CODEC_SPEEX = "Speex"

AAC_PACKET_TYPE_SEQUENCE_HEADER = "sequence_header"
AAC_PACKET_TYPE_RAW = "raw"

VIDEO_CODEC_AVC = "H264"
VIDEO_CODEC_HEVC = "H265"

VIDEO_FRAME_TYPE_KEY = "keyframe"
VIDEO_FRAME_TYPE_INTER = "inter"

AVC_PACKET_TYPE_SEQUENCE_HEADER = "sequence_header"
AVC_PACKET_TYPE_NALU = "nalu"

MSG_TYPE_AUDIO = 8
MSG_TYPE_VIDEO = 9


class MediaParseError(ValueError):
    """A media tag is empty, truncated or uses an unsupported codec."""


@dataclass(frozen=True)
class AudioMessage:
    """Codec metadata of an audio tag; ``payload`` excludes the parsed header bytes."""

    codec: str
    packet_type: str = ""
    payload: bytes = b""


@dataclass(frozen=True)
class VideoMessage:
    """Codec and frame metadata of a video tag; ``payload`` excludes the parsed header bytes."""

    codec: str
    frame_type: str
    packet_type: str = ""
    payload: bytes = b""


def _packet_type(value: int, zero: str, one: str) -> str:
    return {0: zero, 1: one}.get(value, f"unknown_{value}")


def parse_audio_message(data: bytes) -> AudioMessage:
    """Parse an audio (type 8) tag, recognising MP3, AAC and Speex."""
    data = bytes(data)
    if not data:
        raise MediaParseError("audio.parse: empty payload")
    sound_format = (data[0] >> 4) & 0x0F
    if sound_format == 2:
        return AudioMessage(AUDIO_CODEC_MP3, payload=data[1:])
    if sound_format == 10:
        if len(data) < 2:
            raise MediaParseError("audio.parse: aac packet truncated (need packet type)")
        packet_type = _packet_type(data[1], AAC_PACKET_TYPE_SEQUENCE_HEADER, AAC_PACKET_TYPE_RAW)
        return AudioMessage(AUDIO_CODEC_AAC, packet_type, data[2:])
    if sound_format == 11:
        return AudioMessage(AUDIO_CODEC_SPEEX, payload=data[1:])
    raise MediaParseError(f"audio.parse: unsupported sound format id={sound_format}")


_FRAME_TYPES = {1: VIDEO_FRAME_TYPE_KEY, 2: VIDEO_FRAME_TYPE_INTER}


def parse_video_message(data: bytes) -> VideoMessage:
    """Parse a video (type 9) tag, recognising AVC (H.264) and HEVC (H.265)."""
    data = bytes(data)
    if not data:
        raise MediaParseError("video.parse: empty payload")
    frame_type_id = (data[0] >> 4) & 0x0F
    codec_id = data[0] & 0x0F
    frame_type = _FRAME_TYPES.get(frame_type_id, f"unknown_{frame_type_id}")
    if codec_id == 7:
        if len(data) < 2:
            raise MediaParseError("video.parse: avc packet truncated (need avc packet type)")
        packet_type = _packet_type(data[1], AVC_PACKET_TYPE_SEQUENCE_HEADER, AVC_PACKET_TYPE_NALU)
        return VideoMessage(VIDEO_CODEC_AVC, frame_type, packet_type, data[2:])
    if codec_id == 12:
        return VideoMessage(VIDEO_CODEC_HEVC, frame_type, payload=data[1:])
    raise MediaParseError(f"video.parse: unsupported codec id={codec_id}")


class CodecStore(Protocol):
    """Where detected codecs are kept; an empty string means not yet detected."""

    audio_codec: str
    video_codec: str

    @property
    def stream_key(self) -> str: ...


class CodecDetector:
    """Records the codec of the first parseable audio and video message of a stream."""

    def process(
        self,
        msg_type: int,
        payload: bytes,
        store: Optional[CodecStore],
        logger: Optional[logging.Logger],
    ) -> None:
        """Update ``store`` if this is the first recognisable message of its media type."""
        if store is None or logger is None:
            return
        updated = False
        try:
            if msg_type == MSG_TYPE_AUDIO and not store.audio_codec:
                store.audio_codec = parse_audio_message(payload).codec
                updated = True
            elif msg_type == MSG_TYPE_VIDEO and not store.video_codec:
                store.video_codec = parse_video_message(payload).codec
                updated = True
        except MediaParseError:
            return
        if updated:
            logger.info(
                "Codecs detected stream_key=%s videoCodec=%s audioCodec=%s",
                store.stream_key,
                store.video_codec,
                store.audio_codec,
            )