"""RTMP building blocks: handshake, control messages, sessions, codec detection, FLV recording and relay."""

__version__ = "0.1.0"