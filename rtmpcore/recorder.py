"""Minimal FLV writer that persists a stream's audio and video messages."""

from __future__ import annotations

import logging
import threading
from typing import Optional

from rtmpcore.control import Message

FLV_HEADER = b"FLV\x01\x05\x00\x00\x00\x09\x00\x00\x00\x00"
_TAG_HEADER_SIZE = 11
_MAX_DATA_SIZE = 0xFFFFFF
_MEDIA_TYPES = (8, 9)

_log = logging.getLogger(__name__)


class RecorderError(Exception):
    """The recording file could not be created or written."""


class Recorder:
    """Writes audio (type 8) and video (type 9) messages into one FLV file.

    Any write error disables the recorder and closes its writer; later
    messages are ignored so live streaming is unaffected.
    """

    def __init__(self, path: str, logger: Optional[logging.Logger] = None) -> None:
        try:
            writer = open(path, "wb", buffering=0)
        except OSError as exc:
            raise RecorderError(f"recorder.create: {exc}") from exc
        self._setup(writer, logger)
        with self._lock:
            self._write_header_locked()

    @classmethod
    def from_writer(cls, writer, logger: Optional[logging.Logger] = None) -> "Recorder":
        """Build a recorder over any object with ``write`` and ``close``.

        A failing header write leaves the recorder disabled instead of raising.
        """
        rec = cls.__new__(cls)
        rec._setup(writer, logger)
        with rec._lock:
            try:
                rec._write_header_locked()
            except RecorderError:
                pass
        return rec

    def _setup(self, writer, logger: Optional[logging.Logger]) -> None:
        self._lock = threading.Lock()
        self._writer = writer
        self._logger = logger if logger is not None else _log
        self._wrote_header = False
        self.bytes_written = 0

    @property
    def disabled(self) -> bool:
        """True once a write error (or close) has shut the recorder down."""
        with self._lock:
            return self._writer is None

    def _write(self, data: bytes) -> None:
        view = memoryview(data)
        while view:
            n = self._writer.write(view)
            if n is None:
                n = len(view)
            if n <= 0:
                raise OSError("short write")
            view = view[n:]

    def _write_header_locked(self) -> None:
        if self._writer is None or self._wrote_header:
            return
        try:
            self._write(FLV_HEADER)
        except OSError as exc:
            self._logger.error("recorder write header failed: %s", exc)
            self._close_locked()
            raise RecorderError(f"recorder.header: {exc}") from exc
        self._wrote_header = True
        self.bytes_written += len(FLV_HEADER)

    def write_message(self, msg: Optional[Message]) -> None:
        """Append an audio or video message as an FLV tag; other types are ignored."""
        if msg is None or msg.type_id not in _MEDIA_TYPES:
            return
        with self._lock:
            if self._writer is None:
                return
            try:
                self._write_header_locked()
            except RecorderError:
                return
            try:
                self._write_tag_locked(msg.type_id, msg.timestamp, msg.payload)
            except (OSError, RecorderError) as exc:
                self._logger.error("recorder tag write failed: %s", exc)
                self._close_locked()

    def _write_tag_locked(self, tag_type: int, timestamp: int, payload: bytes) -> None:
        data_size = len(payload)
        if data_size > _MAX_DATA_SIZE:
            raise RecorderError(f"recorder.tag: payload too large: {data_size}")
        timestamp &= 0xFFFFFFFF
        header = (
            bytes([tag_type])
            + data_size.to_bytes(3, "big")
            + (timestamp & 0xFFFFFF).to_bytes(3, "big")
            + bytes([timestamp >> 24])
            + bytes(3)
        )
        self._write(header)
        if data_size:
            self._write(payload)
        self._write((_TAG_HEADER_SIZE + data_size).to_bytes(4, "big"))
        self.bytes_written += _TAG_HEADER_SIZE + data_size + 4

    def close(self) -> None:
        """Close the underlying writer; safe to call more than once."""
        with self._lock:
            self._close_locked()

    def _close_locked(self) -> None:
        if self._writer is None:
            return
        writer, self._writer = self._writer, None
        writer.close()

    def __enter__(self) -> "Recorder":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()