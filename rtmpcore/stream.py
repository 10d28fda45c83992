"""A publisher's stream: subscriber management, media fan-out and codec detection."""

from __future__ import annotations

import logging
import threading
from typing import Optional, Protocol

from rtmpcore.codecs import MSG_TYPE_AUDIO, MSG_TYPE_VIDEO, CodecDetector
from rtmpcore.control import Message

_NULL_LOGGER_NAME = "rtmpcore.null"


class Subscriber(Protocol):
    """Receives relayed media messages.

    A subscriber may also offer ``try_send_message(msg) -> bool``, a
    non-blocking enqueue that returns False when its queue is full; the
    message is then dropped for that subscriber.
    """

    def send_message(self, msg: Message) -> None: ...


class Stream:
    """Minimal stream holding codec information and a list of subscribers.

    It satisfies :class:`rtmpcore.codecs.CodecStore`. Adding subscribers and
    taking snapshots are guarded by a lock; delivery happens outside it.
    """

    def __init__(self, key: str) -> None:
        self.stream_key = key
        self.audio_codec = ""
        self.video_codec = ""
        self._lock = threading.Lock()
        self._subs: list[Subscriber] = []

    def add_subscriber(self, sub: Optional[Subscriber]) -> None:
        """Append a subscriber; None is ignored."""
        if sub is None:
            return
        with self._lock:
            self._subs.append(sub)

    def subscribers(self) -> list[Subscriber]:
        """Return a snapshot of the current subscribers."""
        with self._lock:
            return list(self._subs)

    def broadcast_message(
        self,
        detector: Optional[CodecDetector],
        msg: Optional[Message],
        logger: Optional[logging.Logger],
    ) -> None:
        """Relay ``msg`` to every subscriber, detecting codecs on the first media frames."""
        if msg is None or logger is None:
            return

        if msg.type_id in (MSG_TYPE_AUDIO, MSG_TYPE_VIDEO):
            if detector is None:
                detector = CodecDetector()
            detector.process(msg.type_id, msg.payload, self, logger)

        for sub in self.subscribers():
            if sub is None:
                continue
            try_send = getattr(sub, "try_send_message", None)
            if callable(try_send):
                if not try_send(msg):
                    logger.debug("Dropped media message (slow subscriber) stream_key=%s", self.stream_key)
                continue
            try:
                sub.send_message(msg)
            except Exception as exc:  # best effort: one failing subscriber must not stop the relay
                logger.debug("Subscriber send failed stream_key=%s error=%s", self.stream_key, exc)


def null_logger() -> logging.Logger:
    """Return a logger that discards everything."""
    logger = logging.getLogger(_NULL_LOGGER_NAME)
    if not any(isinstance(h, logging.NullHandler) for h in logger.handlers):
        logger.addHandler(logging.NullHandler())
    logger.propagate = False
    return logger