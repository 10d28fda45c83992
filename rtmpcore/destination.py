"""A single relay destination: an RTMP server that a published stream is forwarded to."""

from __future__ import annotations

import dataclasses
import enum
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol
from urllib.parse import urlsplit

from rtmpcore.control import Message

MSG_TYPE_AUDIO = 8
MSG_TYPE_VIDEO = 9

_log = logging.getLogger(__name__)


class RTMPClient(Protocol):
    """The operations a relay needs from an outgoing RTMP client connection."""

    def connect(self) -> None: ...

    def publish(self) -> None: ...

    def send_audio(self, timestamp: int, payload: bytes) -> None: ...

    def send_video(self, timestamp: int, payload: bytes) -> None: ...

    def close(self) -> None: ...


RTMPClientFactory = Callable[[str], RTMPClient]


class DestinationError(Exception):
    """A destination could not be created, connected or written to."""


class DestinationStatus(enum.Enum):
    """Connection state of a destination."""

    DISCONNECTED = 0
    CONNECTING = 1
    CONNECTED = 2
    ERROR = 3

    def __str__(self) -> str:
        return self.name.lower()


@dataclass
class DestinationMetrics:
    """Per-destination counters; times are seconds since the epoch or None."""

    messages_sent: int = 0
    messages_dropped: int = 0
    bytes_sent: int = 0
    last_sent_time: Optional[float] = None
    connect_time: Optional[float] = None
    reconnect_count: int = 0


class Destination:
    """One RTMP relay target holding a persistent publishing client."""

    def __init__(
        self,
        url: str,
        logger: Optional[logging.Logger] = None,
        client_factory: Optional[RTMPClientFactory] = None,
    ) -> None:
        try:
            scheme = urlsplit(url).scheme
        except ValueError as exc:
            raise DestinationError(f"invalid destination URL: {exc}") from exc
        if scheme != "rtmp":
            raise DestinationError(f"destination URL must use rtmp:// scheme, got {scheme}")
        self.url = url
        self._client_factory = client_factory
        self._client: Optional[RTMPClient] = None
        self._status = DestinationStatus.DISCONNECTED
        self._last_error: Optional[BaseException] = None
        self._metrics = DestinationMetrics()
        self._lock = threading.RLock()
        base = logger if logger is not None else _log
        self._log = logging.LoggerAdapter(base, {"destination_url": url})

    @property
    def status(self) -> DestinationStatus:
        with self._lock:
            return self._status

    @property
    def last_error(self) -> Optional[BaseException]:
        with self._lock:
            return self._last_error

    @property
    def client(self) -> Optional[RTMPClient]:
        with self._lock:
            return self._client

    @property
    def metrics(self) -> DestinationMetrics:
        """A copy of the current metrics."""
        with self._lock:
            return dataclasses.replace(self._metrics)

    def _fail(self, exc: BaseException, what: str) -> DestinationError:
        self._status = DestinationStatus.ERROR
        self._last_error = exc
        self._log.error("%s url=%s error=%s", what, self.url, exc)
        return DestinationError(f"{what.lower()}: {exc}")

    def connect(self) -> None:
        """Create a client, connect it and start publishing; a no-op when connected."""
        with self._lock:
            if self._status is DestinationStatus.CONNECTED:
                self._log.debug("Already connected to destination")
                return
            self._status = DestinationStatus.CONNECTING
            self._log.info("Connecting to destination url=%s", self.url)

            if self._client_factory is None:
                raise self._fail(DestinationError("no client factory"), "Create client")
            try:
                client = self._client_factory(self.url)
            except Exception as exc:
                raise self._fail(exc, "Create client") from exc
            try:
                client.connect()
            except Exception as exc:
                raise self._fail(exc, "Client connect") from exc
            try:
                client.publish()
            except Exception as exc:
                raise self._fail(exc, "Client publish") from exc

            self._client = client
            self._status = DestinationStatus.CONNECTED
            self._metrics.connect_time = time.time()
            self._last_error = None
            self._log.info("Successfully connected to destination")

    def send_message(self, msg: Message) -> None:
        """Forward an audio or video message; other message types are skipped."""
        with self._lock:
            client = self._client
            status = self._status

        if status is not DestinationStatus.CONNECTED or client is None:
            with self._lock:
                self._metrics.messages_dropped += 1
            self._log.warning(
                "Destination not connected, dropping message status=%s type_id=%d", status, msg.type_id
            )
            raise DestinationError(f"destination not connected (status: {status})")

        if msg.type_id == MSG_TYPE_AUDIO:
            send = client.send_audio
        elif msg.type_id == MSG_TYPE_VIDEO:
            send = client.send_video
        else:
            self._log.debug("Skipping non-media message type_id=%d", msg.type_id)
            return

        try:
            send(msg.timestamp, msg.payload)
        except Exception as exc:
            with self._lock:
                self._status = DestinationStatus.ERROR
                self._last_error = exc
                self._metrics.messages_dropped += 1
            self._log.error("Client send method failed type_id=%d error=%s", msg.type_id, exc)
            raise DestinationError(f"send message: {exc}") from exc

        with self._lock:
            self._metrics.messages_sent += 1
            self._metrics.bytes_sent += len(msg.payload)
            self._metrics.last_sent_time = time.time()

    def close(self) -> None:
        """Close the client if there is one; errors from the client propagate."""
        with self._lock:
            client, self._client = self._client, None
            if client is None:
                return
            self._status = DestinationStatus.DISCONNECTED
            client.close()