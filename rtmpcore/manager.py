"""Fan-out of a published stream's media to several relay destinations."""

from __future__ import annotations

import logging
import threading
from typing import Iterable, Optional

from rtmpcore.control import Message
from rtmpcore.destination import (
    MSG_TYPE_AUDIO,
    MSG_TYPE_VIDEO,
    Destination,
    DestinationError,
    DestinationMetrics,
    DestinationStatus,
    RTMPClientFactory,
)

_log = logging.getLogger(__name__)


class DestinationManager:
    """Keeps a set of destinations keyed by URL and relays media to all of them."""

    def __init__(
        self,
        destination_urls: Iterable[str] = (),
        logger: Optional[logging.Logger] = None,
        client_factory: Optional[RTMPClientFactory] = None,
    ) -> None:
        self._destinations: dict[str, Destination] = {}
        self._lock = threading.RLock()
        self._base_logger = logger if logger is not None else _log
        self._log = logging.LoggerAdapter(self._base_logger, {"component": "destination_manager"})
        self._client_factory = client_factory
        for url in destination_urls:
            try:
                self.add_destination(url)
            except DestinationError as exc:
                self._log.warning("Failed to add destination url=%s error=%s", url, exc)

    def add_destination(self, url: str) -> None:
        """Register and connect a destination; a failed connect still registers it."""
        with self._lock:
            if url in self._destinations:
                raise DestinationError(f"destination already exists: {url}")
            try:
                dest = Destination(url, self._base_logger, self._client_factory)
            except DestinationError as exc:
                raise DestinationError(f"create destination: {exc}") from exc
            try:
                dest.connect()
            except DestinationError as exc:
                self._log.warning("Failed to connect to destination url=%s error=%s", url, exc)
            self._destinations[url] = dest
            self._log.info("Added destination url=%s total_destinations=%d", url, len(self._destinations))

    def relay_message(self, msg: Optional[Message]) -> None:
        """Send an audio or video message to every destination in parallel and wait."""
        if msg is None or msg.type_id not in (MSG_TYPE_AUDIO, MSG_TYPE_VIDEO):
            return
        with self._lock:
            destinations = list(self._destinations.values())

        def send(dest: Destination) -> None:
            try:
                dest.send_message(msg)
            except DestinationError as exc:
                self._log.error(
                    "Failed to relay message to destination url=%s type_id=%d error=%s",
                    dest.url, msg.type_id, exc,
                )

        threads = [threading.Thread(target=send, args=(dest,), daemon=True) for dest in destinations]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

    def statuses(self) -> dict[str, DestinationStatus]:
        with self._lock:
            return {url: dest.status for url, dest in self._destinations.items()}

    def metrics(self) -> dict[str, DestinationMetrics]:
        with self._lock:
            return {url: dest.metrics for url, dest in self._destinations.items()}

    def close(self) -> None:
        """Close every destination and forget them all; re-raises the last close error."""
        with self._lock:
            last_error: Optional[BaseException] = None
            for url, dest in self._destinations.items():
                try:
                    dest.close()
                except Exception as exc:
                    self._log.error("Error closing destination url=%s error=%s", url, exc)
                    last_error = exc
            self._destinations = {}
        if last_error is not None:
            raise last_error

    def __len__(self) -> int:
        with self._lock:
            return len(self._destinations)