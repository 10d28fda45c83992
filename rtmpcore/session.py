"""Per-connection RTMP session metadata established after the connect command."""

from __future__ import annotations

import enum
from dataclasses import dataclass


class SessionState(enum.IntEnum):
    """Lifecycle: Uninitialized -> Connected -> StreamCreated -> Publishing/Playing."""

    UNINITIALIZED = 0
    CONNECTED = 1
    STREAM_CREATED = 2
    PUBLISHING = 3
    PLAYING = 4


@dataclass
class Session:
    """Session fields derived from connect, createStream and publish/play commands.

    Mutated only by the command handling code of one connection.
    """

    app: str = ""
    tc_url: str = ""
    flash_ver: str = ""
    object_encoding: int = 0
    transaction_id: int = 1
    stream_id: int = 0
    stream_key: str = ""
    state: SessionState = SessionState.UNINITIALIZED

    def set_connect_info(self, app: str, tc_url: str, flash_ver: str, object_encoding: int) -> None:
        """Store the connect command fields and move to Connected if still uninitialized."""
        self.app = app
        self.tc_url = tc_url
        self.flash_ver = flash_ver
        self.object_encoding = object_encoding
        if self.state is SessionState.UNINITIALIZED:
            self.state = SessionState.CONNECTED

    def next_transaction_id(self) -> int:
        """Increment and return the transaction id; the first call returns 2."""
        self.transaction_id += 1
        return self.transaction_id

    def allocate_stream_id(self) -> int:
        """Allocate the next message stream id, starting at 1."""
        self.stream_id = 1 if self.stream_id == 0 else self.stream_id + 1
        if self.state is SessionState.CONNECTED:
            self.state = SessionState.STREAM_CREATED
        return self.stream_id

    def set_stream_key(self, app: str, stream_name: str) -> str:
        """Compose and store ``app/stream_name``; an empty ``app`` keeps the current one."""
        if app:
            self.app = app
        self.stream_key = f"{self.app}/{stream_name}"
        if self.state is SessionState.STREAM_CREATED:
            self.state = SessionState.PUBLISHING
        return self.stream_key