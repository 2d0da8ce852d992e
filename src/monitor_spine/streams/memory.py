"""In-process event log with consumer-group semantics.

Mirrors the delivery contract of :class:`RedisStreamClient` closely enough
for tests and local demos: entries are delivered in publish order, stay
pending until acknowledged, and pending entries are delivered again after
:meth:`InMemoryStreamClient.reconnect`.

Example:
    >>> client = InMemoryStreamClient()
    >>> client.publish("zeebe:MESSAGE", b'{"key": 1, ...}')
    >>> client.connect()
    >>> entries = client.pull(count=10, block_ms=0)
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from typing import Any

from monitor_spine.core.errors import StreamTransportError
from monitor_spine.streams.protocol import StreamEntry


class InMemoryStreamClient:
    """Single consumer-group view of an in-memory, multi-stream log."""

    name = "memory"

    def __init__(self) -> None:
        self._log: list[StreamEntry] = []
        self._cursor = 0
        self._pending: dict[str, StreamEntry] = {}
        self._acked: list[StreamEntry] = []
        self._replay_pending = False
        self._connected = False
        self._cond = threading.Condition()
        self.available = True
        self.connects = 0

    # ------------------------------------------------------------------ #
    # Producer side
    # ------------------------------------------------------------------ #

    def publish(self, stream: str, payload: bytes | str | Mapping[str, Any] | None) -> StreamEntry:
        """Append *payload* to *stream*; returns the stored entry."""
        with self._cond:
            entry = StreamEntry(stream=stream, entry_id=f"{len(self._log) + 1}-0", payload=payload)
            self._log.append(entry)
            self._cond.notify_all()
        return entry

    # ------------------------------------------------------------------ #
    # StreamClient
    # ------------------------------------------------------------------ #

    def connect(self) -> None:
        with self._cond:
            if not self.available:
                raise StreamTransportError("in-memory broker unavailable").with_context(client=self.name)
            self._connected = True
            self._replay_pending = bool(self._pending)
            self.connects += 1

    def pull(self, count: int, block_ms: int) -> list[StreamEntry]:
        with self._cond:
            self._check_connected()

            if self._replay_pending:
                self._replay_pending = False
                replay = list(self._pending.values())[:count]
                if replay:
                    self._replay_pending = len(self._pending) > len(replay)
                    return replay

            if self._cursor >= len(self._log) and block_ms > 0:
                self._cond.wait(timeout=block_ms / 1000.0)
                self._check_connected()

            batch = self._log[self._cursor : self._cursor + count]
            self._cursor += len(batch)
            for entry in batch:
                self._pending[entry.entry_id] = entry
            return batch

    def ack(self, entry: StreamEntry) -> None:
        with self._cond:
            self._check_connected()
            if self._pending.pop(entry.entry_id, None) is not None:
                self._acked.append(entry)

    def reconnect(self) -> None:
        self.close()
        self.connect()

    def close(self) -> None:
        with self._cond:
            self._connected = False
            self._cond.notify_all()

    # ------------------------------------------------------------------ #
    # Test helpers
    # ------------------------------------------------------------------ #

    def disconnect(self) -> None:
        """Simulate a dropped connection; the next call raises until reconnect."""
        self.close()

    @property
    def pending(self) -> list[StreamEntry]:
        with self._cond:
            return list(self._pending.values())

    @property
    def acked(self) -> list[StreamEntry]:
        with self._cond:
            return list(self._acked)

    @property
    def backlog(self) -> int:
        """Entries never delivered to this consumer yet."""
        with self._cond:
            return len(self._log) - self._cursor

    def _check_connected(self) -> None:
        if not self._connected:
            raise StreamTransportError("not connected").with_context(client=self.name)


__all__ = ["InMemoryStreamClient"]
