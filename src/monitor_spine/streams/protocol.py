"""Stream client protocol.

┌──────────────────────────────────────────────────────────────────────────────┐
│  STREAM CLIENT PROTOCOL                                                       │
│                                                                               │
│  The consumer only needs four capabilities from the event log: connect,     │
│  pull the next batch for its consumer group, acknowledge an entry, and      │
│  reconnect after a transport failure. Broker specifics (stream naming,      │
│  group creation, pending-entry recovery) stay inside the client.            │
│                                                                               │
│   ┌──────────────────────┐     pull()/ack()     ┌──────────────────────┐     │
│   │  RedisStreamClient   │ ◄──────────────────  │   StreamConsumer     │     │
│   └──────────────────────┘                      │                      │     │
│   ┌──────────────────────┐     pull()/ack()     │  decode → dispatch   │     │
│   │ InMemoryStreamClient │ ◄──────────────────  │                      │     │
│   └──────────────────────┘                      └──────────────────────┘     │
│                                                                               │
│  Delivery is at-least-once: an entry that was pulled but not acknowledged   │
│  is delivered again after reconnect.                                         │
└──────────────────────────────────────────────────────────────────────────────┘
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


@dataclass(frozen=True)
class StreamEntry:
    """One entry of the event log as delivered to this consumer."""

    stream: str
    entry_id: str
    payload: bytes | str | Mapping[str, Any] | None


@runtime_checkable
class StreamClient(Protocol):
    """Protocol for consumer-group clients of a partitioned event log.

    Implementations:
        - RedisStreamClient: Redis Streams via redis-py
        - InMemoryStreamClient: in-process log for tests and demos
    """

    name: str

    def connect(self) -> None:
        """Open the connection and join the consumer group.

        Raises:
            StreamTransportError: the broker is unreachable.
        """
        ...

    def pull(self, count: int, block_ms: int) -> list[StreamEntry]:
        """Return up to *count* entries in log order.

        Entries previously delivered to this consumer but never acknowledged
        come first. Blocks at most *block_ms* when nothing is available.
        """
        ...

    def ack(self, entry: StreamEntry) -> None:
        """Acknowledge *entry* so it is never delivered again."""
        ...

    def reconnect(self) -> None:
        """Drop the current connection and connect again."""
        ...

    def close(self) -> None:
        """Release the connection."""
        ...
