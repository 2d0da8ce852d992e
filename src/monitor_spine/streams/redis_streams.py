"""
Redis Streams consumer-group client.

The exporter appends every record as JSON to a stream named
``<prefix>:<VALUE_TYPE>`` (for example ``zeebe:PROCESS_INSTANCE``). This
client joins one consumer group on all configured streams and reads them
with ``XREADGROUP``:

1. On (re)connect the group is created if missing (``MKSTREAM``; an
   existing group answers ``BUSYGROUP``, which is fine).
2. The first reads after a (re)connect use id ``0`` and return entries
   this consumer received earlier but never acknowledged.
3. Once the pending list is drained, reads use ``>`` for new entries and
   block up to ``block_ms``.

Transport failures (connection refused/reset, timeouts, a vanished
group) surface as :class:`~monitor_spine.core.errors.StreamTransportError`
so the consumer can back off and reconnect.

Requires: ``pip install redis``
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from monitor_spine.core.errors import StreamTransportError
from monitor_spine.core.logging import get_logger
from monitor_spine.records import ValueType
from monitor_spine.streams.protocol import StreamEntry

logger = get_logger(__name__)

__all__ = ["RedisStreamClient", "stream_names"]

RECORD_FIELD = b"record"


def stream_names(prefix: str, value_types: Iterable[ValueType | str] = ValueType) -> list[str]:
    """Stream keys for the given record domains."""
    return [f"{prefix}:{getattr(v, 'value', v)}" for v in value_types]


def _text(value: bytes | str) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


class RedisStreamClient:
    """Consumer-group reader over the exporter's Redis streams.

    Example::

        client = RedisStreamClient(
            "redis://localhost:6379",
            group="simple-monitor",
            consumer="monitor-1",
        )
        client.connect()
        for entry in client.pull(count=500, block_ms=2000):
            ...
            client.ack(entry)
    """

    name = "redis"

    def __init__(
        self,
        redis_url: str = "redis://localhost:6379",
        *,
        group: str,
        consumer: str,
        stream_prefix: str = "zeebe",
        value_types: Iterable[ValueType | str] = ValueType,
        connection: Any | None = None,
    ) -> None:
        """
        Args:
            redis_url: Connection URL passed to ``redis.Redis.from_url``.
            group: Consumer group shared by all monitor instances.
            consumer: Name of this consumer within the group.
            stream_prefix: Prefix of the exporter's stream keys.
            value_types: Record domains to subscribe to.
            connection: Pre-built client (tests); ``redis_url`` is then unused.
        """
        self._redis_url = redis_url
        self._group = group
        self._consumer = consumer
        self._streams = stream_names(stream_prefix, value_types)
        self._injected = connection
        self._redis: Any = None
        self._read_pending = True

    @property
    def streams(self) -> list[str]:
        return list(self._streams)

    @property
    def connected(self) -> bool:
        return self._redis is not None

    # ------------------------------------------------------------------ #
    # StreamClient
    # ------------------------------------------------------------------ #

    def connect(self) -> None:
        conn = self._injected or redis.Redis.from_url(self._redis_url, health_check_interval=30)
        try:
            conn.ping()
            for stream in self._streams:
                self._ensure_group(conn, stream)
        except (RedisConnectionError, RedisTimeoutError) as exc:
            raise StreamTransportError(f"cannot reach redis: {exc}", cause=exc).with_context(
                client=self.name, group=self._group
            ) from exc

        self._redis = conn
        self._read_pending = True
        logger.info(
            "streams.connected",
            client=self.name,
            group=self._group,
            consumer=self._consumer,
            streams=len(self._streams),
        )

    def pull(self, count: int, block_ms: int) -> list[StreamEntry]:
        conn = self._require()

        if self._read_pending:
            entries = self._read(conn, "0", count, block=None)
            if entries:
                return entries
            self._read_pending = False

        return self._read(conn, ">", count, block=block_ms)

    def ack(self, entry: StreamEntry) -> None:
        conn = self._require()
        try:
            conn.xack(entry.stream, self._group, entry.entry_id)
        except (RedisConnectionError, RedisTimeoutError) as exc:
            raise StreamTransportError(f"xack failed: {exc}", cause=exc).with_context(
                stream=entry.stream, entry_id=entry.entry_id
            ) from exc

    def reconnect(self) -> None:
        self.close()
        self.connect()

    def close(self) -> None:
        if self._redis is None:
            return
        conn, self._redis = self._redis, None
        if conn is not self._injected:
            try:
                conn.close()
            except (RedisConnectionError, RedisTimeoutError):
                logger.debug("streams.close_failed", client=self.name)

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _require(self) -> Any:
        if self._redis is None:
            raise StreamTransportError("not connected").with_context(client=self.name)
        return self._redis

    def _ensure_group(self, conn: Any, stream: str) -> None:
        try:
            conn.xgroup_create(stream, self._group, id="0", mkstream=True)
        except ResponseError as exc:
            if "BUSYGROUP" not in str(exc):
                raise

    def _read(self, conn: Any, start: str, count: int, block: int | None) -> list[StreamEntry]:
        try:
            response = conn.xreadgroup(
                self._group,
                self._consumer,
                {stream: start for stream in self._streams},
                count=count,
                block=block if block else None,
            )
        except (RedisConnectionError, RedisTimeoutError) as exc:
            raise StreamTransportError(f"xreadgroup failed: {exc}", cause=exc).with_context(
                client=self.name, group=self._group
            ) from exc
        except ResponseError as exc:
            # NOGROUP: the stream was trimmed away together with its group
            if "NOGROUP" in str(exc):
                raise StreamTransportError(f"consumer group missing: {exc}", cause=exc).with_context(
                    client=self.name, group=self._group
                ) from exc
            raise

        entries = self._parse(response or [])

        # COUNT applies per stream; whatever exceeds the batch stays pending
        # and is drained first by the next pull.
        if len(entries) > count:
            entries = entries[:count]
            self._read_pending = True
        return entries

    def _parse(self, response: list[Any]) -> list[StreamEntry]:
        entries: list[StreamEntry] = []
        for stream, messages in response:
            stream_name = _text(stream)
            for entry_id, fields in messages:
                entries.append(
                    StreamEntry(
                        stream=stream_name,
                        entry_id=_text(entry_id),
                        payload=self._payload(fields),
                    )
                )
        return entries

    @staticmethod
    def _payload(fields: dict[Any, Any] | None) -> bytes | str | None:
        # pending entries deleted from the stream come back without fields
        if not fields:
            return None
        if RECORD_FIELD in fields:
            return fields[RECORD_FIELD]
        if RECORD_FIELD.decode() in fields:
            return fields[RECORD_FIELD.decode()]
        return next(iter(fields.values()))
