"""Tests for RedisStreamClient (mocked redis connection).

Verifies consumer-group setup, pending-first reads and error mapping
without a Redis server.
"""

from __future__ import annotations

from unittest.mock import MagicMock, call, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError
from redis.exceptions import TimeoutError as RedisTimeoutError

from monitor_spine.core.errors import StreamTransportError
from monitor_spine.records import ValueType
from monitor_spine.streams.protocol import StreamClient, StreamEntry
from monitor_spine.streams.redis_streams import RedisStreamClient, stream_names


@pytest.fixture
def conn():
    c = MagicMock()
    c.xreadgroup.return_value = []
    return c


@pytest.fixture
def client(conn):
    return RedisStreamClient(
        group="simple-monitor",
        consumer="monitor-1",
        value_types=[ValueType.MESSAGE, ValueType.JOB],
        connection=conn,
    )


def _response(stream: bytes, *entries: tuple[bytes, dict]):
    return [[stream, list(entries)]]


class TestStreamNames:
    def test_all_domains(self):
        names = stream_names("zeebe")
        assert len(names) == len(ValueType)
        assert "zeebe:PROCESS_INSTANCE" in names

    def test_strings_accepted(self):
        assert stream_names("x", ["JOB"]) == ["x:JOB"]


class TestConnect:
    def test_satisfies_protocol(self, client):
        assert isinstance(client, StreamClient)

    def test_creates_group_per_stream(self, client, conn):
        client.connect()
        conn.xgroup_create.assert_has_calls(
            [
                call("zeebe:MESSAGE", "simple-monitor", id="0", mkstream=True),
                call("zeebe:JOB", "simple-monitor", id="0", mkstream=True),
            ]
        )
        assert client.connected is True

    def test_existing_group_tolerated(self, client, conn):
        conn.xgroup_create.side_effect = ResponseError("BUSYGROUP Consumer Group name already exists")
        client.connect()
        assert client.connected is True

    def test_other_response_errors_raised(self, client, conn):
        conn.xgroup_create.side_effect = ResponseError("WRONGTYPE Operation against a key")
        with pytest.raises(ResponseError):
            client.connect()

    def test_unreachable_broker(self, client, conn):
        conn.ping.side_effect = RedisConnectionError("Connection refused")
        with pytest.raises(StreamTransportError):
            client.connect()
        assert client.connected is False

    def test_from_url(self):
        with patch("monitor_spine.streams.redis_streams.redis.Redis.from_url") as from_url:
            RedisStreamClient("redis://broker:6379/2", group="g", consumer="c").connect()
        from_url.assert_called_once()
        assert from_url.call_args.args[0] == "redis://broker:6379/2"


class TestPull:
    def test_not_connected(self, client):
        with pytest.raises(StreamTransportError, match="not connected"):
            client.pull(10, 100)

    def test_pending_first_then_new(self, client, conn):
        conn.xreadgroup.side_effect = [
            _response(b"zeebe:MESSAGE", (b"1-0", {b"record": b'{"key": 1}'})),
            [],
            _response(b"zeebe:JOB", (b"2-0", {b"record": b'{"key": 2}'})),
        ]
        client.connect()

        first = client.pull(10, 500)
        assert first == [StreamEntry("zeebe:MESSAGE", "1-0", b'{"key": 1}')]
        assert conn.xreadgroup.call_args_list[0] == call(
            "simple-monitor",
            "monitor-1",
            {"zeebe:MESSAGE": "0", "zeebe:JOB": "0"},
            count=10,
            block=None,
        )

        second = client.pull(10, 500)
        assert second == [StreamEntry("zeebe:JOB", "2-0", b'{"key": 2}')]
        assert conn.xreadgroup.call_args_list[2] == call(
            "simple-monitor",
            "monitor-1",
            {"zeebe:MESSAGE": ">", "zeebe:JOB": ">"},
            count=10,
            block=500,
        )

    def test_batch_capped_across_streams(self, client, conn):
        conn.xreadgroup.side_effect = [
            [],
            [
                [b"zeebe:MESSAGE", [(b"1-0", {b"record": b"a"}), (b"2-0", {b"record": b"b"})]],
                [b"zeebe:JOB", [(b"3-0", {b"record": b"c"}), (b"4-0", {b"record": b"d"})]],
            ],
            _response(b"zeebe:JOB", (b"3-0", {b"record": b"c"})),
        ]
        client.connect()

        entries = client.pull(2, 100)
        assert [e.entry_id for e in entries] == ["1-0", "2-0"]

        # the remainder is pending for this consumer and drained next
        client.pull(2, 100)
        assert conn.xreadgroup.call_args_list[2].args[2] == {"zeebe:MESSAGE": "0", "zeebe:JOB": "0"}

    def test_deleted_pending_entry_has_no_payload(self, client, conn):
        conn.xreadgroup.side_effect = [_response(b"zeebe:JOB", (b"9-0", None))]
        client.connect()
        assert client.pull(10, 100)[0].payload is None

    def test_single_unnamed_field(self, client, conn):
        conn.xreadgroup.side_effect = [_response(b"zeebe:JOB", (b"9-0", {b"data": b"{}"}))]
        client.connect()
        assert client.pull(10, 100)[0].payload == b"{}"

    @pytest.mark.parametrize("exc", [RedisConnectionError("reset"), RedisTimeoutError("timeout")])
    def test_transport_errors_mapped(self, client, conn, exc):
        conn.xreadgroup.side_effect = exc
        client.connect()
        with pytest.raises(StreamTransportError):
            client.pull(10, 100)

    def test_missing_group_is_transient(self, client, conn):
        conn.xreadgroup.side_effect = ResponseError("NOGROUP No such key 'zeebe:JOB'")
        client.connect()
        with pytest.raises(StreamTransportError):
            client.pull(10, 100)


class TestAckAndClose:
    def test_ack(self, client, conn):
        client.connect()
        client.ack(StreamEntry("zeebe:JOB", "3-0", b"{}"))
        conn.xack.assert_called_once_with("zeebe:JOB", "simple-monitor", "3-0")

    def test_ack_transport_error(self, client, conn):
        conn.xack.side_effect = RedisConnectionError("reset")
        client.connect()
        with pytest.raises(StreamTransportError):
            client.ack(StreamEntry("zeebe:JOB", "3-0", b"{}"))

    def test_close_keeps_injected_connection_open(self, client, conn):
        client.connect()
        client.close()
        conn.close.assert_not_called()
        assert client.connected is False

    def test_reconnect_reads_pending_again(self, client, conn):
        client.connect()
        client.pull(10, 100)  # pending empty -> switches to ">"
        client.reconnect()
        client.pull(10, 100)
        pending_read, new_read = conn.xreadgroup.call_args_list[-2:]
        assert pending_read.args[2] == {"zeebe:MESSAGE": "0", "zeebe:JOB": "0"}
        assert new_read.args[2] == {"zeebe:MESSAGE": ">", "zeebe:JOB": ">"}
