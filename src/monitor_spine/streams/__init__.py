"""Event log consumption.

Modules
-------
protocol       StreamEntry and the StreamClient protocol
redis_streams  RedisStreamClient -- Redis Streams consumer group
memory         InMemoryStreamClient -- in-process log for tests and demos
consumer       StreamConsumer -- pull / decode / dispatch / ack loop
"""

from monitor_spine.streams.consumer import ConsumerStats, StreamConsumer
from monitor_spine.streams.memory import InMemoryStreamClient
from monitor_spine.streams.protocol import StreamClient, StreamEntry
from monitor_spine.streams.redis_streams import RedisStreamClient, stream_names

__all__ = [
    "StreamEntry",
    "StreamClient",
    "RedisStreamClient",
    "InMemoryStreamClient",
    "StreamConsumer",
    "ConsumerStats",
    "stream_names",
]
