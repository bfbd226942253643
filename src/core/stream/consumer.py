"""
Stream Consumer - Kafka adapter for the score event log

Purpose
-------
Give the ingestion pipeline an ordered, acknowledgeable view of the score
topic: fetch a batch of records, then commit each one after it has been
applied.

Responsibilities
----------------
- Join the consumer group and receive partition assignments
- Fetch records with a bounded wait so shutdown latency stays bounded
- Commit one record's offset (offset + 1 for its partition) on request
- Wrap client failures in StreamError

Non-Responsibilities
--------------------
- Payload decoding (handled by the leaderboard events module)
- Retry or backoff policy (handled by the ingestion pipeline)

Architecture Notes
------------------
- Auto-commit is disabled; offsets advance only through commit()
- Within a partition, fetch() preserves log order; partitions are
  concatenated in assignment order
- One consumer per ingestion worker; Kafka's assignment keeps two workers
  off the same partition
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Protocol, runtime_checkable

from aiokafka import AIOKafkaConsumer
from aiokafka.errors import KafkaError
from aiokafka.structs import TopicPartition

from src.core.config.config import Config
from src.core.exceptions import StreamError
from src.core.logging.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class StreamRecord:
    """One message as delivered by the stream, before decoding."""

    topic: str
    partition: int
    offset: int
    value: Optional[bytes]
    key: Optional[bytes] = None
    timestamp_ms: Optional[int] = None


@runtime_checkable
class StreamConsumer(Protocol):
    async def fetch(self, timeout_ms: int) -> List[StreamRecord]: ...

    async def commit(self, record: StreamRecord) -> None: ...


class KafkaStreamConsumer:
    """
    aiokafka-backed StreamConsumer.

    Usage
    -----
    >>> consumer = KafkaStreamConsumer()
    >>> await consumer.start()
    >>> for record in await consumer.fetch(timeout_ms=1000):
    ...     await consumer.commit(record)
    >>> await consumer.stop()
    """

    def __init__(
        self,
        topic: Optional[str] = None,
        bootstrap_servers: Optional[str] = None,
        group_id: Optional[str] = None,
        auto_offset_reset: Optional[str] = None,
        max_poll_records: Optional[int] = None,
        client_id: Optional[str] = None,
    ) -> None:
        self.topic = topic or Config.KAFKA_TOPIC
        self._bootstrap_servers = bootstrap_servers or Config.KAFKA_BOOTSTRAP_SERVERS
        self._group_id = group_id or Config.KAFKA_GROUP_ID
        self._auto_offset_reset = auto_offset_reset or Config.KAFKA_AUTO_OFFSET_RESET
        self._max_poll_records = max_poll_records or Config.KAFKA_MAX_POLL_RECORDS
        self._client_id = client_id or Config.SERVICE_NAME
        self._consumer: Optional[AIOKafkaConsumer] = None

    # ═══════════════════════════════════════════════════════════════════════
    # LIFECYCLE
    # ═══════════════════════════════════════════════════════════════════════

    async def start(self) -> None:
        """
        Connect to the brokers and join the consumer group.

        Raises
        ------
        StreamError
            If the brokers cannot be reached.
        """
        if self._consumer is not None:
            return

        consumer = AIOKafkaConsumer(
            self.topic,
            bootstrap_servers=self._bootstrap_servers,
            group_id=self._group_id,
            client_id=self._client_id,
            enable_auto_commit=False,
            auto_offset_reset=self._auto_offset_reset,
            max_poll_records=self._max_poll_records,
        )

        try:
            await consumer.start()
        except KafkaError as exc:
            await consumer.stop()
            raise StreamError("start", exc) from exc

        self._consumer = consumer
        logger.info(
            "Kafka consumer started",
            extra={
                "topic": self.topic,
                "group_id": self._group_id,
                "client_id": self._client_id,
                "auto_offset_reset": self._auto_offset_reset,
            },
        )

    async def stop(self) -> None:
        """Leave the group and close connections. Safe to call twice."""
        consumer = self._consumer
        if consumer is None:
            return

        self._consumer = None
        try:
            await consumer.stop()
            logger.info("Kafka consumer stopped", extra={"topic": self.topic})
        except KafkaError as exc:
            logger.error(
                "Error stopping Kafka consumer",
                extra={
                    "topic": self.topic,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )

    def _require_consumer(self) -> AIOKafkaConsumer:
        if self._consumer is None:
            raise RuntimeError("KafkaStreamConsumer not started. Call start() first.")
        return self._consumer

    # ═══════════════════════════════════════════════════════════════════════
    # FETCH / COMMIT
    # ═══════════════════════════════════════════════════════════════════════

    async def fetch(self, timeout_ms: int) -> List[StreamRecord]:
        """
        Return the next batch of records, waiting at most ``timeout_ms``.

        An empty list means nothing arrived in time.

        Raises
        ------
        StreamError
            On broker or protocol failure.
        """
        consumer = self._require_consumer()

        try:
            batches = await consumer.getmany(
                timeout_ms=timeout_ms,
                max_records=self._max_poll_records,
            )
        except KafkaError as exc:
            raise StreamError("fetch", exc) from exc

        records: List[StreamRecord] = []
        for messages in batches.values():
            records.extend(self._to_record(message) for message in messages)
        return records

    async def commit(self, record: StreamRecord) -> None:
        """
        Mark ``record`` consumed: the group's position for its partition
        becomes ``record.offset + 1``.

        Raises
        ------
        StreamError
            If the commit is rejected (e.g. after a rebalance).
        """
        consumer = self._require_consumer()
        tp = TopicPartition(record.topic, record.partition)

        try:
            await consumer.commit({tp: record.offset + 1})
        except KafkaError as exc:
            raise StreamError("commit", exc) from exc

    @staticmethod
    def _to_record(message: Any) -> StreamRecord:
        return StreamRecord(
            topic=message.topic,
            partition=message.partition,
            offset=message.offset,
            value=message.value,
            key=message.key,
            timestamp_ms=message.timestamp,
        )
