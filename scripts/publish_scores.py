#!/usr/bin/env python3
"""
publish_scores.py
-----------------

Development score simulator. Publishes random score events to the
leaderboard topic so a local Rankstream instance has something to ingest.

USAGE:
  python -m scripts.publish_scores                      # 2 events every 20s, forever
  python -m scripts.publish_scores --batch 5 --interval 1
  python -m scripts.publish_scores --count 3 --subjects 10
  python -m scripts.publish_scores --poison 1           # also send one malformed record

Each event is keyed by subject_id:
  {"subject_id": "<uuid>", "label": "User_1234", "score": 0-999}

With --subjects N the ids come from a fixed pool of N subjects, so scores
for the same subject get overwritten.
"""

from __future__ import annotations

import argparse
import asyncio
import random
import sys
import uuid
from typing import List, Optional

from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaError

from src.core.config.config import Config
from src.core.logging.logger import get_logger, setup_logging, shutdown_logging
from src.modules.leaderboard.events import ScoreEvent

logger = get_logger("scripts.publish_scores")


def _random_events(batch: int, pool: Optional[List[str]]) -> List[ScoreEvent]:
    events = []
    for _ in range(batch):
        subject_id = random.choice(pool) if pool else str(uuid.uuid4())
        events.append(
            ScoreEvent(
                subject_id=subject_id,
                label=f"User_{random.randrange(10_000)}",
                score=random.randrange(1_000),
            )
        )
    return events


async def publish(
    batch: int,
    interval: float,
    count: Optional[int],
    subjects: Optional[int],
    poison: int,
) -> None:
    producer = AIOKafkaProducer(
        bootstrap_servers=Config.KAFKA_BOOTSTRAP_SERVERS,
        client_id="game-service",
    )
    await producer.start()
    pool = [str(uuid.uuid4()) for _ in range(subjects)] if subjects else None

    try:
        for _ in range(poison):
            await producer.send_and_wait(Config.KAFKA_TOPIC, b'{"subject_id": "x"}')
            logger.info("Published poison record", extra={"topic": Config.KAFKA_TOPIC})

        sent_batches = 0
        while count is None or sent_batches < count:
            for event in _random_events(batch, pool):
                await producer.send_and_wait(
                    Config.KAFKA_TOPIC,
                    event.to_payload(),
                    key=event.subject_id.encode("utf-8"),
                )
            sent_batches += 1
            logger.info(
                "Published score batch",
                extra={"topic": Config.KAFKA_TOPIC, "batch": batch, "batches": sent_batches},
            )
            if count is None or sent_batches < count:
                await asyncio.sleep(interval)
    finally:
        await producer.stop()


def main() -> None:
    parser = argparse.ArgumentParser(description="Rankstream score simulator")
    parser.add_argument("--batch", type=int, default=2, help="events per batch")
    parser.add_argument("--interval", type=float, default=20.0, help="seconds between batches")
    parser.add_argument("--count", type=int, default=None, help="stop after N batches")
    parser.add_argument("--subjects", type=int, default=None, help="reuse a pool of N subject ids")
    parser.add_argument("--poison", type=int, default=0, help="malformed records to send first")
    args = parser.parse_args()

    setup_logging(file_output=False)
    try:
        asyncio.run(
            publish(args.batch, args.interval, args.count, args.subjects, args.poison)
        )
    except KafkaError as exc:
        logger.critical(f"Publishing failed: {exc}")
        sys.exit(1)
    except KeyboardInterrupt:
        pass
    finally:
        shutdown_logging()


if __name__ == "__main__":
    main()
