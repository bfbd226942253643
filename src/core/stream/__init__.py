"""
Event stream infrastructure for Rankstream.
"""

from src.core.stream.consumer import KafkaStreamConsumer, StreamConsumer, StreamRecord

__all__ = [
    "KafkaStreamConsumer",
    "StreamConsumer",
    "StreamRecord",
]
