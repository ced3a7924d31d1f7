# Outbound insight events (in-process handlers, Redis pub/sub, queues)
from village_insights.notifications.publisher import (
    InsightPublisher,
    InsightQueueSink,
    RedisInsightSink,
)

__all__ = [
    "InsightPublisher",
    "InsightQueueSink",
    "RedisInsightSink",
]
