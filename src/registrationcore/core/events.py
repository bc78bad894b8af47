"""
Event publishing for completed registrations
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict

import orjson
import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class EventPublisher(ABC):
    """Fire-and-forget event sink"""

    @abstractmethod
    async def publish(self, topic: str, message: Dict[str, Any]) -> bool:
        """
        Publish a message on a topic

        Returns:
            True if the sink accepted the message
        """
        pass


class RedisEventPublisher(EventPublisher):
    """Publishes orjson-encoded messages on a Redis channel named after the topic"""

    def __init__(self, client: redis.Redis):
        self.client = client

    def serialize(self, message: Dict[str, Any]) -> bytes:
        return orjson.dumps(message)

    async def publish(self, topic: str, message: Dict[str, Any]) -> bool:
        try:
            receivers = await self.client.publish(topic, self.serialize(message))
            logger.debug(f"Published event on {topic} to {receivers} subscribers")
            return True
        except RedisError as e:
            logger.warning(f"Redis publish failed for topic {topic}: {e}")
            return False
        except Exception as e:
            logger.error(f"Event publish error for topic {topic}: {e}")
            return False
