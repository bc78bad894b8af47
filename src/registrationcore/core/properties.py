"""
Runtime property store with change notifications

Properties that operators may change while the service runs (identifier
source, matcher bindings) live here rather than in the environment config.
Listeners are told when a property they support changes or is deleted.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional
from uuid import uuid4

import orjson
import redis.asyncio as redis
from redis.exceptions import RedisError

from .config import RedisConfig, get_redis_config

logger = logging.getLogger(__name__)


class PropertyListener(ABC):
    """Receives property change notifications"""

    @abstractmethod
    def supports_property_name(self, name: str) -> bool:
        pass

    @abstractmethod
    def property_changed(self, name: str) -> None:
        pass

    @abstractmethod
    def property_deleted(self, name: str) -> None:
        pass


class PropertyStore(ABC):
    """String-keyed property store that notifies its listeners"""

    def __init__(self):
        self._listeners: List[PropertyListener] = []

    @abstractmethod
    async def get_property(self, name: str, default: Optional[str] = None) -> Optional[str]:
        pass

    @abstractmethod
    async def set_property(self, name: str, value: str) -> None:
        pass

    @abstractmethod
    async def delete_property(self, name: str) -> None:
        pass

    def add_listener(self, listener: PropertyListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: PropertyListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def notify_changed(self, name: str) -> None:
        for listener in list(self._listeners):
            if listener.supports_property_name(name):
                listener.property_changed(name)

    def notify_deleted(self, name: str) -> None:
        for listener in list(self._listeners):
            if listener.supports_property_name(name):
                listener.property_deleted(name)


class MemoryPropertyStore(PropertyStore):
    """In-process property store"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        super().__init__()
        self._properties: Dict[str, str] = dict(initial or {})

    async def get_property(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self._properties.get(name, default)

    async def set_property(self, name: str, value: str) -> None:
        self._properties[name] = value
        self.notify_changed(name)

    async def delete_property(self, name: str) -> None:
        if self._properties.pop(name, None) is not None:
            self.notify_deleted(name)


class RedisPropertyStore(PropertyStore):
    """
    Property store backed by a Redis hash.

    Writes notify local listeners directly and publish a change message so
    that every other process sharing the hash runs its own
    listeners via listen().
    """

    def __init__(self, client: redis.Redis, config: Optional[RedisConfig] = None):
        super().__init__()
        self.client = client
        self.config = config or get_redis_config()
        # Tags published messages so listen() can skip this store's own changes
        self.origin = uuid4().hex

    async def get_property(self, name: str, default: Optional[str] = None) -> Optional[str]:
        try:
            raw = await self.client.hget(self.config.properties_key, name)
        except RedisError as e:
            logger.error(f"Property lookup failed for {name}: {e}")
            raise

        if raw is None:
            return default
        return raw.decode() if isinstance(raw, bytes) else raw

    async def set_property(self, name: str, value: str) -> None:
        await self.client.hset(self.config.properties_key, name, value)
        await self._publish(name, "changed")
        self.notify_changed(name)

    async def delete_property(self, name: str) -> None:
        removed = await self.client.hdel(self.config.properties_key, name)
        if removed:
            await self._publish(name, "deleted")
            self.notify_deleted(name)

    async def _publish(self, name: str, action: str) -> None:
        message = orjson.dumps({"name": name, "action": action, "origin": self.origin})
        try:
            await self.client.publish(self.config.properties_channel, message)
        except RedisError as e:
            # Local listeners are still notified; remote processes will miss this change
            logger.warning(f"Property change broadcast failed for {name}: {e}")

    def dispatch(self, raw_message: bytes) -> None:
        """Run listeners for a change message received from the channel"""
        try:
            message = orjson.loads(raw_message)
        except orjson.JSONDecodeError as e:
            logger.warning(f"Ignoring malformed property change message: {e}")
            return

        name = message.get("name")
        if not name or message.get("origin") == self.origin:
            return
        if message.get("action") == "deleted":
            self.notify_deleted(name)
        else:
            self.notify_changed(name)

    async def listen(self) -> None:
        """Consume change messages published by other processes until cancelled"""
        pubsub = self.client.pubsub()
        await pubsub.subscribe(self.config.properties_channel)
        logger.info(f"Listening for property changes on {self.config.properties_channel}")

        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                self.dispatch(message["data"])
        except asyncio.CancelledError:
            logger.info("Property change listener stopped")
            raise
        finally:
            await pubsub.unsubscribe(self.config.properties_channel)
            await pubsub.close()
