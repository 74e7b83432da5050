"""
Redis Manager - publishes opportunity alerts over Redis Pub/Sub
Nothing is persisted; subscribers see alerts only while connected
"""
import json
from typing import Any, Optional
import redis.asyncio as redis

from dexarb.core.data_models import ProfitAnalysis
import logging


logger = logging.getLogger(__name__)


class RedisManager:
    """
    Redis manager for alert broadcast
    """

    def __init__(self, redis_url: str, channel: str = "arbitrage_alerts"):
        self.redis_url = redis_url
        self.channel = channel
        self.redis_client: Optional[redis.Redis] = None
        self._connected = False

    async def connect(self):
        """Establish Redis connection"""
        try:
            self.redis_client = redis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_keepalive=True
            )

            # Test connection
            await self.redis_client.ping()
            self._connected = True

            logger.info(f"Connected to Redis, alerts on channel {self.channel}")

        except Exception as e:
            logger.error(f"Failed to connect to Redis: {str(e)}")
            raise

    async def disconnect(self):
        """Close Redis connection"""
        if self.redis_client:
            await self.redis_client.aclose()
            self._connected = False
            logger.info("Disconnected from Redis")

    async def publish(self, channel: str, message: Any) -> int:
        """
        Publish message to channel

        Returns: Number of subscribers that received the message
        """
        if not self.redis_client:
            return 0

        try:
            if isinstance(message, (dict, list)):
                message = json.dumps(message, default=str)

            return await self.redis_client.publish(channel, message)

        except Exception as e:
            logger.error(f"Error publishing to channel {channel}: {str(e)}")
            return 0

    async def publish_analysis(self, analysis: ProfitAnalysis) -> int:
        """Broadcast a scored opportunity on the alert channel"""
        return await self.publish(self.channel, analysis.model_dump_json())

    @property
    def is_connected(self) -> bool:
        return self._connected
