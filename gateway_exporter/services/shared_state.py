"""
Node state shared between worker processes, kept in Redis
"""

from typing import Optional
import redis.asyncio as redis
from gateway_exporter.services.providers import SharedState
from gateway_exporter.utils.logging import get_logger

logger = get_logger(__name__)

CONTROL_PLANE_CONNECTED_KEY = "node:{node_id}:control_plane_connected"


class RedisSharedState(SharedState):
    """
    Redis-backed flags written by the clustering client and read at scrape
    """

    def __init__(self, redis_url: str, node_id: str, client: Optional[redis.Redis] = None):
        self.node_id = node_id
        self.redis_client = client or redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        self._key = CONTROL_PLANE_CONNECTED_KEY.format(node_id=node_id)
        logger.info("shared_state_initialized", url=redis_url.split("@")[-1])

    async def set_control_plane_connected(self, connected: bool, ttl_seconds: int = 60) -> None:
        """Record the clustering connection state for this node"""
        await self.redis_client.setex(self._key, ttl_seconds, "1" if connected else "0")

    async def is_control_plane_connected(self) -> bool:
        value = await self.redis_client.get(self._key)
        return value == "1"

    async def close(self) -> None:
        """Close Redis connection"""
        await self.redis_client.aclose()
        logger.info("redis_connection_closed")
