"""
HTTP channel to the stream subsystem's metrics output
"""

from typing import Optional
import httpx
from gateway_exporter.services.providers import StreamChannel
from gateway_exporter.utils.logging import get_logger

logger = get_logger(__name__)


class HttpStreamChannel(StreamChannel):
    """
    Fetches the serialized registry of the stream workers

    Stream workers run their own exporter instance (subsystem=stream) and
    expose it on a local listener; its output is appended to the http
    scrape response.
    """

    def __init__(self, url: str, timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def request(self) -> str:
        response = await self.client.get(self.url)
        response.raise_for_status()
        return response.text

    async def close(self) -> None:
        await self.client.aclose()
        logger.info("stream_channel_closed")
