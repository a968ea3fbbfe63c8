"""
Datastore access: reachability probe and hybrid cluster store
"""

from typing import AsyncIterator, Optional
from pydantic import ValidationError
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from gateway_exporter.models.database import DataPlaneDB
from gateway_exporter.models.schemas import DataPlaneRecord
from gateway_exporter.services.providers import ClusterStore, DatastoreProbe
from gateway_exporter.utils.logging import get_logger

logger = get_logger(__name__)


class SqlDatastore(DatastoreProbe, ClusterStore):
    """
    Async SQLAlchemy access to the gateway datastore
    Used by every role for the reachability probe and by the control plane
    to enumerate data planes
    """

    def __init__(self, database_url: str, engine: Optional[AsyncEngine] = None):
        self.database_url = database_url
        self.engine = engine or create_async_engine(
            database_url,
            pool_pre_ping=True,
            pool_size=2,
            max_overflow=2,
        )
        logger.info("datastore_initialized", url=database_url.split("@")[-1])

    async def connect(self) -> None:
        """Open a pooled connection and run a trivial statement"""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def each(self) -> AsyncIterator[DataPlaneRecord]:
        """
        Stream registered data planes

        Rows that cannot be converted are logged and skipped.
        """
        async with self.engine.connect() as conn:
            result = await conn.stream(select(DataPlaneDB))
            async for row in result:
                try:
                    record = DataPlaneRecord(
                        id=row.id,
                        hostname=row.hostname,
                        ip=row.ip,
                        last_seen=row.last_seen.timestamp(),
                        config_hash=row.config_hash,
                        version=row.version,
                        sync_status=row.sync_status,
                    )
                except (ValidationError, AttributeError) as e:
                    logger.error("data_plane_row_invalid", node_id=row.id, error=str(e))
                    continue
                yield record

    async def close(self) -> None:
        """Close datastore connections"""
        await self.engine.dispose()
        logger.info("datastore_connection_closed")
