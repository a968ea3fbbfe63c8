"""
Abstract interfaces for the collaborators the exporter reads state from
Each host integration implements these interfaces
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Dict
from gateway_exporter.models.schemas import (
    ConnectionStats,
    DataPlaneRecord,
    MemoryStats,
    TargetHealth,
    TimerCounts,
)


class NodeStatsProvider(ABC):
    """Connection, timer and memory accounting of the host process"""

    @abstractmethod
    def get_statistics(self) -> ConnectionStats:
        pass

    @abstractmethod
    def get_timer_counts(self) -> TimerCounts:
        pass

    @abstractmethod
    def get_memory_stats(self) -> MemoryStats:
        pass


class DatastoreProbe(ABC):
    """Lightweight datastore connectivity check"""

    @abstractmethod
    async def connect(self) -> None:
        """Raise if the datastore cannot be reached"""
        pass


class ClusterStore(ABC):
    """Registry of data planes known to a control plane"""

    @abstractmethod
    def each(self) -> AsyncIterator[DataPlaneRecord]:
        pass


class SharedState(ABC):
    """Node state shared between worker processes"""

    @abstractmethod
    async def is_control_plane_connected(self) -> bool:
        pass


class BalancerHealthProvider(ABC):
    """Load balancer view of upstreams and target health"""

    @abstractmethod
    def get_all_upstreams(self) -> Dict[str, str]:
        """
        Returns:
            Mapping of "<workspace_id>:<upstream_name>" key to upstream id
        """
        pass

    @abstractmethod
    async def get_upstream_health(self, upstream_id: str) -> Dict[str, TargetHealth]:
        """
        Returns:
            Mapping of target name to its resolved addresses and health

        Raises:
            UpstreamHealthError: health could not be read
        """
        pass


class StreamChannel(ABC):
    """Channel to the stream subsystem's own metrics output"""

    @abstractmethod
    async def request(self) -> str:
        pass

    async def close(self) -> None:
        pass


class SecondaryExporter(ABC):
    """Subsystem exporting its own metrics next to the main registry"""

    @abstractmethod
    def set_enabled(self, enabled: bool) -> None:
        pass

    @abstractmethod
    def metrics_data(self) -> bytes:
        pass
