"""
Connection, timer and memory statistics of the running process
"""

import asyncio
from typing import Dict, List
import psutil
from gateway_exporter.models.schemas import (
    ConnectionStats,
    MemoryStats,
    SharedRegionStats,
    TimerCounts,
    WorkerVMStats,
)
from gateway_exporter.services.providers import NodeStatsProvider
from gateway_exporter.utils.logging import get_logger

logger = get_logger(__name__)


class ProcessNodeStats(NodeStatsProvider):
    """
    Node statistics for a process served by an ASGI server

    Request accounting is fed by the application middleware through
    ``request_started`` / ``request_finished``; socket and memory figures
    come from psutil.
    """

    def __init__(self, shared_dicts: Dict[str, int]):
        self.process = psutil.Process()
        self.shared_dicts = dict(shared_dicts)
        self._allocated: Dict[str, int] = {name: 0 for name in shared_dicts}
        self.accepted = 0
        self.total_requests = 0
        self.active = 0

    # ========================================================================
    # Accounting hooks
    # ========================================================================

    def request_started(self) -> None:
        self.accepted += 1
        self.total_requests += 1
        self.active += 1

    def request_finished(self) -> None:
        self.active = max(self.active - 1, 0)

    def set_region_usage(self, name: str, allocated: int) -> None:
        """Report allocated bytes of a declared shared region"""
        if name not in self.shared_dicts:
            raise KeyError(f"Unknown shared region: {name}")
        self._allocated[name] = allocated

    # ========================================================================
    # NodeStatsProvider
    # ========================================================================

    def _established_connections(self) -> int:
        try:
            return sum(
                1
                for conn in self.process.net_connections(kind="tcp")
                if conn.status == psutil.CONN_ESTABLISHED
            )
        except (psutil.Error, OSError) as e:
            logger.warning("connection_stats_unavailable", error=str(e))
            return self.active

    def get_statistics(self) -> ConnectionStats:
        established = self._established_connections()
        return ConnectionStats(
            connections_accepted=self.accepted,
            connections_handled=self.accepted,
            total_requests=self.total_requests,
            connections_active=max(established, self.active),
            # request bodies are read by the server before the app sees them
            connections_reading=0,
            connections_writing=self.active,
            connections_waiting=max(established - self.active, 0),
        )

    def get_timer_counts(self) -> TimerCounts:
        try:
            running = len(asyncio.all_tasks())
        except RuntimeError:
            # no running event loop
            running = 0
        return TimerCounts(running=running, pending=0)

    def _worker_processes(self) -> List[psutil.Process]:
        workers = [self.process]
        try:
            workers.extend(self.process.children())
        except psutil.Error as e:
            logger.warning("worker_listing_failed", error=str(e))
        return workers

    def get_memory_stats(self) -> MemoryStats:
        workers = []
        for proc in self._worker_processes():
            try:
                workers.append(
                    WorkerVMStats(pid=proc.pid, http_allocated_gc=proc.memory_info().rss)
                )
            except psutil.Error as e:
                logger.warning("worker_memory_unavailable", pid=proc.pid, error=str(e))

        return MemoryStats(
            lua_shared_dicts={
                name: SharedRegionStats(
                    allocated_slabs=self._allocated.get(name, 0),
                    capacity=capacity,
                )
                for name, capacity in self.shared_dicts.items()
            },
            workers_lua_vms=workers,
        )
