"""
Scrape-time refresh of gauges that mirror live node state
"""

import re
from typing import Optional
from gateway_exporter.models.schemas import Subsystem
from gateway_exporter.services.feature_gate import FeatureFlags
from gateway_exporter.services.labels import HealthinessFanout, LabelSet
from gateway_exporter.services.providers import (
    BalancerHealthProvider,
    DatastoreProbe,
    NodeStatsProvider,
)
from gateway_exporter.services.roles import RoleMetrics
from gateway_exporter.services.yielder import CooperativeYielder
from gateway_exporter.utils.logging import get_logger
from gateway_exporter.utils.metrics import MetricFamilies

logger = get_logger(__name__)

UPSTREAM_KEY_PATTERN = re.compile(r"^([^:]*):(.*)$")

CONNECTION_STATES = (
    ("accepted", "connections_accepted"),
    ("handled", "connections_handled"),
    ("total", "total_requests"),
    ("active", "connections_active"),
    ("reading", "connections_reading"),
    ("writing", "connections_writing"),
    ("waiting", "connections_waiting"),
)


def upstream_name_from_key(key: str) -> str:
    """Upstream keys are "<workspace_id>:<name>"; anything else is the name"""
    match = UPSTREAM_KEY_PATTERN.match(key)
    if match is None:
        return key
    return match.group(2)


class ScrapeAggregator:
    """
    Refreshes node, upstream, memory and hybrid gauges before serialization

    Each group is recomputed completely; a collaborator failure degrades
    its own series and never aborts the rest of the scrape.
    """

    def __init__(
        self,
        metrics: MetricFamilies,
        node_id: str,
        subsystem: Subsystem,
        node_stats: NodeStatsProvider,
        role: RoleMetrics,
        yielder: CooperativeYielder,
        datastore: Optional[DatastoreProbe] = None,
        balancer: Optional[BalancerHealthProvider] = None,
    ):
        self.metrics = metrics
        self.node_id = node_id
        self.subsystem = subsystem
        self.node_stats = node_stats
        self.role = role
        self.yielder = yielder
        self.datastore = datastore
        self.balancer = balancer

        self.labels_connections = LabelSet(
            ("node_id", "subsystem", "state"),
            node_id=node_id,
            subsystem=subsystem.value,
        )
        self.labels_memory = LabelSet(
            ("node_id", "shared_dict", "kong_subsystem"),
            node_id=node_id,
            kong_subsystem=subsystem.value,
        )
        self.labels_worker = LabelSet(
            ("node_id", "pid", "kong_subsystem"),
            node_id=node_id,
            kong_subsystem=subsystem.value,
        )
        self.health_fanout = None
        if metrics.upstream_target_health is not None:
            self.health_fanout = HealthinessFanout(
                metrics.upstream_target_health, subsystem.value
            )

    @property
    def is_primary(self) -> bool:
        # timers, datastore and clustering state are shared by both
        # subsystems, so only http exports them
        return self.subsystem == Subsystem.HTTP

    async def refresh(self, flags: FeatureFlags, phase: Optional[str] = "content") -> None:
        self.refresh_connections()

        if self.is_primary:
            self.refresh_timers()
            await self.refresh_datastore()
            await self.role.refresh_connectivity()

        if (
            self.role.exports_upstream_health
            and flags.upstream_health_metrics
            and self.health_fanout is not None
        ):
            await self.refresh_upstream_health(phase)

        self.refresh_memory()
        await self.role.refresh_peers()

    # ========================================================================
    # Gauge Groups
    # ========================================================================

    def refresh_connections(self) -> None:
        try:
            stats = self.node_stats.get_statistics()
        except Exception as e:
            logger.error("connection_stats_failed", error=str(e))
            return

        labels = self.labels_connections
        for state, field in CONNECTION_STATES:
            labels["state"] = state
            labels.child(self.metrics.connections).set(getattr(stats, field))

        self.metrics.nginx_requests_total.labels(self.node_id, self.subsystem.value).set(
            stats.total_requests
        )

    def refresh_timers(self) -> None:
        try:
            timers = self.node_stats.get_timer_counts()
        except Exception as e:
            logger.error("timer_stats_failed", error=str(e))
            return
        self.metrics.timers.labels("running").set(timers.running)
        self.metrics.timers.labels("pending").set(timers.pending)

    async def refresh_datastore(self) -> None:
        if self.datastore is None:
            return
        try:
            await self.datastore.connect()
            self.metrics.db_reachable.set(1)
        except Exception as e:
            self.metrics.db_reachable.set(0)
            logger.error("datastore_unreachable", endpoint="/metrics", error=str(e))

    async def refresh_upstream_health(self, phase: Optional[str] = "content") -> None:
        # erase all target/upstream series so removed targets disappear
        self.metrics.upstream_target_health.clear()

        if self.balancer is None:
            return

        try:
            upstreams = self.balancer.get_all_upstreams()
        except Exception as e:
            logger.error("upstream_list_failed", error=str(e))
            return

        for key, upstream_id in upstreams.items():
            # a long loop here would spike proxy latency of other requests
            await self.yielder(in_loop=True, phase=phase)

            upstream_name = upstream_name_from_key(key)
            try:
                health_info = await self.balancer.get_upstream_health(upstream_id)
            except Exception as e:
                logger.error("upstream_health_failed", upstream=upstream_name, error=str(e))
                continue

            for target_name, target_info in health_info.items():
                if target_info is not None and target_info.addresses:
                    # healthchecks_off|healthy|unhealthy
                    for address in target_info.addresses:
                        self.health_fanout.observe(
                            upstream_name,
                            target_name,
                            f"{address.ip}:{address.port}",
                            address.health.lower(),
                        )
                else:
                    self.health_fanout.observe(upstream_name, target_name, "", "dns_error")

    def refresh_memory(self) -> None:
        try:
            memory = self.node_stats.get_memory_stats()
        except Exception as e:
            logger.error("memory_stats_failed", error=str(e))
            return

        labels = self.labels_memory
        for shm_name, value in memory.lua_shared_dicts.items():
            labels["shared_dict"] = shm_name
            labels.child(self.metrics.memory_stats.shms).set(value.allocated_slabs)

        labels = self.labels_worker
        for worker in memory.workers_lua_vms:
            labels["pid"] = worker.pid
            labels.child(self.metrics.memory_stats.worker_vms).set(worker.http_allocated_gc)
