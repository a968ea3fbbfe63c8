"""
Metrics exporter: wires registry, ingestion, scrape aggregation and flags
"""

from typing import Optional, Sequence, Tuple
from gateway_exporter.config import Settings
from gateway_exporter.models.schemas import PluginConfig, RequestEvent, Role, Subsystem
from gateway_exporter.services.aggregator import ScrapeAggregator
from gateway_exporter.services.balancer import InMemoryBalancer
from gateway_exporter.services.datastore import SqlDatastore
from gateway_exporter.services.feature_gate import FeatureFlags, FeatureGate
from gateway_exporter.services.ingestion import EventMapper
from gateway_exporter.services.node_stats import ProcessNodeStats
from gateway_exporter.services.providers import (
    BalancerHealthProvider,
    ClusterStore,
    DatastoreProbe,
    NodeStatsProvider,
    SecondaryExporter,
    SharedState,
    StreamChannel,
)
from gateway_exporter.services.roles import RoleMetrics, build_role
from gateway_exporter.services.shared_state import RedisSharedState
from gateway_exporter.services.stream_channel import HttpStreamChannel
from gateway_exporter.services.wasm_metrics import WasmFilterMetrics
from gateway_exporter.services.yielder import CooperativeYielder
from gateway_exporter.utils.errors import ExporterNotInitialized
from gateway_exporter.utils.logging import get_logger
from gateway_exporter.utils.metrics import (
    CONTENT_TYPE,
    MetricFamilies,
    MetricsRegistry,
    register_families,
)

logger = get_logger(__name__)


class PrometheusExporter:
    """
    Process-level metrics exporter

    Lifecycle: ``init()`` once per process, ``configure()`` on every plugin
    configuration change, ``log()`` once per completed request and
    ``collect()`` per scrape.
    """

    def __init__(
        self,
        settings: Settings,
        node_stats: NodeStatsProvider,
        datastore: Optional[DatastoreProbe] = None,
        balancer: Optional[BalancerHealthProvider] = None,
        shared_state: Optional[SharedState] = None,
        cluster_store: Optional[ClusterStore] = None,
        stream_channel: Optional[StreamChannel] = None,
        secondary: Optional[SecondaryExporter] = None,
    ):
        self.settings = settings
        self.node_id = settings.node_id
        self.role = Role(settings.role)
        self.subsystem = Subsystem(settings.subsystem)

        self.node_stats = node_stats
        self.datastore = datastore
        self.balancer = balancer
        self.shared_state = shared_state
        self.cluster_store = cluster_store
        self.stream_channel = stream_channel
        self.secondary = secondary

        self.gate = FeatureGate(secondary)
        self.yielder = CooperativeYielder(
            iterations=settings.yield_iterations,
            max_slice_ms=settings.yield_max_slice_ms,
        )

        self.registry: Optional[MetricsRegistry] = None
        self.metrics: Optional[MetricFamilies] = None
        self.role_metrics: Optional[RoleMetrics] = None
        self.mapper: Optional[EventMapper] = None
        self.aggregator: Optional[ScrapeAggregator] = None

    @property
    def initialized(self) -> bool:
        return self.registry is not None and self.metrics is not None

    @property
    def flags(self) -> FeatureFlags:
        return self.gate.flags

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def init(self) -> bool:
        """
        Register all metric families

        Returns:
            True if the exporter is ready; False leaves it uninitialized
        """
        memory = self.node_stats.get_memory_stats()
        shm = self.settings.metrics_shm
        if shm not in memory.lua_shared_dicts:
            logger.error("metrics_shm_missing", shared_dict=shm)
            return False

        role_metrics = build_role(
            self.role,
            shared_state=self.shared_state,
            cluster_store=self.cluster_store,
            cluster_cert=self.settings.cluster_cert,
        )

        registry = MetricsRegistry(prefix=self.settings.metrics_prefix)
        metrics = register_families(
            registry,
            self.subsystem,
            upstream_health=role_metrics.exports_upstream_health,
        )
        role_metrics.register(registry)

        metrics.node_info.labels(self.node_id, self.settings.gateway_version).set(1)

        # capacity never changes once the process is up
        for shm_name, value in memory.lua_shared_dicts.items():
            metrics.memory_stats.shm_capacity.labels(
                self.node_id, shm_name, self.subsystem.value
            ).set(value.capacity)

        self.mapper = EventMapper(
            metrics,
            subsystem=self.subsystem,
            gateway_source_label=self.settings.gateway_source_label,
        )
        self.aggregator = ScrapeAggregator(
            metrics,
            node_id=self.node_id,
            subsystem=self.subsystem,
            node_stats=self.node_stats,
            role=role_metrics,
            yielder=self.yielder,
            datastore=self.datastore,
            balancer=self.balancer,
        )
        self.role_metrics = role_metrics
        self.metrics = metrics
        self.registry = registry

        logger.info(
            "exporter_initialized",
            node_id=self.node_id,
            role=self.role.value,
            subsystem=self.subsystem.value,
        )
        return True

    def configure(self, configs: Optional[Sequence[PluginConfig]]) -> FeatureFlags:
        """Apply the current set of active plugin configurations"""
        return self.gate.configure(configs)

    async def close(self) -> None:
        """Release collaborator connections"""
        for collaborator in (self.stream_channel, self.datastore, self.shared_state):
            close = getattr(collaborator, "close", None)
            if close is None:
                continue
            try:
                await close()
            except Exception as e:
                logger.error("collaborator_close_failed", error=str(e))

    # ========================================================================
    # Request Path
    # ========================================================================

    def log(self, event: RequestEvent) -> None:
        """Record one completed request"""
        if self.mapper is None:
            logger.error(
                "metrics_log_skipped",
                reason="exporter not initialized, make sure the "
                f"'{self.settings.metrics_shm}' shared dict is declared",
            )
            return
        self.mapper.log(event)

    # ========================================================================
    # Scrape Path
    # ========================================================================

    async def metric_data(self, phase: Optional[str] = "content") -> bytes:
        """
        Refresh scrape-time gauges and serialize the registry

        Raises:
            ExporterNotInitialized: init() never succeeded
        """
        if not self.initialized:
            logger.error(
                "metrics_unavailable",
                reason="exporter not initialized, make sure the "
                f"'{self.settings.metrics_shm}' shared dict is declared",
            )
            raise ExporterNotInitialized()

        flags = self.gate.flags
        await self.aggregator.refresh(flags, phase=phase)

        # per-request families are only exported while the plugin is enabled
        output = self.registry.serialize(local_only=not flags.enabled)
        if self.secondary is not None:
            output += self.secondary.metrics_data()
        return output

    async def collect(self) -> Tuple[bytes, str]:
        """Full scrape: this subsystem plus the stream subsystem if configured"""
        output = await self.metric_data()

        if self.stream_channel is not None and self.settings.stream_listeners:
            try:
                stream_output = await self.stream_channel.request()
                output += stream_output.encode("utf-8")
            except Exception as e:
                logger.error("stream_metrics_collect_failed", error=str(e))

        return output, CONTENT_TYPE

    def get_registry(self) -> Optional[MetricsRegistry]:
        if self.registry is None:
            logger.error("metrics_registry_unavailable", shared_dict=self.settings.metrics_shm)
        return self.registry


def create_exporter(settings: Settings) -> PrometheusExporter:
    """Build an exporter with the default collaborators for the configured role"""
    role = Role(settings.role)

    datastore = None
    if settings.subsystem == Subsystem.HTTP or role == Role.CONTROL_PLANE:
        datastore = SqlDatastore(settings.database_url)

    shared_state = None
    if role == Role.DATA_PLANE:
        shared_state = RedisSharedState(settings.redis_url, settings.node_id)

    stream_channel = None
    if settings.stream_listeners and settings.stream_metrics_url:
        stream_channel = HttpStreamChannel(
            settings.stream_metrics_url,
            timeout=settings.stream_request_timeout,
        )

    return PrometheusExporter(
        settings,
        node_stats=ProcessNodeStats(settings.shared_dicts),
        datastore=datastore,
        balancer=None if role == Role.CONTROL_PLANE else InMemoryBalancer(),
        shared_state=shared_state,
        cluster_store=datastore if role == Role.CONTROL_PLANE else None,
        stream_channel=stream_channel,
        secondary=WasmFilterMetrics(prefix=settings.metrics_prefix),
    )
