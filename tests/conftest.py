"""
Shared fixtures and collaborator fakes
"""

from typing import Dict, List, Optional
import pytest
from prometheus_client.parser import text_string_to_metric_families
from gateway_exporter.config import Settings
from gateway_exporter.models.schemas import (
    ConnectionStats,
    DataPlaneRecord,
    MemoryStats,
    PluginConfig,
    Role,
    SharedRegionStats,
    Subsystem,
    TimerCounts,
    WorkerVMStats,
)
from gateway_exporter.services.balancer import InMemoryBalancer
from gateway_exporter.services.exporter import PrometheusExporter
from gateway_exporter.services.providers import (
    ClusterStore,
    DatastoreProbe,
    NodeStatsProvider,
    SharedState,
    StreamChannel,
)
from gateway_exporter.services.wasm_metrics import WasmFilterMetrics


class FakeNodeStats(NodeStatsProvider):
    def __init__(self, shared_dicts: Optional[Dict[str, SharedRegionStats]] = None):
        self.stats = ConnectionStats(
            connections_accepted=10,
            connections_handled=10,
            total_requests=42,
            connections_active=3,
            connections_reading=1,
            connections_writing=1,
            connections_waiting=1,
        )
        self.timers = TimerCounts(running=2, pending=5)
        if shared_dicts is None:
            shared_dicts = {
                "prometheus_metrics": SharedRegionStats(allocated_slabs=4096, capacity=5242880),
                "kong": SharedRegionStats(allocated_slabs=1024, capacity=5242880),
            }
        self.memory = MemoryStats(
            lua_shared_dicts=shared_dicts,
            workers_lua_vms=[
                WorkerVMStats(pid=101, http_allocated_gc=2048),
                WorkerVMStats(pid=102, http_allocated_gc=4096),
            ],
        )

    def get_statistics(self) -> ConnectionStats:
        return self.stats

    def get_timer_counts(self) -> TimerCounts:
        return self.timers

    def get_memory_stats(self) -> MemoryStats:
        return self.memory


class FakeDatastore(DatastoreProbe):
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.probes = 0

    async def connect(self) -> None:
        self.probes += 1
        if self.error is not None:
            raise self.error


class FakeSharedState(SharedState):
    def __init__(self, connected: bool = True):
        self.connected = connected

    async def is_control_plane_connected(self) -> bool:
        return self.connected


class FakeClusterStore(ClusterStore):
    def __init__(self, records: Optional[List[DataPlaneRecord]] = None, fail_after: Optional[int] = None):
        self.records = records or []
        self.fail_after = fail_after

    async def each(self):
        for i, record in enumerate(self.records):
            if self.fail_after is not None and i >= self.fail_after:
                raise ConnectionError("cluster store connection lost")
            yield record


class FakeStreamChannel(StreamChannel):
    def __init__(self, output: str = "", error: Optional[Exception] = None):
        self.output = output
        self.error = error
        self.closed = False

    async def request(self) -> str:
        if self.error is not None:
            raise self.error
        return self.output

    async def close(self) -> None:
        self.closed = True


def make_settings(**overrides) -> Settings:
    values = {
        "node_id": "node-1",
        "gateway_version": "3.7.0",
        "role": Role.TRADITIONAL,
        "subsystem": Subsystem.HTTP,
        "plugin_configs": None,
        "stream_listeners": [],
    }
    values.update(overrides)
    return Settings(**values)


def make_exporter(settings: Optional[Settings] = None, **collaborators) -> PrometheusExporter:
    settings = settings or make_settings()
    collaborators.setdefault("node_stats", FakeNodeStats())
    collaborators.setdefault("datastore", FakeDatastore())
    if settings.role != Role.CONTROL_PLANE:
        collaborators.setdefault("balancer", InMemoryBalancer())
    if settings.role == Role.DATA_PLANE:
        collaborators.setdefault("shared_state", FakeSharedState())
    if settings.role == Role.CONTROL_PLANE:
        collaborators.setdefault("cluster_store", FakeClusterStore())
    collaborators.setdefault("secondary", WasmFilterMetrics())
    return PrometheusExporter(settings, **collaborators)


@pytest.fixture
def exporter():
    """Initialized traditional http exporter with upstream health enabled"""
    exp = make_exporter()
    assert exp.init() is True
    exp.configure([PluginConfig(upstream_health_metrics=True)])
    return exp


@pytest.fixture
def stream_exporter():
    """Initialized traditional stream exporter"""
    exp = make_exporter(make_settings(subsystem=Subsystem.STREAM))
    assert exp.init() is True
    exp.configure([PluginConfig()])
    return exp


def sample_value(body, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
    """Read one sample back from an exposition body"""
    if isinstance(body, bytes):
        body = body.decode("utf-8")
    for family in text_string_to_metric_families(body):
        for sample in family.samples:
            if sample.name == name and sample.labels == (labels or {}):
                return sample.value
    return None
