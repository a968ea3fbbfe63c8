"""
Metrics registry and metric family definitions using Prometheus
"""

from dataclasses import dataclass
from typing import Dict, Optional, Sequence
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    disable_created_metrics,
    generate_latest,
)
from gateway_exporter.models.schemas import Subsystem

# ============================================================================
# Bucket Boundaries (milliseconds)
# ============================================================================

KONG_LATENCY_BUCKETS = (1, 2, 5, 7, 10, 15, 20, 30, 50, 75, 100, 200, 500, 750, 1000, 3000, 6000)
UPSTREAM_LATENCY_BUCKETS = (25, 50, 80, 100, 250, 400, 700, 1000, 2000, 5000, 10000, 30000, 60000)
AI_LLM_PROVIDER_LATENCY_BUCKETS = (
    250, 500, 1000, 1500, 2000, 2500, 3000, 3500, 4000, 4500, 5000, 10000, 30000, 60000,
)

AI_LABELS = (
    "ai_provider",
    "ai_model",
    "cache_status",
    "vector_db",
    "embeddings_provider",
    "embeddings_model",
    "workspace",
)
AI_TOKEN_LABELS = AI_LABELS[:-1] + ("token_type", "workspace")

CONTENT_TYPE = CONTENT_TYPE_LATEST


# ============================================================================
# Registry Provider
# ============================================================================


class MetricsRegistry:
    """
    Owns the two storages metrics are registered into

    Local storage holds node-level gauges refreshed at scrape time and is
    always exported. Shared storage holds the per-request families and is
    suppressed from the output while collection is disabled.
    """

    def __init__(self, prefix: str = "kong_"):
        # counters and histograms expose no *_created series
        disable_created_metrics()
        self.prefix = prefix
        self.local = CollectorRegistry(auto_describe=True)
        self.shared = CollectorRegistry(auto_describe=True)

    def _storage(self, local: bool) -> CollectorRegistry:
        return self.local if local else self.shared

    def counter(
        self,
        name: str,
        documentation: str,
        labelnames: Sequence[str] = (),
        local: bool = False,
    ) -> Counter:
        return Counter(
            self.prefix + name,
            documentation,
            list(labelnames),
            registry=self._storage(local),
        )

    def gauge(
        self,
        name: str,
        documentation: str,
        labelnames: Sequence[str] = (),
        local: bool = True,
    ) -> Gauge:
        return Gauge(
            self.prefix + name,
            documentation,
            list(labelnames),
            registry=self._storage(local),
        )

    def histogram(
        self,
        name: str,
        documentation: str,
        labelnames: Sequence[str],
        buckets: Sequence[float],
        local: bool = False,
    ) -> Histogram:
        return Histogram(
            self.prefix + name,
            documentation,
            list(labelnames),
            buckets=buckets,
            registry=self._storage(local),
        )

    def serialize(self, local_only: bool = False) -> bytes:
        """Render registered metrics in Prometheus text format"""
        output = generate_latest(self.local)
        if not local_only:
            output += generate_latest(self.shared)
        return output

    def get_sample_value(
        self, name: str, labels: Optional[Dict[str, str]] = None
    ) -> Optional[float]:
        """Read one sample by its exposed name, searching both storages"""
        for storage in (self.local, self.shared):
            value = storage.get_sample_value(name, labels or {})
            if value is not None:
                return value
        return None


# ============================================================================
# Metric Families
# ============================================================================


@dataclass
class MemoryFamilies:
    worker_vms: Gauge
    shms: Gauge
    shm_capacity: Gauge


@dataclass
class MetricFamilies:
    """Every family registered at init, keyed by purpose"""

    connections: Gauge
    nginx_requests_total: Gauge
    timers: Gauge
    db_reachable: Gauge
    node_info: Gauge
    upstream_target_health: Optional[Gauge]
    memory_stats: MemoryFamilies
    status: Counter
    kong_latency: Histogram
    upstream_latency: Optional[Histogram]
    total_latency: Histogram
    bandwidth: Counter
    ai_llm_requests: Counter
    ai_llm_cost: Counter
    ai_llm_tokens: Counter
    ai_llm_provider_latency: Histogram
    ai_cache_fetch_latency: Histogram
    ai_cache_embeddings_latency: Histogram


def register_families(
    registry: MetricsRegistry,
    subsystem: Subsystem,
    upstream_health: bool = True,
) -> MetricFamilies:
    """
    Register the node and per-request families

    Role specific families (hybrid mode) are registered by the role
    capability itself.
    """
    http_subsystem = subsystem == Subsystem.HTTP

    upstream_target_health = None
    if upstream_health:
        upstream_target_health = registry.gauge(
            "upstream_target_health",
            "Health status of targets of upstream. "
            "States = healthchecks_off|healthy|unhealthy|dns_error, "
            "value is 1 when state is populated.",
            ["upstream", "target", "address", "state", "subsystem"],
        )

    memory_stats = MemoryFamilies(
        worker_vms=registry.gauge(
            "memory_workers_lua_vms_bytes",
            "Allocated bytes in worker Lua VM",
            ["node_id", "pid", "kong_subsystem"],
        ),
        shms=registry.gauge(
            "memory_lua_shared_dict_bytes",
            "Allocated slabs in bytes in a shared_dict",
            ["node_id", "shared_dict", "kong_subsystem"],
        ),
        shm_capacity=registry.gauge(
            "memory_lua_shared_dict_total_bytes",
            "Total capacity in bytes of a shared_dict",
            ["node_id", "shared_dict", "kong_subsystem"],
        ),
    )

    if http_subsystem:
        status = registry.counter(
            "http_requests_total",
            "HTTP status codes per consumer/service/route in Kong",
            ["service", "route", "code", "source", "workspace", "consumer"],
        )
        bandwidth = registry.counter(
            "bandwidth_bytes",
            "Total bandwidth (ingress/egress) throughput in bytes",
            ["service", "route", "direction", "workspace", "consumer"],
        )
        total_latency = registry.histogram(
            "request_latency_ms",
            "Total latency incurred during requests for each service/route in Kong",
            ["service", "route", "workspace"],
            UPSTREAM_LATENCY_BUCKETS,
        )
        upstream_latency = registry.histogram(
            "upstream_latency_ms",
            "Latency added by upstream response for each service/route in Kong",
            ["service", "route", "workspace"],
            UPSTREAM_LATENCY_BUCKETS,
        )
    else:
        status = registry.counter(
            "stream_sessions_total",
            "Stream status codes per service/route in Kong",
            ["service", "route", "code", "source", "workspace"],
        )
        # stream has no consumer
        bandwidth = registry.counter(
            "bandwidth_bytes",
            "Total bandwidth (ingress/egress) throughput in bytes",
            ["service", "route", "direction", "workspace"],
        )
        total_latency = registry.histogram(
            "session_duration_ms",
            "latency incurred in stream session for each service/route in Kong",
            ["service", "route", "workspace"],
            UPSTREAM_LATENCY_BUCKETS,
        )
        upstream_latency = None

    return MetricFamilies(
        connections=registry.gauge(
            "nginx_connections_total",
            "Number of connections by subsystem",
            ["node_id", "subsystem", "state"],
        ),
        nginx_requests_total=registry.gauge(
            "nginx_requests_total",
            "Number of requests total",
            ["node_id", "subsystem"],
        ),
        timers=registry.gauge(
            "nginx_timers",
            "Number of nginx timers",
            ["state"],
        ),
        db_reachable=registry.gauge(
            "datastore_reachable",
            "Datastore reachable from Kong, 0 is unreachable",
        ),
        node_info=registry.gauge(
            "node_info",
            "Kong Node metadata information",
            ["node_id", "version"],
        ),
        upstream_target_health=upstream_target_health,
        memory_stats=memory_stats,
        status=status,
        kong_latency=registry.histogram(
            "kong_latency_ms",
            "Latency added by Kong and enabled plugins for each service/route in Kong",
            ["service", "route", "workspace"],
            KONG_LATENCY_BUCKETS,
        ),
        upstream_latency=upstream_latency,
        total_latency=total_latency,
        bandwidth=bandwidth,
        ai_llm_requests=registry.counter(
            "ai_llm_requests_total",
            "AI requests total per ai_provider in Kong",
            AI_LABELS,
        ),
        ai_llm_cost=registry.counter(
            "ai_llm_cost_total",
            "AI requests cost per ai_provider/cache in Kong",
            AI_LABELS,
        ),
        ai_llm_tokens=registry.counter(
            "ai_llm_tokens_total",
            "AI requests tokens per ai_provider/cache in Kong",
            AI_TOKEN_LABELS,
        ),
        ai_llm_provider_latency=registry.histogram(
            "ai_llm_provider_latency_ms",
            "LLM response Latency for each AI plugins per ai_provider in Kong",
            AI_LABELS,
            AI_LLM_PROVIDER_LATENCY_BUCKETS,
        ),
        ai_cache_fetch_latency=registry.histogram(
            "ai_cache_fetch_latency_ms",
            "AI cache latency for each AI plugins per ai_provider in Kong",
            AI_LABELS,
            AI_LLM_PROVIDER_LATENCY_BUCKETS,
        ),
        ai_cache_embeddings_latency=registry.histogram(
            "ai_cache_embeddings_latency_ms",
            "AI cache embeddings latency for each AI plugins per ai_provider in Kong",
            AI_LABELS,
            AI_LLM_PROVIDER_LATENCY_BUCKETS,
        ),
    )


# Convert the MD5 hex string to its numeric representation. Prometheus
# stores samples as floats, so the value is a float as well.
def config_hash_to_number(hash_str: str) -> float:
    return float(int(hash_str, 16))
