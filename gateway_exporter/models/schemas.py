"""
Pydantic schemas for request events, collaborator snapshots and plugin configuration
"""

from enum import Enum
from typing import Dict, List, Optional, Union
from pydantic import BaseModel, Field


# ============================================================================
# Deployment
# ============================================================================


class Role(str, Enum):
    """Hybrid deployment role of this node"""

    TRADITIONAL = "traditional"
    CONTROL_PLANE = "control_plane"
    DATA_PLANE = "data_plane"


class Subsystem(str, Enum):
    """Proxy subsystem a worker serves"""

    HTTP = "http"
    STREAM = "stream"


class PluginConfig(BaseModel):
    """One active instance of the metrics plugin"""

    # Global properties: enabled for the node if any instance enables them
    upstream_health_metrics: bool = False
    wasm_metrics: bool = False


# ============================================================================
# Request Events
# ============================================================================


class ServiceRef(BaseModel):
    name: Optional[str] = None
    host: Optional[str] = None


class RouteRef(BaseModel):
    name: Optional[str] = None
    id: Optional[str] = None


class Latencies(BaseModel):
    """Latency measurements in milliseconds"""

    kong: Optional[float] = None
    proxy: Optional[float] = None
    request: Optional[float] = None
    session: Optional[float] = None


class AIMeta(BaseModel):
    provider_name: Optional[str] = None
    request_model: Optional[str] = None
    response_model: Optional[str] = None
    llm_latency: Optional[float] = None


class AIUsage(BaseModel):
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
    cost: Optional[float] = None


class AICache(BaseModel):
    cache_status: Optional[str] = None
    vector_db: Optional[str] = None
    embeddings_provider: Optional[str] = None
    embeddings_model: Optional[str] = None
    fetch_latency: Optional[float] = None
    embeddings_latency: Optional[float] = None


class AIMetrics(BaseModel):
    """AI usage recorded by one AI use-case (proxy, request/response transformer)"""

    meta: Optional[AIMeta] = None
    usage: Optional[AIUsage] = None
    cache: Optional[AICache] = None


class RequestEvent(BaseModel):
    """Structured record of one completed request or stream session"""

    service: Optional[ServiceRef] = None
    route: Optional[RouteRef] = None
    consumer: Optional[str] = None
    workspace_name: Optional[str] = None
    ingress_size: Optional[int] = None
    egress_size: Optional[int] = None
    status_code: Optional[int] = None
    response_source: Optional[str] = None  # service, error, exit
    latencies: Optional[Latencies] = None
    ai_metrics: Optional[Dict[str, AIMetrics]] = None


# ============================================================================
# Node and Cluster State
# ============================================================================


class ConnectionStats(BaseModel):
    connections_accepted: int = 0
    connections_handled: int = 0
    total_requests: int = 0
    connections_active: int = 0
    connections_reading: int = 0
    connections_writing: int = 0
    connections_waiting: int = 0


class TimerCounts(BaseModel):
    running: int = 0
    pending: int = 0


class SharedRegionStats(BaseModel):
    allocated_slabs: int = 0
    capacity: int = 0


class WorkerVMStats(BaseModel):
    pid: int
    http_allocated_gc: int = 0


class MemoryStats(BaseModel):
    lua_shared_dicts: Dict[str, SharedRegionStats] = Field(default_factory=dict)
    workers_lua_vms: List[WorkerVMStats] = Field(default_factory=list)


class TargetAddress(BaseModel):
    ip: str
    port: Union[int, str]
    health: str  # HEALTHCHECKS_OFF, HEALTHY, UNHEALTHY


class TargetHealth(BaseModel):
    addresses: Optional[List[TargetAddress]] = None


class SyncStatus(str, Enum):
    """Configuration sync classification reported for a data plane"""

    UNKNOWN = "unknown"
    NORMAL = "normal"
    KONG_VERSION_INCOMPATIBLE = "kong_version_incompatible"
    PLUGIN_SET_INCOMPATIBLE = "plugin_set_incompatible"
    PLUGIN_VERSION_INCOMPATIBLE = "plugin_version_incompatible"
    FILTER_SET_INCOMPATIBLE = "filter_set_incompatible"


class DataPlaneRecord(BaseModel):
    """Data plane as seen by the control plane"""

    id: str
    hostname: str
    ip: str
    last_seen: float
    config_hash: str
    version: str
    sync_status: SyncStatus = SyncStatus.UNKNOWN
