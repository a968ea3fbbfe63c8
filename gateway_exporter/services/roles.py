"""
Role specific metrics for hybrid deployments
"""

from typing import Optional
from cryptography import x509
from gateway_exporter.models.schemas import DataPlaneRecord, Role, SyncStatus
from gateway_exporter.services.labels import LabelSet
from gateway_exporter.services.providers import ClusterStore, SharedState
from gateway_exporter.utils.logging import get_logger
from gateway_exporter.utils.metrics import MetricsRegistry, config_hash_to_number

logger = get_logger(__name__)

INCOMPATIBLE_SYNC_STATUSES = frozenset({
    SyncStatus.KONG_VERSION_INCOMPATIBLE,
    SyncStatus.PLUGIN_SET_INCOMPATIBLE,
    SyncStatus.PLUGIN_VERSION_INCOMPATIBLE,
})


def is_version_compatible(sync_status: SyncStatus) -> bool:
    return sync_status not in INCOMPATIBLE_SYNC_STATUSES


def cert_expiry_timestamp(cert_path: str) -> float:
    """Unix timestamp of the not-after date of a PEM certificate file"""
    with open(cert_path, "rb") as f:
        cert = x509.load_pem_x509_certificate(f.read())
    return cert.not_valid_after_utc.timestamp()


class RoleMetrics:
    """
    Capability interface for the metrics a deployment role contributes

    Traditional nodes contribute nothing beyond the common families.
    """

    role = Role.TRADITIONAL
    exports_upstream_health = True

    def register(self, registry: MetricsRegistry) -> None:
        pass

    async def refresh_connectivity(self) -> None:
        pass

    async def refresh_peers(self) -> None:
        pass


class TraditionalRole(RoleMetrics):
    pass


class DataPlaneRole(RoleMetrics):
    """
    Reports whether this node is connected to its control plane and when
    its cluster certificate expires
    """

    role = Role.DATA_PLANE

    def __init__(self, shared_state: SharedState, cluster_cert: Optional[str] = None):
        self.shared_state = shared_state
        self.cluster_cert = cluster_cert
        self.cp_connected = None
        self.cluster_cert_expiry = None

    def register(self, registry: MetricsRegistry) -> None:
        self.cp_connected = registry.gauge(
            "control_plane_connected",
            "Kong connected to control plane, 0 is unconnected",
        )
        self.cluster_cert_expiry = registry.gauge(
            "data_plane_cluster_cert_expiry_timestamp",
            "Unix timestamp of Data Plane's cluster_cert expiry time",
        )
        # the certificate does not change while the process runs
        if self.cluster_cert is not None:
            self.cluster_cert_expiry.set(cert_expiry_timestamp(self.cluster_cert))

    async def refresh_connectivity(self) -> None:
        try:
            connected = await self.shared_state.is_control_plane_connected()
        except Exception as e:
            logger.error("control_plane_state_unavailable", error=str(e))
            connected = False
        self.cp_connected.set(1 if connected else 0)


class ControlPlaneRole(RoleMetrics):
    """
    Reports status of every data plane known to this control plane
    Upstream health is a data plane concern and is not exported here.
    """

    role = Role.CONTROL_PLANE
    exports_upstream_health = False

    def __init__(self, cluster_store: ClusterStore):
        self.cluster_store = cluster_store
        self.data_plane_last_seen = None
        self.data_plane_config_hash = None
        self.data_plane_version_compatible = None
        self.labels_data_plane = LabelSet(("node_id", "hostname", "ip"))
        self.labels_data_plane_version = LabelSet(("node_id", "hostname", "ip", "kong_version"))

    def register(self, registry: MetricsRegistry) -> None:
        self.data_plane_last_seen = registry.gauge(
            "data_plane_last_seen",
            "Last time data plane contacted control plane",
            ["node_id", "hostname", "ip"],
        )
        self.data_plane_config_hash = registry.gauge(
            "data_plane_config_hash",
            "Config hash numeric value of the data plane",
            ["node_id", "hostname", "ip"],
        )
        self.data_plane_version_compatible = registry.gauge(
            "data_plane_version_compatible",
            "Version compatible status of the data plane, 0 is incompatible",
            ["node_id", "hostname", "ip", "kong_version"],
        )

    def _set_data_plane(self, data_plane: DataPlaneRecord) -> None:
        # computed first so a bad hash leaves no partial series behind
        config_hash = config_hash_to_number(data_plane.config_hash)

        labels = self.labels_data_plane
        labels["node_id"] = data_plane.id
        labels["hostname"] = data_plane.hostname
        labels["ip"] = data_plane.ip
        labels.child(self.data_plane_last_seen).set(data_plane.last_seen)
        labels.child(self.data_plane_config_hash).set(config_hash)

        version_labels = self.labels_data_plane_version
        version_labels["node_id"] = data_plane.id
        version_labels["hostname"] = data_plane.hostname
        version_labels["ip"] = data_plane.ip
        version_labels["kong_version"] = data_plane.version
        compatible = 1 if is_version_compatible(data_plane.sync_status) else 0
        version_labels.child(self.data_plane_version_compatible).set(compatible)

    async def refresh_peers(self) -> None:
        # drop data planes that are gone since the last scrape
        self.data_plane_last_seen.clear()
        self.data_plane_config_hash.clear()
        self.data_plane_version_compatible.clear()

        try:
            async for data_plane in self.cluster_store.each():
                try:
                    self._set_data_plane(data_plane)
                except (ValueError, TypeError) as e:
                    logger.error(
                        "data_plane_metrics_failed",
                        node_id=data_plane.id,
                        error=str(e),
                    )
        except Exception as e:
            logger.error("data_plane_list_failed", error=str(e))


def build_role(
    role: Role,
    shared_state: Optional[SharedState] = None,
    cluster_store: Optional[ClusterStore] = None,
    cluster_cert: Optional[str] = None,
) -> RoleMetrics:
    """Factory method to create the capability for a role"""
    if role == Role.CONTROL_PLANE:
        if cluster_store is None:
            raise ValueError("control_plane role requires a cluster store")
        return ControlPlaneRole(cluster_store)
    elif role == Role.DATA_PLANE:
        if shared_state is None:
            raise ValueError("data_plane role requires shared state")
        return DataPlaneRole(shared_state, cluster_cert=cluster_cert)
    elif role == Role.TRADITIONAL:
        return TraditionalRole()
    else:
        raise ValueError(f"Unknown role: {role}")
