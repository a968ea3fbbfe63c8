"""
Process-wide metrics feature flags derived from active plugin configurations
"""

from dataclasses import dataclass
from typing import Optional, Sequence
from gateway_exporter.models.schemas import PluginConfig
from gateway_exporter.services.providers import SecondaryExporter
from gateway_exporter.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class FeatureFlags:
    enabled: bool = False
    upstream_health_metrics: bool = False
    wasm_metrics: bool = False


class FeatureGate:
    """
    Recomputes the flag snapshot whenever plugin configuration changes

    Readers take ``gate.flags`` once per call; the snapshot is immutable
    and replaced as a single reference, so no locking is needed.
    """

    def __init__(self, secondary: Optional[SecondaryExporter] = None):
        self.secondary = secondary
        self.flags = FeatureFlags()

    def configure(self, configs: Optional[Sequence[PluginConfig]]) -> FeatureFlags:
        enabled = False
        upstream_health_metrics = False
        wasm_metrics = False

        if configs is not None:
            enabled = True

            # upstream_health_metrics and wasm_metrics are disabled by default
            # and enabled for the node if any instance enables them
            for config in configs:
                if config.upstream_health_metrics:
                    upstream_health_metrics = True
                if config.wasm_metrics:
                    wasm_metrics = True
                if upstream_health_metrics and wasm_metrics:
                    break

        self.flags = FeatureFlags(
            enabled=enabled,
            upstream_health_metrics=upstream_health_metrics,
            wasm_metrics=wasm_metrics,
        )

        if self.secondary is not None:
            self.secondary.set_enabled(wasm_metrics)

        logger.info(
            "metrics_configured",
            enabled=enabled,
            upstream_health_metrics=upstream_health_metrics,
            wasm_metrics=wasm_metrics,
        )
        return self.flags
