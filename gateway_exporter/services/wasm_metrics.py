"""
Metrics reported by proxy-wasm filters
"""

from prometheus_client import CollectorRegistry, Gauge, generate_latest
from gateway_exporter.services.providers import SecondaryExporter


class WasmFilterMetrics(SecondaryExporter):
    """
    Separate registry for values published by wasm filters

    Output is only produced while at least one plugin instance enables
    wasm metrics.
    """

    def __init__(self, prefix: str = "kong_"):
        self.enabled = False
        self.registry = CollectorRegistry(auto_describe=True)
        self.filter_metric = Gauge(
            prefix + "wasm_filter_metric",
            "Metric values published by proxy-wasm filters",
            ["filter", "metric"],
            registry=self.registry,
        )

    def set_enabled(self, enabled: bool) -> None:
        self.enabled = enabled

    def record(self, filter_name: str, metric: str, value: float) -> None:
        self.filter_metric.labels(filter_name, metric).set(value)

    def metrics_data(self) -> bytes:
        if not self.enabled:
            return b""
        return generate_latest(self.registry)
