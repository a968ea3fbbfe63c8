"""
Maps completed request records to per-request metric updates
"""

from gateway_exporter.models.schemas import AIMetrics, RequestEvent, Subsystem
from gateway_exporter.services.labels import LabelSet
from gateway_exporter.utils.logging import get_logger
from gateway_exporter.utils.metrics import AI_LABELS, AI_TOKEN_LABELS, MetricFamilies

logger = get_logger(__name__)

TOKEN_TYPES = ("prompt_tokens", "completion_tokens", "total_tokens")


class EventMapper:
    """
    Converts one RequestEvent into bandwidth, status, latency and AI usage
    updates

    Runs inside the request completion path: synchronous, no I/O. Label
    vectors are allocated once and overwritten for every event; the more
    dynamic labels sit at the end of each schema.
    """

    def __init__(
        self,
        metrics: MetricFamilies,
        subsystem: Subsystem = Subsystem.HTTP,
        gateway_source_label: str = "kong",
    ):
        self.metrics = metrics
        self.http_subsystem = subsystem == Subsystem.HTTP
        self.gateway_source_label = gateway_source_label

        if self.http_subsystem:
            self.labels_bandwidth = LabelSet(
                ("service", "route", "direction", "workspace", "consumer")
            )
            self.labels_status = LabelSet(
                ("service", "route", "code", "source", "workspace", "consumer")
            )
        else:
            self.labels_bandwidth = LabelSet(("service", "route", "direction", "workspace"))
            self.labels_status = LabelSet(("service", "route", "code", "source", "workspace"))

        self.labels_latency = LabelSet(("service", "route", "workspace"))
        self.labels_ai_llm_status = LabelSet(AI_LABELS)
        self.labels_ai_llm_tokens = LabelSet(AI_TOKEN_LABELS)

    def log(self, event: RequestEvent) -> None:
        # without a route there is nothing meaningful to label by
        route = event.route
        if route is None:
            return
        route_name = route.name or route.id
        if route_name is None:
            return

        service_name = ""
        if event.service is not None:
            service_name = event.service.name or event.service.host or ""

        workspace = event.workspace_name or ""
        consumer = event.consumer or ""

        self._log_bandwidth(event, service_name, route_name, workspace, consumer)
        self._log_status(event, service_name, route_name, workspace, consumer)
        self._log_latencies(event, service_name, route_name, workspace)

        if event.ai_metrics:
            for use_case, ai_metrics in event.ai_metrics.items():
                logger.debug("ingesting_ai_metrics", use_case=use_case)
                self._log_ai_metrics(ai_metrics, workspace)

    # ========================================================================
    # Families
    # ========================================================================

    def _log_bandwidth(self, event, service_name, route_name, workspace, consumer) -> None:
        if not (event.ingress_size or event.egress_size):
            return

        labels = self.labels_bandwidth
        labels["service"] = service_name
        labels["route"] = route_name
        labels["workspace"] = workspace
        if self.http_subsystem:
            labels["consumer"] = consumer

        ingress_size = event.ingress_size
        if ingress_size and ingress_size > 0:
            labels["direction"] = "ingress"
            labels.child(self.metrics.bandwidth).inc(ingress_size)

        egress_size = event.egress_size
        if egress_size and egress_size > 0:
            labels["direction"] = "egress"
            labels.child(self.metrics.bandwidth).inc(egress_size)

    def _log_status(self, event, service_name, route_name, workspace, consumer) -> None:
        if event.status_code is None:
            return

        labels = self.labels_status
        labels["service"] = service_name
        labels["route"] = route_name
        labels["code"] = event.status_code
        if event.response_source == "service":
            labels["source"] = "service"
        else:
            labels["source"] = self.gateway_source_label
        labels["workspace"] = workspace
        if self.http_subsystem:
            labels["consumer"] = consumer

        labels.child(self.metrics.status).inc()

    def _log_latencies(self, event, service_name, route_name, workspace) -> None:
        latencies = event.latencies
        if latencies is None:
            return

        labels = self.labels_latency
        labels["service"] = service_name
        labels["route"] = route_name
        labels["workspace"] = workspace

        if self.http_subsystem:
            request_latency = latencies.request
            if request_latency is not None and request_latency >= 0:
                labels.child(self.metrics.total_latency).observe(request_latency)

            upstream_latency = latencies.proxy
            if upstream_latency is not None and upstream_latency >= 0:
                labels.child(self.metrics.upstream_latency).observe(upstream_latency)
        else:
            session_latency = latencies.session
            if session_latency is not None and session_latency >= 0:
                labels.child(self.metrics.total_latency).observe(session_latency)

        kong_latency = latencies.kong
        if kong_latency is not None and kong_latency >= 0:
            labels.child(self.metrics.kong_latency).observe(kong_latency)

    def _log_ai_metrics(self, ai_metrics: AIMetrics, workspace: str) -> None:
        meta = ai_metrics.meta
        usage = ai_metrics.usage
        cache = ai_metrics.cache

        provider_name = (meta.provider_name if meta else None) or ""
        request_model = (meta.request_model if meta else None) or ""
        cache_status = (cache.cache_status if cache else None) or ""
        vector_db = (cache.vector_db if cache else None) or ""
        embeddings_provider = (cache.embeddings_provider if cache else None) or ""
        embeddings_model = (cache.embeddings_model if cache else None) or ""

        for labels in (self.labels_ai_llm_status, self.labels_ai_llm_tokens):
            labels["ai_provider"] = provider_name
            labels["ai_model"] = request_model
            labels["cache_status"] = cache_status
            labels["vector_db"] = vector_db
            labels["embeddings_provider"] = embeddings_provider
            labels["embeddings_model"] = embeddings_model
            labels["workspace"] = workspace

        status_labels = self.labels_ai_llm_status
        status_labels.child(self.metrics.ai_llm_requests).inc()

        if usage is not None and usage.cost is not None and usage.cost > 0:
            status_labels.child(self.metrics.ai_llm_cost).inc(usage.cost)

        if meta is not None and meta.llm_latency is not None and meta.llm_latency >= 0:
            status_labels.child(self.metrics.ai_llm_provider_latency).observe(meta.llm_latency)

        if cache is not None:
            if cache.fetch_latency is not None and cache.fetch_latency >= 0:
                status_labels.child(self.metrics.ai_cache_fetch_latency).observe(
                    cache.fetch_latency
                )
            if cache.embeddings_latency is not None and cache.embeddings_latency >= 0:
                status_labels.child(self.metrics.ai_cache_embeddings_latency).observe(
                    cache.embeddings_latency
                )

        if usage is None:
            return

        token_labels = self.labels_ai_llm_tokens
        for token_type in TOKEN_TYPES:
            count = getattr(usage, token_type)
            if count is not None and count > 0:
                token_labels["token_type"] = token_type
                token_labels.child(self.metrics.ai_llm_tokens).inc(count)
