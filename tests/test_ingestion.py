"""
Tests for request event to metric mapping
"""

import pytest
from gateway_exporter.models.schemas import (
    AICache,
    AIMeta,
    AIMetrics,
    AIUsage,
    Latencies,
    RequestEvent,
    RouteRef,
    ServiceRef,
)


def status_labels(code, source, consumer=""):
    return {
        "service": "svc1",
        "route": "r1",
        "code": str(code),
        "source": source,
        "workspace": "ws1",
        "consumer": consumer,
    }


def bandwidth_labels(direction, consumer=""):
    return {
        "service": "svc1",
        "route": "r1",
        "direction": direction,
        "workspace": "ws1",
        "consumer": consumer,
    }


def make_event(**overrides):
    values = {
        "service": ServiceRef(name="svc1"),
        "route": RouteRef(name="r1"),
        "workspace_name": "ws1",
    }
    values.update(overrides)
    return RequestEvent(**values)


# ============================================================================
# Route Gate
# ============================================================================


def test_event_without_route_records_nothing(exporter):
    before = exporter.registry.serialize()

    exporter.log(
        make_event(
            route=None,
            ingress_size=100,
            status_code=200,
            latencies=Latencies(kong=1, proxy=2, request=3),
        )
    )

    assert exporter.registry.serialize() == before


def test_route_id_used_when_name_missing(exporter):
    exporter.log(make_event(route=RouteRef(id="route-uuid"), status_code=204))

    labels = status_labels(204, "kong")
    labels["route"] = "route-uuid"
    assert exporter.registry.get_sample_value("kong_http_requests_total", labels) == 1.0


def test_service_host_used_when_name_missing(exporter):
    exporter.log(make_event(service=ServiceRef(host="upstream.local"), status_code=200))

    labels = status_labels(200, "kong")
    labels["service"] = "upstream.local"
    assert exporter.registry.get_sample_value("kong_http_requests_total", labels) == 1.0


# ============================================================================
# Bandwidth and Status
# ============================================================================


def test_gateway_generated_response_scenario(exporter):
    exporter.log(
        make_event(
            ingress_size=120,
            egress_size=0,
            status_code=200,
            response_source="exit",
        )
    )

    registry = exporter.registry
    assert registry.get_sample_value("kong_bandwidth_bytes_total", bandwidth_labels("ingress")) == 120.0
    assert registry.get_sample_value("kong_bandwidth_bytes_total", bandwidth_labels("egress")) is None
    assert registry.get_sample_value("kong_http_requests_total", status_labels(200, "kong")) == 1.0


def test_bandwidth_accumulates_exact_amounts(exporter):
    exporter.log(make_event(ingress_size=10, egress_size=300, consumer="alice"))
    exporter.log(make_event(ingress_size=5, egress_size=-1, consumer="alice"))

    registry = exporter.registry
    assert registry.get_sample_value(
        "kong_bandwidth_bytes_total", bandwidth_labels("ingress", "alice")
    ) == 15.0
    assert registry.get_sample_value(
        "kong_bandwidth_bytes_total", bandwidth_labels("egress", "alice")
    ) == 300.0


@pytest.mark.parametrize("code", [100, 200, 404, 599])
@pytest.mark.parametrize("response_source,label", [("service", "service"), ("error", "kong"), (None, "kong")])
def test_status_source_label(exporter, code, response_source, label):
    exporter.log(make_event(status_code=code, response_source=response_source))

    assert exporter.registry.get_sample_value(
        "kong_http_requests_total", status_labels(code, label)
    ) == 1.0


def test_missing_status_does_not_block_other_families(exporter):
    exporter.log(make_event(ingress_size=50, latencies=Latencies(kong=3)))

    registry = exporter.registry
    assert registry.get_sample_value("kong_bandwidth_bytes_total", bandwidth_labels("ingress")) == 50.0
    assert registry.get_sample_value(
        "kong_kong_latency_ms_count", {"service": "svc1", "route": "r1", "workspace": "ws1"}
    ) == 1.0


# ============================================================================
# Latency
# ============================================================================


LATENCY_LABELS = {"service": "svc1", "route": "r1", "workspace": "ws1"}


def test_latencies_recorded_per_histogram(exporter):
    exporter.log(make_event(latencies=Latencies(kong=4, proxy=120, request=130)))

    registry = exporter.registry
    assert registry.get_sample_value("kong_kong_latency_ms_sum", LATENCY_LABELS) == 4.0
    assert registry.get_sample_value("kong_upstream_latency_ms_sum", LATENCY_LABELS) == 120.0
    assert registry.get_sample_value("kong_request_latency_ms_sum", LATENCY_LABELS) == 130.0
    assert registry.get_sample_value(
        "kong_kong_latency_ms_bucket", dict(LATENCY_LABELS, le="5.0")
    ) == 1.0


def test_negative_latency_rejected_zero_accepted(exporter):
    exporter.log(make_event(latencies=Latencies(kong=0, proxy=-1, request=-5)))

    registry = exporter.registry
    assert registry.get_sample_value("kong_kong_latency_ms_count", LATENCY_LABELS) == 1.0
    assert registry.get_sample_value("kong_kong_latency_ms_sum", LATENCY_LABELS) == 0.0
    assert registry.get_sample_value("kong_upstream_latency_ms_count", LATENCY_LABELS) is None
    assert registry.get_sample_value("kong_request_latency_ms_count", LATENCY_LABELS) is None


# ============================================================================
# AI Usage
# ============================================================================


AI_BASE = {
    "ai_provider": "openai",
    "ai_model": "gpt-4",
    "cache_status": "",
    "vector_db": "",
    "embeddings_provider": "",
    "embeddings_model": "",
    "workspace": "ws1",
}


def token_labels(token_type):
    labels = dict(AI_BASE)
    labels["token_type"] = token_type
    return labels


def test_ai_tokens_only_positive_counts(exporter):
    exporter.log(
        make_event(
            ai_metrics={
                "proxy": AIMetrics(
                    meta=AIMeta(provider_name="openai", request_model="gpt-4"),
                    usage=AIUsage(prompt_tokens=50, completion_tokens=0, total_tokens=50),
                )
            }
        )
    )

    registry = exporter.registry
    assert registry.get_sample_value("kong_ai_llm_tokens_total", token_labels("prompt_tokens")) == 50.0
    assert registry.get_sample_value("kong_ai_llm_tokens_total", token_labels("total_tokens")) == 50.0
    assert registry.get_sample_value("kong_ai_llm_tokens_total", token_labels("completion_tokens")) is None
    assert registry.get_sample_value("kong_ai_llm_requests_total", AI_BASE) == 1.0
    assert registry.get_sample_value("kong_ai_llm_cost_total", AI_BASE) is None


def test_ai_cost_latency_and_cache_labels(exporter):
    exporter.log(
        make_event(
            ai_metrics={
                "proxy": AIMetrics(
                    meta=AIMeta(provider_name="openai", request_model="gpt-4", llm_latency=1200),
                    usage=AIUsage(cost=0.25),
                    cache=AICache(
                        cache_status="Hit",
                        vector_db="redis",
                        embeddings_provider="openai",
                        embeddings_model="text-embedding-3-small",
                        fetch_latency=12,
                        embeddings_latency=-1,
                    ),
                )
            }
        )
    )

    labels = dict(
        AI_BASE,
        cache_status="Hit",
        vector_db="redis",
        embeddings_provider="openai",
        embeddings_model="text-embedding-3-small",
    )
    registry = exporter.registry
    assert registry.get_sample_value("kong_ai_llm_cost_total", labels) == 0.25
    assert registry.get_sample_value("kong_ai_llm_provider_latency_ms_sum", labels) == 1200.0
    assert registry.get_sample_value("kong_ai_cache_fetch_latency_ms_sum", labels) == 12.0
    assert registry.get_sample_value("kong_ai_cache_embeddings_latency_ms_count", labels) is None


def test_ai_metrics_per_use_case(exporter):
    meta = AIMeta(provider_name="openai", request_model="gpt-4")
    exporter.log(
        make_event(
            ai_metrics={
                "proxy": AIMetrics(meta=meta),
                "ai-request-transformer": AIMetrics(meta=meta),
            }
        )
    )

    assert exporter.registry.get_sample_value("kong_ai_llm_requests_total", AI_BASE) == 2.0


def test_ai_metrics_without_meta_use_empty_labels(exporter):
    exporter.log(make_event(ai_metrics={"proxy": AIMetrics()}))

    labels = dict(AI_BASE, ai_provider="", ai_model="")
    assert exporter.registry.get_sample_value("kong_ai_llm_requests_total", labels) == 1.0


# ============================================================================
# Stream Subsystem
# ============================================================================


def test_stream_session_metrics(stream_exporter):
    stream_exporter.log(
        make_event(
            ingress_size=64,
            status_code=200,
            response_source="service",
            consumer="ignored",
            latencies=Latencies(session=900, request=10),
        )
    )

    registry = stream_exporter.registry
    assert registry.get_sample_value(
        "kong_stream_sessions_total",
        {"service": "svc1", "route": "r1", "code": "200", "source": "service", "workspace": "ws1"},
    ) == 1.0
    assert registry.get_sample_value(
        "kong_bandwidth_bytes_total",
        {"service": "svc1", "route": "r1", "direction": "ingress", "workspace": "ws1"},
    ) == 64.0
    assert registry.get_sample_value("kong_session_duration_ms_sum", LATENCY_LABELS) == 900.0
