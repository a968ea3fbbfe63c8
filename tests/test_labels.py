"""
Tests for reusable label vectors and the healthiness fan-out
"""

import pytest
from prometheus_client import CollectorRegistry, Gauge
from gateway_exporter.services.labels import HEALTH_STATES, HealthinessFanout, LabelSet


@pytest.fixture
def health_gauge():
    registry = CollectorRegistry()
    gauge = Gauge(
        "upstream_target_health",
        "health",
        list(HealthinessFanout.LABELNAMES),
        registry=registry,
    )
    return registry, gauge


def read_states(registry, upstream, target, address):
    return {
        state: registry.get_sample_value(
            "upstream_target_health",
            {
                "upstream": upstream,
                "target": target,
                "address": address,
                "state": state,
                "subsystem": "http",
            },
        )
        for state in HEALTH_STATES
    }


def test_label_set_keeps_schema_order():
    labels = LabelSet(("service", "route", "workspace"), workspace="ws1")
    labels["route"] = "r1"
    labels["service"] = "svc1"

    assert labels.as_tuple() == ("svc1", "r1", "ws1")
    assert len(labels) == 3


def test_label_set_rejects_unknown_label():
    labels = LabelSet(("service", "route"))

    with pytest.raises(KeyError):
        labels["consumer"] = "alice"
    assert len(labels) == 2


def test_label_set_overwrites_in_place():
    labels = LabelSet(("service", "direction"))
    values = labels.values

    labels["direction"] = "ingress"
    labels["direction"] = "egress"

    assert labels.values is values
    assert labels["direction"] == "egress"


def test_fanout_marks_exactly_one_state(health_gauge):
    registry, gauge = health_gauge
    fanout = HealthinessFanout(gauge, "http")

    fanout.observe("backend", "a.example:80", "10.0.0.1:80", "healthy")

    states = read_states(registry, "backend", "a.example:80", "10.0.0.1:80")
    assert states == {
        "healthchecks_off": 0.0,
        "healthy": 1.0,
        "unhealthy": 0.0,
        "dns_error": 0.0,
    }


def test_fanout_flip_zeroes_previous_state(health_gauge):
    registry, gauge = health_gauge
    fanout = HealthinessFanout(gauge, "http")

    fanout.observe("backend", "a.example:80", "10.0.0.1:80", "unhealthy")
    fanout.observe("backend", "a.example:80", "10.0.0.1:80", "healthy")

    states = read_states(registry, "backend", "a.example:80", "10.0.0.1:80")
    assert states["unhealthy"] == 0.0
    assert states["healthy"] == 1.0


def test_fanout_keeps_entities_apart(health_gauge):
    registry, gauge = health_gauge
    fanout = HealthinessFanout(gauge, "http")

    fanout.observe("backend", "a.example:80", "10.0.0.1:80", "healthy")
    fanout.observe("backend", "b.example:80", "", "dns_error")

    assert read_states(registry, "backend", "a.example:80", "10.0.0.1:80")["healthy"] == 1.0
    dns = read_states(registry, "backend", "b.example:80", "")
    assert dns["dns_error"] == 1.0
    assert dns["healthy"] == 0.0
