"""
Reusable label vectors for high frequency metric updates
"""

from typing import Any, Dict, Sequence, Tuple
from prometheus_client import Gauge

HEALTH_STATES = ("healthchecks_off", "healthy", "unhealthy", "dns_error")


class LabelSet:
    """
    Fixed-arity label values for one metric family

    Positions follow the family's label schema and are overwritten by name
    before each update. The vector can never grow or shrink.
    """

    __slots__ = ("_index", "values")

    def __init__(self, labelnames: Sequence[str], **fixed: Any):
        self._index: Dict[str, int] = {name: i for i, name in enumerate(labelnames)}
        self.values = [""] * len(labelnames)
        for name, value in fixed.items():
            self[name] = value

    def __setitem__(self, name: str, value: Any) -> None:
        self.values[self._index[name]] = value

    def __getitem__(self, name: str) -> Any:
        return self.values[self._index[name]]

    def __len__(self) -> int:
        return len(self.values)

    def as_tuple(self) -> Tuple[Any, ...]:
        return tuple(self.values)

    def child(self, metric):
        """Resolve the labelled child of a metric for the current values"""
        return metric.labels(*self.values)


class HealthinessFanout:
    """
    Reports a target address as one series per health state

    The observed state reads 1 and every other state reads 0, so a flip
    from unhealthy to healthy is visible within one scrape.
    """

    LABELNAMES = ("upstream", "target", "address", "state", "subsystem")

    def __init__(self, gauge: Gauge, subsystem: str):
        self.gauge = gauge
        self.slots = [
            LabelSet(self.LABELNAMES, state=state, subsystem=subsystem)
            for state in HEALTH_STATES
        ]

    def observe(self, upstream: str, target: str, address: str, status: str) -> None:
        for slot in self.slots:
            slot["upstream"] = upstream
            slot["target"] = target
            slot["address"] = address
            slot.child(self.gauge).set(1 if status == slot["state"] else 0)
