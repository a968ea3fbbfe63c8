"""
In-process view of upstream target health, fed by the health checker
"""

from typing import Dict, List, Optional
from gateway_exporter.models.schemas import TargetAddress, TargetHealth
from gateway_exporter.services.providers import BalancerHealthProvider
from gateway_exporter.utils.errors import UpstreamHealthError


class InMemoryBalancer(BalancerHealthProvider):
    """
    Holds the latest health of every upstream target

    The health checker calls ``set_target`` / ``remove_target`` as results
    come in; the exporter reads the current view at scrape time.
    """

    def __init__(self):
        # upstream id -> (workspace id, name)
        self._upstreams: Dict[str, tuple] = {}
        # upstream id -> target name -> addresses (None: resolution failed)
        self._targets: Dict[str, Dict[str, Optional[List[TargetAddress]]]] = {}

    def add_upstream(self, upstream_id: str, name: str, workspace_id: str = "default") -> None:
        self._upstreams[upstream_id] = (workspace_id, name)
        self._targets.setdefault(upstream_id, {})

    def remove_upstream(self, upstream_id: str) -> None:
        self._upstreams.pop(upstream_id, None)
        self._targets.pop(upstream_id, None)

    def set_target(
        self,
        upstream_id: str,
        target: str,
        addresses: Optional[List[TargetAddress]],
    ) -> None:
        if upstream_id not in self._upstreams:
            raise KeyError(f"Unknown upstream: {upstream_id}")
        self._targets[upstream_id][target] = addresses

    def remove_target(self, upstream_id: str, target: str) -> None:
        self._targets.get(upstream_id, {}).pop(target, None)

    def get_all_upstreams(self) -> Dict[str, str]:
        return {
            f"{workspace_id}:{name}": upstream_id
            for upstream_id, (workspace_id, name) in self._upstreams.items()
        }

    async def get_upstream_health(self, upstream_id: str) -> Dict[str, TargetHealth]:
        targets = self._targets.get(upstream_id)
        if targets is None:
            raise UpstreamHealthError(f"upstream {upstream_id} not found")
        return {
            target: TargetHealth(addresses=addresses)
            for target, addresses in targets.items()
        }
