"""Orchestration engine: Orchestrator, RequestBuilder, backends, StatusAggregator."""

from sluice.engine.direct_deployer import DirectDeployer
from sluice.engine.orchestrator import Orchestrator
from sluice.engine.release_deployer import ReleaseManagedDeployer
from sluice.engine.request_builder import RequestBuilder
from sluice.engine.status import StatusAggregator, StatusWorkerPool, merge_states

__all__ = [
    "DirectDeployer",
    "Orchestrator",
    "ReleaseManagedDeployer",
    "RequestBuilder",
    "StatusAggregator",
    "StatusWorkerPool",
    "merge_states",
]
