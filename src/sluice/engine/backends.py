"""Backend protocol: the operations the orchestrator delegates to.

Exactly one backend is held by an Orchestrator, chosen at construction
time. Two implementations exist:

- DirectDeployer: per-component deploy/undeploy in a fixed order
- ReleaseManagedDeployer: the whole stream as one versioned release
"""

from typing import Protocol, runtime_checkable

from sluice.contracts import (
    BackendKind,
    ComponentDeploymentRequest,
    DeploymentOutcome,
    DeploymentRecord,
    InstanceState,
    Release,
    StreamDefinition,
    UpdateRequest,
)


@runtime_checkable
class StreamBackend(Protocol):
    """Lifecycle operations for one stream on one execution backend."""

    kind: BackendKind

    def deploy(
        self,
        stream: StreamDefinition,
        requests: list[ComponentDeploymentRequest],
    ) -> list[DeploymentOutcome]:
        """Deploy every component; return one outcome per component attempted."""
        ...

    def undeploy(self, stream: StreamDefinition) -> None:
        ...

    def update(self, stream: StreamDefinition, request: UpdateRequest) -> None:
        ...

    def rollback(self, stream_name: str, version: int) -> Release | None:
        ...

    def instance_status(self, record: DeploymentRecord) -> InstanceState:
        """Query the live state of one recorded component instance."""
        ...
