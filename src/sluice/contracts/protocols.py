"""Protocols for the collaborators the orchestrator consumes.

These protocols define what methods collaborators must implement.
They're used for type checking, not runtime enforcement.

Collaborators:
- ArtifactResolver: resolves a named artifact to a downloadable location
- InstanceDeployer: deploys/undeploys/queries single component instances
- ReleaseManager: installs/upgrades/rolls back/deletes whole-stream releases
- StreamDefinitionRepository: looks up stream definitions by name
"""

from typing import Protocol, runtime_checkable

from sluice.contracts.enums import InstanceState
from sluice.contracts.models import (
    ComponentDeploymentRequest,
    Release,
    ReleaseDescriptor,
    ResolvedArtifact,
    StreamDefinition,
)


@runtime_checkable
class ArtifactResolver(Protocol):
    """Resolves artifact references.

    Implementations raise UnresolvedArtifactError when ``ref`` is unknown
    or its location cannot be determined.
    """

    def resolve(self, ref: str) -> ResolvedArtifact:
        ...


@runtime_checkable
class InstanceDeployer(Protocol):
    """Generic per-component application deployer.

    Any exception raised by these methods is treated as a failure of that
    single component.
    """

    def deploy_one(self, request: ComponentDeploymentRequest) -> str:
        """Deploy one component and return its deployment id."""
        ...

    def undeploy_one(self, deployment_id: str) -> None:
        ...

    def status_one(self, deployment_id: str) -> InstanceState:
        ...


@runtime_checkable
class ReleaseManager(Protocol):
    """Release manager operating on opaque whole-stream packages.

    Example:
        class SkipperLike:
            def install(self, descriptor: ReleaseDescriptor) -> Release:
                response = http.post("/releases", json=...)
                return Release(name=..., version=1, status="deployed", ...)
    """

    def install(self, descriptor: ReleaseDescriptor) -> Release:
        ...

    def upgrade(self, descriptor: ReleaseDescriptor) -> Release:
        ...

    def rollback(self, release_name: str, version: int) -> Release:
        ...

    def delete(self, release_name: str) -> None:
        ...

    def instance_status(self, release_name: str, deployment_id: str) -> InstanceState:
        ...


@runtime_checkable
class StreamDefinitionRepository(Protocol):
    """Read access to stream definitions."""

    def find(self, name: str) -> StreamDefinition | None:
        ...

    def names(self) -> list[str]:
        ...
