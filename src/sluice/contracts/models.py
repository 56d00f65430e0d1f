"""Dataclass models shared between the builder, deployers and orchestrator.

These models define:
- Stream topology (StreamDefinition, ComponentNode)
- Deployment requests and their per-component outcomes
- Persisted records (DeploymentRecord, StreamDeployment)
- Release-managed descriptors (PackageIdentifier, ReleaseDescriptor, Release)
- Status views (ComponentStatus, StreamStatus)
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sluice.contracts.enums import (
    BackendKind,
    ComponentRole,
    DeploymentState,
    InstanceState,
)
from sluice.contracts.errors import ValidationError


def infer_role(index: int, count: int) -> ComponentRole:
    """Role implied by a component's position in a linear stream."""
    if index == 0:
        return ComponentRole.SOURCE
    if index == count - 1:
        return ComponentRole.SINK
    return ComponentRole.PROCESSOR


@dataclass(frozen=True)
class ComponentNode:
    """One deployable unit within a stream."""

    label: str
    artifact: str
    role: ComponentRole
    properties: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class StreamDefinition:
    """A named linear pipeline: source | processor* | sink.

    Edges are implied by the order of ``components``.
    """

    name: str
    components: tuple[ComponentNode, ...]

    @property
    def labels(self) -> list[str]:
        """Component labels in pipeline order."""
        return [c.label for c in self.components]

    def validate(self) -> None:
        """Check the topology is a well-formed linear chain.

        Raises:
            ValidationError: If labels repeat or roles are out of place
        """
        if not self.name:
            raise ValidationError("Stream name must not be empty")
        if len(self.components) < 2:
            raise ValidationError(
                f"Stream '{self.name}' needs at least a source and a sink, "
                f"got {len(self.components)} component(s)"
            )
        seen: set[str] = set()
        last = len(self.components) - 1
        for index, component in enumerate(self.components):
            if not component.label:
                raise ValidationError(
                    f"Stream '{self.name}': component {index} has an empty label"
                )
            if component.label in seen:
                raise ValidationError(
                    f"Stream '{self.name}': duplicate component label '{component.label}'"
                )
            seen.add(component.label)
            expected = infer_role(index, last + 1)
            if component.role != expected:
                raise ValidationError(
                    f"Stream '{self.name}': component '{component.label}' at "
                    f"position {index} must be a {expected.value}, "
                    f"not a {component.role.value}"
                )


@dataclass(frozen=True)
class ResolvedArtifact:
    """Location of a component artifact plus the defaults it declares."""

    uri: str
    defaults: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ComponentDeploymentRequest:
    """Everything a backend needs to deploy one component.

    Attributes:
        stream_name: Owning stream
        label: Component label (join key to the identifier store)
        role: Position in the stream
        index: Zero-based position in pipeline order
        artifact_uri: Resolved artifact location
        properties: Fully merged application properties
        deployer_properties: Deployer-level properties (e.g. count), as given
    """

    stream_name: str
    label: str
    role: ComponentRole
    index: int
    artifact_uri: str
    properties: dict[str, str]
    deployer_properties: dict[str, str] = field(default_factory=dict)

    @property
    def key(self) -> str:
        """Stable ``stream.label`` key for this component."""
        return f"{self.stream_name}.{self.label}"


@dataclass(frozen=True)
class DeploymentOutcome:
    """Result of deploying one component."""

    label: str
    deployment_id: str | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class DeploymentRecord:
    """Persisted mapping from (stream, label) to a backend deployment id."""

    stream_name: str
    label: str
    deployment_id: str
    created_at: datetime


@dataclass(frozen=True)
class StreamDeployment:
    """Persisted per-stream deployment metadata."""

    stream_name: str
    backend: BackendKind
    deployment_properties: dict[str, str]
    created_at: datetime


@dataclass(frozen=True)
class PackageIdentifier:
    """Identifies a release package in a release manager repository."""

    name: str
    version: str
    repository: str | None = None


@dataclass(frozen=True)
class ReleaseDescriptor:
    """A whole stream packaged as one release."""

    release_name: str
    package: PackageIdentifier
    yaml_overrides: str = ""


@dataclass(frozen=True)
class UpdateRequest:
    """Data required to upgrade a release-managed stream."""

    release_name: str
    package_identifier: PackageIdentifier
    yaml_overrides: str = ""


@dataclass(frozen=True)
class Release:
    """A release as reported back by the release manager.

    ``deployment_ids`` maps component label to the deployment id the
    release manager assigned to that component in this version.
    """

    name: str
    version: int
    status: str
    deployment_ids: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ComponentStatus:
    """Live status of one component instance."""

    label: str
    deployment_id: str | None
    state: InstanceState
    error: str | None = None


@dataclass
class StreamStatus:
    """Aggregate stream state plus the per-component view it was derived from."""

    stream_name: str
    state: DeploymentState
    components: list[ComponentStatus] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly representation."""
        return {
            "stream": self.stream_name,
            "state": self.state.value,
            "components": [
                {
                    "label": c.label,
                    "deployment_id": c.deployment_id,
                    "state": c.state.value,
                    "error": c.error,
                }
                for c in self.components
            ],
        }
