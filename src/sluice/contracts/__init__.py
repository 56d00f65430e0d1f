"""Shared contracts for cross-boundary data types.

All dataclasses, enums, protocols and errors that cross subsystem
boundaries are defined here.

Import pattern:
    from sluice.contracts import StreamDefinition, DeploymentState
"""

from sluice.contracts.enums import (
    BackendKind,
    ComponentRole,
    DeploymentState,
    InstanceState,
)
from sluice.contracts.errors import (
    AlreadyDeployedError,
    BackendError,
    DeploymentFailedError,
    DeploymentModeConflictError,
    NotFoundError,
    PartialFailureError,
    ReleaseManagerError,
    SluiceError,
    StateConflictError,
    StreamNotFoundError,
    UndeployFailedError,
    UnresolvedArtifactError,
    UnsupportedOperationError,
    ValidationError,
)
from sluice.contracts.models import (
    ComponentDeploymentRequest,
    ComponentNode,
    ComponentStatus,
    DeploymentOutcome,
    DeploymentRecord,
    PackageIdentifier,
    Release,
    ReleaseDescriptor,
    ResolvedArtifact,
    StreamDefinition,
    StreamDeployment,
    StreamStatus,
    UpdateRequest,
    infer_role,
)
from sluice.contracts.protocols import (
    ArtifactResolver,
    InstanceDeployer,
    ReleaseManager,
    StreamDefinitionRepository,
)

__all__ = [
    # enums
    "BackendKind",
    "ComponentRole",
    "DeploymentState",
    "InstanceState",
    # errors
    "AlreadyDeployedError",
    "BackendError",
    "DeploymentFailedError",
    "DeploymentModeConflictError",
    "NotFoundError",
    "PartialFailureError",
    "ReleaseManagerError",
    "SluiceError",
    "StateConflictError",
    "StreamNotFoundError",
    "UndeployFailedError",
    "UnresolvedArtifactError",
    "UnsupportedOperationError",
    "ValidationError",
    # models
    "ComponentDeploymentRequest",
    "ComponentNode",
    "ComponentStatus",
    "DeploymentOutcome",
    "DeploymentRecord",
    "PackageIdentifier",
    "Release",
    "ReleaseDescriptor",
    "ResolvedArtifact",
    "StreamDefinition",
    "StreamDeployment",
    "StreamStatus",
    "UpdateRequest",
    "infer_role",
    # protocols
    "ArtifactResolver",
    "InstanceDeployer",
    "ReleaseManager",
    "StreamDefinitionRepository",
]
