"""Deployment store: persistent stream/component deployment state."""

from sluice.core.store.database import DeploymentDB
from sluice.core.store.repositories import DeploymentIdStore, StreamDeploymentStore
from sluice.core.store.schema import metadata

__all__ = [
    "DeploymentDB",
    "DeploymentIdStore",
    "StreamDeploymentStore",
    "metadata",
]
