"""Shared test fixtures and fake collaborators.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/
"""

import os
from collections.abc import Iterator
from threading import Lock

import pytest
import yaml
from hypothesis import Phase, Verbosity, settings

from sluice.contracts import (
    BackendError,
    ComponentDeploymentRequest,
    ComponentNode,
    ComponentRole,
    InstanceState,
    Release,
    ReleaseDescriptor,
    ReleaseManagerError,
    StreamDefinition,
)
from sluice.core.config import AppSettings
from sluice.core.registry import ArtifactRegistry, InMemoryStreamDefinitionRepository
from sluice.core.store import DeploymentDB, DeploymentIdStore, StreamDeploymentStore

# =============================================================================
# Hypothesis Configuration
# =============================================================================

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


# =============================================================================
# Builders
# =============================================================================


def make_stream(name: str, *labels: str, artifact: str | None = None) -> StreamDefinition:
    """Linear stream whose components use ``artifact`` (default: the label)."""
    count = len(labels)
    components = []
    for index, label in enumerate(labels):
        if index == 0:
            role = ComponentRole.SOURCE
        elif index == count - 1:
            role = ComponentRole.SINK
        else:
            role = ComponentRole.PROCESSOR
        components.append(
            ComponentNode(label=label, artifact=artifact or label, role=role)
        )
    return StreamDefinition(name=name, components=tuple(components))


def make_registry(*refs: str, defaults: dict[str, str] | None = None) -> ArtifactRegistry:
    return ArtifactRegistry(
        {
            ref: AppSettings(uri=f"docker:sluice/{ref}:1.0", defaults=defaults or {})
            for ref in refs
        }
    )


# =============================================================================
# Fake collaborators
# =============================================================================


class FakeInstanceDeployer:
    """In-process InstanceDeployer that records the order of every call.

    Attributes:
        calls: ("deploy" | "undeploy", label) in call order
        fail_deploy: labels whose deploy raises BackendError
        fail_undeploy: labels whose undeploy raises BackendError
        states: deployment_id -> InstanceState reported by status_one
        status_errors: deployment ids whose status_one raises
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.fail_deploy: set[str] = set()
        self.fail_undeploy: set[str] = set()
        self.states: dict[str, InstanceState] = {}
        self.status_errors: set[str] = set()
        self.requests: dict[str, ComponentDeploymentRequest] = {}
        self._labels: dict[str, str] = {}
        self._lock = Lock()

    def deploy_one(self, request: ComponentDeploymentRequest) -> str:
        with self._lock:
            self.calls.append(("deploy", request.label))
        if request.label in self.fail_deploy:
            raise BackendError(f"no capacity for {request.label}")
        deployment_id = f"{request.stream_name}.{request.label}-v1"
        with self._lock:
            self.requests[request.label] = request
            self._labels[deployment_id] = request.label
            self.states[deployment_id] = InstanceState.DEPLOYED
        return deployment_id

    def undeploy_one(self, deployment_id: str) -> None:
        label = self._labels.get(deployment_id, deployment_id)
        with self._lock:
            self.calls.append(("undeploy", label))
        if label in self.fail_undeploy:
            raise BackendError(f"cannot stop {label}")
        with self._lock:
            self.states.pop(deployment_id, None)

    def status_one(self, deployment_id: str) -> InstanceState:
        if deployment_id in self.status_errors:
            raise BackendError(f"status unavailable for {deployment_id}")
        return self.states.get(deployment_id, InstanceState.UNDEPLOYED)

    def order(self, action: str) -> list[str]:
        return [label for a, label in self.calls if a == action]


class FakeReleaseManager:
    """In-process ReleaseManager keeping a version history per release."""

    def __init__(self) -> None:
        self.history: dict[str, list[Release]] = {}
        self.descriptors: list[ReleaseDescriptor] = []
        self.deleted: list[str] = []
        self.fail_with: str | None = None
        self.states: dict[str, InstanceState] = {}

    def _next(self, descriptor: ReleaseDescriptor) -> Release:
        if self.fail_with is not None:
            raise ReleaseManagerError(self.fail_with)
        self.descriptors.append(descriptor)
        versions = self.history.setdefault(descriptor.release_name, [])
        version = len(versions) + 1
        labels = _labels_from_yaml(descriptor.yaml_overrides) or (
            versions[-1].deployment_ids.keys() if versions else []
        )
        release = Release(
            name=descriptor.release_name,
            version=version,
            status="deployed",
            deployment_ids={
                label: f"{descriptor.release_name}.{label}-v{version}" for label in labels
            },
        )
        versions.append(release)
        for deployment_id in release.deployment_ids.values():
            self.states[deployment_id] = InstanceState.DEPLOYED
        return release

    def install(self, descriptor: ReleaseDescriptor) -> Release:
        return self._next(descriptor)

    def upgrade(self, descriptor: ReleaseDescriptor) -> Release:
        if descriptor.release_name not in self.history:
            raise ReleaseManagerError(f"Release '{descriptor.release_name}' not found")
        return self._next(descriptor)

    def rollback(self, release_name: str, version: int) -> Release:
        if self.fail_with is not None:
            raise ReleaseManagerError(self.fail_with)
        versions = self.history.get(release_name)
        if not versions:
            raise ReleaseManagerError(f"Release '{release_name}' not found")
        target = versions[-2] if version == 0 else versions[version - 1]
        release = Release(
            name=release_name,
            version=len(versions) + 1,
            status="deployed",
            deployment_ids=dict(target.deployment_ids),
        )
        versions.append(release)
        return release

    def delete(self, release_name: str) -> None:
        if self.fail_with is not None:
            raise ReleaseManagerError(self.fail_with)
        self.deleted.append(release_name)
        self.history.pop(release_name, None)

    def instance_status(self, release_name: str, deployment_id: str) -> InstanceState:
        return self.states.get(deployment_id, InstanceState.UNKNOWN)


def _labels_from_yaml(text: str) -> list[str]:
    if not text:
        return []
    data = yaml.safe_load(text) or {}
    return list((data.get("apps") or {}).keys())


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def db() -> Iterator[DeploymentDB]:
    database = DeploymentDB.in_memory()
    yield database
    database.close()


@pytest.fixture
def id_store(db: DeploymentDB) -> DeploymentIdStore:
    return DeploymentIdStore(db)


@pytest.fixture
def stream_store(db: DeploymentDB) -> StreamDeploymentStore:
    return StreamDeploymentStore(db)


@pytest.fixture
def instance_deployer() -> FakeInstanceDeployer:
    return FakeInstanceDeployer()


@pytest.fixture
def release_manager() -> FakeReleaseManager:
    return FakeReleaseManager()


@pytest.fixture
def orders_stream() -> StreamDefinition:
    return make_stream("orders", "ingest", "enrich", "persist")


@pytest.fixture
def definitions(orders_stream: StreamDefinition) -> InMemoryStreamDefinitionRepository:
    return InMemoryStreamDefinitionRepository({orders_stream.name: orders_stream})


@pytest.fixture
def registry() -> ArtifactRegistry:
    return make_registry("ingest", "enrich", "persist")


@pytest.fixture
def stream_factory():
    """Build linear streams: ``stream_factory("orders", "a", "b", "c")``."""
    return make_stream


@pytest.fixture
def registry_factory():
    """Build artifact registries: ``registry_factory("a", "b", defaults={...})``."""
    return make_registry
