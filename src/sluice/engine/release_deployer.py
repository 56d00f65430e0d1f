# src/sluice/engine/release_deployer.py
"""ReleaseManagedDeployer: the whole stream as one versioned release.

The stream is packaged (component artifacts, merged properties and deployer
properties rendered as YAML) and handed to a release manager as a single
unit. Component ordering and partial-failure handling are the release
manager's business; any failure it reports is surfaced unchanged inside a
ReleaseManagerError.

After every install/upgrade/rollback the stream's deployment records are
replaced wholesale with the per-component ids the release manager reports
for the resulting version.
"""

from collections.abc import Callable
from typing import TypeVar

import structlog
import yaml

from sluice.contracts import (
    BackendKind,
    ComponentDeploymentRequest,
    DeploymentOutcome,
    DeploymentRecord,
    InstanceState,
    PackageIdentifier,
    Release,
    ReleaseDescriptor,
    ReleaseManager,
    ReleaseManagerError,
    StreamDefinition,
    UpdateRequest,
    ValidationError,
)
from sluice.core.store import DeploymentIdStore

T = TypeVar("T")


def render_package_yaml(requests: list[ComponentDeploymentRequest]) -> str:
    """Render component requests as the release's YAML configuration."""
    apps = {
        r.label: {
            "index": r.index,
            "role": r.role.value,
            "artifact": r.artifact_uri,
            "properties": dict(sorted(r.properties.items())),
            "deployer": dict(sorted(r.deployer_properties.items())),
        }
        for r in sorted(requests, key=lambda r: r.index)
    }
    return yaml.safe_dump({"apps": apps}, sort_keys=False)


class ReleaseManagedDeployer:
    """Delegates stream lifecycle to a release manager."""

    kind = BackendKind.RELEASE_MANAGED

    def __init__(
        self,
        release_manager: ReleaseManager,
        store: DeploymentIdStore,
        *,
        package_repository: str = "local",
        package_version: str = "1.0.0",
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._manager = release_manager
        self._store = store
        self._package_repository = package_repository
        self._package_version = package_version
        self._logger = logger or structlog.get_logger(__name__)

    # === Release lifecycle ===

    def install(self, stream_name: str, descriptor: ReleaseDescriptor) -> Release:
        release = self._call(stream_name, "install", lambda: self._manager.install(descriptor))
        self._record(stream_name, release)
        return release

    def upgrade(self, stream_name: str, descriptor: ReleaseDescriptor) -> Release:
        release = self._call(stream_name, "upgrade", lambda: self._manager.upgrade(descriptor))
        self._record(stream_name, release)
        return release

    def rollback(self, stream_name: str, version: int) -> Release:
        """Roll the stream back to ``version`` (0 means the previous version)."""
        if version < 0:
            raise ValidationError(f"Rollback version must be >= 0, got {version}")
        release = self._call(
            stream_name, "rollback", lambda: self._manager.rollback(stream_name, version)
        )
        self._record(stream_name, release)
        return release

    def delete(self, stream_name: str) -> None:
        self._call(stream_name, "delete", lambda: self._manager.delete(stream_name))
        self._store.replace_all(stream_name, {})
        self._logger.info("Release deleted", stream=stream_name)

    # === StreamBackend ===

    def deploy(
        self,
        stream: StreamDefinition,
        requests: list[ComponentDeploymentRequest],
    ) -> list[DeploymentOutcome]:
        """Install the stream as a release.

        Components the release manager reports no deployment id for are
        returned as failed outcomes.
        """
        release = self.install(stream.name, self.package(stream.name, requests))
        return [
            DeploymentOutcome(label=r.label, deployment_id=release.deployment_ids[r.label])
            if r.label in release.deployment_ids
            else DeploymentOutcome(
                label=r.label,
                error=f"release '{release.name}' v{release.version} reported no deployment",
            )
            for r in requests
        ]

    def undeploy(self, stream: StreamDefinition) -> None:
        self.delete(stream.name)

    def update(self, stream: StreamDefinition, request: UpdateRequest) -> None:
        if request.release_name != stream.name:
            raise ValidationError(
                f"Release name '{request.release_name}' does not match stream '{stream.name}'"
            )
        self.upgrade(
            stream.name,
            ReleaseDescriptor(
                release_name=request.release_name,
                package=request.package_identifier,
                yaml_overrides=request.yaml_overrides,
            ),
        )

    def instance_status(self, record: DeploymentRecord) -> InstanceState:
        return self._manager.instance_status(record.stream_name, record.deployment_id)

    # === Helpers ===

    def package(
        self, stream_name: str, requests: list[ComponentDeploymentRequest]
    ) -> ReleaseDescriptor:
        """Package the stream's component requests as a release descriptor."""
        return ReleaseDescriptor(
            release_name=stream_name,
            package=PackageIdentifier(
                name=stream_name,
                version=self._package_version,
                repository=self._package_repository,
            ),
            yaml_overrides=render_package_yaml(requests),
        )

    def _record(self, stream_name: str, release: Release) -> None:
        self._store.replace_all(stream_name, release.deployment_ids)
        self._logger.info(
            "Release recorded",
            stream=stream_name,
            version=release.version,
            status=release.status,
            components=sorted(release.deployment_ids),
        )

    def _call(self, stream_name: str, operation: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except ReleaseManagerError:
            raise
        except Exception as e:
            self._logger.warning(
                "Release manager call failed",
                stream=stream_name,
                operation=operation,
                error=str(e),
            )
            raise ReleaseManagerError(str(e)) from e
