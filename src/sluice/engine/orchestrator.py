# src/sluice/engine/orchestrator.py
"""Orchestrator: stream lifecycle facade.

Coordinates:
- Precondition checks (stream exists, current state, backend mode)
- Request building from definition + deployment properties
- Delegation to the single configured backend
- Stream deployment metadata
- Status queries through the StatusAggregator

State machine per stream:

    undeployed -> deploying -> {deployed | partial | failed}
    deployed | partial -> undeploying -> undeployed
    deployed -> upgrading -> {deployed | failed}     (release-managed only)

The orchestrator does not serialize concurrent calls for the same stream;
callers must not issue two mutating operations against one stream at the
same time. Transitional states are tracked in memory only so that status
queries issued while an operation is in flight can report them.
"""

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from threading import Lock

import structlog

from sluice.contracts import (
    AlreadyDeployedError,
    ArtifactResolver,
    BackendKind,
    DeploymentFailedError,
    DeploymentModeConflictError,
    DeploymentState,
    StreamDefinition,
    StreamDefinitionRepository,
    StreamDeployment,
    StreamNotFoundError,
    StreamStatus,
    UnsupportedOperationError,
    UpdateRequest,
)
from sluice.core.store import DeploymentIdStore, StreamDeploymentStore
from sluice.engine.backends import StreamBackend
from sluice.engine.request_builder import RequestBuilder
from sluice.engine.status import StatusAggregator


class Orchestrator:
    """Public entry point for deploying, updating and inspecting streams.

    Example:
        orchestrator = Orchestrator(
            definitions=repository,
            resolver=registry,
            backend=DirectDeployer(http_deployer, id_store),
            id_store=id_store,
            stream_store=stream_store,
            aggregator=StatusAggregator(id_store, backend, pool),
        )
        orchestrator.deploy("orders", {"deployer.enrich.count": "2"})
        orchestrator.status("orders").state  # DeploymentState.DEPLOYED
    """

    def __init__(
        self,
        *,
        definitions: StreamDefinitionRepository,
        resolver: ArtifactResolver,
        backend: StreamBackend,
        id_store: DeploymentIdStore,
        stream_store: StreamDeploymentStore,
        aggregator: StatusAggregator,
        builder: RequestBuilder | None = None,
        common_properties: Mapping[str, str] | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._definitions = definitions
        self._resolver = resolver
        self._backend = backend
        self._id_store = id_store
        self._stream_store = stream_store
        self._aggregator = aggregator
        self._logger = logger or structlog.get_logger(__name__)
        self._builder = builder or RequestBuilder(logger=self._logger)
        self._common_properties = dict(common_properties or {})
        # Guards the dict only; operations themselves are not serialized
        self._in_flight: dict[str, DeploymentState] = {}
        self._in_flight_lock = Lock()

    @property
    def backend(self) -> StreamBackend:
        return self._backend

    # === Commands ===

    def deploy(self, name: str, properties: Mapping[str, str] | None = None) -> None:
        """Deploy stream ``name`` with deployment-time ``properties``.

        Raises:
            StreamNotFoundError: No definition for ``name``
            AlreadyDeployedError: Stream is not undeployed
            UnresolvedArtifactError: An artifact could not be resolved
            DeploymentFailedError: One or more components failed
            ReleaseManagerError: Release-managed install failed
        """
        stream = self._find(name)
        properties = dict(properties or {})
        log = self._logger.bind(stream=name, backend=self._backend.kind.value)

        in_flight = self._in_flight.get(name)
        if in_flight is not None:
            raise AlreadyDeployedError(name, in_flight.value)
        recorded = {r.label for r in self._id_store.find_all(name)}
        if recorded:
            deployment = self._stream_store.find(name)
            if deployment is not None:
                self._check_mode(deployment)
            state = (
                DeploymentState.DEPLOYED
                if set(stream.labels) <= recorded
                else DeploymentState.PARTIAL
            )
            raise AlreadyDeployedError(name, state.value)

        requests = self._builder.build(
            stream, properties, self._common_properties, self._resolver
        )

        log.info("Deploying stream", components=stream.labels)
        with self._transition(name, DeploymentState.DEPLOYING):
            outcomes = self._backend.deploy(stream, requests)

        if any(o.succeeded for o in outcomes):
            self._stream_store.save(name, self._backend.kind, properties)

        failures = {o.label: o.error for o in outcomes if o.error is not None}
        if failures:
            log.warning("Stream deploy incomplete", failed_components=list(failures))
            raise DeploymentFailedError(name, failures)
        log.info("Stream deployed")

    def undeploy(self, name: str) -> None:
        """Undeploy stream ``name``; a no-op when nothing is deployed.

        Raises:
            StreamNotFoundError: No definition for ``name``
            UndeployFailedError: Some components could not be undeployed
        """
        stream = self._find(name)
        deployment = self._stream_store.find(name)
        if deployment is not None:
            self._check_mode(deployment)

        if not self._id_store.find_all(name):
            if deployment is not None:
                self._stream_store.delete(name)
            self._logger.debug("Stream already undeployed", stream=name)
            return

        self._logger.info("Undeploying stream", stream=name)
        with self._transition(name, DeploymentState.UNDEPLOYING):
            self._backend.undeploy(stream)
        self._stream_store.delete(name)
        self._logger.info("Stream undeployed", stream=name)

    def update(self, name: str, request: UpdateRequest) -> None:
        """Upgrade a release-managed stream.

        Raises:
            StreamNotFoundError: No definition for ``name``
            UnsupportedOperationError: The active backend is direct, or the
                stream is not deployed
            ReleaseManagerError: The release manager failed the upgrade
        """
        stream = self._find(name)
        if not self._supports_releases():
            # Rejected regardless of request contents
            self._backend.update(stream, request)
            return

        deployment = self._require_deployed(name, "updating")
        self._logger.info(
            "Upgrading stream",
            stream=name,
            package=request.package_identifier.name,
            version=request.package_identifier.version,
        )
        with self._transition(name, DeploymentState.UPGRADING):
            self._backend.update(stream, request)

        self._save_after_release(name, deployment)

    def rollback(self, name: str, version: int) -> None:
        """Roll a release-managed stream back to ``version``.

        Raises:
            StreamNotFoundError: No definition for ``name``
            UnsupportedOperationError: The active backend is direct, or the
                stream is not deployed
            ReleaseManagerError: The release manager failed the rollback
        """
        self._find(name)
        if not self._supports_releases():
            self._backend.rollback(name, version)
            return

        deployment = self._require_deployed(name, "rolling it back")
        self._logger.info("Rolling back stream", stream=name, version=version)
        with self._transition(name, DeploymentState.UPGRADING):
            self._backend.rollback(name, version)

        self._save_after_release(name, deployment)

    # === Queries ===

    def status(self, name: str) -> StreamStatus:
        """Aggregate live status of stream ``name``.

        Never raises for individual instance failures.

        Raises:
            StreamNotFoundError: No definition for ``name``
        """
        stream = self._find(name)
        status = self._aggregator.status(stream)
        in_flight = self._in_flight.get(name)
        if in_flight is not None:
            status.state = in_flight
        return status

    def runtime_status(self) -> list[StreamStatus]:
        """Status of every stream that has deployment records."""
        statuses: list[StreamStatus] = []
        for name in self._id_store.stream_names():
            stream = self._definitions.find(name)
            if stream is None:
                self._logger.warning("Deployment records for unknown stream", stream=name)
                continue
            statuses.append(self.status(name))
        return statuses

    def deployment(self, name: str) -> StreamDeployment | None:
        """Backend and properties the stream was last deployed with."""
        self._find(name)
        return self._stream_store.find(name)

    # === Helpers ===

    def _find(self, name: str) -> StreamDefinition:
        stream = self._definitions.find(name)
        if stream is None:
            raise StreamNotFoundError(name)
        return stream

    def _supports_releases(self) -> bool:
        return self._backend.kind == BackendKind.RELEASE_MANAGED

    def _check_mode(self, deployment: StreamDeployment) -> None:
        if deployment.backend != self._backend.kind:
            raise DeploymentModeConflictError(
                deployment.stream_name,
                deployment.backend.value,
                self._backend.kind.value,
            )

    def _require_deployed(self, name: str, action: str) -> StreamDeployment | None:
        """Mode check plus existing records; returns the stream row, if any."""
        deployment = self._stream_store.find(name)
        if deployment is not None:
            self._check_mode(deployment)
        if not self._id_store.find_all(name):
            raise UnsupportedOperationError(
                f"Stream '{name}' is not deployed; deploy it before {action}"
            )
        return deployment

    def _save_after_release(self, name: str, deployment: StreamDeployment | None) -> None:
        previous = deployment.deployment_properties if deployment is not None else {}
        self._stream_store.save(name, self._backend.kind, previous)

    @contextmanager
    def _transition(self, name: str, state: DeploymentState) -> Iterator[None]:
        with self._in_flight_lock:
            self._in_flight[name] = state
        try:
            yield
        finally:
            with self._in_flight_lock:
                self._in_flight.pop(name, None)
