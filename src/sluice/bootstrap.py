"""Process wiring: settings -> fully assembled Orchestrator.

Everything is constructed once here and torn down together by
Runtime.close(). Collaborators may be injected (tests, embedding
applications); otherwise HTTP clients are built from settings.
"""

from dataclasses import dataclass, field
from typing import Any

import structlog

from sluice.clients import HTTPInstanceDeployer, HTTPReleaseManager
from sluice.contracts import (
    BackendKind,
    InstanceDeployer,
    ReleaseManager,
    StreamDefinitionRepository,
)
from sluice.core.config import SluiceSettings
from sluice.core.logging import get_logger
from sluice.core.registry import ArtifactRegistry, InMemoryStreamDefinitionRepository
from sluice.core.store import DeploymentDB, DeploymentIdStore, StreamDeploymentStore
from sluice.engine.backends import StreamBackend
from sluice.engine.direct_deployer import DirectDeployer
from sluice.engine.orchestrator import Orchestrator
from sluice.engine.release_deployer import ReleaseManagedDeployer
from sluice.engine.status import StatusAggregator, StatusWorkerPool


class MissingCollaboratorError(RuntimeError):
    """A collaborator required by the configured backend is absent."""


@dataclass
class Runtime:
    """The assembled orchestrator and the resources it owns."""

    orchestrator: Orchestrator
    db: DeploymentDB
    pool: StatusWorkerPool
    closeables: list[Any] = field(default_factory=list)

    def close(self) -> None:
        self.pool.shutdown()
        for resource in self.closeables:
            resource.close()
        self.db.close()

    def __enter__(self) -> "Runtime":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def build_runtime(
    settings: SluiceSettings,
    *,
    db: DeploymentDB | None = None,
    definitions: StreamDefinitionRepository | None = None,
    instance_deployer: InstanceDeployer | None = None,
    release_manager: ReleaseManager | None = None,
    logger: structlog.stdlib.BoundLogger | None = None,
) -> Runtime:
    """Assemble the orchestrator for ``settings``.

    Every component logs through ``logger`` (default: the "sluice" logger).

    Raises:
        MissingCollaboratorError: If the configured backend's collaborator
            is neither injected nor configured
    """
    logger = logger or get_logger("sluice")
    db = db or DeploymentDB(settings.store.url)
    id_store = DeploymentIdStore(db)
    stream_store = StreamDeploymentStore(db)
    closeables: list[Any] = []

    backend: StreamBackend
    if settings.backend.kind == BackendKind.DIRECT:
        if instance_deployer is None:
            if settings.backend.deployer is None:
                raise MissingCollaboratorError(
                    "The direct backend requires an instance deployer "
                    "(configure backend.deployer.url)"
                )
            client = HTTPInstanceDeployer(
                settings.backend.deployer.url,
                timeout=settings.backend.deployer.timeout_seconds,
                logger=logger,
            )
            closeables.append(client)
            instance_deployer = client
        backend = DirectDeployer(instance_deployer, id_store, logger=logger)
    else:
        rm_settings = settings.backend.release_manager
        if release_manager is None:
            if rm_settings is None:
                raise MissingCollaboratorError(
                    "The release-managed backend requires a release manager "
                    "(configure backend.release_manager.url)"
                )
            client_rm = HTTPReleaseManager(
                rm_settings.url, timeout=rm_settings.timeout_seconds, logger=logger
            )
            closeables.append(client_rm)
            release_manager = client_rm
        backend = ReleaseManagedDeployer(
            release_manager,
            id_store,
            package_repository=rm_settings.package_repository if rm_settings else "local",
            package_version=rm_settings.package_version if rm_settings else "1.0.0",
            logger=logger,
        )

    pool = StatusWorkerPool(
        pool_size=settings.status.pool_size,
        timeout_seconds=settings.status.timeout_seconds,
        logger=logger,
    )
    orchestrator = Orchestrator(
        definitions=definitions
        or InMemoryStreamDefinitionRepository.from_settings(settings.streams),
        resolver=ArtifactRegistry(settings.apps),
        backend=backend,
        id_store=id_store,
        stream_store=stream_store,
        aggregator=StatusAggregator(id_store, backend, pool, logger=logger),
        common_properties=settings.common_properties,
        logger=logger,
    )
    logger.info(
        "Orchestrator assembled",
        backend=backend.kind.value,
        status_pool_size=pool.pool_size,
    )
    return Runtime(orchestrator=orchestrator, db=db, pool=pool, closeables=closeables)
