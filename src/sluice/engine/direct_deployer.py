# src/sluice/engine/direct_deployer.py
"""DirectDeployer: per-component imperative deploy/undeploy.

Ordering:
- Deploy runs in reverse pipeline order (sink first, source last) so every
  consumer is listening before its producer starts emitting.
- Undeploy runs in forward order (source first, sink last) so producers
  stop before the consumers they write to disappear.

Each component is independent. A failure never rolls back components that
already deployed; it is reported as that component's outcome and the
sequence continues. Successful deploys are recorded immediately, so a crash
mid-sequence leaves records for exactly the components that are running.
"""

import structlog

from sluice.contracts import (
    BackendKind,
    ComponentDeploymentRequest,
    DeploymentOutcome,
    DeploymentRecord,
    InstanceDeployer,
    InstanceState,
    StreamDefinition,
    UndeployFailedError,
    UnsupportedOperationError,
    UpdateRequest,
)
from sluice.core.store import DeploymentIdStore


def _describe(error: Exception) -> str:
    return f"{type(error).__name__}: {error}"


class DirectDeployer:
    """Deploys stream components one by one through an InstanceDeployer."""

    kind = BackendKind.DIRECT

    def __init__(
        self,
        instance_deployer: InstanceDeployer,
        store: DeploymentIdStore,
        *,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._deployer = instance_deployer
        self._store = store
        self._logger = logger or structlog.get_logger(__name__)

    def deploy(
        self,
        stream: StreamDefinition,
        requests: list[ComponentDeploymentRequest],
    ) -> list[DeploymentOutcome]:
        """Deploy components sink-first.

        Returns:
            Outcomes in the order the components were attempted
        """
        outcomes: list[DeploymentOutcome] = []
        for request in sorted(requests, key=lambda r: r.index, reverse=True):
            log = self._logger.bind(stream=stream.name, label=request.label)
            try:
                deployment_id = self._deployer.deploy_one(request)
            except Exception as e:
                # Collaborator boundary: any failure belongs to this component only
                log.warning("Component deploy failed", error=str(e))
                outcomes.append(DeploymentOutcome(label=request.label, error=_describe(e)))
                continue

            self._store.save(stream.name, request.label, deployment_id)
            log.info("Component deployed", deployment_id=deployment_id)
            outcomes.append(
                DeploymentOutcome(label=request.label, deployment_id=deployment_id)
            )
        return outcomes

    def undeploy(self, stream: StreamDefinition) -> None:
        """Undeploy recorded components source-first.

        Records whose label is no longer part of the definition are
        undeployed after the known components.

        Raises:
            UndeployFailedError: If any component could not be undeployed;
                its record is kept so the undeploy can be retried
        """
        records = {r.label: r for r in self._store.find_all(stream.name)}
        order = [label for label in stream.labels if label in records]
        order.extend(sorted(set(records) - set(order)))

        failures: dict[str, str] = {}
        for label in order:
            record = records[label]
            log = self._logger.bind(
                stream=stream.name, label=label, deployment_id=record.deployment_id
            )
            try:
                self._deployer.undeploy_one(record.deployment_id)
            except Exception as e:
                log.warning("Component undeploy failed", error=str(e))
                failures[label] = _describe(e)
                continue
            self._store.delete(stream.name, label)
            log.info("Component undeployed")

        if failures:
            raise UndeployFailedError(stream.name, failures)

    def update(self, stream: StreamDefinition, request: UpdateRequest) -> None:
        raise UnsupportedOperationError(
            f"Stream '{stream.name}': update is only supported by the "
            "release-managed backend"
        )

    def rollback(self, stream_name: str, version: int) -> None:
        raise UnsupportedOperationError(
            f"Stream '{stream_name}': rollback is only supported by the "
            "release-managed backend"
        )

    def instance_status(self, record: DeploymentRecord) -> InstanceState:
        return self._deployer.status_one(record.deployment_id)
