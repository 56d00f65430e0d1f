"""Repositories over the deployment store tables.

DeploymentIdStore is the only cross-call shared mutable state in the
system. Every write is a single transaction on one (stream, label) key, so
concurrent deploys of different streams never contend on the same row.
"""

import json
from datetime import UTC, datetime

from sqlalchemy import delete, select

from sluice.contracts import BackendKind, DeploymentRecord, StreamDeployment
from sluice.core.store.database import DeploymentDB
from sluice.core.store.schema import deployment_ids_table, stream_deployments_table


def _now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class DeploymentIdStore:
    """Maps (stream name, component label) to a backend deployment id.

    Example:
        store = DeploymentIdStore(DeploymentDB.in_memory())
        store.save("orders", "ingest", "orders.ingest-v1")
        store.find_all("orders")  # [DeploymentRecord(label="ingest", ...)]
    """

    def __init__(self, db: DeploymentDB) -> None:
        self._db = db

    def save(self, stream_name: str, label: str, deployment_id: str) -> DeploymentRecord:
        """Record a successful component deploy, replacing any previous record."""
        record = DeploymentRecord(
            stream_name=stream_name,
            label=label,
            deployment_id=deployment_id,
            created_at=_now(),
        )
        with self._db.connection() as conn:
            conn.execute(
                delete(deployment_ids_table).where(
                    (deployment_ids_table.c.stream_name == stream_name)
                    & (deployment_ids_table.c.label == label)
                )
            )
            conn.execute(
                deployment_ids_table.insert().values(
                    stream_name=record.stream_name,
                    label=record.label,
                    deployment_id=record.deployment_id,
                    created_at=record.created_at,
                )
            )
        return record

    def find_all(self, stream_name: str) -> list[DeploymentRecord]:
        """All records of a stream, ordered by label."""
        with self._db.connection() as conn:
            rows = conn.execute(
                select(deployment_ids_table)
                .where(deployment_ids_table.c.stream_name == stream_name)
                .order_by(deployment_ids_table.c.label)
            ).fetchall()

        return [
            DeploymentRecord(
                stream_name=row.stream_name,
                label=row.label,
                deployment_id=row.deployment_id,
                created_at=row.created_at,
            )
            for row in rows
        ]

    def delete(self, stream_name: str, label: str) -> None:
        with self._db.connection() as conn:
            conn.execute(
                delete(deployment_ids_table).where(
                    (deployment_ids_table.c.stream_name == stream_name)
                    & (deployment_ids_table.c.label == label)
                )
            )

    def replace_all(self, stream_name: str, deployment_ids: dict[str, str]) -> list[DeploymentRecord]:
        """Replace every record of a stream in one transaction.

        Used by the release-managed path, where a release version owns the
        complete set of component deployments.
        """
        now = _now()
        records = [
            DeploymentRecord(
                stream_name=stream_name,
                label=label,
                deployment_id=deployment_id,
                created_at=now,
            )
            for label, deployment_id in deployment_ids.items()
        ]
        with self._db.connection() as conn:
            conn.execute(
                delete(deployment_ids_table).where(
                    deployment_ids_table.c.stream_name == stream_name
                )
            )
            for record in records:
                conn.execute(
                    deployment_ids_table.insert().values(
                        stream_name=record.stream_name,
                        label=record.label,
                        deployment_id=record.deployment_id,
                        created_at=record.created_at,
                    )
                )
        return records

    def stream_names(self) -> list[str]:
        """Names of all streams that have at least one record."""
        with self._db.connection() as conn:
            rows = conn.execute(
                select(deployment_ids_table.c.stream_name)
                .distinct()
                .order_by(deployment_ids_table.c.stream_name)
            ).fetchall()
        return [row.stream_name for row in rows]


class StreamDeploymentStore:
    """Per-stream deployment metadata: backend kind and the properties used."""

    def __init__(self, db: DeploymentDB) -> None:
        self._db = db

    def save(
        self,
        stream_name: str,
        backend: BackendKind,
        deployment_properties: dict[str, str],
    ) -> StreamDeployment:
        deployment = StreamDeployment(
            stream_name=stream_name,
            backend=backend,
            deployment_properties=dict(deployment_properties),
            created_at=_now(),
        )
        with self._db.connection() as conn:
            conn.execute(
                delete(stream_deployments_table).where(
                    stream_deployments_table.c.stream_name == stream_name
                )
            )
            conn.execute(
                stream_deployments_table.insert().values(
                    stream_name=deployment.stream_name,
                    backend=deployment.backend.value,
                    properties_json=json.dumps(
                        deployment.deployment_properties, sort_keys=True
                    ),
                    created_at=deployment.created_at,
                )
            )
        return deployment

    def find(self, stream_name: str) -> StreamDeployment | None:
        with self._db.connection() as conn:
            row = conn.execute(
                select(stream_deployments_table).where(
                    stream_deployments_table.c.stream_name == stream_name
                )
            ).fetchone()

        if row is None:
            return None
        return StreamDeployment(
            stream_name=row.stream_name,
            backend=BackendKind(row.backend),
            deployment_properties=json.loads(row.properties_json),
            created_at=row.created_at,
        )

    def delete(self, stream_name: str) -> None:
        with self._db.connection() as conn:
            conn.execute(
                delete(stream_deployments_table).where(
                    stream_deployments_table.c.stream_name == stream_name
                )
            )
