"""Tests for the deployment identifier and stream deployment repositories."""

from sluice.contracts import BackendKind
from sluice.core.store import DeploymentIdStore, StreamDeploymentStore


class TestDeploymentIdStore:
    def test_save_and_find_all(self, id_store: DeploymentIdStore) -> None:
        id_store.save("orders", "ingest", "orders.ingest-v1")

        [record] = id_store.find_all("orders")

        assert record.label == "ingest"
        assert record.deployment_id == "orders.ingest-v1"
        assert record.stream_name == "orders"
        assert record.created_at is not None

    def test_find_all_missing(self, id_store: DeploymentIdStore) -> None:
        assert id_store.find_all("orders") == []

    def test_save_replaces_existing(self, id_store: DeploymentIdStore) -> None:
        id_store.save("orders", "ingest", "orders.ingest-v1")
        id_store.save("orders", "ingest", "orders.ingest-v2")

        records = id_store.find_all("orders")

        assert [r.deployment_id for r in records] == ["orders.ingest-v2"]

    def test_find_all_is_scoped_and_ordered(self, id_store: DeploymentIdStore) -> None:
        id_store.save("orders", "persist", "p")
        id_store.save("orders", "enrich", "e")
        id_store.save("clicks", "ingest", "c")

        assert [r.label for r in id_store.find_all("orders")] == ["enrich", "persist"]
        assert id_store.stream_names() == ["clicks", "orders"]

    def test_delete(self, id_store: DeploymentIdStore) -> None:
        id_store.save("orders", "ingest", "i")
        id_store.save("orders", "persist", "p")

        id_store.delete("orders", "ingest")
        id_store.delete("orders", "never-saved")

        assert [r.label for r in id_store.find_all("orders")] == ["persist"]

    def test_replace_all(self, id_store: DeploymentIdStore) -> None:
        id_store.save("orders", "ingest", "orders.ingest-v1")
        id_store.save("orders", "legacy", "orders.legacy-v1")
        id_store.save("clicks", "ingest", "clicks.ingest-v1")

        id_store.replace_all(
            "orders", {"ingest": "orders.ingest-v2", "persist": "orders.persist-v2"}
        )

        assert {r.label: r.deployment_id for r in id_store.find_all("orders")} == {
            "ingest": "orders.ingest-v2",
            "persist": "orders.persist-v2",
        }
        assert [r.label for r in id_store.find_all("clicks")] == ["ingest"]

    def test_replace_all_empty_clears_stream(self, id_store: DeploymentIdStore) -> None:
        id_store.save("orders", "ingest", "i")

        id_store.replace_all("orders", {})

        assert id_store.find_all("orders") == []
        assert id_store.stream_names() == []


class TestStreamDeploymentStore:
    def test_save_and_find(self, stream_store: StreamDeploymentStore) -> None:
        stream_store.save("orders", BackendKind.DIRECT, {"app.enrich.threads": "4"})

        deployment = stream_store.find("orders")

        assert deployment is not None
        assert deployment.backend == BackendKind.DIRECT
        assert deployment.deployment_properties == {"app.enrich.threads": "4"}

    def test_save_replaces(self, stream_store: StreamDeploymentStore) -> None:
        stream_store.save("orders", BackendKind.DIRECT, {})
        stream_store.save("orders", BackendKind.RELEASE_MANAGED, {"a": "b"})

        deployment = stream_store.find("orders")

        assert deployment is not None
        assert deployment.backend == BackendKind.RELEASE_MANAGED

    def test_delete(self, stream_store: StreamDeploymentStore) -> None:
        stream_store.save("orders", BackendKind.DIRECT, {})

        stream_store.delete("orders")

        assert stream_store.find("orders") is None
