"""Tests for ReleaseManagedDeployer."""

import pytest
import yaml

from sluice.contracts import (
    InstanceState,
    PackageIdentifier,
    Release,
    ReleaseManagerError,
    UpdateRequest,
    ValidationError,
)
from sluice.engine.release_deployer import ReleaseManagedDeployer, render_package_yaml
from sluice.engine.request_builder import RequestBuilder


@pytest.fixture
def deployer(release_manager, id_store) -> ReleaseManagedDeployer:
    return ReleaseManagedDeployer(
        release_manager, id_store, package_repository="central", package_version="1.2.0"
    )


@pytest.fixture
def requests(orders_stream, registry):
    return RequestBuilder().build(
        orders_stream, {"deployer.enrich.count": "2"}, {}, registry
    )


def _ids(id_store) -> dict[str, str]:
    return {r.label: r.deployment_id for r in id_store.find_all("orders")}


class TestRenderPackageYaml:
    def test_contains_every_component(self, requests) -> None:
        data = yaml.safe_load(render_package_yaml(requests))

        assert list(data["apps"]) == ["ingest", "enrich", "persist"]
        enrich = data["apps"]["enrich"]
        assert enrich["index"] == 1
        assert enrich["role"] == "processor"
        assert enrich["artifact"] == "docker:sluice/enrich:1.0"
        assert enrich["deployer"] == {"count": "2"}
        assert enrich["properties"]["bindings.input.destination"] == "orders.0.ingest"


class TestDeploy:
    def test_installs_one_release(self, deployer, release_manager, id_store, orders_stream, requests) -> None:
        outcomes = deployer.deploy(orders_stream, requests)

        assert all(o.succeeded for o in outcomes)
        descriptor = release_manager.descriptors[0]
        assert descriptor.release_name == "orders"
        assert descriptor.package == PackageIdentifier(
            name="orders", version="1.2.0", repository="central"
        )
        assert _ids(id_store) == {
            "ingest": "orders.ingest-v1",
            "enrich": "orders.enrich-v1",
            "persist": "orders.persist-v1",
        }

    def test_missing_component_id_is_failed_outcome(
        self, deployer, release_manager, orders_stream, requests
    ) -> None:
        def partial_install(descriptor):
            return Release(
                name="orders",
                version=1,
                status="deployed",
                deployment_ids={"ingest": "i", "persist": "p"},
            )

        release_manager.install = partial_install

        outcomes = deployer.deploy(orders_stream, requests)

        failed = [o.label for o in outcomes if not o.succeeded]
        assert failed == ["enrich"]

    def test_manager_error_surfaces_unchanged(
        self, deployer, release_manager, id_store, orders_stream, requests
    ) -> None:
        release_manager.fail_with = "package 'orders' rejected: quota exceeded"

        with pytest.raises(ReleaseManagerError, match="quota exceeded"):
            deployer.deploy(orders_stream, requests)

        assert _ids(id_store) == {}

    def test_foreign_exception_is_wrapped(
        self, deployer, release_manager, orders_stream, requests
    ) -> None:
        def broken(descriptor):
            raise ConnectionError("manager unreachable")

        release_manager.install = broken

        with pytest.raises(ReleaseManagerError, match="manager unreachable") as exc_info:
            deployer.deploy(orders_stream, requests)

        assert isinstance(exc_info.value.__cause__, ConnectionError)


class TestLifecycle:
    def test_undeploy_deletes_release_and_records(
        self, deployer, release_manager, id_store, orders_stream, requests
    ) -> None:
        deployer.deploy(orders_stream, requests)

        deployer.undeploy(orders_stream)

        assert release_manager.deleted == ["orders"]
        assert _ids(id_store) == {}

    def test_update_replaces_records(
        self, deployer, release_manager, id_store, orders_stream, requests
    ) -> None:
        deployer.deploy(orders_stream, requests)

        deployer.update(
            orders_stream,
            UpdateRequest(
                release_name="orders",
                package_identifier=PackageIdentifier(name="orders", version="2.0.0"),
                yaml_overrides="apps:\n  enrich:\n    properties:\n      threads: '8'\n",
            ),
        )

        assert release_manager.descriptors[-1].package.version == "2.0.0"
        assert _ids(id_store) == {"enrich": "orders.enrich-v2"}

    def test_update_without_overrides_keeps_components(
        self, deployer, id_store, orders_stream, requests
    ) -> None:
        deployer.deploy(orders_stream, requests)

        deployer.update(
            orders_stream,
            UpdateRequest(
                release_name="orders",
                package_identifier=PackageIdentifier(name="orders", version="2.0.0"),
            ),
        )

        assert _ids(id_store) == {
            "ingest": "orders.ingest-v2",
            "enrich": "orders.enrich-v2",
            "persist": "orders.persist-v2",
        }

    def test_update_rejects_other_release_name(self, deployer, orders_stream) -> None:
        request = UpdateRequest(
            release_name="clicks",
            package_identifier=PackageIdentifier(name="clicks", version="2.0.0"),
        )

        with pytest.raises(ValidationError, match="does not match"):
            deployer.update(orders_stream, request)

    def test_rollback_restores_previous_ids(
        self, deployer, id_store, orders_stream, requests
    ) -> None:
        deployer.deploy(orders_stream, requests)
        deployer.update(
            orders_stream,
            UpdateRequest(
                release_name="orders",
                package_identifier=PackageIdentifier(name="orders", version="2.0.0"),
            ),
        )

        release = deployer.rollback("orders", 0)

        assert release.version == 3
        assert _ids(id_store)["ingest"] == "orders.ingest-v1"

    def test_rollback_rejects_negative_version(self, deployer) -> None:
        with pytest.raises(ValidationError):
            deployer.rollback("orders", -1)

    def test_instance_status_asks_release_manager(
        self, deployer, id_store, orders_stream, requests
    ) -> None:
        deployer.deploy(orders_stream, requests)
        record = next(r for r in id_store.find_all("orders") if r.label == "persist")

        assert deployer.instance_status(record) == InstanceState.DEPLOYED
