# Copyright (c) 2023, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

import copy
import logging
from decimal import Decimal
from types import SimpleNamespace

import pytest
from infinispanoperator.controller import config, consts, kubeutils
from infinispanoperator.controller.api_utils import ApiSpecError, ImageType, ServiceType, UpgradeType
from infinispanoperator.controller.errors import ConditionMismatch
from infinispanoperator.controller.infinispan.cluster_api import (EXPECTED_STABLE_CONDITIONS, Infinispan,
                                                                 UpgradeState, list_members,
                                                                 parse_request_limits)
from infinispanoperator.controller.infinispan.conditions import Condition, ConditionStatus
from infinispanoperator.controller.infinispan.names import truncate_name

logger = logging.getLogger("test")


def stable_conditions() -> list:
    return [
        {"type": "GracefulShutdown", "status": "False"},
        {"type": "PrelimChecksPassed", "status": "True"},
        {"type": "Upgrade", "status": "False"},
        {"type": "Stopping", "status": "False"},
        {"type": "WellFormed", "status": "True"},
    ]


@pytest.fixture
def infinispan_body() -> dict:
    return {
        "apiVersion": consts.API_VERSION,
        "kind": consts.INFINISPAN_KIND,
        "metadata": {
            "name": "example-infinispan",
            "namespace": "ispn",
        },
        "spec": {
            "replicas": 3,
            "service": {"type": "DataGrid"},
        },
        "status": {
            "conditions": stable_conditions(),
        },
    }


@pytest.fixture
def cluster(infinispan_body) -> Infinispan:
    return Infinispan(infinispan_body)


def test_well_formed(cluster) -> None:
    assert cluster.is_well_formed()
    cluster.ensure_cluster_stability()


@pytest.mark.parametrize("condition_type", list(EXPECTED_STABLE_CONDITIONS))
def test_any_flipped_condition_breaks_stability(cluster, condition_type) -> None:
    expected = EXPECTED_STABLE_CONDITIONS[condition_type]
    flipped = ConditionStatus.FALSE if expected is ConditionStatus.TRUE else ConditionStatus.TRUE
    cluster.set_condition(condition_type, flipped)

    assert not cluster.is_well_formed()
    with pytest.raises(ConditionMismatch) as exc_info:
        cluster.ensure_cluster_stability()
    assert exc_info.value.condition_type == condition_type
    assert exc_info.value.actual == flipped.value
    assert exc_info.value.expected == expected.value


def test_missing_condition_reads_as_false(cluster) -> None:
    cluster.remove_condition("WellFormed")

    with pytest.raises(ConditionMismatch) as exc_info:
        cluster.ensure_cluster_stability()
    assert str(exc_info.value) == "key 'WellFormed' has Status 'False', expected 'True'"


def test_mismatch_reports_message(cluster) -> None:
    cluster.set_condition("WellFormed", "False", "view has 2 members")

    with pytest.raises(ConditionMismatch) as exc_info:
        cluster.expect_condition_status({"WellFormed": ConditionStatus.TRUE})
    assert str(exc_info.value) == \
        "key 'WellFormed' has Status 'False', expected 'True' Reason 'view has 2 members'"
    assert exc_info.value.message == "view has 2 members"


def test_empty_status_is_not_well_formed() -> None:
    cluster = Infinispan({"metadata": {"name": "c", "namespace": "ns"}})

    assert not cluster.is_well_formed()
    assert cluster.status == {"conditions": []}


def test_not_cluster_formed(cluster) -> None:
    assert not cluster.not_cluster_formed(3, 3)
    assert cluster.not_cluster_formed(2, 3)

    cluster.set_condition("WellFormed", False)
    assert cluster.not_cluster_formed(3, 3)


def test_condition_changes_are_visible_in_status(cluster, infinispan_body) -> None:
    assert cluster.set_condition("stopping", True)
    assert {"type": "Stopping", "status": "True"} in infinispan_body["status"]["conditions"]
    assert len(infinispan_body["status"]["conditions"]) == 5


def test_conditions_follow_replaced_status(cluster) -> None:
    cluster.set_condition("Upgrade", True)
    cluster.obj["status"] = {"conditions": stable_conditions()}

    assert not cluster.is_condition_true("Upgrade")


@pytest.mark.parametrize("upgrade, stopping, replicas, state", [
    ("False", "True", 3, UpgradeState.NoUpgrade),
    ("False", "False", 3, UpgradeState.NoUpgrade),
    ("True", "True", 3, UpgradeState.AwaitingShutdown),
    ("True", "Unknown", 3, UpgradeState.AwaitingShutdown),
    ("True", "False", 0, UpgradeState.AwaitingReplicaTarget),
    ("True", "False", None, UpgradeState.AwaitingReplicaTarget),
    ("True", "False", 3, UpgradeState.ReadyToContinue),
])
def test_upgrade_state(cluster, upgrade, stopping, replicas, state) -> None:
    cluster.set_condition("Upgrade", upgrade)
    cluster.set_condition("Stopping", stopping)
    if replicas is not None:
        cluster.status["replicasWantedAtRestart"] = replicas
    before = copy.deepcopy(cluster.obj)

    assert cluster.upgrade_state(logger) is state
    assert cluster.is_upgrade_needed(logger) == (state is UpgradeState.ReadyToContinue)
    assert cluster.obj == before


def test_upgrade_decision_is_logged(cluster, caplog) -> None:
    cluster.set_condition("Upgrade", True)
    cluster.status["replicasWantedAtRestart"] = 3

    with caplog.at_level(logging.INFO, logger="test"):
        assert cluster.is_upgrade_needed(logger)
    assert "continue upgrade process" in caplog.text


def test_truncate_name() -> None:
    suffix = consts.SITE_ROUTE_NAME_SUFFIX
    assert len(suffix) == 11

    name = truncate_name("a" * 60, suffix)
    assert name == "a" * 51 + suffix
    assert len(name) == 62

    assert truncate_name("a" * 10, suffix) == "a" * 10 + suffix
    assert truncate_name("a" * 52, suffix) == "a" * 52 + suffix
    assert truncate_name("a" * 53, suffix) == "a" * 51 + suffix


def test_truncate_name_edge_cases() -> None:
    assert truncate_name("", "-route-site") == "-route-site"
    assert truncate_name("", "") == ""
    assert truncate_name("abc", "-suffix", ceiling=3) == "-suffix"
    assert truncate_name("a" * 63, "", filler="x") == "a" * 63
    assert truncate_name("a" * 64, "", filler="x") == "a" * 62 + "x"
    with pytest.raises(ValueError):
        truncate_name("abc", "", filler="xy")


def test_truncate_name_is_stable() -> None:
    base = "my-very-long-infinispan-cluster-name-that-does-not-fit-in-a-route"
    assert truncate_name(base, "-route-site") == truncate_name(base, "-route-site")


def test_site_route_name(cluster) -> None:
    assert cluster.site_route_name == "example-infinispan-route-site"

    cluster.metadata["name"] = "x" * 60
    assert cluster.site_route_name == "x" * 51 + "-route-site"


def test_service_external_name(cluster) -> None:
    assert cluster.service_external_name == "example-infinispan-external"

    cluster.spec["expose"] = {"type": "Route"}
    cluster.metadata["name"] = "n" * 50
    # 59 chars + namespace 4 chars >= 63
    assert cluster.service_external_name == "n" * 50 + "-extern" + "a"
    assert len(cluster.service_external_name) + len(cluster.namespace) == 62

    cluster.spec["expose"] = {"type": "NodePort"}
    assert cluster.service_external_name == "n" * 50 + "-external"


def test_derived_names(cluster) -> None:
    assert cluster.stateful_set_name == "example-infinispan"
    assert cluster.ping_service_name == "example-infinispan-ping"
    assert cluster.config_name == "example-infinispan-configuration"
    assert cluster.admin_service_name == "example-infinispan-admin"
    assert cluster.admin_secret_name == "example-infinispan-generated-operator-secret"
    assert cluster.secret_name == "example-infinispan-generated-secret"
    assert cluster.security_secret_name == "example-infinispan-infinispan-security"
    assert cluster.site_service_name == "example-infinispan-site"
    assert cluster.gossip_router_deployment_name == "example-infinispan-router"
    assert cluster.config_listener_name == "example-infinispan-config-listener"

    # names that follow the StatefulSet after a live migration
    cluster.status["statefulSetName"] = "example-infinispan-2"
    assert cluster.stateful_set_name == "example-infinispan-2"
    assert cluster.ping_service_name == "example-infinispan-2-ping"
    assert cluster.config_name == "example-infinispan-2-configuration"
    assert cluster.admin_secret_name == "example-infinispan-generated-operator-secret"


def test_remote_sites(cluster) -> None:
    cluster.spec["service"]["sites"] = {
        "local": {"name": "lon", "expose": {"type": "ClusterIP"}},
        "locations": [
            {"name": "lon"},
            {"name": "nyc", "clusterName": "other", "namespace": "remote"},
            {"name": "par"},
        ],
    }

    assert cluster.has_sites()
    assert cluster.cross_site_expose_type == "ClusterIP"
    assert cluster.site_locations_name == ["lon", "nyc", "par"]
    assert set(cluster.remote_site_locations) == {"nyc", "par"}
    assert cluster.remote_site_service_name("nyc") == "other-site"
    assert cluster.remote_site_service_fqn("nyc") == "other-site.remote.svc.cluster.local"
    assert cluster.remote_site_service_fqn("par") == "example-infinispan-site.ispn.svc.cluster.local"
    assert cluster.remote_site_route_name("nyc") == "other-route-site"
    assert not cluster.is_site_tls_enabled()
    assert cluster.site_transport_keystore == ("", "", "")


def test_site_tls(cluster) -> None:
    cluster.spec["service"]["sites"] = {
        "local": {
            "name": "lon",
            "encryption": {
                "transportKeyStore": {"secretName": "transport-tls"},
                "routerKeyStore": {"secretName": "router-tls", "alias": "gr"},
            },
        },
    }

    assert cluster.is_site_tls_enabled()
    assert cluster.site_tls_protocol == "TLSv1.2"
    assert cluster.site_transport_keystore == ("transport-tls", "keystore.p12", "transport")
    assert cluster.site_router_keystore == ("router-tls", "keystore.p12", "gr")
    assert cluster.site_truststore == ("", "truststore.p12")


def test_apply_defaults(cluster) -> None:
    cluster.spec["service"] = {}
    cluster.apply_defaults()

    assert cluster.service_type is ServiceType.Cache
    assert cluster.spec["service"]["replicationFactor"] == 2
    assert cluster.spec["container"]["memory"] == "1Gi"
    assert cluster.spec["security"]["endpointAuthentication"] is True
    assert cluster.spec["security"]["endpointSecretName"] == "example-infinispan-generated-secret"
    assert cluster.upgrade_type is UpgradeType.Shutdown
    assert cluster.is_config_listener_enabled()
    assert "storage" not in cluster.spec["service"].get("container", {})


def test_apply_defaults_data_grid(cluster) -> None:
    cluster.spec["security"] = {"endpointAuthentication": False,
                                "endpointSecretName": "example-infinispan-generated-secret"}
    cluster.apply_defaults()

    assert cluster.storage_size == "1Gi"
    assert "replicationFactor" not in cluster.spec["service"]
    assert cluster.spec["security"]["endpointSecretName"] == ""
    assert not cluster.is_authentication_enabled()


def test_apply_endpoint_encryption_settings(cluster) -> None:
    cluster.apply_endpoint_encryption_settings("openshift.io", logger)

    ee = cluster.spec["security"]["endpointEncryption"]
    assert ee["type"] == "Service"
    assert ee["certServiceName"] == "service.beta.openshift.io"
    assert ee["certSecretName"] == "example-infinispan-cert-secret"
    assert ee["clientCert"] == "None"
    assert cluster.is_encryption_enabled()
    assert cluster.is_encryption_cert_from_service()
    assert not cluster.is_client_cert_enabled()
    assert cluster.endpoint_scheme == "https"
    assert cluster.keystore_secret_name == "example-infinispan-cert-secret"


def test_client_cert_secret(cluster) -> None:
    cluster.spec["security"] = {"endpointEncryption": {"type": "Secret", "clientCert": "Validate"}}
    cluster.apply_endpoint_encryption_settings("", logger)

    assert cluster.is_client_cert_enabled()
    assert cluster.truststore_secret_name == "example-infinispan-client-cert-secret"


def test_no_encryption(cluster) -> None:
    assert cluster.endpoint_scheme == "http"
    cluster.spec["security"] = {"endpointEncryption": {"type": "None"}}
    assert not cluster.is_encryption_enabled()
    assert cluster.endpoint_scheme == "http"


def test_authorization(cluster) -> None:
    assert cluster.authorization_roles == []
    cluster.spec["security"] = {"authorization": {"enabled": True, "roles": [{"name": "admin"}]}}
    assert cluster.is_authorization_enabled()
    assert cluster.authorization_roles == [{"name": "admin"}]


def test_image(cluster) -> None:
    assert cluster.image_name == consts.DEFAULT_IMAGE_NAME
    assert cluster.image_type is ImageType.JVM
    cluster.spec["image"] = "quay.io/infinispan/server-native:14.0"
    assert cluster.image_type is ImageType.Native


def test_container_resources(cluster) -> None:
    cluster.spec["container"] = {"memory": "2Gi:1Gi", "cpu": "500m"}
    container = cluster.container

    assert container.memory_resources() == (Decimal(1024 ** 3), Decimal(2 * 1024 ** 3))
    assert container.cpu_resources() == (Decimal("0.5"), Decimal("0.5"))


@pytest.mark.parametrize("value", ["", "1Gi:1Gi:1Gi", "lots"])
def test_invalid_resources(value) -> None:
    with pytest.raises(ApiSpecError):
        parse_request_limits(value, "spec.container.memory")


def test_invalid_container_spec(cluster) -> None:
    cluster.spec["container"] = {"memory": 1024}
    with pytest.raises(ApiSpecError):
        cluster.container


def test_log_categories(cluster) -> None:
    cluster.spec["logging"] = {"categories": {"org.infinispan": "trace"}}
    assert cluster.log_categories_for_config == {
        "org.infinispan.server.core.backup": "debug",
        "org.infinispan": "trace",
    }


def test_monitoring_annotation(cluster) -> None:
    assert not cluster.is_service_monitor_enabled()
    cluster.apply_monitoring_annotation()
    assert cluster.is_service_monitor_enabled()

    cluster.metadata["annotations"][consts.SERVICE_MONITORING_ANNOTATION] = "false"
    cluster.apply_monitoring_annotation()
    assert not cluster.is_service_monitor_enabled()


def test_labels_from_annotations(cluster) -> None:
    cluster.metadata["labels"] = {"team": "cache ", "env": "prod", "empty": " "}
    cluster.metadata["annotations"] = {consts.POD_TARGET_LABELS: "team, env,empty,missing"}

    labels = {"env": "dev"}
    cluster.add_labels_for_pods(labels)
    assert labels == {"team": "cache", "env": "prod"}

    labels = {}
    cluster.add_labels_for_services(labels)
    assert labels == {}

    cluster.add_stateful_set_label_for_pods(labels)
    assert labels == {consts.STATEFUL_SET_POD_LABEL: "example-infinispan"}


def test_apply_operator_labels(cluster) -> None:
    cluster.apply_operator_labels({"b": "2", "a": "1"}, {"pod": "yes"})

    assert cluster.labels == {"a": "1", "b": "2", "pod": "yes"}
    assert cluster.annotations[consts.OPERATOR_TARGET_LABELS] == "a,b"
    assert cluster.annotations[consts.OPERATOR_POD_TARGET_LABELS] == "pod"

    labels = {}
    cluster.add_operator_labels_for_services(labels)
    assert labels == {"a": "1", "b": "2"}
    labels = {}
    cluster.add_operator_labels_for_pods(labels)
    assert labels == {"pod": "yes"}


def test_apply_operator_labels_empty(cluster, infinispan_body) -> None:
    before = copy.deepcopy(infinispan_body)
    cluster.apply_operator_labels({}, {})
    assert infinispan_body == before


def pod(name: str, owner: str) -> SimpleNamespace:
    return SimpleNamespace(metadata=SimpleNamespace(
        name=name, owner_references=[SimpleNamespace(kind="StatefulSet", name=owner)]))


def test_list_members(monkeypatch, cluster) -> None:
    calls = []

    class FakeCoreApi:
        def list_namespaced_pod(self, namespace, label_selector):
            calls.append((namespace, label_selector))
            return SimpleNamespace(items=[
                pod("example-infinispan-10", "example-infinispan"),
                pod("example-infinispan-2", "example-infinispan"),
                pod("other-0", "other"),
                pod("example-infinispan-0", "example-infinispan"),
            ])

    monkeypatch.setattr(kubeutils, "api_core", FakeCoreApi())

    assert cluster.get_pods() == ["example-infinispan-0", "example-infinispan-2", "example-infinispan-10"]
    assert list_members("ispn", "other") == ["other-0"]
    assert calls[0] == ("ispn", "app=infinispan-pod")


def test_invalid_spec_values(cluster) -> None:
    cluster.spec["service"] = {"type": "Bogus"}
    with pytest.raises(ApiSpecError):
        cluster.is_data_grid()

    cluster.spec["upgrades"] = {"type": "Rolling"}
    with pytest.raises(ApiSpecError):
        cluster.upgrade_type

    cluster.spec["replicas"] = "3"
    with pytest.raises(ApiSpecError):
        cluster.replicas


def test_set_conditions(cluster, infinispan_body) -> None:
    assert not cluster.has_condition("ConsistencyCheck")

    changed = cluster.set_conditions([
        Condition("wellformed", "False", "1 of 3 pods ready"),
        Condition("ConsistencyCheck", True),
    ])

    assert changed
    assert cluster.has_condition("consistencycheck")
    assert not cluster.is_well_formed()
    assert infinispan_body["status"]["conditions"][-1] == {"type": "ConsistencyCheck", "status": "True"}
    assert not cluster.set_conditions([Condition("ConsistencyCheck", "True")])


def test_service_kind(cluster) -> None:
    assert cluster.is_data_grid() and not cluster.is_cache()

    del cluster.spec["service"]["type"]
    assert cluster.is_cache() and not cluster.is_data_grid()
    assert cluster.service_type is ServiceType.Cache


def test_storage_and_dependencies(cluster) -> None:
    assert cluster.service_name == "example-infinispan"
    assert cluster.service_monitor_name == "example-infinispan-monitor"
    assert not cluster.is_ephemeral_storage()
    assert cluster.storage_class_name == ""
    assert not cluster.has_dependencies_volume()
    assert not cluster.has_external_artifacts()

    cluster.spec["service"]["container"] = {"ephemeralStorage": True, "storageClassName": "fast"}
    cluster.spec["dependencies"] = {"volumeClaimName": "libs", "artifacts": [{"url": "http://repo/lib.jar"}]}

    assert cluster.is_ephemeral_storage()
    assert cluster.storage_class_name == "fast"
    assert cluster.has_dependencies_volume()
    assert cluster.has_external_artifacts()


def test_status_conditions_changed_in_place(cluster) -> None:
    assert cluster.get_condition("WellFormed").status is ConditionStatus.TRUE

    cluster.status["conditions"].pop(0)
    assert cluster.get_condition("WellFormed").status is ConditionStatus.TRUE
    assert not cluster.has_condition("GracefulShutdown")

    cluster.status["conditions"].clear()
    assert cluster.get_condition("WellFormed").status is ConditionStatus.FALSE
    assert not cluster.remove_condition("WellFormed")
    assert cluster.set_condition("WellFormed", "True")
    assert cluster.status["conditions"] == [{"type": "WellFormed", "status": "True"}]


def test_expect_condition_status_accepts_strings_and_bools(cluster) -> None:
    cluster.expect_condition_status({"WellFormed": "True", "Upgrade": False, "stopping": "False"})

    with pytest.raises(ConditionMismatch) as exc_info:
        cluster.expect_condition_status({"WellFormed": "False"})
    assert exc_info.value.expected == "False"
    assert exc_info.value.actual == "True"

    with pytest.raises(ValueError):
        cluster.expect_condition_status({"WellFormed": "yes"})


def test_remote_site_fqn_uses_cluster_domain(monkeypatch, cluster) -> None:
    monkeypatch.setattr(config, "k8s_cluster_domain", "example.org")
    cluster.spec["service"]["sites"] = {
        "local": {"name": "lon", "expose": {"type": "ClusterIP"}},
        "locations": [{"name": "lon"}, {"name": "nyc", "clusterName": "other", "namespace": "remote"}],
    }

    assert cluster.remote_site_service_fqn("nyc") == "other-site.remote.svc.example.org"
