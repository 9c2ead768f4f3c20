# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from decimal import Decimal
from enum import Enum
import typing
from typing import Optional, List, Tuple, Dict, cast

from logging import Logger

from kubernetes import client as api_client
from kubernetes.utils import parse_quantity

from .. import config, consts, kubeutils
from ..api_utils import (ApiSpecError, CertificateSourceType, ClientCertType, ExposeType,
                         ImageType, ServiceType, UpgradeType, dget_bool, dget_dict,
                         dget_enum, dget_int, dget_list, dget_str)
from ..consts import get_with_default
from ..errors import ConditionMismatch
from .conditions import Condition, ConditionSet, ConditionStatus, StatusLike
from .names import truncate_name


# Condition values required for a cluster to be considered stable
EXPECTED_STABLE_CONDITIONS: Dict[str, ConditionStatus] = {
    consts.CONDITION_GRACEFUL_SHUTDOWN: ConditionStatus.FALSE,
    consts.CONDITION_PRELIM_CHECKS_PASSED: ConditionStatus.TRUE,
    consts.CONDITION_UPGRADE: ConditionStatus.FALSE,
    consts.CONDITION_STOPPING: ConditionStatus.FALSE,
    consts.CONDITION_WELL_FORMED: ConditionStatus.TRUE,
}


class UpgradeState(Enum):
    # No upgrade requested
    NoUpgrade = "NoUpgrade"

    # Upgrade requested, graceful shutdown still in progress
    AwaitingShutdown = "AwaitingShutdown"

    # Shutdown done, but the number of replicas to restart with isn't set yet
    AwaitingReplicaTarget = "AwaitingReplicaTarget"

    # Cluster is down and the restart size is known
    ReadyToContinue = "ReadyToContinue"


def parse_request_limits(value: str, what: str) -> Tuple[Decimal, Decimal]:
    """
    Parse a "<limit>:<request>" or "<limit>" resource string.
    Returns (requests, limits).
    """
    if not value:
        raise ApiSpecError(f"{what} resource string cannot be empty")

    parts = value.split(":")
    if len(parts) > 2:
        raise ApiSpecError(
            f"{what} unexpected resource format. Expected a string of '<limit>:<request>' or '<limit>', received: '{value}'")

    try:
        limits = parse_quantity(parts[0])
        requests = parse_quantity(parts[1]) if len(parts) > 1 else limits
    except ValueError as e:
        raise ApiSpecError(f"{what} invalid quantity in '{value}': {e}") from e

    return requests, limits


class ContainerSpec:
    memory: str = consts.DEFAULT_MEMORY_SIZE
    cpu: Optional[str] = None
    extraJvmOpts: str = ""

    def parse(self, spec: dict, prefix: str) -> None:
        if "memory" in spec:
            self.memory = dget_str(spec, "memory", prefix)

        if "cpu" in spec:
            self.cpu = dget_str(spec, "cpu", prefix)

        if "extraJvmOpts" in spec:
            self.extraJvmOpts = dget_str(spec, "extraJvmOpts", prefix)

    def cpu_resources(self) -> Tuple[Decimal, Decimal]:
        return parse_request_limits(self.cpu, "spec.container.cpu")

    def memory_resources(self) -> Tuple[Decimal, Decimal]:
        return parse_request_limits(self.memory, "spec.container.memory")


def list_members(namespace: str, stateful_set_name: str) -> List[str]:
    """
    Names of the pods created by the given StatefulSet, ordered by ordinal.
    """
    objects = cast(api_client.V1PodList, kubeutils.api_core.list_namespaced_pod(
        namespace, label_selector=f"app={consts.POD_APP_LABEL}"))

    def owned(pod: api_client.V1Pod) -> bool:
        for owner in pod.metadata.owner_references or []:
            if owner.kind == "StatefulSet" and owner.name == stateful_set_name:
                return True
        return False

    pods = [o.metadata.name for o in objects.items if owned(o)]
    pods.sort(key=lambda name: int(name.rpartition("-")[-1]))
    return pods


class Infinispan:
    def __init__(self, cluster: dict) -> None:
        self.obj: dict = cluster
        self._conditions: Optional[ConditionSet] = None

    def __str__(self):
        return f"{self.namespace}/{self.name}"

    def __repr__(self):
        return f"<Infinispan {self.name}>"

    @classmethod
    def _get(cls, ns: str, name: str) -> dict:
        return cast(dict, kubeutils.api_customobj.get_namespaced_custom_object(
            consts.GROUP, consts.VERSION, ns, consts.INFINISPAN_PLURAL, name))

    @classmethod
    def read(cls, ns: str, name: str) -> 'Infinispan':
        return Infinispan(cls._get(ns, name))

    @classmethod
    def try_read(cls, ns: str, name: str) -> Optional['Infinispan']:
        obj = kubeutils.catch_404(lambda: cls._get(ns, name))
        return Infinispan(obj) if obj is not None else None

    @property
    def metadata(self) -> dict:
        return self.obj["metadata"]

    @property
    def annotations(self) -> dict:
        return self.metadata.get("annotations") or {}

    @property
    def labels(self) -> dict:
        return self.metadata.get("labels") or {}

    @property
    def spec(self) -> dict:
        if self.obj.get("spec") is None:
            self.obj["spec"] = {}
        return self.obj["spec"]

    @property
    def status(self) -> dict:
        if self.obj.get("status") is None:
            self.obj["status"] = {}
        return self.obj["status"]

    @property
    def name(self) -> str:
        return self.metadata["name"]

    @property
    def namespace(self) -> str:
        return self.metadata["namespace"]

    def _spec_section(self, *path: str) -> dict:
        d = self.spec
        for p in path:
            d = d.get(p) or {}
        return d

    # ## Conditions ##

    @property
    def conditions(self) -> ConditionSet:
        if self._conditions is None or self._conditions.items is not self.status.get("conditions"):
            if self.status.get("conditions") is None:
                self.status["conditions"] = []
            self._conditions = ConditionSet(self.status["conditions"])
        return self._conditions

    def get_condition(self, condition_type: str) -> Condition:
        return self.conditions.get(condition_type)

    def has_condition(self, condition_type: str) -> bool:
        return self.conditions.has(condition_type)

    def set_condition(self, condition_type: str, status, message: str = "") -> bool:
        return self.conditions.set(condition_type, status, message)

    def set_conditions(self, conditions: typing.Iterable[Condition]) -> bool:
        return self.conditions.set_all(conditions)

    def remove_condition(self, condition_type: str) -> bool:
        return self.conditions.remove(condition_type)

    def is_condition_true(self, condition_type: str) -> bool:
        return self.conditions.is_true(condition_type)

    def is_upgrade_condition(self) -> bool:
        return self.is_condition_true(consts.CONDITION_UPGRADE)

    # ## Stability ##

    def expect_condition_status(self, expected: Dict[str, StatusLike]) -> None:
        """
        Raise ConditionMismatch for the first condition whose status differs
        from the expected one.
        """
        for key, value in expected.items():
            value = ConditionStatus.of(value)
            c = self.get_condition(key)
            if c.status is not value:
                raise ConditionMismatch(key, c.status.value, value.value, c.message)

    def ensure_cluster_stability(self) -> None:
        self.expect_condition_status(EXPECTED_STABLE_CONDITIONS)

    def is_well_formed(self) -> bool:
        try:
            self.ensure_cluster_stability()
        except ConditionMismatch:
            return False
        return True

    def not_cluster_formed(self, pods: int, replicas: int) -> bool:
        return not self.is_well_formed() or pods < replicas

    # ## Upgrades ##

    @property
    def replicas_wanted_at_restart(self) -> int:
        return int(self.status.get("replicasWantedAtRestart") or 0)

    def upgrade_state(self, logger: Logger) -> UpgradeState:
        if not self.is_upgrade_condition():
            logger.debug(f"{self}: no upgrade requested")
            return UpgradeState.NoUpgrade

        if self.get_condition(consts.CONDITION_STOPPING).status is not ConditionStatus.FALSE:
            logger.info("wait for graceful shutdown before update to complete")
            return UpgradeState.AwaitingShutdown

        if self.replicas_wanted_at_restart <= 0:
            logger.info("replicas to restart with not yet set, wait for graceful shutdown to complete")
            return UpgradeState.AwaitingReplicaTarget

        logger.info("graceful shutdown after upgrade completed, continue upgrade process")
        return UpgradeState.ReadyToContinue

    def is_upgrade_needed(self, logger: Logger) -> bool:
        return self.upgrade_state(logger) is UpgradeState.ReadyToContinue

    @property
    def upgrade_type(self) -> UpgradeType:
        return dget_enum(self._spec_section("upgrades"), "type", "spec.upgrades",
                         default_value=UpgradeType.Shutdown, enum_type=UpgradeType)

    # ## Spec accessors ##

    @property
    def replicas(self) -> int:
        return dget_int(self.spec, "replicas", "spec", default_value=0)

    @property
    def service_type(self) -> ServiceType:
        service = self._spec_section("service")
        if not service.get("type"):
            return ServiceType.Cache
        return dget_enum(service, "type", "spec.service", default_value=None, enum_type=ServiceType)

    def is_data_grid(self) -> bool:
        return self.service_type is ServiceType.DataGrid

    def is_cache(self) -> bool:
        return self.service_type is ServiceType.Cache

    @property
    def image_name(self) -> str:
        return get_with_default(self.spec.get("image") or "", consts.DEFAULT_IMAGE_NAME)

    @property
    def image_type(self) -> ImageType:
        if consts.NATIVE_IMAGE_MARKER in self.image_name:
            return ImageType.Native
        return ImageType.JVM

    @property
    def container(self) -> ContainerSpec:
        container = ContainerSpec()
        container.parse(self._spec_section("container"), "spec.container")
        return container

    def is_exposed(self) -> bool:
        return bool(self._spec_section("expose").get("type"))

    @property
    def expose_type(self) -> ExposeType:
        return dget_enum(self._spec_section("expose"), "type", "spec.expose",
                         default_value=None, enum_type=ExposeType)

    def has_sites(self) -> bool:
        return self.is_data_grid() and self._spec_section("service").get("sites") is not None

    @property
    def cross_site_expose_type(self) -> str:
        return self._spec_section("service", "sites", "local", "expose").get("type", "")

    # ## Security ##

    @property
    def security(self) -> dict:
        return self._spec_section("security")

    @property
    def endpoint_encryption(self) -> Optional[dict]:
        return self.security.get("endpointEncryption")

    def is_encryption_enabled(self) -> bool:
        ee = self.endpoint_encryption
        return ee is not None and ee.get("type") != CertificateSourceType.NoneNoEncryption.value

    def is_encryption_cert_from_service(self) -> bool:
        ee = self.endpoint_encryption
        return ee is not None and ee.get("type") in (CertificateSourceType.Service.value,
                                                     CertificateSourceType.service.value)

    def is_encryption_cert_source_defined(self) -> bool:
        ee = self.endpoint_encryption
        return ee is not None and bool(ee.get("type"))

    def is_client_cert_enabled(self) -> bool:
        if not self.is_encryption_enabled():
            return False
        client_cert = self.endpoint_encryption.get("clientCert", "")
        return client_cert not in ("", ClientCertType.NoneClientCert.value)

    def is_authentication_enabled(self) -> bool:
        return self.security.get("endpointAuthentication") is not False

    def is_authorization_enabled(self) -> bool:
        return bool((self.security.get("authorization") or {}).get("enabled"))

    @property
    def authorization_roles(self) -> List[dict]:
        if not self.is_authorization_enabled():
            return []
        return dget_list(self.security["authorization"], "roles", "spec.security.authorization",
                         [], content_type=dict)

    @property
    def endpoint_scheme(self) -> str:
        return "https" if self.is_encryption_enabled() else "http"

    def is_generated_secret(self) -> bool:
        return self.security.get("endpointSecretName") == self.generate_secret_name()

    # ## Derived names ##

    @property
    def stateful_set_name(self) -> str:
        # Live migrations change the StatefulSet name, status keeps the current one
        return self.status.get("statefulSetName") or self.name

    @property
    def service_name(self) -> str:
        return self.name

    @property
    def admin_service_name(self) -> str:
        return f"{self.name}-admin"

    @property
    def ping_service_name(self) -> str:
        return f"{self.stateful_set_name}-ping"

    @property
    def config_name(self) -> str:
        return f"{self.stateful_set_name}-configuration"

    @property
    def service_external_name(self) -> str:
        name = f"{self.name}-external"
        if self.is_exposed() and self.expose_type is ExposeType.Route:
            # the Route host is "<name>-<namespace>", and has to fit the limit too
            return truncate_name(name, "", consts.MAX_ROUTE_OBJECT_NAME_LENGTH - len(self.namespace) - 1,
                                 filler="a")
        return name

    @property
    def secret_name(self) -> str:
        return self.security.get("endpointSecretName") or self.generate_secret_name()

    def generate_secret_name(self) -> str:
        return f"{self.name}-{consts.GENERATED_SECRET_SUFFIX}"

    @property
    def admin_secret_name(self) -> str:
        return f"{self.name}-generated-operator-secret"

    @property
    def security_secret_name(self) -> str:
        return f"{self.name}-infinispan-security"

    @property
    def service_monitor_name(self) -> str:
        return f"{self.name}-monitor"

    @property
    def keystore_secret_name(self) -> str:
        return (self.endpoint_encryption or {}).get("certSecretName", "")

    @property
    def truststore_secret_name(self) -> str:
        return (self.endpoint_encryption or {}).get("clientCertSecretName", "")

    @property
    def gossip_router_deployment_name(self) -> str:
        return consts.GOSSIP_ROUTER_DEPLOYMENT_NAME_TEMPLATE.format(self.name)

    @property
    def config_listener_name(self) -> str:
        return f"{self.name}-config-listener"

    # ## Cross-site ##

    @property
    def _sites(self) -> dict:
        return self._spec_section("service", "sites")

    @property
    def local_site_name(self) -> str:
        return (self._sites.get("local") or {}).get("name", "")

    @property
    def remote_site_locations(self) -> Dict[str, dict]:
        locations = dget_list(self._sites, "locations", "spec.service.sites", [], content_type=dict)
        return {location["name"]: location for location in locations
                if location["name"] != self.local_site_name}

    @property
    def site_locations_name(self) -> List[str]:
        return sorted(list(self.remote_site_locations) + [self.local_site_name])

    @property
    def site_service_name(self) -> str:
        return consts.SITE_SERVICE_NAME_TEMPLATE.format(self.name)

    @property
    def site_route_name(self) -> str:
        return truncate_name(self.name, consts.SITE_ROUTE_NAME_SUFFIX)

    def remote_site_cluster_name(self, location_name: str) -> str:
        location = self.remote_site_locations.get(location_name) or {}
        return get_with_default(location.get("clusterName", ""), self.name)

    def remote_site_namespace(self, location_name: str) -> str:
        location = self.remote_site_locations.get(location_name) or {}
        return get_with_default(location.get("namespace", ""), self.namespace)

    def remote_site_service_name(self, location_name: str) -> str:
        return consts.SITE_SERVICE_NAME_TEMPLATE.format(self.remote_site_cluster_name(location_name))

    def remote_site_route_name(self, location_name: str) -> str:
        return truncate_name(self.remote_site_cluster_name(location_name), consts.SITE_ROUTE_NAME_SUFFIX)

    def remote_site_service_fqn(self, location_name: str) -> str:
        return consts.SITE_SERVICE_FQN_TEMPLATE.format(self.remote_site_service_name(location_name),
                                                       self.remote_site_namespace(location_name),
                                                       config.k8s_cluster_domain)

    @property
    def _site_encryption(self) -> dict:
        return (self._sites.get("local") or {}).get("encryption") or {}

    def is_site_tls_enabled(self) -> bool:
        return self.has_sites() and bool(self._site_encryption.get("transportKeyStore"))

    @property
    def site_tls_protocol(self) -> str:
        if not self.is_site_tls_enabled():
            return ""
        return get_with_default(self._site_encryption.get("protocol", ""), consts.DEFAULT_SITE_TLS_PROTOCOL)

    def _site_keystore(self, which: str, default_alias: str) -> Tuple[str, str, str]:
        if not self.is_site_tls_enabled():
            return "", "", ""
        ks = self._site_encryption.get(which) or {}
        return (ks.get("secretName", ""),
                get_with_default(ks.get("filename", ""), consts.DEFAULT_SITE_KEYSTORE_FILE_NAME),
                get_with_default(ks.get("alias", ""), default_alias))

    @property
    def site_transport_keystore(self) -> Tuple[str, str, str]:
        """(secret name, file name, alias) of the transport keystore"""
        return self._site_keystore("transportKeyStore", consts.DEFAULT_SITE_TRANSPORT_KEYSTORE_ALIAS)

    @property
    def site_router_keystore(self) -> Tuple[str, str, str]:
        """(secret name, file name, alias) of the router keystore"""
        return self._site_keystore("routerKeyStore", consts.DEFAULT_SITE_ROUTER_KEYSTORE_ALIAS)

    @property
    def site_truststore(self) -> Tuple[str, str]:
        """(secret name, file name) of the truststore"""
        if not self.is_site_tls_enabled():
            return "", ""
        ts = self._site_encryption.get("trustStore") or {}
        return (ts.get("secretName", ""),
                get_with_default(ts.get("filename", ""), consts.DEFAULT_SITE_TRUSTSTORE_FILE_NAME))

    # ## Storage, monitoring, misc ##

    def is_ephemeral_storage(self) -> bool:
        return bool(self._spec_section("service", "container").get("ephemeralStorage"))

    @property
    def storage_class_name(self) -> str:
        return self._spec_section("service", "container").get("storageClassName", "")

    @property
    def storage_size(self) -> str:
        return self._spec_section("service", "container").get("storage") or ""

    def is_service_monitor_enabled(self) -> bool:
        return str(self.annotations.get(consts.SERVICE_MONITORING_ANNOTATION, "")).lower() == "true"

    def is_config_listener_enabled(self) -> bool:
        return dget_bool(self._spec_section("configListener"), "enabled", "spec.configListener",
                         default_value=False)

    def has_dependencies_volume(self) -> bool:
        return bool(self._spec_section("dependencies").get("volumeClaimName"))

    def has_external_artifacts(self) -> bool:
        return bool(self._spec_section("dependencies").get("artifacts"))

    @property
    def log_categories_for_config(self) -> Dict[str, str]:
        categories = {consts.BACKUP_LOG_CATEGORY: "debug"}
        categories.update(dget_dict(self._spec_section("logging"), "categories", "spec.logging", {}))
        return categories

    # ## Defaults ##

    def apply_defaults(self) -> None:
        if self.status.get("conditions") is None:
            self.status["conditions"] = []

        service = self.spec.setdefault("service", {})
        if not service.get("type"):
            service["type"] = ServiceType.Cache.value
        if service["type"] == ServiceType.Cache.value and not service.get("replicationFactor"):
            service["replicationFactor"] = consts.DEFAULT_REPLICATION_FACTOR

        container = self.spec.setdefault("container", {})
        if not container.get("memory"):
            container["memory"] = consts.DEFAULT_MEMORY_SIZE

        if self.is_data_grid():
            service_container = service.setdefault("container", {})
            if service_container.get("storage") is None:
                service_container["storage"] = consts.DEFAULT_PV_SIZE

        security = self.spec.setdefault("security", {})
        if security.get("endpointAuthentication") is None:
            security["endpointAuthentication"] = True
        if security["endpointAuthentication"]:
            security["endpointSecretName"] = self.secret_name
        elif self.is_generated_secret():
            security["endpointSecretName"] = ""

        if self.spec.get("upgrades") is None:
            self.spec["upgrades"] = {"type": UpgradeType.Shutdown.value}

        if self.spec.get("configListener") is None:
            self.spec["configListener"] = {"enabled": True}

    def apply_monitoring_annotation(self) -> None:
        annotations = self.metadata.setdefault("annotations", {})
        annotations.setdefault(consts.SERVICE_MONITORING_ANNOTATION, "true")

    def apply_endpoint_encryption_settings(self, serving_certs_mode: str, logger: Logger) -> None:
        encryption = self.endpoint_encryption
        if serving_certs_mode == "openshift.io" and (not self.is_encryption_cert_source_defined()
                                                     or self.is_encryption_cert_from_service()):
            if encryption is None:
                encryption = {}
                self.spec.setdefault("security", {})["endpointEncryption"] = encryption
            if not encryption.get("certServiceName") or not encryption.get("type"):
                logger.info("Serving certificate service present. Configuring into Infinispan CR")
                encryption["type"] = CertificateSourceType.Service.value
                encryption["certServiceName"] = "service.beta.openshift.io"
            if not encryption.get("certSecretName"):
                encryption["certSecretName"] = f"{self.name}-cert-secret"

        if encryption is not None:
            if not encryption.get("clientCert"):
                encryption["clientCert"] = ClientCertType.NoneClientCert.value
            if (encryption["clientCert"] != ClientCertType.NoneClientCert.value
                    and not encryption.get("clientCertSecretName")):
                encryption["clientCertSecretName"] = f"{self.name}-client-cert-secret"

    # ## Labels ##

    def _add_labels_for(self, target: str, labels: dict) -> None:
        for label in self.annotations.get(target, "").split(","):
            label = label.strip()
            value = str(self.labels.get(label, "")).strip()
            if label and value:
                labels[label] = value

    def add_labels_for_pods(self, labels: dict) -> None:
        self._add_labels_for(consts.POD_TARGET_LABELS, labels)

    def add_labels_for_services(self, labels: dict) -> None:
        self._add_labels_for(consts.TARGET_LABELS, labels)

    def add_operator_labels_for_pods(self, labels: dict) -> None:
        self._add_labels_for(consts.OPERATOR_POD_TARGET_LABELS, labels)

    def add_operator_labels_for_services(self, labels: dict) -> None:
        self._add_labels_for(consts.OPERATOR_TARGET_LABELS, labels)

    def add_stateful_set_label_for_pods(self, labels: dict) -> None:
        labels[consts.STATEFUL_SET_POD_LABEL] = self.name

    def apply_operator_labels(self, target_labels: Dict[str, str],
                              pod_target_labels: Dict[str, str]) -> None:
        """
        Add the operator wide labels to the object, and record which of them go
        to services/routes and which to pods.
        """
        for annotation, labels in ((consts.OPERATOR_TARGET_LABELS, target_labels),
                                   (consts.OPERATOR_POD_TARGET_LABELS, pod_target_labels)):
            if not labels:
                continue
            self.metadata.setdefault("labels", {})
            self.metadata.setdefault("annotations", {})
            keys = sorted(labels)
            for k in keys:
                self.metadata["labels"][k] = labels[k]
            self.metadata["annotations"][annotation] = ",".join(keys)

    # ## Members ##

    def get_pods(self) -> List[str]:
        return list_members(self.namespace, self.stateful_set_name)

    def log_cluster_info(self, logger: Logger) -> None:
        logger.info(f"Infinispan {self.namespace}/{self.name} ServiceType({self.service_type.value})")
        logger.info(f"\tImage:\t{self.image_name} / {self.image_type.value}")
        logger.info(f"\tReplicas:\t{self.replicas}")
        logger.info(f"\tStatefulSet:\t{self.stateful_set_name}")
        logger.info(f"\tEndpoint scheme:\t{self.endpoint_scheme}")
        logger.info(f"\tUpgrade type:\t{self.upgrade_type.value}")
        if self.has_sites():
            logger.info(f"\tSites:\t{self.site_locations_name}")
