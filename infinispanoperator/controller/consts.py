# Copyright (c) 2020, 2021, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

GROUP = "infinispan.org"
VERSION = "v1"
API_VERSION = GROUP+"/"+VERSION

INFINISPAN_KIND = "Infinispan"
INFINISPAN_PLURAL = "infinispans"

# Condition types kept in status.conditions
CONDITION_PRELIM_CHECKS_PASSED = "PrelimChecksPassed"
CONDITION_GRACEFUL_SHUTDOWN = "GracefulShutdown"
CONDITION_STOPPING = "Stopping"
CONDITION_UPGRADE = "Upgrade"
CONDITION_WELL_FORMED = "WellFormed"

# Annotations driving label propagation
POD_TARGET_LABELS = "infinispan.org/podTargetLabels"
TARGET_LABELS = "infinispan.org/targetLabels"
OPERATOR_POD_TARGET_LABELS = "infinispan.org/operatorPodTargetLabels"
OPERATOR_TARGET_LABELS = "infinispan.org/operatorTargetLabels"

SERVICE_MONITORING_ANNOTATION = "infinispan.org/monitoring"

# Kubernetes object names (routes in particular) are limited to 63 chars
MAX_ROUTE_OBJECT_NAME_LENGTH = 63

SITE_SERVICE_NAME_TEMPLATE = "{}-site"
SITE_ROUTE_NAME_SUFFIX = "-route-site"
SITE_SERVICE_FQN_TEMPLATE = "{}.{}.svc.{}"
GOSSIP_ROUTER_DEPLOYMENT_NAME_TEMPLATE = "{}-router"
GENERATED_SECRET_SUFFIX = "generated-secret"

# Admin endpoint of the server pods
INFINISPAN_CONTAINER = "infinispan"
INFINISPAN_ADMIN_PORT = 11223
INFINISPAN_ADMIN_PROTOCOL = "http"
DEFAULT_OPERATOR_USER = "operator"
ADMIN_IDENTITIES_KEY = "identities.yaml"

POD_APP_LABEL = "infinispan-pod"
STATEFUL_SET_POD_LABEL = "infinispan.org/statefulset"

DEFAULT_IMAGE_NAME = "quay.io/infinispan/server:latest"
NATIVE_IMAGE_MARKER = "native"
DEFAULT_MEMORY_SIZE = "1Gi"
DEFAULT_PV_SIZE = "1Gi"
DEFAULT_REPLICATION_FACTOR = 2

DEFAULT_SITE_KEYSTORE_FILE_NAME = "keystore.p12"
DEFAULT_SITE_TRANSPORT_KEYSTORE_ALIAS = "transport"
DEFAULT_SITE_ROUTER_KEYSTORE_ALIAS = "router"
DEFAULT_SITE_TRUSTSTORE_FILE_NAME = "truststore.p12"
DEFAULT_SITE_TLS_PROTOCOL = "TLSv1.2"

BACKUP_LOG_CATEGORY = "org.infinispan.server.core.backup"


def get_with_default(value: str, default: str) -> str:
    return value if value else default
