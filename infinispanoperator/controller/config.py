# Copyright (c) 2020, 2023, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

from importlib.metadata import distributions
import os

from . import utils

debug = 0

# Constants
OPERATOR_VERSION = "2.4.0"

DEFAULT_K8S_CLUSTER_DOMAIN = "cluster.local"

TARGET_LABELS_ENV_NAME = "INFINISPAN_OPERATOR_TARGET_LABELS"
POD_TARGET_LABELS_ENV_NAME = "INFINISPAN_OPERATOR_POD_TARGET_LABELS"

k8s_cluster_domain = DEFAULT_K8S_CLUSTER_DOMAIN

# Labels the operator propagates to every cluster it manages. Captured once by
# config_from_env() and passed to Infinispan.apply_operator_labels().
operator_target_labels: dict = {}
operator_pod_target_labels: dict = {}


def log_config_banner(logger) -> None:
    logger.info(f"OPERATOR_VERSION   ={OPERATOR_VERSION}")
    logger.info(f"K8S_CLUSTER_DOMAIN ={k8s_cluster_domain}")
    logger.info(f"TARGET_LABELS      ={operator_target_labels}")
    logger.info(f"POD_TARGET_LABELS  ={operator_pod_target_labels}")
    for dist in distributions():
        logger.info(f"{dist.metadata['Name']:20} = {dist.version:10}")


def config_from_env() -> None:
    global debug
    global k8s_cluster_domain
    global operator_target_labels
    global operator_pod_target_labels

    level = os.getenv("INFINISPAN_OPERATOR_DEBUG")
    if level:
        debug = int(level)

    k8s_cluster_domain = os.getenv("INFINISPAN_OPERATOR_K8S_CLUSTER_DOMAIN",
                                   DEFAULT_K8S_CLUSTER_DOMAIN)

    errors = []
    try:
        operator_target_labels = utils.parse_label_map(
            os.getenv(TARGET_LABELS_ENV_NAME, ""), f"{TARGET_LABELS_ENV_NAME} environment variable")
    except ValueError as e:
        errors.append(str(e))
    try:
        operator_pod_target_labels = utils.parse_label_map(
            os.getenv(POD_TARGET_LABELS_ENV_NAME, ""), f"{POD_TARGET_LABELS_ENV_NAME} environment variable")
    except ValueError as e:
        errors.append(str(e))
    if errors:
        raise ValueError("\n".join(errors))
