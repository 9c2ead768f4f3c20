# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

"""Admin clients bound to a pod of an Infinispan cluster

Building a client for a cluster reads the operator admin credentials from the
cluster's operator secret. That's one round trip to the API server per client,
there is no process wide cache. When a client already exists, use
infinispan_for_pod() to point a copy of it at another pod without reading the
secret again.
"""

from typing import Callable, Optional, cast

import kopf
import yaml
from kubernetes import client as api_client

from .. import consts, kubeutils, utils
from ..errors import CredentialLookupFailed
from .admin_api import ClientConfig, Credentials, HttpClient, InfinispanAdmin
from .cluster_api import Infinispan

SecretLookup = Callable[[str, str], Credentials]
ClientFactory = Callable[[ClientConfig], HttpClient]


def admin_credentials(secret_name: str, namespace: str) -> Credentials:
    """
    Read the operator user from the identities stored in the operator secret.
    """
    secret = cast(api_client.V1Secret, kubeutils.api_core.read_namespaced_secret(
        secret_name, namespace))

    data = secret.data or {}
    if consts.ADMIN_IDENTITIES_KEY not in data:
        raise KeyError(f"secret has no {consts.ADMIN_IDENTITIES_KEY} entry")

    identities = yaml.safe_load(utils.b64decode(data[consts.ADMIN_IDENTITIES_KEY])) or {}
    for cred in identities.get("credentials") or []:
        if cred.get("username") == consts.DEFAULT_OPERATOR_USER:
            return Credentials(consts.DEFAULT_OPERATOR_USER, str(cred["password"]))

    raise KeyError(f"no credentials for user '{consts.DEFAULT_OPERATOR_USER}'")


def new_admin_client(cluster: Infinispan, pod_name: str,
                     secret_lookup: SecretLookup = admin_credentials,
                     client_factory: ClientFactory = HttpClient) -> HttpClient:
    try:
        credentials = secret_lookup(cluster.admin_secret_name, cluster.namespace)
    except Exception as e:
        raise CredentialLookupFailed(cluster.admin_secret_name, cluster.namespace, str(e)) from e

    return client_factory(ClientConfig(
        credentials=credentials,
        pod_name=pod_name,
        namespace=cluster.namespace,
        protocol=consts.INFINISPAN_ADMIN_PROTOCOL,
        port=consts.INFINISPAN_ADMIN_PORT,
        container=consts.INFINISPAN_CONTAINER))


def new_infinispan_for_pod(cluster: Infinispan, pod_name: str,
                           secret_lookup: SecretLookup = admin_credentials,
                           client_factory: ClientFactory = HttpClient) -> InfinispanAdmin:
    return InfinispanAdmin(new_admin_client(cluster, pod_name, secret_lookup, client_factory))


def infinispan_for_pod(pod_name: str, admin: InfinispanAdmin) -> InfinispanAdmin:
    """
    Same as new_infinispan_for_pod() but reuses the credentials of an existing
    client. Prefer this one whenever a client is at hand.
    """
    return InfinispanAdmin(admin.client.for_pod(pod_name))


def new_infinispan(cluster: Infinispan,
                   secret_lookup: SecretLookup = admin_credentials,
                   client_factory: ClientFactory = HttpClient,
                   pods: Optional[list] = None) -> InfinispanAdmin:
    """
    Client bound to the first pod of the cluster's StatefulSet.
    """
    if pods is None:
        pods = cluster.get_pods()
    if not pods:
        raise kopf.TemporaryError(
            f"No pods found for StatefulSet {cluster.namespace}/{cluster.stateful_set_name}", delay=10)

    return new_infinispan_for_pod(cluster, pods[0], secret_lookup, client_factory)
