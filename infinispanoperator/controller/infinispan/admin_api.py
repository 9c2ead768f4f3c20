# Copyright (c) 2020, 2024, Oracle and/or its affiliates.
#
# Licensed under the Universal Permissive License v 1.0 as shown at https://oss.oracle.com/licenses/upl/
#

"""HTTP access to the admin endpoint of a single Infinispan pod"""

from typing import Any, NamedTuple, Optional, cast

import requests
from requests.auth import HTTPDigestAuth
from kubernetes import client as api_client

from .. import kubeutils


class Credentials(NamedTuple):
    username: str
    password: str

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password='****')"


class ClientConfig(NamedTuple):
    credentials: Credentials
    pod_name: str
    namespace: str
    protocol: str
    port: int
    # container serving the admin endpoint
    container: str


class HttpClient:
    """
    Issues authenticated requests to the admin port of one pod. Nothing is
    retried, errors from requests are raised to the caller.
    """

    def __init__(self, config: ClientConfig, session: Optional[requests.Session] = None) -> None:
        self.config = config
        self.session = session or requests.Session()
        self.session.auth = HTTPDigestAuth(*config.credentials)
        self._address: Optional[str] = None

    def __repr__(self) -> str:
        return f"<HttpClient {self.config.namespace}/{self.config.pod_name}:{self.config.port}>"

    def for_pod(self, pod_name: str) -> 'HttpClient':
        """
        A client for another pod of the same cluster, reusing the credentials
        and the session of this one.
        """
        return type(self)(self.config._replace(pod_name=pod_name), session=self.session)

    def _resolve_address(self) -> str:
        pod = cast(api_client.V1Pod, kubeutils.api_core.read_namespaced_pod(
            self.config.pod_name, self.config.namespace))

        for cs in pod.status.container_statuses or []:
            if cs.name == self.config.container and cs.ready:
                break
        else:
            raise requests.ConnectionError(
                f"container {self.config.container} of pod {self.config.namespace}/{self.config.pod_name} is not ready")

        if not pod.status.pod_ip:
            raise requests.ConnectionError(
                f"pod {self.config.namespace}/{self.config.pod_name} has no IP address")
        return pod.status.pod_ip

    @property
    def base_url(self) -> str:
        if not self._address:
            self._address = self._resolve_address()
        return f"{self.config.protocol}://{self._address}:{self.config.port}"

    def request(self, method: str, path: str, **kwargs) -> requests.Response:
        response = self.session.request(method, f"{self.base_url}/{path.lstrip('/')}", **kwargs)
        response.raise_for_status()
        return response

    def get(self, path: str, **kwargs) -> requests.Response:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, **kwargs) -> requests.Response:
        return self.request("POST", path, **kwargs)


class InfinispanAdmin:
    """
    Server admin operations, run against the pod the client is bound to.
    """

    def __init__(self, client: HttpClient) -> None:
        self.client = client

    def __repr__(self) -> str:
        return f"<InfinispanAdmin {self.pod_name}>"

    @property
    def pod_name(self) -> str:
        return self.client.config.pod_name

    def cluster_health(self, **kwargs) -> Any:
        return self.client.get("rest/v2/container/health", **kwargs).json()

    def cluster_members(self, **kwargs) -> list:
        info = self.client.get("rest/v2/container", **kwargs).json()
        return info.get("cluster_members") or []

    def graceful_shutdown(self, **kwargs) -> None:
        self.client.post("rest/v2/container", params={"action": "shutdown"}, **kwargs)
