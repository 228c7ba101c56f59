"""Helpers for interacting with Kubernetes APIs."""

__all__ = (
    "CLUSTER_SERVICE_VERSION",
    "INSTALL_PLAN",
    "NAMESPACE",
    "OPERAND_REGISTRY",
    "OPERAND_REQUEST",
    "OPERATOR_GROUP",
    "SUBSCRIPTION",
    "KubernetesStore",
    "ResourceKind",
    "create_k8sclient",
)

import json
from typing import Any, NamedTuple

import kubernetes

from operandlifecycleoperator.constants import (
    API_GROUP,
    API_VERSION,
    OLM_GROUP,
    REGISTRY_PLURAL,
    REQUEST_PLURAL,
)


def create_k8sclient() -> kubernetes.client:
    """Get a Kubernetes client configured with available cluster
    authentication.

    If in-cluster authentication is available, that is used. Otherwise
    this function falls-back to using a kubectl config file, which is
    appropriate for development.
    """
    try:
        kubernetes.config.load_incluster_config()
    except Exception:
        kubernetes.config.load_kube_config()
    kubernetes.client.configuration.assert_hostname = False
    return kubernetes.client


class ResourceKind(NamedTuple):
    """The API coordinates of a kind of resource."""

    group: str
    version: str
    plural: str
    kind: str

    @property
    def api_version(self) -> str:
        if self.group:
            return f"{self.group}/{self.version}"
        return self.version

    @classmethod
    def from_crd_description(cls, owned: dict[str, Any]) -> "ResourceKind":
        """Build a kind from an entry of a CSV's
        ``spec.customresourcedefinitions.owned`` list.

        The CRD ``name`` has the form ``<plural>.<group>``.
        """
        plural, _, group = owned["name"].partition(".")
        return cls(
            group=group,
            version=owned["version"],
            plural=plural,
            kind=owned["kind"],
        )


OPERAND_REGISTRY = ResourceKind(
    API_GROUP, API_VERSION, REGISTRY_PLURAL, "OperandRegistry"
)
OPERAND_REQUEST = ResourceKind(
    API_GROUP, API_VERSION, REQUEST_PLURAL, "OperandRequest"
)
SUBSCRIPTION = ResourceKind(
    OLM_GROUP, "v1alpha1", "subscriptions", "Subscription"
)
INSTALL_PLAN = ResourceKind(
    OLM_GROUP, "v1alpha1", "installplans", "InstallPlan"
)
CLUSTER_SERVICE_VERSION = ResourceKind(
    OLM_GROUP, "v1alpha1", "clusterserviceversions", "ClusterServiceVersion"
)
OPERATOR_GROUP = ResourceKind(
    OLM_GROUP, "v1", "operatorgroups", "OperatorGroup"
)
NAMESPACE = ResourceKind("", "v1", "namespaces", "Namespace")


class KubernetesStore:
    """Typed CRUD access to Kubernetes resources as raw ``dict`` manifests.

    Custom resources go through the ``CustomObjectsApi``. Namespaces, the
    only core resource the operator touches, go through the ``CoreV1Api``.

    All methods raise `kubernetes.client.exceptions.ApiException` on
    failure. A ``status`` of 404 means the resource does not exist and 409
    means it already exists (on create) or was modified concurrently (on
    replace and patch).

    Parameters
    ----------
    k8s_client
        A Kubernetes client (see `create_k8sclient`).
    """

    def __init__(self, k8s_client: Any) -> None:
        self._custom_api = k8s_client.CustomObjectsApi()
        self._core_api = k8s_client.CoreV1Api()

    def get(
        self, kind: ResourceKind, name: str, namespace: str | None = None
    ) -> dict[str, Any]:
        """Get a resource by name."""
        if kind == NAMESPACE:
            result = self._core_api.read_namespace(
                name=name, _preload_content=False
            )
            return json.loads(result.data)
        if namespace is None:
            return self._custom_api.get_cluster_custom_object(
                group=kind.group,
                version=kind.version,
                plural=kind.plural,
                name=name,
            )
        return self._custom_api.get_namespaced_custom_object(
            group=kind.group,
            version=kind.version,
            namespace=namespace,
            plural=kind.plural,
            name=name,
        )

    def list(
        self,
        kind: ResourceKind,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> list[dict[str, Any]]:
        """List resources, across all namespaces when ``namespace`` is
        `None`.
        """
        kwargs: dict[str, Any] = {}
        if label_selector:
            kwargs["label_selector"] = label_selector
        if kind == NAMESPACE:
            result = self._core_api.list_namespace(
                _preload_content=False, **kwargs
            )
            return json.loads(result.data)["items"]
        if namespace is None:
            response = self._custom_api.list_cluster_custom_object(
                group=kind.group,
                version=kind.version,
                plural=kind.plural,
                **kwargs,
            )
        else:
            response = self._custom_api.list_namespaced_custom_object(
                group=kind.group,
                version=kind.version,
                namespace=namespace,
                plural=kind.plural,
                **kwargs,
            )
        return response["items"]

    def create(
        self,
        kind: ResourceKind,
        body: dict[str, Any],
    ) -> dict[str, Any]:
        """Create a resource in the namespace named by its metadata."""
        if kind == NAMESPACE:
            result = self._core_api.create_namespace(
                body=body, _preload_content=False
            )
            return json.loads(result.data)
        return self._custom_api.create_namespaced_custom_object(
            group=kind.group,
            version=kind.version,
            namespace=body["metadata"]["namespace"],
            plural=kind.plural,
            body=body,
        )

    def replace(
        self,
        kind: ResourceKind,
        body: dict[str, Any],
    ) -> dict[str, Any]:
        """Replace a resource.

        The ``metadata.resourceVersion`` carried by ``body`` makes the write
        fail with a 409 if the resource changed since it was read.
        """
        metadata = body["metadata"]
        return self._custom_api.replace_namespaced_custom_object(
            group=kind.group,
            version=kind.version,
            namespace=metadata["namespace"],
            plural=kind.plural,
            name=metadata["name"],
            body=body,
        )

    def patch(
        self,
        kind: ResourceKind,
        name: str,
        namespace: str,
        body: dict[str, Any],
    ) -> dict[str, Any]:
        """Apply a merge patch to a resource."""
        return self._custom_api.patch_namespaced_custom_object(
            group=kind.group,
            version=kind.version,
            namespace=namespace,
            plural=kind.plural,
            name=name,
            body=body,
        )

    def delete(
        self, kind: ResourceKind, name: str, namespace: str | None = None
    ) -> None:
        """Delete a resource by name."""
        if kind == NAMESPACE:
            self._core_api.delete_namespace(name=name)
            return
        self._custom_api.delete_namespaced_custom_object(
            group=kind.group,
            version=kind.version,
            namespace=namespace,
            plural=kind.plural,
            name=name,
        )
