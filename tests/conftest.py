"""Shared fixtures: an in-memory object store and resource manifests."""

from __future__ import annotations

import copy
from typing import Any

import pytest
import yaml
from kubernetes.client.exceptions import ApiException

from operandlifecycleoperator.constants import OWNERSHIP_LABEL
from operandlifecycleoperator.k8s import (
    CLUSTER_SERVICE_VERSION,
    INSTALL_PLAN,
    OPERAND_REGISTRY,
    OPERAND_REQUEST,
    SUBSCRIPTION,
    ResourceKind,
)


class FakeStore:
    """An in-memory stand-in for `operandlifecycleoperator.k8s.KubernetesStore`.

    Every create, replace, patch and delete is recorded in ``writes`` as
    ``(verb, kind, namespace, name)``.
    """

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str | None, str], dict[str, Any]] = {}
        self.writes: list[tuple[str, str, str | None, str]] = []
        self.failures: dict[tuple[str, str, str], int] = {}

    def add(self, kind: ResourceKind, body: dict[str, Any]) -> dict[str, Any]:
        """Seed a resource without recording a write."""
        body = copy.deepcopy(body)
        metadata = body.setdefault("metadata", {})
        metadata.setdefault("resourceVersion", "1")
        key = (kind.plural, metadata.get("namespace"), metadata["name"])
        self.objects[key] = body
        return body

    def find(
        self, kind: ResourceKind, name: str, namespace: str | None = None
    ) -> dict[str, Any] | None:
        return self.objects.get((kind.plural, namespace, name))

    def fail(
        self, verb: str, kind: ResourceKind, name: str, status: int = 500
    ) -> None:
        """Make a verb fail for a named resource."""
        self.failures[(verb, kind.plural, name)] = status

    def _check(self, verb: str, kind: ResourceKind, name: str) -> None:
        status = self.failures.get((verb, kind.plural, name))
        if status is not None:
            raise ApiException(status=status, reason="Injected")

    def get(
        self, kind: ResourceKind, name: str, namespace: str | None = None
    ) -> dict[str, Any]:
        self._check("get", kind, name)
        body = self.find(kind, name, namespace)
        if body is None:
            raise ApiException(status=404, reason="Not Found")
        return copy.deepcopy(body)

    def list(
        self,
        kind: ResourceKind,
        namespace: str | None = None,
        label_selector: str | None = None,
    ) -> list[dict[str, Any]]:
        items = []
        for (plural, item_namespace, _), body in self.objects.items():
            if plural != kind.plural:
                continue
            if namespace is not None and item_namespace != namespace:
                continue
            if label_selector:
                labels = body["metadata"].get("labels") or {}
                label, _, value = label_selector.partition("=")
                if labels.get(label) != value:
                    continue
            items.append(copy.deepcopy(body))
        return items

    def create(
        self, kind: ResourceKind, body: dict[str, Any]
    ) -> dict[str, Any]:
        metadata = body["metadata"]
        self._check("create", kind, metadata["name"])
        if self.find(kind, metadata["name"], metadata.get("namespace")):
            raise ApiException(status=409, reason="AlreadyExists")
        self.writes.append(
            ("create", kind.kind, metadata.get("namespace"), metadata["name"])
        )
        return self.add(kind, body)

    def replace(
        self, kind: ResourceKind, body: dict[str, Any]
    ) -> dict[str, Any]:
        metadata = body["metadata"]
        self._check("replace", kind, metadata["name"])
        current = self.find(kind, metadata["name"], metadata["namespace"])
        if current is None:
            raise ApiException(status=404, reason="Not Found")
        version = current["metadata"]["resourceVersion"]
        if metadata.get("resourceVersion") != version:
            raise ApiException(status=409, reason="Conflict")
        self.writes.append(
            ("replace", kind.kind, metadata["namespace"], metadata["name"])
        )
        body = copy.deepcopy(body)
        body["metadata"]["resourceVersion"] = str(int(version) + 1)
        return self.add(kind, body)

    def patch(
        self,
        kind: ResourceKind,
        name: str,
        namespace: str,
        body: dict[str, Any],
    ) -> dict[str, Any]:
        self._check("patch", kind, name)
        current = self.find(kind, name, namespace)
        if current is None:
            raise ApiException(status=404, reason="Not Found")
        self.writes.append(("patch", kind.kind, namespace, name))
        annotations = body.get("metadata", {}).get("annotations", {})
        current["metadata"].setdefault("annotations", {}).update(annotations)
        return copy.deepcopy(current)

    def delete(
        self, kind: ResourceKind, name: str, namespace: str | None = None
    ) -> None:
        self._check("delete", kind, name)
        if self.objects.pop((kind.plural, namespace, name), None) is None:
            raise ApiException(status=404, reason="Not Found")
        self.writes.append(("delete", kind.kind, namespace, name))


REGISTRY_MANIFEST = """
apiVersion: operator.ibm.com/v1alpha1
kind: OperandRegistry
metadata:
  name: common-service
  namespace: odlm
spec:
  operators:
  - name: etcd
    namespace: etcd-operator
    channel: clusterwide-alpha
    packageName: etcd
    sourceName: community-operators
    sourceNamespace: openshift-marketplace
    scope: public
  - name: jenkins
    namespace: jenkins-operator
    channel: alpha
    packageName: jenkins-operator
    sourceName: community-operators
    sourceNamespace: openshift-marketplace
    scope: public
  - name: mongodb
    namespace: mongodb-operator
    channel: stable
    packageName: mongodb-enterprise
    sourceName: certified-operators
    sourceNamespace: openshift-marketplace
"""


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def registry(store: FakeStore) -> dict[str, Any]:
    return store.add(OPERAND_REGISTRY, yaml.safe_load(REGISTRY_MANIFEST))


def make_request(
    *,
    name: str = "common-service",
    namespace: str = "odlm",
    operands: list[str] | None = None,
    registry: str = "common-service",
    registry_namespace: str | None = None,
    members: list[dict[str, Any]] | None = None,
    terminating: bool = False,
) -> dict[str, Any]:
    """Build an OperandRequest with a single request entry."""
    entry: dict[str, Any] = {
        "registry": registry,
        "operands": [{"name": o} for o in operands or []],
    }
    if registry_namespace:
        entry["registryNamespace"] = registry_namespace
    metadata: dict[str, Any] = {"name": name, "namespace": namespace}
    if terminating:
        metadata["deletionTimestamp"] = "2024-01-01T00:00:00Z"
    request: dict[str, Any] = {
        "apiVersion": OPERAND_REQUEST.api_version,
        "kind": OPERAND_REQUEST.kind,
        "metadata": metadata,
        "spec": {"requests": [entry]},
    }
    if members is not None:
        request["status"] = {"members": members}
    return request


def member(name: str, registry: str = "odlm/common-service") -> dict[str, Any]:
    return {"name": name, "registry": registry, "phase": "Running"}


def installed_operand(
    store: FakeStore,
    *,
    name: str,
    namespace: str,
    package: str | None = None,
    channel: str = "clusterwide-alpha",
    plan_phase: str | None = "Complete",
    owned: bool = True,
    labels: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Seed a Subscription with its InstallPlan and CSV."""
    csv_name = f"{name}.v1.0.0"
    plan_name = f"install-{name}"
    sub_labels = dict(labels or {})
    if owned:
        sub_labels[OWNERSHIP_LABEL] = "true"
    subscription = store.add(
        SUBSCRIPTION,
        {
            "metadata": {
                "name": name,
                "namespace": namespace,
                "labels": sub_labels,
            },
            "spec": {
                "channel": channel,
                "name": package or name,
                "source": "community-operators",
                "sourceNamespace": "openshift-marketplace",
                "installPlanApproval": "Automatic",
            },
            "status": {
                "currentCSV": csv_name,
                "installedCSV": csv_name,
                "installPlanRef": {"name": plan_name, "namespace": namespace},
            },
        },
    )
    if plan_phase is not None:
        store.add(
            INSTALL_PLAN,
            {
                "metadata": {"name": plan_name, "namespace": namespace},
                "status": {"phase": plan_phase},
            },
        )
    store.add(
        CLUSTER_SERVICE_VERSION,
        {
            "metadata": {"name": csv_name, "namespace": namespace},
            "spec": {"customresourcedefinitions": {"owned": []}},
        },
    )
    return subscription
