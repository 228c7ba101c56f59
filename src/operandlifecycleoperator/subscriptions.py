"""Builders for the Namespace, OperatorGroup and Subscription resources that
install an operator, and comparisons against live Subscriptions.
"""

from __future__ import annotations

import copy
from typing import Any, NamedTuple

from kubernetes.client.exceptions import ApiException

from operandlifecycleoperator import state
from operandlifecycleoperator.constants import (
    DO_NOT_UNINSTALL_LABEL,
    INSTALL_MODE_CLUSTER,
    OPERATOR_GROUP_NAME,
    OWNERSHIP_LABEL,
)
from operandlifecycleoperator.errors import is_not_found
from operandlifecycleoperator.k8s import (
    NAMESPACE,
    OPERATOR_GROUP,
    SUBSCRIPTION,
    KubernetesStore,
)

__all__ = (
    "ClusterObjects",
    "apply_operator_to_subscription",
    "create_namespace",
    "create_operator_group",
    "create_subscription",
    "find_subscription",
    "get_operator_namespace",
    "is_owned",
    "is_uninstall_disabled",
    "plan_cluster_objects",
    "subscription_needs_update",
)

# Operator definition field -> Subscription spec field
_SUBSCRIPTION_FIELDS = (
    ("sourceName", "source"),
    ("channel", "channel"),
    ("sourceNamespace", "sourceNamespace"),
    ("packageName", "name"),
)


class ClusterObjects(NamedTuple):
    """The resources needed to install one operator."""

    namespace: dict[str, Any]
    operator_group: dict[str, Any]
    subscription: dict[str, Any]


def get_operator_namespace(install_mode: str, namespace: str) -> str:
    """Get the namespace where an operator's Subscription lives.

    Parameters
    ----------
    install_mode : `str`
        The operator's ``installMode``, ``namespace`` or ``cluster``.
    namespace : `str`
        The operator's configured namespace.

    Returns
    -------
    namespace : `str`
        The cluster-wide operator namespace for ``cluster`` install mode,
        otherwise ``namespace``.
    """
    if install_mode == INSTALL_MODE_CLUSTER:
        return state.cluster_operator_namespace
    return namespace


def _ownership_labels() -> dict[str, str]:
    return {OWNERSHIP_LABEL: "true"}


def create_namespace(*, name: str) -> dict[str, Any]:
    """Create the JSON resource for a Namespace."""
    return {
        "apiVersion": NAMESPACE.api_version,
        "kind": NAMESPACE.kind,
        "metadata": {"name": name, "labels": _ownership_labels()},
    }


def create_operator_group(
    *, namespace: str, target_namespaces: list[str] | None = None
) -> dict[str, Any]:
    """Create the JSON resource for an OperatorGroup.

    Parameters
    ----------
    namespace : `str`
        Namespace of the OperatorGroup.
    target_namespaces : `list` of `str`, optional
        Namespaces the operators in the group watch. Defaults to
        ``[namespace]``.

    Returns
    -------
    operator_group : `dict`
        The OperatorGroup resource.
    """
    if target_namespaces is None:
        target_namespaces = [namespace]
    return {
        "apiVersion": OPERATOR_GROUP.api_version,
        "kind": OPERATOR_GROUP.kind,
        "metadata": {
            "name": OPERATOR_GROUP_NAME,
            "namespace": namespace,
            "labels": _ownership_labels(),
        },
        "spec": {"targetNamespaces": list(target_namespaces)},
    }


def create_subscription(
    *,
    name: str,
    namespace: str,
    package: str,
    channel: str,
    source: str,
    source_namespace: str,
    install_plan_approval: str | None,
) -> dict[str, Any]:
    """Create the JSON resource for an OLM Subscription.

    Parameters
    ----------
    name : `str`
        Name of the operator, also used as the Subscription name.
    namespace : `str`
        Namespace of the Subscription (see `get_operator_namespace`).
    package : `str`
        The package name in the catalog.
    channel : `str`
        The channel to subscribe to.
    source : `str`
        Name of the CatalogSource.
    source_namespace : `str`
        Namespace of the CatalogSource.
    install_plan_approval : `str` or `None`
        ``Automatic`` or ``Manual``. `None` omits the setting.

    Returns
    -------
    subscription : `dict`
        The Subscription resource.
    """
    spec = {
        "channel": channel,
        "name": package,
        "source": source,
        "sourceNamespace": source_namespace,
    }
    if install_plan_approval:
        spec["installPlanApproval"] = install_plan_approval
    return {
        "apiVersion": SUBSCRIPTION.api_version,
        "kind": SUBSCRIPTION.kind,
        "metadata": {
            "name": name,
            "namespace": namespace,
            "labels": _ownership_labels(),
        },
        "spec": spec,
    }


def plan_cluster_objects(operator: dict[str, Any]) -> ClusterObjects:
    """Derive the resources that install an operator from its definition.

    Parameters
    ----------
    operator : `dict`
        A normalized operator definition from an OperandRegistry (see
        `operandlifecycleoperator.registry.normalize_operator`).

    Returns
    -------
    objects : `ClusterObjects`
        The Namespace, OperatorGroup and Subscription. Every resource carries
        the ownership label.
    """
    operator_namespace = operator["namespace"]
    return ClusterObjects(
        namespace=create_namespace(name=operator_namespace),
        operator_group=create_operator_group(
            namespace=operator_namespace,
            target_namespaces=operator.get("targetNamespaces"),
        ),
        subscription=create_subscription(
            name=operator["name"],
            namespace=get_operator_namespace(
                operator["installMode"], operator_namespace
            ),
            package=operator["packageName"],
            channel=operator["channel"],
            source=operator["sourceName"],
            source_namespace=operator["sourceNamespace"],
            install_plan_approval=operator.get("installPlanApproval"),
        ),
    )


def is_owned(resource: dict[str, Any]) -> bool:
    """Whether a resource carries the ownership label."""
    labels = resource.get("metadata", {}).get("labels") or {}
    return OWNERSHIP_LABEL in labels


def is_uninstall_disabled(subscription: dict[str, Any]) -> bool:
    """Whether a Subscription opts out of uninstallation."""
    labels = subscription.get("metadata", {}).get("labels") or {}
    return labels.get(DO_NOT_UNINSTALL_LABEL) == "true"


def subscription_needs_update(
    subscription: dict[str, Any], operator: dict[str, Any]
) -> bool:
    """Whether a live Subscription's spec differs from an operator
    definition.

    ``installPlanApproval`` is only compared when the definition sets it.
    """
    spec = subscription.get("spec") or {}
    for operator_field, spec_field in _SUBSCRIPTION_FIELDS:
        if spec.get(spec_field) != operator.get(operator_field):
            return True
    approval = operator.get("installPlanApproval")
    return bool(approval) and spec.get("installPlanApproval") != approval


def apply_operator_to_subscription(
    subscription: dict[str, Any], operator: dict[str, Any]
) -> dict[str, Any]:
    """Return a copy of a live Subscription with its spec overwritten from an
    operator definition.

    The copy keeps ``metadata.resourceVersion`` so that replacing it
    fails on a concurrent change.
    """
    updated = copy.deepcopy(subscription)
    spec = updated.setdefault("spec", {})
    for operator_field, spec_field in _SUBSCRIPTION_FIELDS:
        spec[spec_field] = operator.get(operator_field)
    approval = operator.get("installPlanApproval")
    if approval:
        spec["installPlanApproval"] = approval
    return updated


def find_subscription(
    store: KubernetesStore,
    name: str,
    namespace: str,
    package: str | None = None,
) -> dict[str, Any] | None:
    """Get a live Subscription by operator name, falling back to the package
    name.

    Returns
    -------
    subscription : `dict` or `None`
        The Subscription, or `None` if neither name exists.

    Raises
    ------
    kubernetes.client.exceptions.ApiException
        Raised for API failures other than a missing Subscription.
    """
    candidates = [name]
    if package and package != name:
        candidates.append(package)
    for candidate in candidates:
        try:
            return store.get(SUBSCRIPTION, candidate, namespace)
        except ApiException as e:
            if not is_not_found(e):
                raise
    return None
