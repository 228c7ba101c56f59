"""Read access to OperandRegistry resources with defaults applied."""

__all__ = (
    "RegistryKey",
    "get_operator",
    "get_registry",
    "list_registries",
    "normalize_operator",
    "normalize_registry",
)

import copy
from typing import Any, NamedTuple

from operandlifecycleoperator.constants import (
    APPROVAL_AUTOMATIC,
    INSTALL_MODE_NAMESPACE,
    SCOPE_PRIVATE,
)
from operandlifecycleoperator.k8s import OPERAND_REGISTRY, KubernetesStore


class RegistryKey(NamedTuple):
    """The namespace and name that identify an OperandRegistry."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def parse(cls, value: str) -> "RegistryKey":
        """Parse the ``namespace/name`` form produced by `str`."""
        namespace, _, name = value.partition("/")
        return cls(namespace=namespace, name=name)


def normalize_operator(operator: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of an operator definition with unset ``scope``,
    ``installMode`` and ``installPlanApproval`` fields given their
    defaults.

    Parameters
    ----------
    operator : `dict`
        One item of an OperandRegistry's ``spec.operators``.

    Returns
    -------
    operator : `dict`
        The defaulted definition. The argument is not modified.
    """
    normalized = dict(operator)
    if not normalized.get("scope"):
        normalized["scope"] = SCOPE_PRIVATE
    if not normalized.get("installMode"):
        normalized["installMode"] = INSTALL_MODE_NAMESPACE
    if not normalized.get("installPlanApproval"):
        normalized["installPlanApproval"] = APPROVAL_AUTOMATIC
    return normalized


def normalize_registry(registry: dict[str, Any]) -> dict[str, Any]:
    """Return a deep copy of an OperandRegistry whose operators are
    normalized with `normalize_operator`.
    """
    registry = copy.deepcopy(registry)
    spec = registry.setdefault("spec", {})
    spec["operators"] = [
        normalize_operator(o) for o in spec.get("operators") or []
    ]
    return registry


def get_registry(store: KubernetesStore, key: RegistryKey) -> dict[str, Any]:
    """Get an OperandRegistry with defaults applied to its operators.

    The defaults are not written back to the cluster.

    Parameters
    ----------
    store : `operandlifecycleoperator.k8s.KubernetesStore`
        Access to the cluster.
    key : `RegistryKey`
        The registry's namespace and name.

    Raises
    ------
    kubernetes.client.exceptions.ApiException
        Raised unchanged, including the 404 raised when the registry does not
        exist.
    """
    registry = store.get(OPERAND_REGISTRY, key.name, key.namespace)
    return normalize_registry(registry)


def list_registries(
    store: KubernetesStore, label_selector: str | None = None
) -> list[dict[str, Any]]:
    """List OperandRegistries in all namespaces with defaults applied."""
    return [
        normalize_registry(item)
        for item in store.list(
            OPERAND_REGISTRY, label_selector=label_selector
        )
    ]


def get_operator(
    registry: dict[str, Any], name: str
) -> dict[str, Any] | None:
    """Get the operator definition with the given name, or `None`."""
    for operator in registry.get("spec", {}).get("operators") or []:
        if operator.get("name") == name:
            return operator
    return None
