"""Helpers for reading the requests declared by OperandRequest resources."""

__all__ = (
    "get_request_entries",
    "is_terminating",
    "list_requests_by_registry",
    "requested_operands_for_registry",
)

from typing import Any

import structlog

from operandlifecycleoperator.errors import MalformedObjectError
from operandlifecycleoperator.k8s import OPERAND_REQUEST, KubernetesStore
from operandlifecycleoperator.orderedset import OrderedNameSet
from operandlifecycleoperator.registry import RegistryKey


def get_request_entries(
    request: dict[str, Any],
) -> list[tuple[RegistryKey, list[str]]]:
    """Get the registry key and requested operand names of every entry in
    an OperandRequest's ``spec.requests``.

    The registry namespace defaults to the OperandRequest's own namespace.

    Raises
    ------
    MalformedObjectError
        Raised if an entry does not name a registry, or an operand has no
        name.
    """
    metadata = request.get("metadata", {})
    entries = []
    for entry in (request.get("spec") or {}).get("requests") or []:
        registry = entry.get("registry")
        if not registry:
            raise MalformedObjectError(
                f"OperandRequest {metadata.get('name')} has a request "
                "without a registry"
            )
        namespace = entry.get("registryNamespace") or metadata.get(
            "namespace", ""
        )
        names = []
        for operand in entry.get("operands") or []:
            if not operand.get("name"):
                raise MalformedObjectError(
                    f"OperandRequest {metadata.get('name')} requests an "
                    f"operand without a name from registry {registry}"
                )
            names.append(operand["name"])
        entries.append((RegistryKey(namespace, registry), names))
    return entries


def is_terminating(request: dict[str, Any]) -> bool:
    return bool(request.get("metadata", {}).get("deletionTimestamp"))


def list_requests_by_registry(
    store: KubernetesStore, key: RegistryKey, logger: Any | None = None
) -> list[dict[str, Any]]:
    """List the OperandRequests in all namespaces that have at least one
    entry for the given registry.

    Malformed OperandRequests are logged and left out.
    """
    if logger is None:
        logger = structlog.getLogger(__name__)

    matches = []
    for request in store.list(OPERAND_REQUEST):
        try:
            entries = get_request_entries(request)
        except MalformedObjectError as e:
            logger.warning(f"Ignoring malformed OperandRequest: {e}")
            continue
        if any(k == key for k, _ in entries):
            matches.append(request)
    return matches


def requested_operands_for_registry(
    requests: list[dict[str, Any]], key: RegistryKey
) -> OrderedNameSet:
    """Union of the operands that live (not terminating) requests ask for
    from the given registry.
    """
    names = OrderedNameSet()
    for request in requests:
        if is_terminating(request):
            continue
        for registry_key, operands in get_request_entries(request):
            if registry_key != key:
                continue
            for name in operands:
                names.add(name)
    return names
