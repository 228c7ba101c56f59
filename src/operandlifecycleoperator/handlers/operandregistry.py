"""Kopf handler that reacts to changes of OperandRegistry resources."""

__all__ = ("handle_registry_change", "notify_requests")

from typing import Any

import kopf
import structlog
from kubernetes.client.exceptions import ApiException

from operandlifecycleoperator import state
from operandlifecycleoperator.constants import (
    API_GROUP,
    API_VERSION,
    REGISTRY_PLURAL,
    REGISTRY_TRIGGER_ANNOTATION,
)
from operandlifecycleoperator.errors import is_not_found
from operandlifecycleoperator.k8s import (
    OPERAND_REQUEST,
    KubernetesStore,
    create_k8sclient,
)
from operandlifecycleoperator.operands import (
    is_terminating,
    list_requests_by_registry,
)
from operandlifecycleoperator.registry import RegistryKey


def notify_requests(
    *,
    store: KubernetesStore,
    key: RegistryKey,
    resource_version: str,
    logger: Any | None = None,
) -> list[str]:
    """Annotate every live OperandRequest that uses a registry with the
    registry's ``resourceVersion``, so that each is reconciled against the
    changed registry.

    Returns
    -------
    names : `list` of `str`
        ``namespace/name`` of the OperandRequests that were annotated.
    """
    if logger is None:
        logger = structlog.getLogger(__name__)

    notified = []
    for request in list_requests_by_registry(store, key, logger=logger):
        if is_terminating(request):
            continue
        metadata = request["metadata"]
        annotations = metadata.get("annotations") or {}
        if annotations.get(REGISTRY_TRIGGER_ANNOTATION) == resource_version:
            continue
        try:
            store.patch(
                OPERAND_REQUEST,
                metadata["name"],
                metadata["namespace"],
                {
                    "metadata": {
                        "annotations": {
                            REGISTRY_TRIGGER_ANNOTATION: resource_version
                        }
                    }
                },
            )
        except ApiException as e:
            if not is_not_found(e):
                raise
            continue
        notified.append(f"{metadata['namespace']}/{metadata['name']}")
    return notified


@kopf.on.create(API_GROUP, API_VERSION, REGISTRY_PLURAL)  # type: ignore[arg-type]
@kopf.on.update(API_GROUP, API_VERSION, REGISTRY_PLURAL)  # type: ignore[arg-type]
def handle_registry_change(
    *,
    meta: dict[str, Any],
    namespace: str,
    name: str,
    logger: Any,
    **kwargs: Any,
) -> None:
    """Handle the creation or change of an OperandRegistry by triggering the
    reconciliation of the OperandRequests that use it.

    Parameters
    ----------
    meta : dict
        The ``metadata`` field of the ``OperandRegistry``.
    namespace : str
        The Kubernetes namespace of the ``OperandRegistry``.
    name : str
        The name of the ``OperandRegistry``.
    logger : Any
        The kopf logger.
    **kwargs : Any
        Additional keyword arguments provided by kopf.
    """
    store = KubernetesStore(create_k8sclient())
    try:
        notified = notify_requests(
            store=store,
            key=RegistryKey(namespace, name),
            resource_version=meta["resourceVersion"],
            logger=logger,
        )
    except ApiException as e:
        raise kopf.TemporaryError(
            f"Failed to notify OperandRequests of OperandRegistry "
            f"{namespace}/{name}: {e.reason}",
            delay=state.requeue_delay,
        ) from e
    logger.info(
        f"OperandRegistry {namespace}/{name} changed; "
        f"notified OperandRequests {notified}"
    )
