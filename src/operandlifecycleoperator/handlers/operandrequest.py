"""Kopf handlers for OperandRequest resources."""

__all__ = (
    "reconcile_request",
    "remove_request",
    "run_reconcile",
)

from typing import Any

import kopf
from kubernetes.client.exceptions import ApiException

from operandlifecycleoperator import state
from operandlifecycleoperator.constants import (
    API_GROUP,
    API_VERSION,
    REQUEST_PLURAL,
)
from operandlifecycleoperator.errors import (
    AggregateDeletionError,
    MalformedObjectError,
    is_conflict,
)
from operandlifecycleoperator.garbagecollector import collect_garbage
from operandlifecycleoperator.k8s import KubernetesStore, create_k8sclient
from operandlifecycleoperator.reconcile import (
    ReconcileResult,
    reconcile_operators,
)


def _retry_error(error: ApiException, action: str) -> kopf.TemporaryError:
    if is_conflict(error):
        return kopf.TemporaryError(
            f"Conflict while {action}, retrying: {error.reason}",
            delay=state.conflict_retry_delay,
        )
    return kopf.TemporaryError(
        f"API error while {action}: {error.status} {error.reason}",
        delay=state.requeue_delay,
    )


def run_reconcile(
    *,
    body: dict[str, Any],
    store: KubernetesStore,
    patch: Any,
    logger: Any,
) -> ReconcileResult:
    """Reconcile an OperandRequest and write its new status to ``patch``.

    Parameters
    ----------
    body : `dict`
        The full body of the OperandRequest.
    store : `operandlifecycleoperator.k8s.KubernetesStore`
        Access to the cluster.
    patch : `kopf.Patch`
        The patch kopf applies to the OperandRequest after the handler.
    logger
        The kopf logger.

    Raises
    ------
    kopf.TemporaryError
        Raised when the pass must be retried: after API errors, write
        conflicts, a missing OperandRegistry, failed installs, and deferred
        or failed removals.
    kopf.PermanentError
        Raised if the OperandRequest is malformed.
    """

    def recorder(event_type: str, reason: str, message: str) -> None:
        kopf.event(body, type=event_type, reason=reason, message=message)

    try:
        result = reconcile_operators(
            body, store, recorder=recorder, logger=logger
        )
    except MalformedObjectError as e:
        raise kopf.PermanentError(str(e)) from e
    except ApiException as e:
        raise _retry_error(e, "reconciling operators") from e

    for field, value in result.status.items():
        patch.status[field] = value
    if result.deletion.deleted:
        logger.info(f"Removed operands {result.deletion.deleted}")

    if result.requeue_after is not None:
        raise kopf.TemporaryError(result.message, delay=result.requeue_after)
    return result


@kopf.on.resume(API_GROUP, API_VERSION, REQUEST_PLURAL)  # type: ignore[arg-type]
@kopf.on.create(API_GROUP, API_VERSION, REQUEST_PLURAL)  # type: ignore[arg-type]
@kopf.on.update(API_GROUP, API_VERSION, REQUEST_PLURAL)  # type: ignore[arg-type]
def reconcile_request(
    *,
    body: dict[str, Any],
    namespace: str,
    name: str,
    patch: Any,
    logger: Any,
    **kwargs: Any,
) -> None:
    """Handle the creation, change or resumption of an OperandRequest by
    installing, updating and removing the operators it asks for.

    Parameters
    ----------
    body : dict
        The full body of the ``OperandRequest`` as a read-only dict.
    namespace : str
        The Kubernetes namespace of the ``OperandRequest``.
    name : str
        The name of the ``OperandRequest``.
    patch : kopf.Patch
        Changes kopf applies to the ``OperandRequest`` after the handler.
    logger : Any
        The kopf logger.
    **kwargs : Any
        Additional keyword arguments provided by kopf.
    """
    logger.info(f"Reconciling OperandRequest {namespace}/{name}")
    store = KubernetesStore(create_k8sclient())
    run_reconcile(body=body, store=store, patch=patch, logger=logger)


@kopf.on.delete(API_GROUP, API_VERSION, REQUEST_PLURAL)  # type: ignore[arg-type]
def remove_request(
    *,
    body: dict[str, Any],
    status: dict[str, Any],
    namespace: str,
    name: str,
    logger: Any,
    **kwargs: Any,
) -> None:
    """Handle the deletion of an OperandRequest by removing the operators
    that no other OperandRequest asks for.

    kopf holds a finalizer on the OperandRequest until this handler
    succeeds.

    Parameters
    ----------
    body : dict
        The full body of the ``OperandRequest`` as a read-only dict.
    status : dict
        The ``status`` of the ``OperandRequest``.
    namespace : str
        The Kubernetes namespace of the ``OperandRequest``.
    name : str
        The name of the ``OperandRequest``.
    logger : Any
        The kopf logger.
    **kwargs : Any
        Additional keyword arguments provided by kopf.
    """
    logger.info(f"Removing operators of OperandRequest {namespace}/{name}")
    store = KubernetesStore(create_k8sclient())
    try:
        outcome = collect_garbage(
            body,
            store,
            previous_members=list(status.get("members") or []),
            logger=logger,
        )
    except MalformedObjectError as e:
        raise kopf.PermanentError(str(e)) from e
    except ApiException as e:
        raise _retry_error(e, "removing operators") from e

    try:
        outcome.raise_for_failures()
    except AggregateDeletionError as e:
        raise kopf.TemporaryError(str(e), delay=state.requeue_delay) from e
    if outcome.deferred:
        raise kopf.TemporaryError(
            f"Waiting to remove operands {outcome.deferred}",
            delay=state.deferred_delete_delay,
        )
