"""Convergence of the Subscriptions an OperandRequest asks for."""

from __future__ import annotations

__all__ = (
    "ReconcileResult",
    "create_cluster_objects",
    "reconcile_operand",
    "reconcile_operators",
)

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import structlog
from kubernetes.client.exceptions import ApiException

from operandlifecycleoperator import state
from operandlifecycleoperator.constants import (
    COND_CREATING,
    COND_NOT_FOUND,
    COND_OUT_OF_SCOPE,
    COND_UPDATING,
    INSTALL_MODE_CLUSTER,
    PHASE_FAILED,
    PHASE_INSTALLING,
    PHASE_NOT_FOUND,
    PHASE_RUNNING,
    PHASE_UPDATING,
    RESOURCE_REGISTRY,
    RESOURCE_SUBSCRIPTION,
    SCOPE_PRIVATE,
)
from operandlifecycleoperator.errors import (
    AggregateDeletionError,
    DeletionOutcome,
    is_conflict,
    is_not_found,
)
from operandlifecycleoperator.garbagecollector import (
    CustomResourceSweeper,
    collect_garbage,
)
from operandlifecycleoperator.k8s import (
    NAMESPACE,
    OPERATOR_GROUP,
    SUBSCRIPTION,
    KubernetesStore,
    ResourceKind,
)
from operandlifecycleoperator.operands import get_request_entries
from operandlifecycleoperator.registry import (
    RegistryKey,
    get_operator,
    get_registry,
)
from operandlifecycleoperator.status import StatusTracker
from operandlifecycleoperator.subscriptions import (
    apply_operator_to_subscription,
    find_subscription,
    get_operator_namespace,
    is_owned,
    plan_cluster_objects,
    subscription_needs_update,
)

Recorder = Callable[[str, str, str], None]
"""Posts an event about the OperandRequest: ``(type, reason, message)``."""


@dataclass
class ReconcileResult:
    """The outcome of one reconciliation pass.

    ``requeue_after`` is the number of seconds after which the request should
    be reconciled again, or `None` if the pass converged.
    """

    status: dict[str, Any] = field(default_factory=dict)
    requeue_after: float | None = None
    messages: list[str] = field(default_factory=list)
    deletion: DeletionOutcome = field(default_factory=DeletionOutcome)

    def retry_later(self, delay: float, message: str) -> None:
        """Ask for another pass, keeping the shortest delay requested."""
        if self.requeue_after is None or delay < self.requeue_after:
            self.requeue_after = delay
        self.messages.append(message)

    @property
    def message(self) -> str:
        return "; ".join(self.messages)


def _create_if_absent(
    store: KubernetesStore,
    kind: ResourceKind,
    body: dict[str, Any],
    logger: Any,
) -> None:
    try:
        store.create(kind, body)
    except ApiException as e:
        if not is_conflict(e):
            raise
        logger.info(f"{kind.kind} {body['metadata']['name']} already exists")


def create_cluster_objects(
    store: KubernetesStore,
    operator: dict[str, Any],
    logger: Any | None = None,
) -> None:
    """Create the Namespace, OperatorGroup and Subscription for an operator.

    The Namespace is not created when it is the operator's own namespace or
    the cluster-wide operator namespace. The OperatorGroup is only created
    for namespaced installs, and only when the namespace has none.
    Resources that already exist are left as they are.

    Raises
    ------
    kubernetes.client.exceptions.ApiException
        Raised for any failure other than an existing resource.
    """
    if logger is None:
        logger = structlog.getLogger(__name__)

    objects = plan_cluster_objects(operator)

    namespace = objects.namespace["metadata"]["name"]
    if namespace not in (
        state.operator_namespace,
        state.cluster_operator_namespace,
    ):
        logger.info(f"Creating the Namespace {namespace}")
        _create_if_absent(store, NAMESPACE, objects.namespace, logger)

    if operator["installMode"] != INSTALL_MODE_CLUSTER:
        group_namespace = objects.operator_group["metadata"]["namespace"]
        if not store.list(OPERATOR_GROUP, namespace=group_namespace):
            logger.info(
                f"Creating the OperatorGroup for Subscription "
                f"{operator['name']}"
            )
            _create_if_absent(
                store, OPERATOR_GROUP, objects.operator_group, logger
            )

    logger.info(f"Creating the Subscription {operator['name']}")
    _create_if_absent(store, SUBSCRIPTION, objects.subscription, logger)


def reconcile_operand(
    store: KubernetesStore,
    *,
    operand: str,
    request_namespace: str,
    registry: dict[str, Any],
    tracker: StatusTracker,
    result: ReconcileResult,
    logger: Any,
) -> None:
    """Converge the Subscription of one requested operand.

    Raises
    ------
    kubernetes.client.exceptions.ApiException
        Raised when looking up the Subscription fails, and when replacing it
        conflicts with a concurrent change.
    """
    key = RegistryKey(
        registry["metadata"]["namespace"], registry["metadata"]["name"]
    )

    operator = get_operator(registry, operand)
    if operator is None:
        logger.info(f"Operator {operand} not found in the OperandRegistry {key}")
        tracker.add_condition(
            COND_NOT_FOUND,
            resource_type=RESOURCE_SUBSCRIPTION,
            name=operand,
            message=f"Operator {operand} not found in OperandRegistry {key}",
        )
        tracker.set_member_phase(operand, str(key), PHASE_NOT_FOUND)
        return

    if operator["scope"] == SCOPE_PRIVATE and request_namespace != key.namespace:
        logger.warning(
            f"Operator {operand} is private. It can't be requested from "
            f"namespace {request_namespace}"
        )
        tracker.add_condition(
            COND_OUT_OF_SCOPE,
            resource_type=RESOURCE_SUBSCRIPTION,
            name=operand,
            message=(
                f"Operator {operand} is private to namespace "
                f"{key.namespace}"
            ),
        )
        return

    namespace = get_operator_namespace(
        operator["installMode"], operator["namespace"]
    )
    subscription = find_subscription(
        store, operand, namespace, operator.get("packageName")
    )

    if subscription is None:
        tracker.add_condition(
            COND_CREATING,
            resource_type=RESOURCE_SUBSCRIPTION,
            name=operand,
            message=f"Creating Subscription {namespace}/{operand}",
        )
        try:
            create_cluster_objects(store, operator, logger=logger)
        except ApiException as e:
            logger.error(f"Failed to create Subscription {operand}: {e}")
            tracker.add_condition(
                COND_CREATING,
                resource_type=RESOURCE_SUBSCRIPTION,
                name=operand,
                message=f"Failed to create Subscription {operand}: {e.reason}",
                status="False",
            )
            tracker.set_member_phase(operand, str(key), PHASE_FAILED)
            result.retry_later(
                state.requeue_delay, f"failed to install operand {operand}"
            )
            return
        tracker.set_member_phase(operand, str(key), PHASE_INSTALLING)
        return

    subscription_name = subscription["metadata"]["name"]
    if not is_owned(subscription):
        logger.info(
            f"Subscription {namespace}/{subscription_name} isn't managed by "
            "the operator. Ignore update/delete it."
        )
        tracker.set_member_phase(operand, str(key), PHASE_RUNNING)
        return

    if subscription_needs_update(subscription, operator):
        logger.info(f"Updating Subscription {namespace}/{subscription_name}")
        tracker.add_condition(
            COND_UPDATING,
            resource_type=RESOURCE_SUBSCRIPTION,
            name=subscription_name,
            message=f"Updating Subscription {namespace}/{subscription_name}",
        )
        updated = apply_operator_to_subscription(subscription, operator)
        try:
            store.replace(SUBSCRIPTION, updated)
        except ApiException as e:
            tracker.add_condition(
                COND_UPDATING,
                resource_type=RESOURCE_SUBSCRIPTION,
                name=subscription_name,
                message=(
                    f"Failed to update Subscription {subscription_name}: "
                    f"{e.reason}"
                ),
                status="False",
            )
            tracker.set_member_phase(operand, str(key), PHASE_FAILED)
            if is_conflict(e):
                raise
            logger.error(
                f"Failed to update Subscription {subscription_name}: {e}"
            )
            result.retry_later(
                state.requeue_delay, f"failed to update operand {operand}"
            )
            return
        tracker.set_member_phase(operand, str(key), PHASE_UPDATING)
        return

    installed = (subscription.get("status") or {}).get("installedCSV")
    tracker.set_member_phase(
        operand, str(key), PHASE_RUNNING if installed else PHASE_INSTALLING
    )


def reconcile_operators(
    request: dict[str, Any],
    store: KubernetesStore,
    *,
    recorder: Recorder | None = None,
    cr_sweeper: CustomResourceSweeper | None = None,
    logger: Any | None = None,
) -> ReconcileResult:
    """Reconcile the operators of an OperandRequest.

    Every requested operand is resolved against its OperandRegistry and its
    Subscription is created or brought in line with the registry. Operands
    the request no longer asks for are then removed (see
    `operandlifecycleoperator.garbagecollector.collect_garbage`).

    Parameters
    ----------
    request : `dict`
        The full body of the OperandRequest.
    store : `operandlifecycleoperator.k8s.KubernetesStore`
        Access to the cluster.
    recorder : callable, optional
        Posts events about the OperandRequest.
    cr_sweeper : callable, optional
        Deletes the custom resources of a CSV before it is removed.
    logger
        Logger to use. Defaults to a structlog logger.

    Returns
    -------
    result : `ReconcileResult`
        The new ``status`` of the OperandRequest and whether, and when, to
        run again.

    Raises
    ------
    kubernetes.client.exceptions.ApiException
        Raised for API failures that require the whole pass to be retried,
        including write conflicts.
    operandlifecycleoperator.errors.MalformedObjectError
        Raised if the OperandRequest is malformed.
    """
    if logger is None:
        logger = structlog.getLogger(__name__)

    metadata = request["metadata"]
    request_namespace = metadata["namespace"]
    previous_members = list((request.get("status") or {}).get("members") or [])
    entries = get_request_entries(request)
    tracker = StatusTracker()
    result = ReconcileResult()

    logger.info(
        f"Reconciling Operators for OperandRequest "
        f"{request_namespace}/{metadata['name']}"
    )

    for key, operands in entries:
        try:
            registry = get_registry(store, key)
        except ApiException as e:
            if not is_not_found(e):
                raise
            message = f"NotFound OperandRegistry NamespacedName {key}"
            logger.error(f"Failed to find OperandRegistry {key}")
            if recorder is not None:
                recorder("Warning", "NotFound", message)
            tracker.add_condition(
                COND_NOT_FOUND,
                resource_type=RESOURCE_REGISTRY,
                name=str(key),
                message=message,
            )
            # Nothing is known about the operands yet; keep the old members
            # so that they are still considered on the next pass.
            for member in previous_members:
                tracker.carry_over(member)
            result.retry_later(state.registry_retry_delay, message)
            result.status = tracker.to_status()
            return result

        for operand in operands:
            reconcile_operand(
                store,
                operand=operand,
                request_namespace=request_namespace,
                registry=registry,
                tracker=tracker,
                result=result,
                logger=logger,
            )

    # Nothing watches Subscriptions, so poll until OLM finishes.
    converging = [
        m["name"]
        for m in tracker.members
        if m["phase"] in (PHASE_INSTALLING, PHASE_UPDATING)
    ]
    if converging:
        result.retry_later(
            state.requeue_delay,
            f"waiting for operands {converging} to be running",
        )

    outcome = collect_garbage(
        request,
        store,
        previous_members=previous_members,
        tracker=tracker,
        cr_sweeper=cr_sweeper,
        logger=logger,
    )
    result.deletion = outcome
    pending = set(outcome.pending)
    for member in previous_members:
        if member["name"] in pending:
            tracker.carry_over(member)
    if outcome.deferred:
        result.retry_later(
            state.deferred_delete_delay,
            f"waiting to remove operands {outcome.deferred}",
        )
    if outcome.failures:
        result.retry_later(
            state.requeue_delay, str(AggregateDeletionError(outcome.failures))
        )

    result.status = tracker.to_status()
    logger.info(
        f"Finished reconciling Operators for OperandRequest "
        f"{request_namespace}/{metadata['name']}"
    )
    return result
