"""Removal of operands that no OperandRequest asks for any more."""

from __future__ import annotations

__all__ = (
    "CsvResolution",
    "collect_garbage",
    "delete_operand",
    "resolve_csv",
    "sweep_custom_resources",
)

from collections.abc import Callable
from typing import Any, NamedTuple

import structlog
from kubernetes.client.exceptions import ApiException

from operandlifecycleoperator.constants import (
    COND_DELETING,
    INSTALL_PLAN_COMPLETE,
    INSTALL_PLAN_FAILED,
    OWNERSHIP_LABEL,
    RESOURCE_CSV,
    RESOURCE_SUBSCRIPTION,
)
from operandlifecycleoperator.errors import (
    DeletionOutcome,
    OperandFailure,
    is_not_found,
)
from operandlifecycleoperator.k8s import (
    CLUSTER_SERVICE_VERSION,
    INSTALL_PLAN,
    SUBSCRIPTION,
    KubernetesStore,
    ResourceKind,
)
from operandlifecycleoperator.operands import (
    get_request_entries,
    is_terminating,
    list_requests_by_registry,
    requested_operands_for_registry,
)
from operandlifecycleoperator.orderedset import (
    OrderedNameSet,
    difference,
    union,
)
from operandlifecycleoperator.registry import (
    RegistryKey,
    get_operator,
    get_registry,
)
from operandlifecycleoperator.status import StatusTracker
from operandlifecycleoperator.subscriptions import (
    find_subscription,
    get_operator_namespace,
    is_owned,
    is_uninstall_disabled,
)

DELETED = "deleted"
DEFERRED = "deferred"
SKIPPED = "skipped"

CustomResourceSweeper = Callable[..., None]


class CsvResolution(NamedTuple):
    """The ClusterServiceVersion installed by a Subscription.

    ``deferred`` is `True` when the InstallPlan has not completed and the
    CSV reference cannot be trusted yet.
    """

    deferred: bool
    csv: dict[str, Any] | None


def resolve_csv(
    store: KubernetesStore,
    subscription: dict[str, Any],
    logger: Any | None = None,
) -> CsvResolution:
    """Find the CSV a Subscription installed.

    Parameters
    ----------
    store : `operandlifecycleoperator.k8s.KubernetesStore`
        Access to the cluster.
    subscription : `dict`
        The live Subscription.
    logger
        Logger to use. Defaults to a structlog logger.

    Returns
    -------
    resolution : `CsvResolution`
        Deferred if the InstallPlan reference is missing or the InstallPlan
        is still in progress. An InstallPlan that was removed after it
        completed does not block resolution. A failed InstallPlan is logged
        and resolution continues with the CSV the Subscription names.
    """
    if logger is None:
        logger = structlog.getLogger(__name__)

    name = subscription["metadata"]["name"]
    namespace = subscription["metadata"]["namespace"]
    status = subscription.get("status") or {}

    csv_name = status.get("currentCSV")
    if not csv_name:
        logger.warning(
            f"The ClusterServiceVersion for Subscription {name} is not ready"
        )
        return CsvResolution(deferred=False, csv=None)

    plan_ref = status.get("installPlanRef") or status.get("installplan") or {}
    plan_name = plan_ref.get("name")
    if not plan_name:
        logger.warning(
            f"The InstallPlan for Subscription {name} is not ready. "
            "Will check it again"
        )
        return CsvResolution(deferred=True, csv=None)

    plan_namespace = plan_ref.get("namespace") or namespace
    try:
        plan = store.get(INSTALL_PLAN, plan_name, plan_namespace)
    except ApiException as e:
        if not is_not_found(e):
            raise
    else:
        phase = (plan.get("status") or {}).get("phase")
        if phase == INSTALL_PLAN_FAILED:
            logger.error(f"InstallPlan {plan_namespace}/{plan_name} failed")
        elif phase != INSTALL_PLAN_COMPLETE:
            logger.warning(
                f"InstallPlan {plan_namespace}/{plan_name} is not ready"
            )
            return CsvResolution(deferred=True, csv=None)

    try:
        csv = store.get(CLUSTER_SERVICE_VERSION, csv_name, namespace)
    except ApiException as e:
        if not is_not_found(e):
            raise
        logger.info(f"ClusterServiceVersion {namespace}/{csv_name} is gone")
        return CsvResolution(deferred=False, csv=None)
    return CsvResolution(deferred=False, csv=csv)


def sweep_custom_resources(
    store: KubernetesStore,
    csv: dict[str, Any],
    *,
    operand: str,
    namespace: str,
    logger: Any | None = None,
) -> None:
    """Delete the operator-managed custom resources of the kinds a CSV owns.

    Only resources in ``namespace`` that carry the ownership label are
    deleted. Kinds whose CRD is no longer served are skipped.
    """
    if logger is None:
        logger = structlog.getLogger(__name__)

    descriptions = (csv.get("spec") or {}).get("customresourcedefinitions")
    owned = (descriptions or {}).get("owned") or []
    for crd in owned:
        kind = ResourceKind.from_crd_description(crd)
        try:
            items = store.list(
                kind,
                namespace=namespace,
                label_selector=f"{OWNERSHIP_LABEL}=true",
            )
        except ApiException as e:
            if not is_not_found(e):
                raise
            continue
        for item in items:
            name = item["metadata"]["name"]
            logger.info(
                f"Deleting {kind.kind} {namespace}/{name} of operand "
                f"{operand}"
            )
            try:
                store.delete(kind, name, namespace)
            except ApiException as e:
                if not is_not_found(e):
                    raise


def delete_operand(
    store: KubernetesStore,
    *,
    operand: str,
    registry: dict[str, Any] | None,
    tracker: StatusTracker | None = None,
    cr_sweeper: CustomResourceSweeper | None = None,
    logger: Any | None = None,
) -> str:
    """Uninstall one operand.

    Custom resources go first, then the CSV, then the Subscription.

    Parameters
    ----------
    store : `operandlifecycleoperator.k8s.KubernetesStore`
        Access to the cluster.
    operand : `str`
        Name of the operand.
    registry : `dict` or `None`
        The normalized OperandRegistry the operand was installed from, or
        `None` if it no longer exists.
    tracker : `operandlifecycleoperator.status.StatusTracker`, optional
        Receives ``Deleting`` conditions.
    cr_sweeper : callable, optional
        Deletes the custom resources of a CSV. Defaults to
        `sweep_custom_resources`.
    logger
        Logger to use. Defaults to a structlog logger.

    Returns
    -------
    result : `str`
        ``"deleted"``, ``"deferred"`` (retry on a later pass) or
        ``"skipped"`` (nothing the operator may delete).

    Raises
    ------
    kubernetes.client.exceptions.ApiException
        Raised for API failures other than missing resources.
    """
    if logger is None:
        logger = structlog.getLogger(__name__)
    if cr_sweeper is None:
        cr_sweeper = sweep_custom_resources
    if tracker is None:
        tracker = StatusTracker()

    operator = get_operator(registry, operand) if registry else None
    if operator is None:
        logger.warning(f"Operand {operand} not found in its registry")
        return SKIPPED

    namespace = get_operator_namespace(
        operator["installMode"], operator["namespace"]
    )
    subscription = find_subscription(
        store, operand, namespace, operator.get("packageName")
    )
    if subscription is None:
        logger.info(
            f"There is no Subscription {operand} or "
            f"{operator.get('packageName')} in namespace {namespace}"
        )
        return SKIPPED
    if not is_owned(subscription):
        logger.info(
            f"Subscription {namespace}/{subscription['metadata']['name']} "
            "isn't managed by the operator"
        )
        return SKIPPED

    resolution = resolve_csv(store, subscription, logger=logger)
    if resolution.deferred:
        return DEFERRED

    csv = resolution.csv
    if csv is not None:
        logger.info(
            "Deleting the custom resources of ClusterServiceVersion "
            f"{csv['metadata']['name']}"
        )
        cr_sweeper(
            store,
            csv,
            operand=operand,
            namespace=operator["namespace"],
            logger=logger,
        )

    if is_uninstall_disabled(subscription):
        logger.info(
            f"Operator {operand} is labeled do-not-uninstall. "
            "Skip the uninstall"
        )
        return SKIPPED

    if csv is not None:
        csv_name = csv["metadata"]["name"]
        tracker.add_condition(
            COND_DELETING,
            resource_type=RESOURCE_CSV,
            name=csv_name,
            message=f"Deleting ClusterServiceVersion {namespace}/{csv_name}",
        )
        logger.info(f"Deleting ClusterServiceVersion {namespace}/{csv_name}")
        try:
            store.delete(
                CLUSTER_SERVICE_VERSION,
                csv_name,
                csv["metadata"].get("namespace", namespace),
            )
        except ApiException as e:
            if not is_not_found(e):
                raise

    subscription_name = subscription["metadata"]["name"]
    tracker.add_condition(
        COND_DELETING,
        resource_type=RESOURCE_SUBSCRIPTION,
        name=subscription_name,
        message=f"Deleting Subscription {namespace}/{subscription_name}",
    )
    logger.info(f"Deleting Subscription {namespace}/{subscription_name}")
    try:
        store.delete(SUBSCRIPTION, subscription_name, namespace)
    except ApiException as e:
        if not is_not_found(e):
            raise
        logger.warning(
            f"Subscription {namespace}/{subscription_name} was already gone"
        )
    return DELETED


def _registry_keys(
    request: dict[str, Any], previous_members: list[dict[str, Any]]
) -> list[RegistryKey]:
    keys: list[RegistryKey] = []
    for key, _ in get_request_entries(request):
        if key not in keys:
            keys.append(key)
    for member in previous_members:
        if member.get("registry"):
            key = RegistryKey.parse(member["registry"])
            if key not in keys:
                keys.append(key)
    return keys


def _previously_installed(
    key: RegistryKey,
    previous_members: list[dict[str, Any]],
    requested_keys: list[RegistryKey],
) -> OrderedNameSet:
    names = OrderedNameSet()
    for member in previous_members:
        registry = member.get("registry")
        if registry == str(key) or (not registry and key in requested_keys):
            names.add(member["name"])
    return names


def collect_garbage(
    request: dict[str, Any],
    store: KubernetesStore,
    *,
    previous_members: list[dict[str, Any]],
    tracker: StatusTracker | None = None,
    cr_sweeper: CustomResourceSweeper | None = None,
    logger: Any | None = None,
) -> DeletionOutcome:
    """Uninstall the operands an OperandRequest used to have that no live
    OperandRequest asks for any more.

    For each registry, the operands to delete are the request's previous
    members from that registry minus the union of the operands every
    non-terminating OperandRequest in the cluster asks for from it.

    Parameters
    ----------
    request : `dict`
        The OperandRequest being reconciled. When it is terminating none of
        its own operands count as requested.
    store : `operandlifecycleoperator.k8s.KubernetesStore`
        Access to the cluster.
    previous_members : `list` of `dict`
        ``status.members`` from before this pass.
    tracker : `operandlifecycleoperator.status.StatusTracker`, optional
        Receives ``Deleting`` conditions.
    cr_sweeper : callable, optional
        Deletes the custom resources of a CSV.
    logger
        Logger to use. Defaults to a structlog logger.

    Returns
    -------
    outcome : `operandlifecycleoperator.errors.DeletionOutcome`
        Deleted and deferred operands, and the failures of the rest.
    """
    if logger is None:
        logger = structlog.getLogger(__name__)

    outcome = DeletionOutcome()
    entries = get_request_entries(request)
    requested_keys = [key for key, _ in entries]

    for key in _registry_keys(request, previous_members):
        previous = _previously_installed(
            key, previous_members, requested_keys
        )
        if not previous:
            continue

        desired = requested_operands_for_registry(
            list_requests_by_registry(store, key, logger=logger), key
        )
        if not is_terminating(request):
            desired = union(
                desired, requested_operands_for_registry([request], key)
            )
        to_delete = difference(previous, desired)
        if not to_delete:
            continue
        logger.info(f"Operands to remove from registry {key}: {list(to_delete)}")

        try:
            registry = get_registry(store, key)
        except ApiException as e:
            if not is_not_found(e):
                outcome.failures.extend(
                    OperandFailure(operand=name, registry=str(key), error=e)
                    for name in to_delete
                )
                continue
            registry = None

        for name in to_delete:
            try:
                result = delete_operand(
                    store,
                    operand=name,
                    registry=registry,
                    tracker=tracker,
                    cr_sweeper=cr_sweeper,
                    logger=logger,
                )
            except ApiException as e:
                logger.error(f"Failed to remove operand {name}: {e}")
                outcome.failures.append(
                    OperandFailure(operand=name, registry=str(key), error=e)
                )
                continue
            if result == DEFERRED:
                outcome.deferred.append(name)
            elif result == DELETED:
                outcome.deleted.append(name)
    return outcome
