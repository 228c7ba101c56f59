"""Tests for the operandlifecycleoperator.subscriptions module."""

from __future__ import annotations

import yaml

from operandlifecycleoperator import state
from operandlifecycleoperator.constants import OWNERSHIP_LABEL
from operandlifecycleoperator.registry import normalize_operator
from operandlifecycleoperator.subscriptions import (
    apply_operator_to_subscription,
    get_operator_namespace,
    is_owned,
    is_uninstall_disabled,
    plan_cluster_objects,
    subscription_needs_update,
)

OPERATOR = """
name: etcd
namespace: etcd-operator
channel: clusterwide-alpha
packageName: etcd
sourceName: community-operators
sourceNamespace: openshift-marketplace
"""


def load_operator(**overrides):
    operator = yaml.safe_load(OPERATOR)
    operator.update(overrides)
    return normalize_operator(operator)


def test_plan_cluster_objects() -> None:
    objects = plan_cluster_objects(load_operator())

    assert objects.namespace["metadata"]["name"] == "etcd-operator"
    assert objects.operator_group["metadata"]["namespace"] == "etcd-operator"
    assert objects.operator_group["spec"]["targetNamespaces"] == [
        "etcd-operator"
    ]

    subscription = objects.subscription
    assert subscription["apiVersion"] == "operators.coreos.com/v1alpha1"
    assert subscription["metadata"]["name"] == "etcd"
    assert subscription["metadata"]["namespace"] == "etcd-operator"
    assert subscription["spec"] == {
        "channel": "clusterwide-alpha",
        "name": "etcd",
        "source": "community-operators",
        "sourceNamespace": "openshift-marketplace",
        "installPlanApproval": "Automatic",
    }
    for resource in objects:
        assert resource["metadata"]["labels"] == {OWNERSHIP_LABEL: "true"}


def test_plan_cluster_objects_is_deterministic() -> None:
    assert plan_cluster_objects(load_operator()) == plan_cluster_objects(
        load_operator()
    )


def test_plan_target_namespaces() -> None:
    objects = plan_cluster_objects(
        load_operator(targetNamespaces=["a", "b"])
    )
    assert objects.operator_group["spec"]["targetNamespaces"] == ["a", "b"]


def test_plan_cluster_install_mode() -> None:
    objects = plan_cluster_objects(load_operator(installMode="cluster"))

    assert (
        objects.subscription["metadata"]["namespace"]
        == state.cluster_operator_namespace
    )
    assert objects.namespace["metadata"]["name"] == "etcd-operator"


def test_get_operator_namespace() -> None:
    assert get_operator_namespace("namespace", "ns") == "ns"
    assert (
        get_operator_namespace("cluster", "ns")
        == state.cluster_operator_namespace
    )


def test_subscription_needs_update() -> None:
    operator = load_operator()
    subscription = plan_cluster_objects(operator).subscription
    assert not subscription_needs_update(subscription, operator)

    assert subscription_needs_update(
        subscription, load_operator(channel="stable")
    )
    assert subscription_needs_update(
        subscription, load_operator(installPlanApproval="Manual")
    )


def test_unset_approval_is_not_compared() -> None:
    operator = yaml.safe_load(OPERATOR)
    subscription = plan_cluster_objects(load_operator()).subscription
    subscription["spec"]["installPlanApproval"] = "Manual"

    assert not subscription_needs_update(subscription, operator)


def test_apply_operator_to_subscription() -> None:
    subscription = plan_cluster_objects(load_operator()).subscription
    subscription["metadata"]["resourceVersion"] = "42"
    operator = load_operator(channel="stable", sourceName="my-catalog")

    updated = apply_operator_to_subscription(subscription, operator)

    assert updated["spec"]["channel"] == "stable"
    assert updated["spec"]["source"] == "my-catalog"
    assert updated["metadata"]["resourceVersion"] == "42"
    assert subscription["spec"]["channel"] == "clusterwide-alpha"
    assert not subscription_needs_update(updated, operator)


def test_ownership_labels() -> None:
    subscription = plan_cluster_objects(load_operator()).subscription
    assert is_owned(subscription)
    assert not is_uninstall_disabled(subscription)

    subscription["metadata"]["labels"][
        "operator.ibm.com/opreq-do-not-uninstall"
    ] = "true"
    assert is_uninstall_disabled(subscription)

    assert not is_owned({"metadata": {"name": "foreign"}})
