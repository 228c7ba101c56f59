"""Tests for the operandlifecycleoperator.registry module."""

from __future__ import annotations

import pytest
import yaml
from kubernetes.client.exceptions import ApiException

from operandlifecycleoperator.k8s import OPERAND_REGISTRY
from operandlifecycleoperator.registry import (
    RegistryKey,
    get_operator,
    get_registry,
    list_registries,
    normalize_operator,
)


def test_normalize_operator_fills_defaults() -> None:
    operator = {"name": "etcd", "namespace": "etcd-operator"}
    normalized = normalize_operator(operator)

    assert normalized["scope"] == "private"
    assert normalized["installMode"] == "namespace"
    assert normalized["installPlanApproval"] == "Automatic"
    # The argument is left alone
    assert "scope" not in operator


def test_normalize_operator_keeps_set_values() -> None:
    operator = {
        "name": "etcd",
        "scope": "public",
        "installMode": "cluster",
        "installPlanApproval": "Manual",
    }
    assert normalize_operator(operator) == operator


def test_get_registry_does_not_persist_defaults(store, registry) -> None:
    result = get_registry(store, RegistryKey("odlm", "common-service"))

    mongodb = get_operator(result, "mongodb")
    assert mongodb["scope"] == "private"
    stored = store.find(OPERAND_REGISTRY, "common-service", "odlm")
    assert "scope" not in stored["spec"]["operators"][2]
    assert store.writes == []


def test_get_registry_not_found(store) -> None:
    with pytest.raises(ApiException) as excinfo:
        get_registry(store, RegistryKey("odlm", "missing"))
    assert excinfo.value.status == 404


def test_list_registries(store, registry) -> None:
    manifest = """
apiVersion: operator.ibm.com/v1alpha1
kind: OperandRegistry
metadata:
  name: extra
  namespace: other
spec:
  operators:
  - name: redis
    namespace: redis-operator
    channel: stable
    packageName: redis
    sourceName: community-operators
    sourceNamespace: openshift-marketplace
"""
    store.add(OPERAND_REGISTRY, yaml.safe_load(manifest))
    registries = list_registries(store)

    assert [r["metadata"]["name"] for r in registries] == [
        "common-service",
        "extra",
    ]
    for item in registries:
        for operator in item["spec"]["operators"]:
            assert operator["installMode"] == "namespace"
            assert operator["installPlanApproval"] == "Automatic"


def test_get_operator_missing(registry) -> None:
    assert get_operator(registry, "unknown") is None


def test_registry_key_round_trip() -> None:
    key = RegistryKey("odlm", "common-service")
    assert str(key) == "odlm/common-service"
    assert RegistryKey.parse(str(key)) == key
