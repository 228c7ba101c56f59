"""Tests for the operandlifecycleoperator.operands module."""

from __future__ import annotations

import pytest
from conftest import make_request

from operandlifecycleoperator.errors import MalformedObjectError
from operandlifecycleoperator.k8s import OPERAND_REQUEST
from operandlifecycleoperator.operands import (
    get_request_entries,
    list_requests_by_registry,
    requested_operands_for_registry,
)
from operandlifecycleoperator.registry import RegistryKey

KEY = RegistryKey("odlm", "common-service")


def test_registry_namespace_defaults_to_request_namespace() -> None:
    request = make_request(namespace="consumer", operands=["etcd"])
    assert get_request_entries(request) == [
        (RegistryKey("consumer", "common-service"), ["etcd"])
    ]


def test_explicit_registry_namespace() -> None:
    request = make_request(
        namespace="consumer", operands=["etcd"], registry_namespace="odlm"
    )
    assert get_request_entries(request) == [(KEY, ["etcd"])]


def test_malformed_requests() -> None:
    request = make_request(operands=["etcd"])
    request["spec"]["requests"][0]["operands"].append({})
    with pytest.raises(MalformedObjectError):
        get_request_entries(request)

    del request["spec"]["requests"][0]["registry"]
    with pytest.raises(MalformedObjectError):
        get_request_entries(request)


def test_list_requests_by_registry(store) -> None:
    store.add(OPERAND_REQUEST, make_request(operands=["etcd"]))
    store.add(
        OPERAND_REQUEST,
        make_request(name="elsewhere", namespace="consumer", operands=["a"]),
    )
    broken = make_request(name="broken", operands=["etcd"])
    del broken["spec"]["requests"][0]["registry"]
    store.add(OPERAND_REQUEST, broken)

    requests = list_requests_by_registry(store, KEY)
    assert [r["metadata"]["name"] for r in requests] == ["common-service"]


def test_requested_operands_for_registry() -> None:
    requests = [
        make_request(operands=["etcd", "jenkins"]),
        make_request(name="b", operands=["mongodb"], terminating=True),
        make_request(name="c", operands=["redis"], registry="other"),
        make_request(
            name="d",
            namespace="consumer",
            operands=["jenkins", "cert-manager"],
            registry_namespace="odlm",
        ),
    ]
    names = requested_operands_for_registry(requests, KEY)
    assert list(names) == ["etcd", "jenkins", "cert-manager"]
