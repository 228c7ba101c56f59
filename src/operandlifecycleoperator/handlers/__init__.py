"""Kopf handlers for the operand-lifecycle-operator."""

__all__ = (
    "handle_registry_change",
    "reconcile_request",
    "remove_request",
    "start_operator",
)

from operandlifecycleoperator.handlers.operandregistry import (
    handle_registry_change,
)
from operandlifecycleoperator.handlers.operandrequest import (
    reconcile_request,
    remove_request,
)
from operandlifecycleoperator.startup import start_operator
