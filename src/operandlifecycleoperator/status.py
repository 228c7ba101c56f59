"""Construction of the OperandRequest status during a reconciliation pass."""

from __future__ import annotations

__all__ = ("StatusTracker", "aggregate_phase")

from datetime import datetime, timezone
from typing import Any

from operandlifecycleoperator.constants import (
    CLUSTER_PHASE_PENDING,
    PHASE_FAILED,
    PHASE_INSTALLING,
    PHASE_NOT_FOUND,
    PHASE_RUNNING,
    PHASE_UPDATING,
)

# A missing operand is a failure as far as the request as a whole goes.
_PHASE_PRECEDENCE = (
    (PHASE_FAILED, PHASE_FAILED),
    (PHASE_NOT_FOUND, PHASE_FAILED),
    (PHASE_INSTALLING, PHASE_INSTALLING),
    (PHASE_UPDATING, PHASE_UPDATING),
)


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def aggregate_phase(members: list[dict[str, Any]]) -> str:
    """Get the phase of a request from the phases of its members."""
    if not members:
        return CLUSTER_PHASE_PENDING
    phases = {m.get("phase") for m in members}
    for member_phase, request_phase in _PHASE_PRECEDENCE:
        if member_phase in phases:
            return request_phase
    return PHASE_RUNNING


class StatusTracker:
    """Collects member phases and conditions over one reconciliation pass.

    The status is built from scratch on every pass; nothing is read back
    from the previous status except members that are explicitly carried
    over with `carry_over`.
    """

    def __init__(self) -> None:
        self._members: dict[str, dict[str, Any]] = {}
        self._conditions: list[dict[str, Any]] = []

    def set_member_phase(self, name: str, registry: str, phase: str) -> None:
        """Record the phase of an operand installed from a registry."""
        self._members[name] = {
            "name": name,
            "registry": registry,
            "phase": phase,
        }

    def carry_over(self, member: dict[str, Any]) -> None:
        """Keep a member from the previous status unless this pass already
        recorded it.
        """
        self._members.setdefault(member["name"], dict(member))

    def add_condition(
        self,
        condition_type: str,
        *,
        resource_type: str,
        name: str,
        message: str,
        status: str = "True",
    ) -> None:
        """Record a condition about a named resource.

        Repeating a condition with the same type, resource type and name
        replaces the earlier one, whatever its status.
        """
        condition = {
            "type": condition_type,
            "status": status,
            "reason": f"{condition_type}{resource_type}",
            "message": message,
            "name": name,
            "lastTransitionTime": _now(),
        }
        self._conditions = [
            c
            for c in self._conditions
            if (c["type"], c["reason"], c["name"])
            != (condition["type"], condition["reason"], name)
        ]
        self._conditions.append(condition)

    @property
    def members(self) -> list[dict[str, Any]]:
        return list(self._members.values())

    @property
    def conditions(self) -> list[dict[str, Any]]:
        return list(self._conditions)

    def to_status(self) -> dict[str, Any]:
        """Render the ``status`` of the OperandRequest."""
        members = self.members
        return {
            "phase": aggregate_phase(members),
            "members": members,
            "conditions": self.conditions,
        }
