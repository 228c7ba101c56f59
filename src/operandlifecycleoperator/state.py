"""Operator configuration as module-level attributes."""

import os

operator_namespace = os.environ.get(
    "OLO_OPERATOR_NAMESPACE", "ibm-common-services"
)
"""The namespace the operator itself is deployed in.

This namespace always exists, so it is never created for an operand.
"""

cluster_operator_namespace = os.environ.get(
    "OLO_CLUSTER_OPERATOR_NAMESPACE", "openshift-operators"
)
"""The namespace that holds Subscriptions for cluster-wide operators."""

requeue_delay = float(os.environ.get("OLO_REQUEUE_DELAY", "60"))
"""Seconds to wait before retrying a reconciliation that hit an API error."""

registry_retry_delay = float(os.environ.get("OLO_REGISTRY_RETRY_DELAY", "30"))
"""Seconds to wait before looking up a missing OperandRegistry again."""

conflict_retry_delay = float(os.environ.get("OLO_CONFLICT_RETRY_DELAY", "5"))
"""Seconds to wait before restarting a pass after a write conflict."""

deferred_delete_delay = float(
    os.environ.get("OLO_DEFERRED_DELETE_DELAY", "30")
)
"""Seconds to wait before retrying deletions that were deferred because an
InstallPlan had not completed.
"""
