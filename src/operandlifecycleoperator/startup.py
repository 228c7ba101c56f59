"""Code intended to run on start-up, before running any handlers."""

__all__ = ("configure_operator", "start_operator")

import logging
from typing import Any

import kopf
import structlog
from kubernetes.client.exceptions import ApiException

from operandlifecycleoperator.constants import API_GROUP, KOPF_PREFIX
from operandlifecycleoperator.k8s import KubernetesStore, create_k8sclient
from operandlifecycleoperator.registry import list_registries
from operandlifecycleoperator.version import get_version


def configure_operator(settings: kopf.OperatorSettings) -> None:
    """Apply the operator's kopf settings and configure structlog."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
    )
    settings.posting.level = logging.WARNING
    settings.persistence.finalizer = f"{API_GROUP}/operandrequest-finalizer"
    settings.persistence.progress_storage = kopf.AnnotationsProgressStorage(
        prefix=KOPF_PREFIX
    )
    settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage(
        prefix=KOPF_PREFIX
    )


@kopf.on.startup()
def start_operator(
    settings: kopf.OperatorSettings, logger: Any, **kwargs: Any
) -> None:
    """Start up the operator and log the OperandRegistries it can see."""
    configure_operator(settings)
    logger.info(f"Starting operand-lifecycle-operator {get_version()}")

    store = KubernetesStore(create_k8sclient())
    try:
        registries = list_registries(store)
    except ApiException:
        logger.exception("Exception when listing OperandRegistries")
        return

    for registry in registries:
        metadata = registry["metadata"]
        operators = [o["name"] for o in registry["spec"]["operators"]]
        logger.info(
            f"Found OperandRegistry {metadata['namespace']}/"
            f"{metadata['name']} with operators {operators}"
        )
