"""Contains capability related functions"""

import functools

from kubernetes.client.exceptions import ApiException

from rollsuite.config import settings
from rollsuite.errors import ControlPlaneUnavailable
from rollsuite.kubernetes.client import KubernetesClient


@functools.cache
def has_operator():
    """Returns True, if the Cluster Operator deployment is present in its namespace"""
    namespace = settings.operator.namespace or settings.cluster.namespace
    client = KubernetesClient.from_settings(settings, namespace=namespace)
    if not client.connected:
        return False, f"Cluster is not connected, or namespace {namespace} does not exist"

    try:
        client.get_deployment_selector(settings.operator.deployment)
    except ApiException as exc:
        return False, f"Deployment {settings.operator.deployment} not found in {namespace}: {exc.reason}"
    except ControlPlaneUnavailable as exc:
        return False, str(exc)

    return True, None
