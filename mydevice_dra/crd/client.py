"""
CRD Client

Talks to the Kubernetes API server through the official client's
CustomObjectsApi:
- MydeviceAllocationState: get / list / create / replace (namespaced)
- MydeviceClaimParameters: get (namespaced)
- MydeviceClassParameters: get (cluster scoped)

API errors are translated into driver errors (404 -> NotFoundError,
409 -> ConflictError, anything else -> StoreError).
"""

import logging
from typing import List

from kubernetes import client, config
from kubernetes.client.exceptions import ApiException

from ..config import (
    API_GROUP, API_VERSION, API_TIMEOUT,
    ALLOCATION_STATE_PLURAL, CLAIM_PARAMETERS_PLURAL, CLASS_PARAMETERS_PLURAL,
)
from ..errors import ConflictError, NotFoundError, StoreError

logger = logging.getLogger(__name__)


def new_custom_objects_api(kubeconfig: str = None) -> client.CustomObjectsApi:
    """
    Build a CustomObjectsApi

    In-cluster configuration is used unless a kubeconfig path is given.
    """
    if kubeconfig:
        logger.info(f"Loading kubeconfig from {kubeconfig}")
        config.load_kube_config(config_file=kubeconfig)
    else:
        logger.info("Loading in-cluster configuration")
        config.load_incluster_config()
    return client.CustomObjectsApi()


def _translate(e: ApiException, what: str) -> Exception:
    if e.status == 404:
        return NotFoundError(f"{what} not found")
    if e.status == 409:
        return ConflictError(f"{what}: {e.reason}")
    return StoreError(f"{what}: HTTP {e.status} {e.reason}")


class AllocationStateClient:
    """Whole-document operations on MydeviceAllocationState objects"""

    def __init__(self, api, namespace: str, timeout: float = API_TIMEOUT):
        """
        Args:
            api: kubernetes.client.CustomObjectsApi (or compatible)
            namespace: namespace holding one object per node
            timeout: per-request deadline in seconds
        """
        self.api = api
        self.namespace = namespace
        self.timeout = timeout

    def get(self, name: str) -> dict:
        try:
            return self.api.get_namespaced_custom_object(
                API_GROUP, API_VERSION, self.namespace, ALLOCATION_STATE_PLURAL, name,
                _request_timeout=self.timeout,
            )
        except ApiException as e:
            raise _translate(e, f"MydeviceAllocationState {self.namespace}/{name}") from e

    def list(self) -> List[dict]:
        try:
            result = self.api.list_namespaced_custom_object(
                API_GROUP, API_VERSION, self.namespace, ALLOCATION_STATE_PLURAL,
                _request_timeout=self.timeout,
            )
        except ApiException as e:
            raise _translate(e, f"MydeviceAllocationState list in {self.namespace}") from e
        return result.get('items', [])

    def create(self, body: dict) -> dict:
        name = body.get('metadata', {}).get('name', '')
        try:
            return self.api.create_namespaced_custom_object(
                API_GROUP, API_VERSION, self.namespace, ALLOCATION_STATE_PLURAL, body,
                _request_timeout=self.timeout,
            )
        except ApiException as e:
            raise _translate(e, f"MydeviceAllocationState {self.namespace}/{name}") from e

    def replace(self, body: dict) -> dict:
        """Replace the object; metadata.resourceVersion guards the write"""
        name = body.get('metadata', {}).get('name', '')
        try:
            return self.api.replace_namespaced_custom_object(
                API_GROUP, API_VERSION, self.namespace, ALLOCATION_STATE_PLURAL, name, body,
                _request_timeout=self.timeout,
            )
        except ApiException as e:
            raise _translate(e, f"MydeviceAllocationState {self.namespace}/{name}") from e


class ParametersClient:
    """Reads claim and class parameter objects"""

    def __init__(self, api, timeout: float = API_TIMEOUT):
        self.api = api
        self.timeout = timeout

    def get_claim_parameters(self, namespace: str, name: str) -> dict:
        try:
            return self.api.get_namespaced_custom_object(
                API_GROUP, API_VERSION, namespace, CLAIM_PARAMETERS_PLURAL, name,
                _request_timeout=self.timeout,
            )
        except ApiException as e:
            raise _translate(e, f"MydeviceClaimParameters {namespace}/{name}") from e

    def get_class_parameters(self, name: str) -> dict:
        try:
            return self.api.get_cluster_custom_object(
                API_GROUP, API_VERSION, CLASS_PARAMETERS_PLURAL, name,
                _request_timeout=self.timeout,
            )
        except ApiException as e:
            raise _translate(e, f"MydeviceClassParameters {name}") from e


__all__ = ["new_custom_objects_api", "AllocationStateClient", "ParametersClient"]
