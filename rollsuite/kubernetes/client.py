"""This module implements the control plane client on top of the official kubernetes python client."""

import base64
import functools
import logging
import threading
import time
from typing import Optional

import backoff
import urllib3
from kubernetes import client, config
from kubernetes.client.exceptions import ApiException
from kubernetes.dynamic import DynamicClient
from kubernetes.stream import stream

from rollsuite.errors import ControlPlaneUnavailable
from rollsuite.kubernetes import Event, GroupStatus, PodInfo, Selector
from rollsuite.waiting import check_cancelled

logger = logging.getLogger(__name__)

EXEC_POLL_SLICE = 0.5


def _is_transient(exc: Exception) -> bool:
    """Connection problems, throttling and server side errors are worth retrying"""
    if isinstance(exc, urllib3.exceptions.HTTPError):
        return True
    status = getattr(exc, "status", None) or 0
    return status in (0, 429) or status >= 500


def retried(func):
    """Retries transient API failures with exponential backoff, raises ControlPlaneUnavailable on exhaustion"""

    @functools.wraps(func)
    def _wrap(self, *args, **kwargs):
        call = backoff.on_exception(
            backoff.expo,
            (ApiException, urllib3.exceptions.HTTPError),
            giveup=lambda exc: not _is_transient(exc),
            max_tries=self.retries,
            max_value=10,
        )(func)
        try:
            return call(self, *args, **kwargs)
        except (ApiException, urllib3.exceptions.HTTPError) as exc:
            if not _is_transient(exc):
                raise
            raise ControlPlaneUnavailable(
                f"Kubernetes API is unavailable, {func.__name__} failed {self.retries} times",
                observed=str(exc).strip(),
            ) from exc

    return _wrap


class KubernetesClient:
    """KubernetesClient is a namespaced facade over the kubernetes API used by all checks.
    The underlying ApiClient is safe to share between threads."""

    # pylint: disable=too-many-public-methods,too-many-arguments

    def __init__(
        self,
        namespace: str,
        kubeconfig_path: str = None,
        context: str = None,
        retries: int = 5,
        mutation_retries: int = 5,
        request_timeout: float = 30,
        poll_interval: float = 2,
        status_timeout: float = 180,
        api_client: client.ApiClient = None,
    ):
        self.namespace = namespace
        self._kubeconfig_path = kubeconfig_path
        self._context = context
        self.retries = retries
        self.mutation_retries = mutation_retries
        self.request_timeout = request_timeout
        self.poll_interval = poll_interval
        self.status_timeout = status_timeout
        self._lock = threading.RLock()
        self._clients: dict = {} if api_client is None else {"api_client": api_client}

    @classmethod
    def from_settings(cls, settings, namespace: str = None) -> "KubernetesClient":
        """Creates client configured by suite settings"""
        return cls(
            namespace or settings.cluster.namespace,
            settings.cluster.kubeconfig_path,
            settings.cluster.context,
            retries=settings.retries.api,
            mutation_retries=settings.retries.mutation,
            request_timeout=settings.timeouts.request,
            poll_interval=settings.timeouts.poll_interval,
            status_timeout=settings.timeouts.status,
        )

    def change_namespace(self, namespace) -> "KubernetesClient":
        """Return new self with a different namespace, sharing the connection"""
        return KubernetesClient(
            namespace,
            self._kubeconfig_path,
            self._context,
            retries=self.retries,
            mutation_retries=self.mutation_retries,
            request_timeout=self.request_timeout,
            poll_interval=self.poll_interval,
            status_timeout=self.status_timeout,
            api_client=self.api_client,
        )

    def _shared(self, name: str, factory):
        """Builds the named API object once, concurrent first use from several threads gets the same instance"""
        with self._lock:
            if name not in self._clients:
                self._clients[name] = factory()
            return self._clients[name]

    def _new_api_client(self) -> client.ApiClient:
        """Prepare API client, falls back to in-cluster configuration when no kubeconfig is found"""
        try:
            return config.new_client_from_config(config_file=self._kubeconfig_path, context=self._context)
        except config.ConfigException:
            logger.info("No usable kubeconfig found, trying in-cluster configuration")
            config.load_incluster_config()
            return client.ApiClient()

    @property
    def api_client(self) -> client.ApiClient:
        """Shared API client with its connection pool"""
        return self._shared("api_client", self._new_api_client)

    @property
    def core_v1(self) -> client.CoreV1Api:
        """Core API group"""
        return self._shared("core_v1", lambda: client.CoreV1Api(self.api_client))

    @property
    def apps_v1(self) -> client.AppsV1Api:
        """Apps API group"""
        return self._shared("apps_v1", lambda: client.AppsV1Api(self.api_client))

    @property
    def dynamic(self) -> DynamicClient:
        """Dynamic client used for custom resources"""
        return self._shared("dynamic", lambda: DynamicClient(self.api_client))

    @property
    def connected(self):
        """Returns True, if the API is reachable and the namespace exists"""
        try:
            self.core_v1.read_namespace(self.namespace, _request_timeout=self.request_timeout)
        except (ApiException, urllib3.exceptions.HTTPError, config.ConfigException):
            return False
        return True

    @retried
    def list_pods(self, prefix: str = None, labels: dict[str, str] = None) -> list[PodInfo]:
        """Returns all pods whose name begins with prefix and that match labels, sorted by name"""
        label_selector = Selector(matchLabels=labels).to_string() if labels else None
        pods = self.core_v1.list_namespaced_pod(
            self.namespace, label_selector=label_selector, _request_timeout=self.request_timeout
        ).items
        result = [PodInfo.from_model(pod) for pod in pods]
        if prefix:
            result = [pod for pod in result if pod.name.startswith(prefix)]
        return sorted(result, key=lambda pod: pod.name)

    @retried
    def get_pod(self, name: str) -> Optional[PodInfo]:
        """Returns pod by name or None if it does not exist"""
        try:
            return PodInfo.from_model(
                self.core_v1.read_namespaced_pod(name, self.namespace, _request_timeout=self.request_timeout)
            )
        except ApiException as exc:
            if exc.status == 404:
                return None
            raise

    @retried
    def get_stateful_set(self, name: str):
        """Returns V1StatefulSet"""
        return self.apps_v1.read_namespaced_stateful_set(name, self.namespace, _request_timeout=self.request_timeout)

    def get_group_status(self, name: str) -> GroupStatus:
        """Returns replica status of a StatefulSet"""
        return GroupStatus.from_model(self.get_stateful_set(name))

    @retried
    def get_deployment_selector(self, name: str) -> Selector:
        """Returns pod selector of a Deployment"""
        deployment = self.apps_v1.read_namespaced_deployment(
            name, self.namespace, _request_timeout=self.request_timeout
        )
        return Selector.from_model(deployment.spec.selector)

    @retried
    def get_config_map(self, name: str) -> dict[str, str]:
        """Returns data of the ConfigMap"""
        config_map = self.core_v1.read_namespaced_config_map(
            name, self.namespace, _request_timeout=self.request_timeout
        )
        return dict(config_map.data or {})

    @retried
    def put_config_map(self, name: str, data: dict[str, str]):
        """Creates or replaces ConfigMap data, last write wins"""
        try:
            config_map = self.core_v1.read_namespaced_config_map(
                name, self.namespace, _request_timeout=self.request_timeout
            )
        except ApiException as exc:
            if exc.status != 404:
                raise
            body = client.V1ConfigMap(metadata=client.V1ObjectMeta(name=name), data=dict(data))
            self.core_v1.create_namespaced_config_map(self.namespace, body, _request_timeout=self.request_timeout)
            return
        config_map.data = dict(data)
        config_map.metadata.resource_version = None
        self.core_v1.replace_namespaced_config_map(
            name, self.namespace, config_map, _request_timeout=self.request_timeout
        )

    @retried
    def list_persistent_claims(self) -> list[str]:
        """Returns names of all PersistentVolumeClaims in the namespace"""
        claims = self.core_v1.list_namespaced_persistent_volume_claim(
            self.namespace, _request_timeout=self.request_timeout
        ).items
        return sorted(claim.metadata.name for claim in claims)

    @retried
    def list_events(self, uid: str) -> list[Event]:
        """Returns events recorded for the object with given uid"""
        events = self.core_v1.list_namespaced_event(
            self.namespace, field_selector=f"involvedObject.uid={uid}", _request_timeout=self.request_timeout
        ).items
        return [Event(event.reason or "", event.message or "", event.involved_object.name or "") for event in events]

    @retried
    def delete_pods(self, selector: Selector):
        """Deletes all pods matching the selector"""
        self.core_v1.delete_collection_namespaced_pod(
            self.namespace, label_selector=selector.to_string(), _request_timeout=self.request_timeout
        )

    @retried
    def _open_exec(self, name: str, argv: list[str], container: str = None):
        """Opens exec websocket, a failed handshake surfaces as ApiException and is retried like any request"""
        return stream(
            self.core_v1.connect_get_namespaced_pod_exec,
            name,
            self.namespace,
            command=argv,
            container=container,
            stderr=True,
            stdin=False,
            stdout=True,
            tty=False,
            _preload_content=False,
        )

    def exec_in_pod(
        self,
        name: str,
        argv: list[str],
        stdin: bytes = None,
        container: str = None,
        timeout: float = None,
        cancel: threading.Event = None,
    ) -> str:
        """
        Runs argv in the pod and returns its stdout.
        Standard input is handed over base64 encoded on the command line, so the command sees a closed stream.
        The stream is read in short slices, setting `cancel` closes it and raises ScenarioCancelled.
        """
        if stdin is not None:
            argv = ["/bin/sh", "-c", 'echo "$0" | base64 -d | "$@"', base64.b64encode(stdin).decode(), *argv]
        timeout = self.request_timeout if timeout is None else timeout
        deadline = time.monotonic() + timeout
        response = self._open_exec(name, argv, container)
        try:
            while response.is_open():
                check_cancelled(cancel, f"{argv[0]} in pod {name}")
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    logger.warning("Command %s in pod %s did not finish within %.0fs", argv[0], name, timeout)
                    break
                response.update(timeout=min(EXEC_POLL_SLICE, remaining))
            stdout = response.read_stdout(timeout=0)
            stderr = response.read_stderr(timeout=0)
            returncode = response.returncode
        finally:
            response.close()
        if returncode:
            logger.warning("Command %s in pod %s exited with %s: %s", argv[0], name, returncode, stderr.strip())
        return stdout

    def resource(self, api_version: str, kind: str):
        """Returns dynamic resource for the kind"""
        return self.dynamic.resources.get(api_version=api_version, kind=kind)

    @retried
    def get_object(self, api_version: str, kind: str, name: str) -> Optional[dict]:
        """Returns object model or None if it does not exist"""
        try:
            return self.resource(api_version, kind).get(
                name=name, namespace=self.namespace, _request_timeout=self.request_timeout
            ).to_dict()
        except ApiException as exc:
            if exc.status == 404:
                return None
            raise

    @retried
    def create_object(self, model: dict) -> dict:
        """Creates object and returns the model stored on the server"""
        return (
            self.resource(model["apiVersion"], model["kind"])
            .create(body=model, namespace=self.namespace, _request_timeout=self.request_timeout)
            .to_dict()
        )

    @retried
    def replace_object(self, model: dict) -> dict:
        """Replaces object, fails with 409 if its resourceVersion is stale"""
        return (
            self.resource(model["apiVersion"], model["kind"])
            .replace(body=model, namespace=self.namespace, _request_timeout=self.request_timeout)
            .to_dict()
        )

    @retried
    def delete_object(self, api_version: str, kind: str, name: str, ignore_not_found: bool = True) -> bool:
        """Deletes object, returns False if it was already gone"""
        try:
            self.resource(api_version, kind).delete(
                name=name, namespace=self.namespace, _request_timeout=self.request_timeout
            )
        except ApiException as exc:
            if exc.status == 404 and ignore_not_found:
                return False
            raise
        return True
