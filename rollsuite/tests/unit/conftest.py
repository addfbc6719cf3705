"""Unit tests run against an in-memory control plane, no cluster is needed"""

import itertools
import uuid
from copy import deepcopy
from typing import Callable, Optional

import pytest
from kubernetes.client.exceptions import ApiException

from rollsuite.config import settings
from rollsuite.kubernetes import Event, GroupStatus, PodInfo


class FakeCluster:
    """In-memory stand-in for KubernetesClient, `hooks` run before every pod listing to simulate reconciliation"""

    # pylint: disable=too-many-instance-attributes

    def __init__(self, namespace="unit"):
        self.namespace = namespace
        self.poll_interval = 0.01
        self.status_timeout = 0.5
        self.request_timeout = 1
        self.mutation_retries = 3
        self.pods: dict[str, PodInfo] = {}
        self.replicas: dict[str, int] = {}
        self.config_maps: dict[str, dict[str, str]] = {}
        self.claims: list[str] = []
        self.events: dict[str, list[Event]] = {}
        self.objects: dict[tuple[str, str], dict] = {}
        self.conflicts = 0
        self.hooks: list[Callable[["FakeCluster", int], None]] = []
        self.exec_handler: Callable[[str, list[str], Optional[bytes]], str] = lambda name, argv, stdin: ""
        self.executed: list[tuple[str, list[str]]] = []
        self.exec_cancels: list = []
        self._listings = itertools.count(1)
        self._versions = itertools.count(1)

    def add_pod(self, name, phase="Running", ready=True):
        """Creates or recreates pod with a new uid"""
        self.pods[name] = PodInfo(name, str(uuid.uuid4()), phase, ready)
        return self.pods[name]

    def add_group(self, group, replicas, claims=False):
        """Creates ready StatefulSet pods group-0..group-(replicas-1)"""
        self.replicas[group] = replicas
        for ordinal in range(replicas):
            self.add_pod(f"{group}-{ordinal}")
            if claims:
                self.claims.append(f"data-{group}-{ordinal}")

    def roll(self, group, ordinals=None):
        """Recreates pods of the group"""
        for ordinal in ordinals if ordinals is not None else range(self.replicas[group]):
            self.add_pod(f"{group}-{ordinal}")

    def scale(self, group, replicas):
        """Adds or removes pods at the end of the group, keeping claims in line"""
        for ordinal in range(replicas, self.replicas[group]):
            self.pods.pop(f"{group}-{ordinal}", None)
            if f"data-{group}-{ordinal}" in self.claims:
                self.claims.remove(f"data-{group}-{ordinal}")
        for ordinal in range(self.replicas[group], replicas):
            self.add_pod(f"{group}-{ordinal}")
            self.claims.append(f"data-{group}-{ordinal}")
        self.replicas[group] = replicas

    def list_pods(self, prefix=None, labels=None):  # pylint: disable=unused-argument
        """Runs hooks and lists pods"""
        call = next(self._listings)
        for hook in self.hooks:
            hook(self, call)
        return sorted(
            (pod for pod in self.pods.values() if prefix is None or pod.name.startswith(prefix)),
            key=lambda pod: pod.name,
        )

    def get_pod(self, name):
        """Returns pod or None"""
        return self.pods.get(name)

    def get_group_status(self, name):
        """Ready count is computed from the pods"""
        pods = [pod for pod in self.pods.values() if pod.name.rsplit("-", 1)[0] == name]
        ready = sum(1 for pod in pods if pod.running_and_ready)
        return GroupStatus(self.replicas[name], ready, len(pods))

    def get_config_map(self, name):
        """Returns copy of ConfigMap data"""
        return dict(self.config_maps[name])

    def put_config_map(self, name, data):
        """Upsert"""
        self.config_maps[name] = dict(data)

    def list_persistent_claims(self):
        """Returns claim names"""
        return sorted(self.claims)

    def list_events(self, uid):
        """Returns events of object"""
        return list(self.events.get(uid, []))

    def exec_in_pod(self, name, argv, stdin=None, container=None, timeout=None, cancel=None):
        """Records the command with its cancel event and delegates to exec_handler"""
        # pylint: disable=unused-argument
        self.executed.append((name, argv))
        self.exec_cancels.append(cancel)
        return self.exec_handler(name, argv, stdin)

    def get_object(self, api_version, kind, name):  # pylint: disable=unused-argument
        """Returns copy of stored object"""
        model = self.objects.get((kind, name))
        return None if model is None else deepcopy(model)

    def create_object(self, model):
        """Stores object"""
        model = deepcopy(model)
        model["metadata"]["resourceVersion"] = str(next(self._versions))
        self.objects[(model["kind"], model["metadata"]["name"])] = model
        return deepcopy(model)

    def replace_object(self, model):
        """Stores object, raises 409 while `conflicts` is positive"""
        if self.conflicts > 0:
            self.conflicts -= 1
            raise ApiException(status=409, reason="Conflict")
        return self.create_object(model)

    def delete_object(self, api_version, kind, name, ignore_not_found=True):  # pylint: disable=unused-argument
        """Removes object"""
        return self.objects.pop((kind, name), None) is not None


@pytest.fixture
def fake_cluster():
    """In-memory control plane"""
    return FakeCluster()


@pytest.fixture(autouse=True)
def fast_settings(monkeypatch):
    """Shrinks default timeouts and windows so that unit tests finish quickly"""
    monkeypatch.setattr(settings.timeouts, "poll_interval", 0.01)
    monkeypatch.setattr(settings.timeouts, "status", 0.3)
    monkeypatch.setattr(settings.timeouts, "roll", 0.3)
    monkeypatch.setattr(settings.timeouts, "step", 2)
    monkeypatch.setattr(settings.windows, "stability", 0.05)
    monkeypatch.setattr(settings.windows, "no_roll", 0.05)
    return settings
