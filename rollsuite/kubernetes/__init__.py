"""Kubernetes common objects"""

import functools
import logging
from dataclasses import dataclass, field
from typing import Callable, Literal, Optional

from kubernetes.client.exceptions import ApiException

from rollsuite.errors import MutationConflict
from rollsuite.waiting import wait_until

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PodInfo:
    """Point-in-time view of a single pod"""

    name: str
    uid: str
    phase: str
    ready: bool
    terminating: bool = False
    labels: dict = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_model(cls, pod) -> "PodInfo":
        """Builds PodInfo from a kubernetes V1Pod"""
        conditions = (pod.status.conditions or []) if pod.status else []
        ready = any(c.type == "Ready" and c.status == "True" for c in conditions)
        return cls(
            name=pod.metadata.name,
            uid=pod.metadata.uid,
            phase=(pod.status.phase if pod.status else None) or "Unknown",
            ready=ready,
            terminating=pod.metadata.deletion_timestamp is not None,
            labels=dict(pod.metadata.labels or {}),
        )

    @property
    def running_and_ready(self) -> bool:
        """True if the pod is Running, Ready and not being deleted"""
        return self.phase == "Running" and self.ready and not self.terminating


@dataclass(frozen=True)
class GroupStatus:
    """Replica counts reported by a StatefulSet"""

    desired: int
    ready: int
    current: int

    @classmethod
    def from_model(cls, stateful_set) -> "GroupStatus":
        """Builds GroupStatus from a kubernetes V1StatefulSet"""
        status = stateful_set.status
        return cls(
            desired=stateful_set.spec.replicas or 0,
            ready=(status.ready_replicas if status else None) or 0,
            current=(status.current_replicas if status else None) or 0,
        )


@dataclass(frozen=True)
class Event:
    """Kubernetes Event reduced to what the suite asserts on"""

    reason: str
    message: str = ""
    object_name: str = ""


@dataclass
class MatchExpression:
    """
    Data class intended for defining K8 Label Selector expressions.
    Used by selector.matchExpressions API key identity.
    """

    operator: Literal["In", "NotIn", "Exists", "DoesNotExist"]
    values: list[str]
    key: str = "group"

    def to_string(self) -> str:
        """Returns expression in the label selector query syntax"""
        if self.operator == "Exists":
            return self.key
        if self.operator == "DoesNotExist":
            return f"!{self.key}"
        return f"{self.key} {self.operator.lower()} ({','.join(self.values)})"


@dataclass
class Selector:
    """Dataclass for specifying selectors based on either expression or labels"""

    # pylint: disable=invalid-name
    matchExpressions: Optional[list[MatchExpression]] = field(default=None, kw_only=True)
    matchLabels: Optional[dict[str, str]] = field(default=None, kw_only=True)

    def __post_init__(self):
        if not (self.matchLabels is None) ^ (self.matchExpressions is None):
            raise AttributeError("`matchLabels` xor `matchExpressions` argument must be used")

    @classmethod
    def from_model(cls, model) -> "Selector":
        """Creates Selector from a V1LabelSelector or its dict form"""
        if not isinstance(model, dict):
            model = {"matchLabels": model.match_labels, "matchExpressions": model.match_expressions}
        if model.get("matchLabels"):
            return cls(matchLabels=dict(model["matchLabels"]))
        expressions = []
        for expression in model.get("matchExpressions") or []:
            if not isinstance(expression, dict):
                expression = {"key": expression.key, "operator": expression.operator, "values": expression.values}
            expressions.append(
                MatchExpression(expression["operator"], list(expression.get("values") or []), expression["key"])
            )
        return cls(matchExpressions=expressions)

    def to_string(self) -> str:
        """Returns selector in the label selector query syntax"""
        if self.matchLabels is not None:
            return ",".join(f"{key}={value}" for key, value in self.matchLabels.items())
        return ",".join(expression.to_string() for expression in self.matchExpressions)


class KubernetesObject:
    """Object backed by a plain model dict which tracks if it was already committed to the server or not"""

    def __init__(self, model: dict, cluster=None):
        self.model = model
        self.cluster = cluster
        self._committed = None

    def name(self) -> str:
        """Returns metadata.name"""
        return self.model["metadata"]["name"]

    def kind(self) -> str:
        """Returns object kind"""
        return self.model["kind"]

    def api_version(self) -> str:
        """Returns object apiVersion"""
        return self.model["apiVersion"]

    @property
    def committed(self):
        """Returns True, if the objects is already committed to the server"""
        if self._committed is None:
            self._committed = self.cluster.get_object(self.api_version(), self.kind(), self.name()) is not None
        return self._committed

    def commit(self):
        """
        Creates object on the server and returns created entity.
        It will be the same class but attributes might differ, due to server adding/rejecting some of them.
        """
        self.model = self.cluster.create_object(self.model)
        self._committed = True
        return self

    def refresh(self):
        """Reloads the model from the server"""
        model = self.cluster.get_object(self.api_version(), self.kind(), self.name())
        if model is not None:
            self.model = model
        return self

    def delete(self, ignore_not_found=True):
        """Deletes the resource, by default ignored not found"""
        deleted = self.cluster.delete_object(self.api_version(), self.kind(), self.name(), ignore_not_found)
        self._committed = False
        return deleted

    def modify_and_apply(self, modifier: Callable[["KubernetesObject"], object], retries: int = None):
        """
        Read-modify-write of this object guarded by resourceVersion.
        On a conflict the object is re-read and `modifier` is applied again, up to `retries` times.
        """
        if retries is None:
            retries = self.cluster.mutation_retries
        last_error = None
        for attempt in range(1, retries + 1):
            self.refresh()
            modifier(self)
            try:
                self.model = self.cluster.replace_object(self.model)
                return self
            except ApiException as exc:
                if exc.status != 409:
                    raise
                last_error = exc
                logger.info(
                    "Conflict while updating %s/%s (attempt %d of %d)", self.kind(), self.name(), attempt, retries
                )
        raise MutationConflict(
            f"Unable to update {self.kind()}/{self.name()}, resource kept changing",
            expected=f"success within {retries} attempts",
            observed=getattr(last_error, "reason", None),
        )

    def wait_until(self, test_function, timelimit=60):
        """Waits until the test function succeeds for this object"""
        outcome = wait_until(
            self.refresh,
            test_function,
            timeout=timelimit,
            interval=self.cluster.poll_interval,
            description=f"{self.kind()}/{self.name()}",
        )
        return outcome.success


class CustomResource(KubernetesObject):
    """Custom objects that implements methods that improves manipulation with CR objects"""

    def wait_for_ready(self, timelimit=None):
        """Waits until CR reports Ready condition"""
        success = self.wait_until(
            lambda obj: any(
                condition.get("type") == "Ready" and condition.get("status") == "True"
                for condition in obj.model.get("status", {}).get("conditions", [])
            ),
            timelimit=self.cluster.status_timeout if timelimit is None else timelimit,
        )
        assert success, f"{self.kind()} {self.name()} did not get ready in time"


def modify(func):
    """Wraps method of a subclass of KubernetesObject to use modify_and_apply when the object
    is already committed to the server, or run it normally if it isn't.
    All methods modifying the target object in any way should be decorated by this"""

    def _custom_partial(func, *args, **kwargs):
        """Custom partial function which makes sure that self is always assigned correctly"""

        def _func(self):
            func(self, *args, **kwargs)

        return _func

    @functools.wraps(func)
    def _wrap(self, *args, **kwargs):
        if self.committed:
            self.modify_and_apply(_custom_partial(func, *args, **kwargs))
        else:
            func(self, *args, **kwargs)

    return _wrap
