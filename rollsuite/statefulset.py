"""Identity snapshots of StatefulSet pods and detection of rolling updates"""

import enum
import logging
import re
import threading
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Iterator, Optional

from rollsuite.config import settings
from rollsuite.errors import HarnessError, RollTimeout, UnexpectedRoll
from rollsuite.kubernetes import GroupStatus, PodInfo
from rollsuite.waiting import observe, wait_until

logger = logging.getLogger(__name__)


def pod_ordinal(group: str, pod_name: str) -> Optional[int]:
    """Returns ordinal of a StatefulSet pod or None if the pod does not belong to the group"""
    match = re.fullmatch(rf"{re.escape(group)}-(\d+)", pod_name)
    return int(match.group(1)) if match else None


class GroupSnapshot(Mapping):
    """Immutable mapping of pod name to pod uid taken at a point in time.
    Equality only considers the mapping."""

    def __init__(self, group: str, pods: Mapping[str, str], taken_at: float = None):
        self.group = group
        self._pods = dict(sorted(pods.items(), key=lambda item: pod_ordinal(group, item[0]) or 0))
        self.taken_at = taken_at if taken_at is not None else time.time()

    def __getitem__(self, name: str) -> str:
        return self._pods[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._pods)

    def __len__(self) -> int:
        return len(self._pods)

    def __repr__(self):
        return f"GroupSnapshot({self.group}, {self._pods})"

    def ordinals(self) -> list[int]:
        """Ordinals present in the snapshot"""
        return [pod_ordinal(self.group, name) for name in self._pods]


def group_pods(cluster, group: str) -> list[PodInfo]:
    """Returns pods of the group ordered by ordinal, other pods sharing the name prefix are ignored"""
    pods = [pod for pod in cluster.list_pods(prefix=f"{group}-") if pod_ordinal(group, pod.name) is not None]
    return sorted(pods, key=lambda pod: pod_ordinal(group, pod.name))


def snapshot(cluster, group: str) -> GroupSnapshot:
    """Takes snapshot of the group, readiness is not checked so it can be taken mid-reconciliation"""
    return GroupSnapshot(group, {pod.name: pod.uid for pod in group_pods(cluster, group)})


class RollState(enum.Enum):
    """Progress of a rolling update relative to the prior snapshot"""

    NOT_STARTED = "NotStarted"
    ROLLING = "Rolling"
    COMPLETE = "Complete"


@dataclass(frozen=True)
class RollObservation:
    """Single poll of the roll detector"""

    state: RollState
    snapshot: GroupSnapshot
    pending: tuple[str, ...]
    ready: int
    status: Optional[GroupStatus] = None

    def describe(self, expected: int) -> str:
        """Human readable reason why the roll is not complete"""
        if self.pending:
            return f"pod {self.pending[0]} still matches the prior snapshot"
        return f"{self.ready} of {expected} pods ready, status {self.status}"


def unrolled_pods(group: str, prior: Mapping[str, str], current: Mapping[str, str], expected: int) -> list[str]:
    """
    Returns pods which block the roll:
      * slots below `expected` that still carry the prior uid or are missing
      * slots at or above `expected` that still exist after a scale down
    """
    pending = []
    for name, uid in prior.items():
        ordinal = pod_ordinal(group, name)
        if ordinal is not None and ordinal >= expected:
            if name in current:
                pending.append(name)
        elif current.get(name) in (None, uid):
            pending.append(name)
    return pending


def evaluate_roll(
    group: str, prior: Mapping[str, str], pods: list[PodInfo], expected: int, status: Optional[GroupStatus]
) -> RollObservation:
    """Decides roll state from pods and StatefulSet status, status is only consulted once pods look complete"""
    current = GroupSnapshot(group, {pod.name: pod.uid for pod in pods})
    pending = tuple(unrolled_pods(group, prior, current, expected))
    ready = sum(1 for pod in pods if pod.running_and_ready)
    expected_names = {f"{group}-{ordinal}" for ordinal in range(expected)}

    complete = (
        not pending
        and set(current) == expected_names
        and ready == expected
        and status is not None
        and status.ready == expected
    )
    if complete:
        state = RollState.COMPLETE
    elif len(pending) < len(prior):
        state = RollState.ROLLING
    else:
        state = RollState.NOT_STARTED
    return RollObservation(state, current, pending, ready, status)


def wait_till_rolled(
    cluster,
    group: str,
    expected_replicas: int,
    prior: Mapping[str, str],
    timeout: float = None,
    interval: float = None,
    cancel: threading.Event = None,
) -> GroupSnapshot:
    """Waits until every pod of the group was recreated and `expected_replicas` pods are ready.
    Returns snapshot of the rolled group."""
    timeout = settings.timeouts.roll if timeout is None else timeout
    interval = settings.timeouts.poll_interval if interval is None else interval
    last_state = [None]

    def _observe() -> RollObservation:
        pods = group_pods(cluster, group)
        current = {pod.name: pod.uid for pod in pods}
        status = None
        if not unrolled_pods(group, prior, current, expected_replicas):
            status = cluster.get_group_status(group)
        observation = evaluate_roll(group, prior, pods, expected_replicas, status)
        if observation.state is not last_state[0]:
            logger.info("StatefulSet %s roll state: %s", group, observation.state.value)
            last_state[0] = observation.state
        return observation

    logger.info("Waiting for StatefulSet %s to roll to %d replicas", group, expected_replicas)
    outcome = wait_until(
        _observe,
        lambda observation: observation.state is RollState.COMPLETE,
        timeout=timeout,
        interval=interval,
        description=f"{group} to roll",
        cancel=cancel,
    )
    if not outcome.success:
        raise RollTimeout(
            f"StatefulSet {group} did not roll within {timeout:.0f}s, {outcome.value.describe(expected_replicas)}",
            expected=f"{expected_replicas} recreated ready pods",
            observed=dict(outcome.value.snapshot),
        )
    logger.info("StatefulSet %s rolled", group)
    return outcome.value.snapshot


def assert_unchanged(cluster, group: str, prior: Mapping[str, str]) -> GroupSnapshot:
    """Fails with UnexpectedRoll if the group differs from `prior` right now, returns the current snapshot"""
    current = snapshot(cluster, group)
    if current != prior:
        changed = next((name for name in set(prior) | set(current) if prior.get(name) != current.get(name)), group)
        raise UnexpectedRoll(f"Pod {changed} of {group} was recreated", expected=dict(prior), observed=dict(current))
    return current


def assert_no_roll(
    cluster,
    group: str,
    prior: Mapping[str, str],
    window: float = None,
    interval: float = None,
    cancel: threading.Event = None,
):
    """Fails with UnexpectedRoll if the group ever differs from `prior` during the window"""
    window = settings.windows.no_roll if window is None else window
    interval = settings.timeouts.poll_interval if interval is None else interval
    logger.info("Verifying that %s does not roll for %.0fs", group, window)
    observe(
        lambda: assert_unchanged(cluster, group, prior),
        window=window,
        interval=interval,
        description=f"{group} to stay unchanged",
        cancel=cancel,
    )


def wait_for_all_pods_ready(
    cluster,
    group: str,
    expected_replicas: int,
    timeout: float = None,
    interval: float = None,
    cancel: threading.Event = None,
) -> GroupSnapshot:
    """Waits until the StatefulSet reports `expected_replicas` ready and exactly those pods are Running and Ready"""
    timeout = settings.timeouts.roll if timeout is None else timeout
    interval = settings.timeouts.poll_interval if interval is None else interval
    expected_names = [f"{group}-{ordinal}" for ordinal in range(expected_replicas)]

    def _ready():
        status = cluster.get_group_status(group)
        pods = group_pods(cluster, group)
        return status, pods

    def _is_ready(value) -> bool:
        status, pods = value
        return (
            status.ready == expected_replicas
            and [pod.name for pod in pods] == expected_names
            and all(pod.running_and_ready for pod in pods)
        )

    logger.info("Waiting for all %d pods of %s to be ready", expected_replicas, group)
    outcome = wait_until(
        _ready, _is_ready, timeout=timeout, interval=interval, description=f"{group} to be ready", cancel=cancel
    )
    status, pods = outcome.value
    if not outcome.success:
        raise RollTimeout(
            f"StatefulSet {group} did not get ready within {timeout:.0f}s",
            expected=f"{expected_replicas} ready pods",
            observed={"status": status, "pods": [pod.name for pod in pods if pod.running_and_ready]},
        )
    return GroupSnapshot(group, {pod.name: pod.uid for pod in pods})


def assert_ordinals_preserved(before: GroupSnapshot, after: GroupSnapshot):
    """Pod names of ordinals shared by both snapshots must not change across a scale"""
    shared = min(len(before), len(after))
    expected = [f"{before.group}-{ordinal}" for ordinal in range(shared)]
    missing = [name for name in expected if name not in before or name not in after]
    if missing:
        raise HarnessError(
            f"Pod identity of {before.group} was not preserved across scaling",
            expected=expected,
            observed=sorted(set(before) & set(after)),
        )
