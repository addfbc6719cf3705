"""Checks of pod phases during and after reconciliation"""

import logging
import threading
from typing import Callable

from rollsuite.config import settings
from rollsuite.errors import DeadlineExceeded, InstabilityObserved
from rollsuite.kubernetes import PodInfo
from rollsuite.waiting import observe, wait_until

logger = logging.getLogger(__name__)

PodFilter = Callable[[PodInfo], bool]


def exclude_pending_at_start(cluster, prefix: str) -> PodFilter:
    """Returns filter matching pods which are Pending right now, e.g. pods that can never be scheduled"""
    pending = {pod.name for pod in cluster.list_pods(prefix=prefix) if pod.phase == "Pending"}
    if pending:
        logger.info("Excluding pending pods %s from the stability check", sorted(pending))
    return lambda pod: pod.name in pending


def verify_stable(
    cluster,
    prefix: str,
    window: float = None,
    exclude: PodFilter = None,
    interval: float = None,
    cancel: threading.Event = None,
):
    """
    Every pod with the prefix, except the excluded ones, has to stay Running and Ready for the whole window.
    Pods seen on the first poll also have to keep their uid, a pod recreated between two polls is not stable.
    """
    window = settings.windows.stability if window is None else window
    interval = settings.timeouts.poll_interval if interval is None else interval
    if exclude is None:
        exclude = exclude_pending_at_start(cluster, prefix)
    baseline: dict[str, str] = {}

    def _check():
        pods = [pod for pod in cluster.list_pods(prefix=prefix) if not exclude(pod)]
        unstable = [pod for pod in pods if not pod.running_and_ready]
        if unstable:
            raise InstabilityObserved(
                f"Pod {unstable[0].name} is not stable",
                expected="Running and Ready",
                observed={pod.name: pod.phase if pod.ready else f"{pod.phase}, not ready" for pod in unstable},
            )
        current = {pod.name: pod.uid for pod in pods}
        if not baseline:
            baseline.update(current)
        replaced = [name for name, uid in baseline.items() if current.get(name) != uid]
        if replaced:
            raise InstabilityObserved(
                f"Pod {replaced[0]} was deleted or recreated", expected=dict(baseline), observed=current
            )

    logger.info("Verifying that pods %s are stable for %.0fs", prefix, window)
    observe(_check, window=window, interval=interval, description=f"{prefix} pods to stay stable", cancel=cancel)


def wait_for_pending_pod(cluster, prefix: str, timeout: float = None, cancel: threading.Event = None) -> PodInfo:
    """Waits until at least one pod with the prefix is Pending and returns it"""
    timeout = settings.timeouts.status if timeout is None else timeout
    outcome = wait_until(
        lambda: [pod for pod in cluster.list_pods(prefix=prefix) if pod.phase == "Pending"],
        timeout=timeout,
        interval=settings.timeouts.poll_interval,
        description=f"pending pod {prefix}",
        cancel=cancel,
    )
    pending = outcome.unwrap(f"a pending {prefix} pod", expected="Pending")
    logger.info("Pod %s is pending", pending[0].name)
    return pending[0]


def wait_for_pods_transitioning(
    cluster, prefix: str = None, timeout: float = None, cancel: threading.Event = None
) -> list[PodInfo]:
    """Waits until some pod leaves Running state, which means a rollout is in progress"""
    timeout = settings.timeouts.status if timeout is None else timeout
    outcome = wait_until(
        lambda: [pod for pod in cluster.list_pods(prefix=prefix) if pod.phase != "Running" or pod.terminating],
        timeout=timeout,
        interval=settings.timeouts.poll_interval,
        description="pods to start transitioning",
        cancel=cancel,
    )
    if not outcome.success:
        raise DeadlineExceeded(
            f"No pod {prefix or ''} left Running state within {timeout:.0f}s", expected="a transitioning pod"
        )
    return outcome.value
