"""ZooKeeper quorum checks based on the `mntr` four letter word"""

import logging
import re
import threading
from typing import Iterable, Optional

from kubernetes.client.exceptions import ApiException

from rollsuite.config import settings
from rollsuite.errors import ControlPlaneUnavailable, QuorumNotFormed
from rollsuite.kafka import KafkaResources
from rollsuite.waiting import wait_until

logger = logging.getLogger(__name__)

MNTR_COMMAND = ["/bin/bash", "-c", "echo mntr | nc localhost 12181"]
SERVER_STATE = re.compile(r"server_state\s+(leader|follower)")
QUORUM_ROLES = ("leader", "follower")


def parse_mntr(output: str) -> dict[str, str]:
    """Parses tab separated `mntr` output into a dict"""
    result = {}
    for line in output.splitlines():
        key, sep, value = line.partition("\t")
        if sep and key.strip():
            result[key.strip()] = value.strip()
    return result


def server_role(output: str) -> Optional[str]:
    """Returns leader or follower, None for any other state or unreadable output"""
    role = parse_mntr(output).get("zk_server_state")
    if role in QUORUM_ROLES:
        return role
    match = SERVER_STATE.search(output)
    return match.group(1) if match else None


def member_roles(
    cluster, cluster_name: str, ordinals: Iterable[int], cancel: threading.Event = None
) -> dict[int, Optional[str]]:
    """Asks every listed ZooKeeper member for its role, a member that cannot be reached has no role"""
    roles = {}
    for ordinal in ordinals:
        pod = KafkaResources.zookeeper_pod_name(cluster_name, ordinal)
        try:
            output = cluster.exec_in_pod(pod, MNTR_COMMAND, cancel=cancel)
        except (ApiException, ControlPlaneUnavailable) as exc:
            logger.debug("Unable to ask %s for its role: %s", pod, exc)
            output = ""
        roles[ordinal] = server_role(output)
    return roles


def wait_for_quorum(
    cluster,
    cluster_name: str,
    ordinals: Iterable[int],
    timeout: float = None,
    cancel: threading.Event = None,
) -> dict[int, str]:
    """Waits until all listed members are part of the quorum, it is not checked that there is a single leader"""
    ordinals = list(ordinals)
    timeout = settings.timeouts.status if timeout is None else timeout
    logger.info("Waiting for ZooKeeper members %s of %s to join the quorum", ordinals, cluster_name)
    outcome = wait_until(
        lambda: member_roles(cluster, cluster_name, ordinals, cancel),
        lambda roles: all(role in QUORUM_ROLES for role in roles.values()),
        timeout=timeout,
        interval=settings.timeouts.poll_interval,
        description=f"ZooKeeper quorum of {cluster_name}",
        cancel=cancel,
    )
    if not outcome.success:
        missing = [ordinal for ordinal, role in outcome.value.items() if role not in QUORUM_ROLES]
        raise QuorumNotFormed(
            f"ZooKeeper members {missing} of {cluster_name} did not join the quorum within {timeout:.0f}s",
            expected={ordinal: "leader|follower" for ordinal in ordinals},
            observed=outcome.value,
        )
    return outcome.value
