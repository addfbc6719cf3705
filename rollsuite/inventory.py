"""Assertions over persistent volume claims and events left behind by the operator"""

import logging

from rollsuite.errors import ClaimInventoryMismatch, MissingEventReason

logger = logging.getLogger(__name__)


def claim_inventory(cluster, group: str) -> list[str]:
    """Returns names of persistent volume claims which belong to the group"""
    return [name for name in cluster.list_persistent_claims() if group in name]


def assert_claim_inventory(cluster, group: str, expected: int) -> list[str]:
    """Number of claims of the group must equal `expected`"""
    claims = claim_inventory(cluster, group)
    logger.info("Persistent volume claims of %s: %s", group, claims)
    if len(claims) != expected:
        raise ClaimInventoryMismatch(
            f"Unexpected number of persistent volume claims for {group}", expected=expected, observed=claims
        )
    return claims


def event_reasons(cluster, uid: str) -> set[str]:
    """Returns reasons of all events recorded for the object"""
    return {event.reason for event in cluster.list_events(uid)}


def assert_event_reasons(cluster, uid: str, *reasons: str):
    """All `reasons` have to be present among the events of the object"""
    observed = event_reasons(cluster, uid)
    missing = sorted(set(reasons) - observed)
    if missing:
        raise MissingEventReason(
            f"Events {missing} were not recorded for object {uid}", expected=sorted(reasons), observed=sorted(observed)
        )
