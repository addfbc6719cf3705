"""Failures raised by the suite

Every failure is an AssertionError so pytest reports it as a failed test rather than an error.
The rendered message is the contract, it carries the scenario, the step and what was expected
versus what was observed.
"""

from typing import Any, Optional


class HarnessError(AssertionError):
    """Base class for all structured suite failures"""

    def __init__(self, message: str, expected: Any = None, observed: Any = None):
        super().__init__(message)
        self.message = message
        self.expected = expected
        self.observed = observed
        self.scenario: Optional[str] = None
        self.step: Optional[str] = None

    def stamp(self, scenario: str, step: str) -> "HarnessError":
        """Attaches scenario and step labels, the innermost step wins"""
        if self.scenario is None:
            self.scenario = scenario
        if self.step is None:
            self.step = step
        return self

    def __str__(self):
        prefix = ""
        if self.scenario or self.step:
            prefix = f"[{self.scenario or '-'} / {self.step or '-'}] "
        details = ""
        if self.expected is not None or self.observed is not None:
            details = f" (expected: {self.expected!r}, observed: {self.observed!r})"
        return f"{prefix}{self.message}{details}"


class ControlPlaneUnavailable(HarnessError):
    """Kubernetes API could not be reached within the retry budget"""


class MutationConflict(HarnessError):
    """Read-modify-write of a resource kept losing the optimistic concurrency race"""


class DeadlineExceeded(HarnessError):
    """Generic wait ran out of time"""


class ScenarioCancelled(HarnessError):
    """Wait was interrupted because the owning scenario was cancelled"""


class RollTimeout(DeadlineExceeded):
    """Replicated group did not finish rolling in time"""


class UnexpectedRoll(HarnessError):
    """Pod was recreated while the group was expected to stay untouched"""


class InstabilityObserved(HarnessError):
    """Pod left Running/Ready state during a stability window"""


class QuorumNotFormed(DeadlineExceeded):
    """Some ZooKeeper members did not report leader or follower in time"""


class MessageCountMismatch(HarnessError):
    """Sent or received message count differs from the requested one"""


class ClaimInventoryMismatch(HarnessError):
    """Number of broker persistent volume claims differs from the replica count"""


class MissingEventReason(HarnessError):
    """Expected event reason was not recorded for an object"""
