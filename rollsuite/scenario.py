"""Orchestration of a single scenario: labelled steps, background traffic and cancellation"""

import concurrent.futures
import logging
import threading
from typing import Any, Callable, Optional

from rollsuite.config import Settings, settings
from rollsuite.errors import DeadlineExceeded, HarnessError
from rollsuite.kafka import KafkaResources
from rollsuite.waiting import check_cancelled

logger = logging.getLogger(__name__)


class BackgroundTask:
    """Handle of a function running on the scenario executor"""

    def __init__(self, scenario: "Scenario", label: str, future: concurrent.futures.Future):
        self.scenario = scenario
        self.label = label
        self.future = future

    def done(self) -> bool:
        """True if the task already finished"""
        return self.future.done()

    def result(self, timeout: float = None) -> Any:
        """Waits for the task and returns its result, failures are reported with the task label"""
        try:
            return self.future.result(timeout=timeout)
        except concurrent.futures.TimeoutError as exc:
            if self.future.done():
                raise
            raise DeadlineExceeded(
                f"Background task did not finish within {timeout:.0f}s", expected="finished task", observed="running"
            ).stamp(self.scenario.name, self.label) from exc
        except HarnessError as exc:
            raise exc.stamp(self.scenario.name, self.label)


class Scenario:
    """
    Owns everything a scenario needs:
        cluster - namespaced Kubernetes client
        kafka_name - name of the Kafka CR under test
        settings - timeouts, windows and retry budgets
        cancel_event - set by cancel(), checked by every wait before each poll
    """

    def __init__(self, name: str, cluster, kafka_name: str, config: Optional[Settings] = None):
        self.name = name
        self.cluster = cluster
        self.kafka_name = kafka_name
        self.settings = config or settings
        self.cancel_event = threading.Event()
        self._executor: Optional[concurrent.futures.ThreadPoolExecutor] = None

    @property
    def timeouts(self):
        """Timeout settings"""
        return self.settings.timeouts

    @property
    def kafka_group(self) -> str:
        """Broker StatefulSet name"""
        return KafkaResources.kafka_stateful_set_name(self.kafka_name)

    @property
    def zookeeper_group(self) -> str:
        """ZooKeeper StatefulSet name"""
        return KafkaResources.zookeeper_stateful_set_name(self.kafka_name)

    def step(
        self,
        label: str,
        action: Callable[[], Any],
        precondition: Callable[[], bool] = None,
        postcondition: Callable[[Any], bool] = None,
        deadline: float = None,
    ) -> Any:
        """
        Runs single step of the scenario and returns the result of `action`.
        `postcondition` gets the result and has to hold before the scenario continues.
        The action runs on the scenario executor and has `deadline` seconds to finish, an overrun cancels the scenario.
        Failures raised inside are labelled with the scenario name and the step, unexpected errors become HarnessError.
        """
        deadline = self.timeouts.step if deadline is None else deadline
        logger.info("[%s] %s", self.name, label)
        try:
            check_cancelled(self.cancel_event, label)
            if precondition is not None and precondition() is False:
                raise HarnessError(f"Precondition of '{label}' does not hold")
            future = self._pool().submit(action)
            try:
                result = future.result(timeout=deadline)
            except concurrent.futures.TimeoutError as exc:
                if future.done():
                    raise
                self.cancel()
                raise DeadlineExceeded(
                    f"Step '{label}' did not finish within {deadline:.0f}s",
                    expected="finished step",
                    observed="running",
                ) from exc
            if postcondition is not None and postcondition(result) is False:
                raise HarnessError(f"Postcondition of '{label}' does not hold", observed=result)
        except HarnessError as exc:
            raise exc.stamp(self.name, label)
        except Exception as exc:  # pylint: disable=broad-except
            raise HarnessError(f"Step '{label}' failed: {exc}", observed=type(exc).__name__).stamp(
                self.name, label
            ) from exc
        return result

    def _pool(self) -> concurrent.futures.ThreadPoolExecutor:
        if self._executor is None:
            self._executor = concurrent.futures.ThreadPoolExecutor(thread_name_prefix=self.name)
        return self._executor

    def in_background(self, label: str, func: Callable[..., Any], *args, **kwargs) -> BackgroundTask:
        """Runs func on a separate thread, join it with BackgroundTask.result()"""
        logger.info("[%s] %s (background)", self.name, label)
        return BackgroundTask(self, label, self._pool().submit(func, *args, **kwargs))

    def cancel(self):
        """Signals every wait of the scenario to stop at its next poll"""
        logger.info("[%s] Cancelling", self.name)
        self.cancel_event.set()

    def close(self):
        """Cancels the scenario and joins background tasks"""
        if self._executor is not None:
            self.cancel()
            self._executor.shutdown(wait=True, cancel_futures=True)
            self._executor = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
