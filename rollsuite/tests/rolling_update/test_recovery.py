"""Tests that clients keep working while a rolling update is stuck on an unschedulable pod"""

from functools import partial

import pytest

from rollsuite.kafka import ResourceRequirements, replace_kafka
from rollsuite.pods import verify_stable, wait_for_pending_pod
from rollsuite.statefulset import wait_for_all_pods_ready

pytestmark = [pytest.mark.regression, pytest.mark.rolling_update]

MESSAGE_COUNT = 100
UNSCHEDULABLE_CPU = "100000m"
SCHEDULABLE_CPU = "200m"


def set_cpu_request(scenario, section, cpu):
    """Sets CPU request of the Kafka CR section (kafka or zookeeper)"""
    resources = ResourceRequirements(requests={"cpu": cpu})
    return replace_kafka(
        scenario.cluster, scenario.kafka_name, lambda kafka: getattr(kafka, section).set_resources(resources)
    )


def test_recovery_during_zookeeper_rolling_update(
    scenario, cluster, create_kafka, create_topic, kafka_client, round_trip_new_topic
):  # pylint: disable=too-many-arguments
    """
    Unschedulable ZooKeeper pod must not affect the remaining pods nor the clients,
    the cluster recovers once the resources are reverted
    """
    cancel = scenario.cancel_event
    zookeeper, kafka = scenario.zookeeper_group, scenario.kafka_group
    create_kafka(kafka_replicas=3, zookeeper_replicas=3)
    client = kafka_client(create_topic(partitions=2, replicas=2))

    scenario.step("send messages", client.send, postcondition=lambda sent: sent == MESSAGE_COUNT)
    scenario.step(
        "request unschedulable CPU for ZooKeeper",
        partial(set_cpu_request, scenario, "zookeeper", UNSCHEDULABLE_CPU),
    )

    traffic = scenario.in_background("receive messages", client.wait_until_received)
    scenario.step("wait for pending ZooKeeper pod", partial(wait_for_pending_pod, cluster, zookeeper, cancel=cancel))
    scenario.step("running ZooKeeper pods are stable", partial(verify_stable, cluster, zookeeper, cancel=cancel))
    scenario.step("Kafka pods are stable", partial(verify_stable, cluster, f"{kafka}-", cancel=cancel))
    scenario.step(
        "all messages received",
        partial(traffic.result, timeout=scenario.timeouts.roll),
        postcondition=lambda received: received == MESSAGE_COUNT,
    )

    scenario.step("revert ZooKeeper CPU request", partial(set_cpu_request, scenario, "zookeeper", SCHEDULABLE_CPU))
    scenario.step("all ZooKeeper pods ready", partial(wait_for_all_pods_ready, cluster, zookeeper, 3, cancel=cancel))
    round_trip_new_topic(client)


def test_recovery_during_kafka_rolling_update(
    scenario, cluster, create_kafka, create_topic, kafka_client, round_trip_new_topic
):  # pylint: disable=too-many-arguments
    """
    Unschedulable broker pod must not affect the remaining pods nor the clients,
    brokers converge within the long operation timeout once the resources are reverted
    """
    cancel = scenario.cancel_event
    zookeeper, kafka = scenario.zookeeper_group, scenario.kafka_group
    create_kafka(kafka_replicas=3, zookeeper_replicas=3)
    client = kafka_client(create_topic(partitions=2, replicas=3))

    scenario.step("send messages", client.send, postcondition=lambda sent: sent == MESSAGE_COUNT)
    scenario.step(
        "request unschedulable CPU for Kafka",
        partial(set_cpu_request, scenario, "kafka", UNSCHEDULABLE_CPU),
    )

    traffic = scenario.in_background("receive messages", client.wait_until_received)
    scenario.step("wait for pending Kafka pod", partial(wait_for_pending_pod, cluster, kafka, cancel=cancel))
    scenario.step("running Kafka pods are stable", partial(verify_stable, cluster, f"{kafka}-", cancel=cancel))
    scenario.step("ZooKeeper pods are stable", partial(verify_stable, cluster, zookeeper, cancel=cancel))
    scenario.step(
        "all messages received",
        partial(traffic.result, timeout=scenario.timeouts.roll),
        postcondition=lambda received: received == MESSAGE_COUNT,
    )

    scenario.step("revert Kafka CPU request", partial(set_cpu_request, scenario, "kafka", SCHEDULABLE_CPU))
    scenario.step(
        "all Kafka pods ready",
        partial(wait_for_all_pods_ready, cluster, kafka, 3, timeout=scenario.timeouts.long_operation, cancel=cancel),
    )
    round_trip_new_topic(client)
