"""Collection of Prometheus metrics exposed by the JMX exporter of Kafka and ZooKeeper pods"""

import logging

from rollsuite.kafka import KafkaResources
from rollsuite.statefulset import group_pods

logger = logging.getLogger(__name__)

METRICS_PORT = 9404


def collect_metrics(cluster, group: str, port: int = METRICS_PORT, path: str = "/metrics") -> dict[str, str]:
    """Returns raw metrics text of every pod of the group, empty string if nothing is exposed"""
    result = {}
    for pod in group_pods(cluster, group):
        output = cluster.exec_in_pod(pod.name, ["curl", "-s", f"http://localhost:{port}{path}"])
        logger.debug("Collected %d bytes of metrics from %s", len(output), pod.name)
        result[pod.name] = output
    return result


def collect_kafka_metrics(cluster, cluster_name: str) -> dict[str, str]:
    """Metrics of all broker pods"""
    return collect_metrics(cluster, KafkaResources.kafka_stateful_set_name(cluster_name))


def collect_zookeeper_metrics(cluster, cluster_name: str) -> dict[str, str]:
    """Metrics of all ZooKeeper pods"""
    return collect_metrics(cluster, KafkaResources.zookeeper_stateful_set_name(cluster_name))
