"""Tests for metrics collection"""

from rollsuite.kafka.metrics import collect_kafka_metrics, collect_zookeeper_metrics

METRICS = "# TYPE kafka_server_replicamanager_leadercount gauge\nkafka_server_replicamanager_leadercount 3.0\n"


def test_collect_kafka_metrics(fake_cluster):
    """Every broker is scraped on the exporter port, other pods are skipped"""
    fake_cluster.add_group("my-cluster-kafka", 3)
    fake_cluster.add_pod("my-cluster-kafka-exporter-5d8f7")
    fake_cluster.exec_handler = lambda name, argv, stdin: METRICS

    metrics = collect_kafka_metrics(fake_cluster, "my-cluster")

    assert list(metrics) == ["my-cluster-kafka-0", "my-cluster-kafka-1", "my-cluster-kafka-2"]
    assert all(output == METRICS for output in metrics.values())
    assert fake_cluster.executed[0][1] == ["curl", "-s", "http://localhost:9404/metrics"]


def test_no_metrics_exposed(fake_cluster):
    """Pods without exporter return empty output"""
    fake_cluster.add_group("my-cluster-zookeeper", 3)

    assert collect_zookeeper_metrics(fake_cluster, "my-cluster") == {
        f"my-cluster-zookeeper-{ordinal}": "" for ordinal in range(3)
    }
