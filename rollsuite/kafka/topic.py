"""KafkaTopic CR object"""

from rollsuite.kafka import API_VERSION
from rollsuite.kubernetes import CustomResource


class KafkaTopic(CustomResource):
    """Represents KafkaTopic CR objects"""

    @classmethod
    def create_instance(
        cls, cluster, name, kafka_name, partitions: int = 1, replicas: int = 1, min_isr: int = None
    ):  # pylint: disable=too-many-arguments
        """Creates new KafkaTopic bound to the Kafka cluster by the strimzi.io/cluster label"""
        model: dict = {
            "apiVersion": API_VERSION,
            "kind": "KafkaTopic",
            "metadata": {"name": name, "labels": {"strimzi.io/cluster": kafka_name}},
            "spec": {
                "partitions": partitions,
                "replicas": replicas,
                "config": {"min.insync.replicas": min_isr if min_isr is not None else 1},
            },
        }
        return cls(model, cluster=cluster)
