"""Kafka CR object and names of the resources the operator derives from it"""

import dataclasses
from typing import Any, Callable, Literal, Optional

from rollsuite.kubernetes import CustomResource
from rollsuite.utils import asdict

API_VERSION = "kafka.strimzi.io/v1beta2"


class KafkaResources:
    """Canonical names of the objects the operator creates for a Kafka cluster"""

    @staticmethod
    def kafka_stateful_set_name(cluster_name: str) -> str:
        """Broker StatefulSet"""
        return f"{cluster_name}-kafka"

    @staticmethod
    def zookeeper_stateful_set_name(cluster_name: str) -> str:
        """ZooKeeper StatefulSet"""
        return f"{cluster_name}-zookeeper"

    @classmethod
    def kafka_pod_name(cls, cluster_name: str, ordinal: int) -> str:
        """Broker pod with given ordinal"""
        return f"{cls.kafka_stateful_set_name(cluster_name)}-{ordinal}"

    @classmethod
    def zookeeper_pod_name(cls, cluster_name: str, ordinal: int) -> str:
        """ZooKeeper pod with given ordinal"""
        return f"{cls.zookeeper_stateful_set_name(cluster_name)}-{ordinal}"

    @staticmethod
    def kafka_metrics_and_log_config_map_name(cluster_name: str) -> str:
        """Managed ConfigMap with broker configuration, logging and metrics"""
        return f"{cluster_name}-kafka-config"

    @staticmethod
    def zookeeper_metrics_and_log_config_map_name(cluster_name: str) -> str:
        """Managed ConfigMap with ZooKeeper configuration, logging and metrics"""
        return f"{cluster_name}-zookeeper-config"

    @staticmethod
    def bootstrap_service_name(cluster_name: str) -> str:
        """Bootstrap service of the brokers"""
        return f"{cluster_name}-kafka-bootstrap"

    @staticmethod
    def cluster_ca_cert_secret_name(cluster_name: str) -> str:
        """Secret with the cluster CA certificate"""
        return f"{cluster_name}-cluster-ca-cert"

    @staticmethod
    def kafka_clients_name(cluster_name: str) -> str:
        """Deployment running the in-cluster clients"""
        return f"{cluster_name}-kafka-clients"


@dataclasses.dataclass
class ResourceRequirements:
    """Container resources section"""

    requests: Optional[dict[str, str]] = None
    limits: Optional[dict[str, str]] = None


@dataclasses.dataclass
class ExternalLogging:
    """Logging loaded from a user owned ConfigMap"""

    config_map_name: str
    key: str = "log4j.properties"

    def asdict(self):
        """Operator expects valueFrom.configMapKeyRef"""
        return {
            "type": "external",
            "valueFrom": {"configMapKeyRef": {"name": self.config_map_name, "key": self.key}},
        }


@dataclasses.dataclass
class MetricsConfig:
    """JMX Prometheus exporter configuration loaded from a ConfigMap"""

    config_map_name: str
    key: str = "metrics-config.yml"

    def asdict(self):
        """Operator expects valueFrom.configMapKeyRef"""
        return {
            "type": "jmxPrometheusExporter",
            "valueFrom": {"configMapKeyRef": {"name": self.config_map_name, "key": self.key, "optional": True}},
        }


class KafkaSection:
    """
    Sub components of the Kafka CR:
        Brokers - spec.kafka
        ZooKeeper - spec.zookeeper
    """

    def __init__(self, kafka_cr, spec_name):
        self.kafka_cr = kafka_cr
        self.spec_name = spec_name

    @property
    def spec(self) -> dict:
        """Returns the section dict"""
        return self.kafka_cr.model["spec"].setdefault(self.spec_name, {})

    @property
    def replicas(self) -> int:
        """Declared replica count"""
        return self.spec["replicas"]

    @replicas.setter
    def replicas(self, value: int):
        self.spec["replicas"] = value

    def set_resources(self, resources: Optional[ResourceRequirements]):
        """Replaces container resources, None removes them"""
        self["resources"] = resources

    def set_logging(self, logging: Optional[ExternalLogging]):
        """Replaces logging configuration, None removes it"""
        self["logging"] = logging

    def set_metrics_config(self, metrics: Optional[MetricsConfig]):
        """Replaces metrics configuration, None removes it"""
        self["metricsConfig"] = metrics

    def __getitem__(self, name):
        return self.spec[name]

    def __setitem__(self, name, value):
        if value is None:
            self.spec.pop(name, None)
        elif dataclasses.is_dataclass(value):
            self.spec[name] = asdict(value)
        else:
            self.spec[name] = value

    def __contains__(self, name):
        return name in self.spec


class Kafka(CustomResource):
    """Represents Kafka CR objects"""

    @classmethod
    def create_instance(
        cls,
        cluster,
        name,
        kafka_replicas: int = 3,
        zookeeper_replicas: int = 3,
        storage: Literal["persistent", "ephemeral"] = "persistent",
        config: dict[str, Any] = None,
        labels: dict[str, str] = None,
    ):  # pylint: disable=too-many-arguments
        """Creates new Kafka cluster with plain and TLS listeners"""
        if storage == "persistent":
            kafka_storage = {"type": "persistent-claim", "size": "1Gi", "deleteClaim": True}
            zookeeper_storage = {"type": "persistent-claim", "size": "1Gi", "deleteClaim": True}
        else:
            kafka_storage = zookeeper_storage = {"type": "ephemeral"}

        model: dict = {
            "apiVersion": API_VERSION,
            "kind": "Kafka",
            "metadata": {"name": name, "labels": labels or {}},
            "spec": {
                "kafka": {
                    "replicas": kafka_replicas,
                    "listeners": [
                        {"name": "plain", "port": 9092, "type": "internal", "tls": False},
                        {
                            "name": "tls",
                            "port": 9093,
                            "type": "internal",
                            "tls": True,
                            "authentication": {"type": "tls"},
                        },
                    ],
                    "config": {
                        "offsets.topic.replication.factor": min(kafka_replicas, 3),
                        "transaction.state.log.replication.factor": min(kafka_replicas, 3),
                        "transaction.state.log.min.isr": min(kafka_replicas, 2),
                        "log.message.format.version": "3.7",
                        **(config or {}),
                    },
                    "storage": kafka_storage,
                },
                "zookeeper": {"replicas": zookeeper_replicas, "storage": zookeeper_storage},
                "entityOperator": {"topicOperator": {}, "userOperator": {}},
            },
        }
        return cls(model, cluster=cluster)

    @property
    def kafka(self) -> KafkaSection:
        """Returns spec.kafka from Kafka object"""
        return KafkaSection(self, "kafka")

    @property
    def zookeeper(self) -> KafkaSection:
        """Returns spec.zookeeper from Kafka object"""
        return KafkaSection(self, "zookeeper")

    def set_kafka_exporter(self):
        """Deploys Kafka Exporter next to the cluster"""
        self.model["spec"]["kafkaExporter"] = {}

    def replace(self, transform: Callable[["Kafka"], object], retries: int = None) -> "Kafka":
        """Applies transform through read-modify-write, raises MutationConflict when retries run out"""
        return self.modify_and_apply(transform, retries)


def replace_kafka(cluster, name: str, transform: Callable[[Kafka], object], retries: int = None) -> Kafka:
    """Fetches Kafka CR by name, applies transform and commits it with conflict retry"""
    kafka = Kafka({"apiVersion": API_VERSION, "kind": "Kafka", "metadata": {"name": name}}, cluster=cluster)
    return kafka.replace(transform, retries)
