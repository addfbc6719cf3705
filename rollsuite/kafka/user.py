"""KafkaUser CR object"""

from rollsuite.kafka import API_VERSION
from rollsuite.kubernetes import CustomResource


class KafkaUser(CustomResource):
    """Represents KafkaUser CR objects, the User Operator stores credentials in a Secret of the same name"""

    @classmethod
    def create_instance(cls, cluster, name, kafka_name):
        """Creates new KafkaUser authenticated by a TLS client certificate"""
        model: dict = {
            "apiVersion": API_VERSION,
            "kind": "KafkaUser",
            "metadata": {"name": name, "labels": {"strimzi.io/cluster": kafka_name}},
            "spec": {"authentication": {"type": "tls"}},
        }
        return cls(model, cluster=cluster)

    @property
    def secret_name(self) -> str:
        """Secret holding user.crt, user.key and user.p12"""
        return self.name()
