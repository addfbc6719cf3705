"""Conftest for rolling update and scaling scenarios"""

import pytest

from rollsuite.kafka import Kafka, KafkaResources
from rollsuite.kafka.clients import ClientConfig, InternalKafkaClient, KafkaClients
from rollsuite.kafka.topic import KafkaTopic
from rollsuite.kafka.user import KafkaUser
from rollsuite.kubernetes.config_map import ConfigMap
from rollsuite.utils import generate_topic_name, generate_user_name

MESSAGE_COUNT = 100


@pytest.fixture
def create_kafka(request, cluster, kafka_name, testconfig):
    """Returns function that deploys the Kafka cluster under test and waits until it is ready"""

    def _create(customize=None, **kwargs) -> Kafka:
        kafka = Kafka.create_instance(cluster, kafka_name, **kwargs)
        if customize is not None:
            customize(kafka)
        request.addfinalizer(kafka.delete)
        kafka.commit()
        kafka.wait_for_ready(timelimit=testconfig.timeouts.roll)
        return kafka

    return _create


@pytest.fixture
def create_topic(request, cluster, kafka_name):
    """Returns function that creates a KafkaTopic on the cluster under test"""

    def _create(partitions=1, replicas=1, min_isr=None, name=None) -> str:
        topic = KafkaTopic.create_instance(
            cluster,
            name or generate_topic_name(),
            kafka_name,
            partitions=partitions,
            replicas=replicas,
            min_isr=min_isr,
        )
        request.addfinalizer(topic.delete)
        topic.commit()
        topic.wait_for_ready()
        return topic.name()

    return _create


@pytest.fixture
def create_config_map(request, cluster):
    """Returns function that creates user owned ConfigMap"""

    def _create(name, data) -> ConfigMap:
        config_map = ConfigMap.create_instance(cluster, name, data)
        request.addfinalizer(config_map.delete)
        config_map.commit()
        return config_map

    return _create


@pytest.fixture
def kafka_user(request, cluster, kafka_name):
    """Returns function that creates TLS KafkaUser once the cluster exists"""

    def _create() -> KafkaUser:
        user = KafkaUser.create_instance(cluster, generate_user_name(), kafka_name)
        request.addfinalizer(user.delete)
        user.commit()
        user.wait_for_ready()
        return user

    return _create


@pytest.fixture
def kafka_client(request, cluster, kafka_name, kafka_user, scenario):
    """Returns function that deploys the clients pod for a new TLS user and returns client bound to the topic"""

    def _create(topic: str, message_count: int = MESSAGE_COUNT) -> InternalKafkaClient:
        user = kafka_user()
        clients = KafkaClients.create_instance(
            cluster,
            KafkaResources.kafka_clients_name(kafka_name),
            user_secret=user.secret_name,
            ca_secret=KafkaResources.cluster_ca_cert_secret_name(kafka_name),
        )
        request.addfinalizer(clients.delete)
        clients.commit()
        clients.wait_for_ready()
        config = ClientConfig.from_settings(
            clients.pod_name(), cluster.namespace, kafka_name, topic, username=user.name(), message_count=message_count
        )
        return InternalKafkaClient(cluster, config, scenario.cancel_event)

    return _create


@pytest.fixture
def round_trip_new_topic(scenario, create_topic):
    """Returns function that proves the cluster is functional by a round trip on a fresh topic"""

    def _round_trip(client: InternalKafkaClient, label: str = "round trip on a new topic"):
        topic = create_topic(partitions=1, replicas=1)
        ledger = scenario.step(label, client.with_config(client.config.with_topic(topic)).round_trip)
        ledger.assert_complete()
        return ledger

    return _round_trip
