"""In-cluster Kafka clients driven through `kubectl exec` equivalent calls"""

import dataclasses
import json
import logging
import threading
from dataclasses import dataclass
from typing import Optional

from rollsuite.config import settings
from rollsuite.errors import HarnessError, MessageCountMismatch
from rollsuite.kafka import KafkaResources
from rollsuite.kubernetes import Selector
from rollsuite.kubernetes.deployment import Deployment, SecretVolume, VolumeMount
from rollsuite.utils import generate_consumer_group
from rollsuite.waiting import wait_until

logger = logging.getLogger(__name__)

KAFKA_BIN = "/opt/kafka/bin"
USER_SECRET_PATH = "/opt/kafka/user-secret"
CLUSTER_CA_PATH = "/opt/kafka/cluster-ca"


class KafkaClients(Deployment):
    """Deployment with Kafka tooling that idles so that clients can be executed inside of it"""

    @classmethod
    def create_instance(
        cls, cluster, name, image: str = None, user_secret: str = None, ca_secret: str = None
    ):  # pylint: disable=arguments-differ
        """Creates clients Deployment, with `user_secret` and `ca_secret` mounted for TLS clients"""
        labels = {"app": name}
        volumes, mounts = [], []
        if user_secret:
            volumes.append(SecretVolume(user_secret, "user-secret"))
            mounts.append(VolumeMount(USER_SECRET_PATH, "user-secret"))
        if ca_secret:
            volumes.append(SecretVolume(ca_secret, "cluster-ca"))
            mounts.append(VolumeMount(CLUSTER_CA_PATH, "cluster-ca"))
        return super().create_instance(
            cluster,
            name,
            container_name="kafka-clients",
            image=image or settings.clients.image,
            selector=Selector(matchLabels=labels),
            labels=labels,
            command=["sleep", "infinity"],
            volumes=volumes,
            volume_mounts=mounts,
        )

    def pod_name(self) -> str:
        """Returns name of a running clients pod"""
        pods = [pod for pod in self.cluster.list_pods(labels=self.selector.matchLabels) if pod.running_and_ready]
        if not pods:
            raise HarnessError(f"No running pod of {self.name()}")
        return pods[0].name


@dataclass(frozen=True)
class ClientConfig:
    """Immutable description of a client run, derive changed copies with `dataclasses.replace`"""

    # pylint: disable=too-many-instance-attributes
    pod_name: str
    namespace: str
    cluster_name: str
    topic: str
    consumer_group: str
    message_count: int = 100
    username: Optional[str] = None
    listener: str = "tls"
    port: int = 9093
    timeout: float = 120

    @classmethod
    def from_settings(cls, pod_name, namespace, cluster_name, topic, username=None, **kwargs) -> "ClientConfig":
        """Client configuration with defaults taken from suite settings"""
        values = {
            "message_count": settings.clients.message_count,
            "listener": settings.clients.listener,
            "port": settings.clients.port,
            "timeout": settings.clients.timeout,
            **kwargs,
        }
        return cls(pod_name, namespace, cluster_name, topic, generate_consumer_group(), username=username, **values)

    @property
    def bootstrap(self) -> str:
        """Bootstrap address resolvable from inside the namespace"""
        return f"{KafkaResources.bootstrap_service_name(self.cluster_name)}:{self.port}"

    @property
    def tls(self) -> bool:
        """True if the clients authenticate with TLS certificates"""
        return self.listener == "tls"

    def with_topic(self, topic: str, fresh_group: bool = True) -> "ClientConfig":
        """Returns copy using a different topic"""
        group = generate_consumer_group() if fresh_group else self.consumer_group
        return dataclasses.replace(self, topic=topic, consumer_group=group)

    def with_fresh_group(self) -> "ClientConfig":
        """Returns copy with a newly generated consumer group"""
        return dataclasses.replace(self, consumer_group=generate_consumer_group())


@dataclass(frozen=True)
class DeliveryLedger:
    """Sent and received message counts of a single client run"""

    requested: int
    sent: int
    received: int

    def assert_complete(self):
        """Both counts must match the requested count"""
        if self.sent != self.requested or self.received != self.requested:
            raise MessageCountMismatch(
                "Not all messages were delivered",
                expected={"sent": self.requested, "received": self.requested},
                observed={"sent": self.sent, "received": self.received},
            )


def _json_lines(output: str):
    for line in output.splitlines():
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            yield json.loads(line)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed client output: %s", line)


def parse_producer_output(output: str) -> int:
    """Returns number of acknowledged messages reported by kafka-verifiable-producer"""
    successes = 0
    for record in _json_lines(output):
        if record.get("name") == "tool_data":
            return int(record.get("acked", 0))
        if record.get("name") == "producer_send_success":
            successes += 1
    return successes


def parse_consumer_output(output: str) -> int:
    """Returns number of records reported as consumed by kafka-verifiable-consumer"""
    return sum(
        int(record.get("count", 0)) for record in _json_lines(output) if record.get("name") == "records_consumed"
    )


class InternalKafkaClient:
    """Runs verifiable producer and consumer inside of the clients pod"""

    def __init__(self, cluster, config: ClientConfig, cancel: threading.Event = None):
        self.cluster = cluster
        self.config = config
        self.cancel = cancel
        self._prepared_for = None

    def with_config(self, config: ClientConfig) -> "InternalKafkaClient":
        """Returns client with a different configuration, sharing the cluster and cancel event"""
        return InternalKafkaClient(self.cluster, config, self.cancel)

    @property
    def properties_path(self) -> str:
        """Client properties file inside the pod"""
        return f"/tmp/{self.config.username or 'anonymous'}.properties"

    def _prepare(self):
        """Writes TLS client properties into the pod, once per user"""
        if not self.config.tls or self._prepared_for == self.config.username:
            return
        password = self.cluster.exec_in_pod(
            self.config.pod_name, ["cat", f"{USER_SECRET_PATH}/user.password"], cancel=self.cancel
        )
        properties = "\n".join(
            [
                "security.protocol=SSL",
                "ssl.truststore.type=PEM",
                f"ssl.truststore.location={CLUSTER_CA_PATH}/ca.crt",
                "ssl.keystore.type=PKCS12",
                f"ssl.keystore.location={USER_SECRET_PATH}/user.p12",
                f"ssl.keystore.password={password.strip()}",
                "ssl.endpoint.identification.algorithm=",
                "",
            ]
        )
        self.cluster.exec_in_pod(
            self.config.pod_name,
            ["/bin/sh", "-c", f"cat > {self.properties_path}"],
            stdin=properties.encode(),
            cancel=self.cancel,
        )
        self._prepared_for = self.config.username

    def _run(self, tool: str, args: list[str], config_flag: str) -> str:
        self._prepare()
        argv = ["timeout", str(int(self.config.timeout)), f"{KAFKA_BIN}/{tool}", *args]
        if self.config.tls:
            argv += [config_flag, self.properties_path]
        return self.cluster.exec_in_pod(
            self.config.pod_name, argv, timeout=self.config.timeout + self.cluster.request_timeout, cancel=self.cancel
        )

    def send(self) -> int:
        """Produces `message_count` messages and returns how many were acknowledged"""
        logger.info(
            "Sending %d messages to %s#%s", self.config.message_count, self.config.bootstrap, self.config.topic
        )
        output = self._run(
            "kafka-verifiable-producer.sh",
            [
                "--bootstrap-server",
                self.config.bootstrap,
                "--topic",
                self.config.topic,
                "--max-messages",
                str(self.config.message_count),
            ],
            "--producer.config",
        )
        sent = parse_producer_output(output)
        logger.info("Sent %d messages", sent)
        return sent

    def receive(self, reuse_group: bool = False) -> int:
        """Consumes up to `message_count` messages from the earliest offset and returns how many arrived"""
        if not reuse_group:
            self.config = self.config.with_fresh_group()
        logger.info("Receiving messages from %s using group %s", self.config.topic, self.config.consumer_group)
        output = self._run(
            "kafka-verifiable-consumer.sh",
            [
                "--bootstrap-server",
                self.config.bootstrap,
                "--topic",
                self.config.topic,
                "--group-id",
                self.config.consumer_group,
                "--max-messages",
                str(self.config.message_count),
                "--reset-policy",
                "earliest",
            ],
            "--consumer.config",
        )
        received = parse_consumer_output(output)
        logger.info("Received %d messages", received)
        return received

    def round_trip(self) -> DeliveryLedger:
        """Sends and then receives messages"""
        sent = self.send()
        received = self.receive()
        return DeliveryLedger(self.config.message_count, sent, received)

    def wait_until_received(self, timeout: float = None) -> int:
        """Receives with fresh groups until all messages arrive"""
        timeout = settings.timeouts.roll if timeout is None else timeout
        outcome = wait_until(
            self.receive,
            lambda received: received == self.config.message_count,
            timeout=timeout,
            interval=settings.timeouts.poll_interval,
            description=f"{self.config.message_count} messages from {self.config.topic}",
            cancel=self.cancel,
        )
        if not outcome.success:
            raise MessageCountMismatch(
                f"Messages were not received from {self.config.topic} within {timeout:.0f}s",
                expected=self.config.message_count,
                observed=outcome.value,
            )
        return outcome.value
