"""Deployment related objects"""

from dataclasses import dataclass

from rollsuite.kubernetes import KubernetesObject, Selector
from rollsuite.utils import asdict

# pylint: disable=invalid-name


@dataclass
class VolumeMount:
    """Deployment VolumeMount object"""

    mountPath: str
    name: str
    readOnly: bool = True


@dataclass
class SecretVolume:
    """Deployment SecretVolume object"""

    secret_name: str
    name: str

    def asdict(self):
        """Custom asdict because of needing to put location as parent dict key for inner dict"""
        return {"secret": {"secretName": self.secret_name}, "name": self.name}


class Deployment(KubernetesObject):
    """Kubernetes Deployment object"""

    @classmethod
    def create_instance(
        cls,
        cluster,
        name,
        container_name,
        image,
        selector: Selector,
        labels: dict[str, str],
        command: list[str] = None,
        volumes: list[SecretVolume] = None,
        volume_mounts: list[VolumeMount] = None,
    ):  # pylint: disable=too-many-arguments
        """
        Creates new instance of Deployment
        Supports only single container Deployments everything else should be edited directly
        """
        model: dict = {
            "kind": "Deployment",
            "apiVersion": "apps/v1",
            "metadata": {
                "name": name,
                "labels": labels,
            },
            "spec": {
                "replicas": 1,
                "selector": asdict(selector),
                "template": {
                    "metadata": {"labels": {"deployment": name, **labels}},
                    "spec": {
                        "containers": [
                            {
                                "image": image,
                                "name": container_name,
                                "imagePullPolicy": "IfNotPresent",
                            }
                        ]
                    },
                },
            },
        }
        template = model["spec"]["template"]["spec"]

        if volumes:
            template["volumes"] = [asdict(volume) for volume in volumes]

        container = template["containers"][0]

        if command:
            container["command"] = command

        if volume_mounts:
            container["volumeMounts"] = [asdict(mount) for mount in volume_mounts]

        return cls(model, cluster=cluster)

    def wait_for_ready(self, timeout=None):
        """Waits until all replicas of the Deployment are ready"""
        success = self.wait_until(
            lambda obj: obj.model.get("status", {}).get("readyReplicas", 0) >= obj.model["spec"]["replicas"],
            timelimit=self.cluster.status_timeout if timeout is None else timeout,
        )
        assert success, f"Deployment {self.name()} did not get ready in time"

    @property
    def selector(self) -> Selector:
        """Returns pod selector of the Deployment"""
        return Selector.from_model(self.model["spec"]["selector"])

