"""User owned ConfigMap referenced from the Kafka CR (external logging, metrics rules)"""

from rollsuite.kubernetes import KubernetesObject, modify


class ConfigMap(KubernetesObject):
    """Kubernetes ConfigMap object"""

    @classmethod
    def create_instance(cls, cluster, name, data: dict[str, str], labels: dict[str, str] = None):
        """Creates new ConfigMap"""
        model: dict = {
            "kind": "ConfigMap",
            "apiVersion": "v1",
            "metadata": {"name": name, "labels": labels or {}},
            "data": data,
        }
        return cls(model, cluster=cluster)

    @property
    def data(self) -> dict[str, str]:
        """Returns data as last read from the server"""
        return self.model.setdefault("data", {})

    @modify
    def update(self, data: dict[str, str]):
        """Merges data into the ConfigMap, operator reacts to every change of a referenced ConfigMap"""
        self.data.update(data)
