"""Module which initializes suite settings

Settings are read, highest priority first, from ROLLSUITE_* environment variables (nested keys
separated by `__`, e.g. ROLLSUITE_TIMEOUTS__ROLL=900), a `.env` file, `config/settings.yaml`
and `config/secrets.yaml`.
"""

from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict, YamlConfigSettingsSource


class ClusterSettings(BaseModel):
    """Where the Kafka clusters under test live"""

    namespace: str = "rolling-update-cluster-test"
    kubeconfig_path: Optional[str] = None
    context: Optional[str] = None


class OperatorSettings(BaseModel):
    """Location of the Cluster Operator deployment"""

    namespace: Optional[str] = None
    deployment: str = "strimzi-cluster-operator"


class TimeoutSettings(BaseModel):
    """All values are in seconds"""

    poll_interval: float = Field(default=2.0, gt=0)
    status: float = Field(default=180.0, gt=0)
    roll: float = Field(default=600.0, gt=0)
    long_operation: float = Field(default=720.0, gt=0)
    request: float = Field(default=30.0, gt=0)
    step: float = Field(default=900.0, gt=0)


class WindowSettings(BaseModel):
    """Observation windows for stability and no-roll checks, in seconds"""

    stability: float = Field(default=60.0, gt=0)
    no_roll: float = Field(default=60.0, gt=0)


class RetrySettings(BaseModel):
    """Retry budgets"""

    api: int = Field(default=5, ge=1)
    mutation: int = Field(default=5, ge=1)


class ClientSettings(BaseModel):
    """In-cluster Kafka clients"""

    message_count: int = Field(default=100, gt=0)
    listener: str = "tls"
    port: int = 9093
    timeout: float = Field(default=120.0, gt=0)
    image: str = "quay.io/strimzi/kafka:latest-kafka-3.7.0"


class Settings(BaseSettings):
    """Suite settings"""

    model_config = SettingsConfigDict(
        env_prefix="ROLLSUITE_",
        env_nested_delimiter="__",
        env_file=".env",
        yaml_file=["config/settings.yaml", "config/secrets.yaml"],
        extra="ignore",
    )

    cluster: ClusterSettings = ClusterSettings()
    operator: OperatorSettings = OperatorSettings()
    timeouts: TimeoutSettings = TimeoutSettings()
    windows: WindowSettings = WindowSettings()
    retries: RetrySettings = RetrySettings()
    clients: ClientSettings = ClientSettings()
    tester: Optional[str] = None

    @classmethod
    def settings_customise_sources(
        cls, settings_cls, init_settings, env_settings, dotenv_settings, file_secret_settings
    ):  # pylint: disable=too-many-arguments
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )


settings = Settings()
