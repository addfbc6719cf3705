"""Root conftest"""

import signal

import pytest

from rollsuite.capabilities import has_operator
from rollsuite.config import settings
from rollsuite.kubernetes.client import KubernetesClient
from rollsuite.scenario import Scenario
from rollsuite.utils import randomize, _whoami

CLUSTER_MARKS = {"acceptance", "regression", "rolling_update", "scalability"}


def pytest_addoption(parser):
    """Add options to include various kinds of tests in testrun"""
    parser.addoption(
        "--enforce", action="store_true", default=False, help="Fails tests instead of skip, if capabilities are missing"
    )


def pytest_runtest_setup(item):
    """
    Skip or fail tests based on available capabilities and marks
    First round of filtering is usually done by pytest through -m option
    (https://docs.pytest.org/en/latest/example/markers.html#marking-test-functions-and-selecting-them-for-a-run)
    In this function we skip or fail the tests that were selected but their capabilities are not available
    """
    marks = {i.name for i in item.iter_markers()}
    skip_or_fail = pytest.fail if item.config.getoption("--enforce") else pytest.skip
    if marks & CLUSTER_MARKS:
        operator, error = has_operator()
        if not operator:
            skip_or_fail(f"Unable to locate Cluster Operator installation: {error}")


@pytest.fixture(scope="session", autouse=True)
def term_handler():
    """
    This will handle ^C, cleanup won't be skipped
    https://github.com/pytest-dev/pytest/issues/9142
    """
    orig = signal.signal(signal.SIGTERM, signal.getsignal(signal.SIGINT))
    yield
    signal.signal(signal.SIGTERM, orig)


@pytest.fixture(scope="session")
def testconfig():
    """Testsuite settings"""
    return settings


@pytest.fixture(scope="session")
def blame(request):
    """Returns function that will add random identifier to the name"""
    user = settings.tester or _whoami()

    def _blame(name: str, tail: int = 3) -> str:
        """Create 'scoped' name within given test

        This returns unique name for object(s) to avoid conflicts

        Args:
            :param name: Base name, e.g. 'svc'
            :param tail: length of random suffix"""

        nodename = request.node.name
        if nodename.startswith("test_"):  # is this always true?
            nodename = nodename[5:]

        context = nodename.lower().split("_")[0]
        if len(context) > 2:
            context = context[:2] + context[2:-1].translate(str.maketrans("", "", "aiyu")) + context[-1]

        if "." in context:
            context = context.split(".")[0]

        return randomize(f"{name[:8]}-{user[:8]}-{context[:9]}", tail=tail)

    return _blame


@pytest.fixture(scope="session")
def cluster(testconfig):
    """Kubernetes client for the namespace with Kafka clusters"""
    client = KubernetesClient.from_settings(testconfig)
    if not client.connected:
        pytest.fail(f"You are not logged into Kubernetes or the {client.namespace} namespace doesn't exist")
    return client


@pytest.fixture(scope="session")
def operator_cluster(testconfig, cluster):
    """Kubernetes client for the namespace with the Cluster Operator"""
    return cluster.change_namespace(testconfig.operator.namespace or cluster.namespace)


@pytest.fixture
def kafka_name(blame):
    """Name of the Kafka cluster under test"""
    return blame("kafka")


@pytest.fixture
def scenario(request, cluster, kafka_name, testconfig):
    """Scenario owning deadlines, background tasks and cancellation of the test"""
    scenario = Scenario(request.node.name, cluster, kafka_name, testconfig)
    request.addfinalizer(scenario.close)
    return scenario
