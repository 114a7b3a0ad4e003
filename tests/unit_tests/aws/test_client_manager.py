from concurrent.futures import ThreadPoolExecutor

from edge_deploy.aws.utils import AWSClientManager, get_cloudfront_client, get_lambda_client, get_s3_client
from edge_deploy.settings import get_settings


def test_clients_are_cached_per_service_and_region():
    manager = AWSClientManager()

    s3_east = manager.get_client("s3", "us-east-1")

    assert manager.get_client("s3", "us-east-1") is s3_east
    assert manager.get_client("s3", "ap-south-1") is not s3_east
    assert manager.get_client("s3", "ap-south-1").meta.region_name == "ap-south-1"
    assert AWSClientManager() is manager


def test_convenience_helpers_use_requested_region():
    assert get_s3_client("ap-south-1").meta.region_name == "ap-south-1"
    assert get_lambda_client("us-east-1").meta.service_model.service_name == "lambda"
    assert get_cloudfront_client("us-east-1").meta.service_model.service_name == "cloudfront"


def test_transport_settings_are_applied(monkeypatch):
    monkeypatch.setenv("CONNECT_TIMEOUT", "3")
    monkeypatch.setenv("READ_TIMEOUT", "7")
    get_settings.cache_clear()
    AWSClientManager.reset()

    client = AWSClientManager().get_client("lambda", "us-east-1")

    assert client.meta.config.connect_timeout == 3
    assert client.meta.config.read_timeout == 7


def test_mock_mode_points_at_local_endpoint(monkeypatch):
    monkeypatch.setenv("DEPLOYMENT_MODE", "aws-mock")
    get_settings.cache_clear()
    AWSClientManager.reset()

    client = AWSClientManager().get_client("s3", "us-east-1")

    assert client.meta.endpoint_url == "http://localhost:5000"


def test_reset_drops_cached_clients():
    first = AWSClientManager().get_client("s3", "us-east-1")

    AWSClientManager.reset()

    assert AWSClientManager().get_client("s3", "us-east-1") is not first


def test_clear_clients_keeps_manager():
    manager = AWSClientManager()
    first = manager.get_client("lambda", "us-east-1")

    manager.clear_clients()

    assert AWSClientManager() is manager
    assert manager.get_client("lambda", "us-east-1") is not first


def test_concurrent_requests_share_one_client():
    manager = AWSClientManager()

    with ThreadPoolExecutor(max_workers=8) as executor:
        clients = list(executor.map(lambda _: manager.get_client("s3", "ap-south-1"), range(16)))

    assert len({id(client) for client in clients}) == 1
