import boto3
import pytest
from moto import mock_aws

from edge_deploy.aws.utils import AWSClientManager
from edge_deploy.settings import Settings, get_settings
from tests.consts import TEST_BUCKET_NAME, TEST_DISTRIBUTION_ID, TEST_FUNCTION_NAME, TEST_REGION
from tests.fixtures.aws_fakes import FakeCloudFrontClient, FakeLambdaClient, make_distribution_config


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch):
    """Fresh settings and AWS clients for every test, never real credentials."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", TEST_REGION)
    monkeypatch.delenv("AWS_PROFILE", raising=False)
    monkeypatch.delenv("AWS_ENDPOINT_URL", raising=False)
    monkeypatch.delenv("DEPLOYMENT_MODE", raising=False)
    get_settings.cache_clear()
    AWSClientManager.reset()
    yield
    get_settings.cache_clear()
    AWSClientManager.reset()


@pytest.fixture
def mocked_aws():
    """Moto-backed S3 with the test bucket already created."""
    with mock_aws():
        s3_client = boto3.client("s3", region_name=TEST_REGION)
        s3_client.create_bucket(Bucket=TEST_BUCKET_NAME)
        yield s3_client


@pytest.fixture
def fake_lambda():
    return FakeLambdaClient(function_name=TEST_FUNCTION_NAME, region=TEST_REGION)


@pytest.fixture
def fake_cloudfront():
    return FakeCloudFrontClient({TEST_DISTRIBUTION_ID: make_distribution_config()})


@pytest.fixture
def fast_settings():
    """Settings with no real waiting between polls or retries."""
    return Settings(
        function_settle_timeout=5,
        function_poll_interval=1,
        trigger_retry_delay=0,
        upload_workers=2,
    )
