"""Lambda code deployment and version publishing."""
import math
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from botocore.exceptions import ClientError, WaiterError

from edge_deploy.aws.utils import get_lambda_client
from edge_deploy.exceptions import FunctionDeployError, FunctionPublishError
from edge_deploy.utils.decorators import log_operation

logger = logging.getLogger(__name__)

DEFAULT_SETTLE_TIMEOUT = 300
DEFAULT_POLL_INTERVAL = 5


@dataclass(frozen=True)
class FunctionVersion:
    """An immutable published function version."""
    function_arn: str
    version: str
    code_sha256: Optional[str] = None

    @property
    def qualified_arn(self) -> str:
        return f"{self.function_arn}:{self.version}"


def _unqualified_arn(function_arn: str) -> str:
    # arn:aws:lambda:<region>:<account>:function:<name>[:<qualifier>]
    parts = function_arn.split(':')
    return ':'.join(parts[:7]) if len(parts) > 7 else function_arn


def update_function_code(function_name: str, archive_path: Path, lambda_client: Any) -> dict:
    """Replace the function's $LATEST code with the archive bytes."""
    try:
        with open(archive_path, 'rb') as f:
            zip_bytes = f.read()
    except OSError as e:
        raise FunctionDeployError(f"Cannot read deployment archive {archive_path}: {e}") from e

    try:
        response = lambda_client.update_function_code(
            FunctionName=function_name,
            ZipFile=zip_bytes,
        )
    except ClientError as e:
        code = e.response['Error']['Code']
        if code == 'ResourceConflictException':
            message = f"Another update of {function_name} is still in progress"
        else:
            message = f"Failed to update code of {function_name} ({code})"
        raise FunctionDeployError(f"{message}: {e}") from e

    logger.info(f"Lambda function code updated: {function_name} ({len(zip_bytes)} bytes)")
    return response


def wait_for_update(function_name: str, lambda_client: Any,
                    settle_timeout: int = DEFAULT_SETTLE_TIMEOUT,
                    poll_interval: int = DEFAULT_POLL_INTERVAL) -> None:
    """Poll until the last code update has finished, or fail after `settle_timeout`."""
    max_attempts = max(1, math.ceil(settle_timeout / poll_interval))
    waiter = lambda_client.get_waiter('function_updated_v2')
    try:
        waiter.wait(
            FunctionName=function_name,
            WaiterConfig={'Delay': poll_interval, 'MaxAttempts': max_attempts},
        )
    except WaiterError as e:
        raise FunctionDeployError(
            f"Code update of {function_name} did not settle within {settle_timeout}s: {e}"
        ) from e


def publish_function_version(function_name: str, lambda_client: Any,
                             code_sha256: Optional[str] = None) -> dict:
    """Snapshot $LATEST as a new numbered version."""
    params = {
        'FunctionName': function_name,
        'Description': f"Deployed {datetime.now(timezone.utc).isoformat()}",
    }
    # Pins the version to the code uploaded by this run
    if code_sha256:
        params['CodeSha256'] = code_sha256

    try:
        response = lambda_client.publish_version(**params)
    except ClientError as e:
        code = e.response['Error']['Code']
        raise FunctionPublishError(f"Failed to publish version of {function_name} ({code}): {e}") from e

    logger.info(f"Lambda function version {response['Version']} published: {function_name}")
    return response


@log_operation("Deploying function code", logger_name=__name__)
def deploy_function(
    function_name: str,
    archive_path: Path,
    region: str,
    lambda_client: Optional[Any] = None,
    settle_timeout: int = DEFAULT_SETTLE_TIMEOUT,
    poll_interval: int = DEFAULT_POLL_INTERVAL,
) -> FunctionVersion:
    """Upload new code and publish it as an immutable version.

    Both phases are fatal on error; nothing is retried here.

    Raises:
        FunctionDeployError: code update rejected, archive unreadable, or update never settled
        FunctionPublishError: the version could not be published
    """
    lambda_client = lambda_client or get_lambda_client(region)

    update_response = update_function_code(function_name, Path(archive_path), lambda_client)
    code_sha256 = update_response.get('CodeSha256')

    logger.info(f"Waiting for update of {function_name} to complete...")
    wait_for_update(function_name, lambda_client, settle_timeout, poll_interval)

    publish_response = publish_function_version(function_name, lambda_client, code_sha256)

    function_arn = update_response.get('FunctionArn') or publish_response['FunctionArn']
    return FunctionVersion(
        function_arn=_unqualified_arn(function_arn),
        version=publish_response['Version'],
        code_sha256=publish_response.get('CodeSha256', code_sha256),
    )
