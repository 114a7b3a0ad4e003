"""CloudFront request-trigger binding.

The distribution config is shared state that other deployments (other
processes, other machines) may be writing at the same time. Every update is a
read-modify-write guarded by the ETag returned on read: the write carries the
ETag of the config it was derived from, CloudFront rejects it if the
distribution changed in between, and the whole cycle is retried.
"""
import copy
import logging
from typing import Any, Dict, List, Optional, Tuple

from botocore.exceptions import ClientError

from edge_deploy.aws.utils import get_cloudfront_client
from edge_deploy.exceptions import (
    ConfigValidationError,
    DistributionConflictError,
    DistributionSchemaError,
    EdgeBindError,
)
from edge_deploy.settings import EVENT_TYPES
from edge_deploy.utils.decorators import retry

logger = logging.getLogger(__name__)

DEFAULT_EVENT_TYPE = "origin-request"
CONFLICT_ERROR_CODES = ("PreconditionFailed", "InvalidIfMatchVersion")


def build_association(function_arn: str, version: str, event_type: str,
                      include_body: bool = False) -> Dict[str, Any]:
    """Trigger association pointing at one immutable function version."""
    return {
        'LambdaFunctionARN': f"{function_arn}:{version}",
        'EventType': event_type,
        'IncludeBody': include_body,
    }


def merge_trigger_associations(default_behavior: Dict[str, Any],
                               association: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of the cache behavior with `association` replacing its event type.

    Any existing association for the same event type is dropped before the
    new one is appended, so repeated deployments never accumulate triggers.
    Associations for other event types are kept as they are.
    """
    behavior = copy.deepcopy(default_behavior)
    existing = (behavior.get('LambdaFunctionAssociations') or {}).get('Items') or []
    items = [item for item in existing if item.get('EventType') != association['EventType']]
    items.append(association)
    behavior['LambdaFunctionAssociations'] = {
        'Quantity': len(items),
        'Items': items,
    }
    return behavior


def fetch_distribution_config(distribution_id: str, cloudfront_client: Any) -> Tuple[Dict[str, Any], str]:
    """Current distribution config and its ETag."""
    try:
        response = cloudfront_client.get_distribution_config(Id=distribution_id)
    except ClientError as e:
        code = e.response['Error']['Code']
        raise EdgeBindError(f"Failed to read config of distribution {distribution_id} ({code}): {e}") from e
    return response.get('DistributionConfig'), response.get('ETag')


def _validate_config(distribution_id: str, config: Optional[Dict[str, Any]]) -> None:
    if not config or not config.get('DefaultCacheBehavior'):
        raise DistributionSchemaError(
            f"Distribution {distribution_id} is missing required configuration section "
            f"DistributionConfig.DefaultCacheBehavior"
        )


def _bind_once(distribution_id: str, association: Dict[str, Any], cloudfront_client: Any) -> str:
    config, etag = fetch_distribution_config(distribution_id, cloudfront_client)
    _validate_config(distribution_id, config)

    updated_config = dict(config)
    updated_config['DefaultCacheBehavior'] = merge_trigger_associations(
        config['DefaultCacheBehavior'], association
    )

    # The write is conditioned on the ETag of the config it was derived from
    try:
        response = cloudfront_client.update_distribution(
            Id=distribution_id,
            IfMatch=etag,
            DistributionConfig=updated_config,
        )
    except ClientError as e:
        code = e.response['Error']['Code']
        if code in CONFLICT_ERROR_CODES:
            raise DistributionConflictError(
                f"Distribution {distribution_id} changed since ETag {etag} was read"
            ) from e
        raise EdgeBindError(f"Failed to update distribution {distribution_id} ({code}): {e}") from e

    return response.get('ETag')


def bind_trigger(
    distribution_id: str,
    region: str,
    function_arn: str,
    version: str,
    event_type: str = DEFAULT_EVENT_TYPE,
    cloudfront_client: Optional[Any] = None,
    max_attempts: int = 3,
    retry_delay: float = 1.0,
    include_body: bool = False,
) -> Dict[str, Any]:
    """Point the distribution's default `event_type` trigger at a function version.

    Everything else in the distribution config is written back unchanged.

    Args:
        distribution_id: CloudFront distribution id
        region: Region for the CloudFront client
        function_arn: Unqualified function ARN
        version: Published version number
        event_type: CloudFront event type to bind
        cloudfront_client: Optional boto3 CloudFront client
        max_attempts: Read-modify-write attempts on ETag conflicts
        retry_delay: Initial backoff between conflict retries
        include_body: Expose the request body to the function

    Returns:
        The association that was written

    Raises:
        ConfigValidationError: `event_type` is not a CloudFront trigger event
        DistributionSchemaError: config has no DefaultCacheBehavior (nothing is written)
        DistributionConflictError: every attempt lost the race for the ETag
        EdgeBindError: any other CloudFront failure
    """
    if event_type not in EVENT_TYPES:
        raise ConfigValidationError(f"Invalid event type: {event_type}. Must be one of {list(EVENT_TYPES)}")

    cloudfront_client = cloudfront_client or get_cloudfront_client(region)
    association = build_association(function_arn, version, event_type, include_body)

    bind = retry(
        max_attempts=max_attempts,
        delay=retry_delay,
        exceptions=(DistributionConflictError,),
        logger_name=__name__,
    )(_bind_once)
    new_etag = bind(distribution_id, association, cloudfront_client)

    logger.info(
        f"CloudFront trigger set up: {distribution_id} {event_type} -> "
        f"{association['LambdaFunctionARN']} (ETag {new_etag})"
    )
    return association


def list_trigger_associations(distribution_id: str, region: str,
                              cloudfront_client: Optional[Any] = None) -> List[Dict[str, Any]]:
    """Trigger associations currently on the default cache behavior."""
    cloudfront_client = cloudfront_client or get_cloudfront_client(region)
    config, _ = fetch_distribution_config(distribution_id, cloudfront_client)
    _validate_config(distribution_id, config)
    associations = config['DefaultCacheBehavior'].get('LambdaFunctionAssociations') or {}
    return list(associations.get('Items') or [])
