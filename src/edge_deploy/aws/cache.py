"""CloudFront cache invalidation."""
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from botocore.exceptions import ClientError

from edge_deploy.aws.utils import get_cloudfront_client
from edge_deploy.exceptions import InvalidationError

logger = logging.getLogger(__name__)

DEFAULT_INVALIDATION_PATHS = ("/*",)


def invalidate_cache(
    distribution_id: str,
    paths: Sequence[str],
    region: str,
    caller_reference: Optional[str] = None,
    cloudfront_client: Optional[Any] = None,
) -> str:
    """Submit one invalidation batch covering all `paths`.

    Returns as soon as CloudFront accepts the request; it does not wait for
    the invalidation to complete. `caller_reference` defaults to the current
    UTC timestamp, so two quick retries create two separate batches.

    Returns:
        The invalidation id
    """
    if not paths:
        raise InvalidationError("At least one path is required for an invalidation")

    caller_reference = caller_reference or datetime.now(timezone.utc).isoformat()
    cloudfront_client = cloudfront_client or get_cloudfront_client(region)

    try:
        response = cloudfront_client.create_invalidation(
            DistributionId=distribution_id,
            InvalidationBatch={
                'Paths': {
                    'Quantity': len(paths),
                    'Items': list(paths),
                },
                'CallerReference': caller_reference,
            },
        )
    except ClientError as e:
        code = e.response['Error']['Code']
        raise InvalidationError(f"Failed to create invalidation for {distribution_id} ({code}): {e}") from e

    invalidation_id = response['Invalidation']['Id']
    logger.info(f"Invalidation created with ID: {invalidation_id} ({len(paths)} paths)")
    return invalidation_id
