"""Deployment target configuration and default merging.

A user supplies a partial `DeploymentConfig`; every field is optional so that
"not given" (None) and "given" are distinguishable. Given values always win
over the baked-in defaults, including an explicit empty string.
"""
import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from edge_deploy.exceptions import ConfigValidationError

logger = logging.getLogger(__name__)

# Lambda@Edge functions must live in N. Virginia
DEFAULT_FUNCTION_REGION = "us-east-1"
DEFAULT_EDGE_REGION = "us-east-1"
DEFAULT_OBJECT_STORE_REGION = "ap-south-1"


class ObjectStoreConfig(BaseModel):
    """Where static assets are uploaded."""
    bucket: Optional[str] = Field(default=None, alias="bucketName")
    prefix: Optional[str] = None
    region: Optional[str] = None

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")


class FunctionConfig(BaseModel):
    """Which function receives the server bundle."""
    name: Optional[str] = Field(default=None, alias="functionName")
    region: Optional[str] = None

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")


class EdgeConfig(BaseModel):
    """Which distribution gets the request trigger and the invalidation."""
    distribution_id: Optional[str] = Field(default=None, alias="distributionId")
    region: Optional[str] = None

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")


class DeploymentConfig(BaseModel):
    """Complete description of one deployment target.

    Accepts both the Python field names and the camelCase keys used by
    the original adapter config (`s3`/`lambda`/`cloudfront`).
    """
    object_store: ObjectStoreConfig = Field(default_factory=ObjectStoreConfig, alias="s3")
    function: FunctionConfig = Field(default_factory=FunctionConfig, alias="lambda")
    edge: EdgeConfig = Field(default_factory=EdgeConfig, alias="cloudfront")

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    def missing_fields(self) -> List[str]:
        """Dotted names of required fields that are absent or empty."""
        required = {
            "object_store.bucket": self.object_store.bucket,
            "object_store.region": self.object_store.region,
            "function.name": self.function.name,
            "function.region": self.function.region,
            "edge.distribution_id": self.edge.distribution_id,
            "edge.region": self.edge.region,
        }
        return [name for name, value in required.items() if not value]

    def require_complete(self) -> "DeploymentConfig":
        missing = self.missing_fields()
        if missing:
            raise ConfigValidationError(
                f"Deployment configuration is incomplete, missing: {', '.join(missing)}"
            )
        return self


DEFAULT_CONFIG: Dict[str, Any] = {
    "object_store": {"prefix": "", "region": DEFAULT_OBJECT_STORE_REGION},
    "function": {"region": DEFAULT_FUNCTION_REGION},
    "edge": {"region": DEFAULT_EDGE_REGION},
}


def deep_merge(defaults: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """Merge `overrides` onto `defaults` without mutating either.

    Nested dicts merge recursively. A scalar override replaces the default
    whenever it is present (not None).
    """
    if not isinstance(defaults, dict) or not isinstance(overrides, dict):
        raise TypeError("Invalid arguments: both defaults and overrides must be dicts")

    merged = dict(defaults)
    for key, value in overrides.items():
        base = merged.get(key)
        if isinstance(base, dict) and isinstance(value, dict):
            merged[key] = deep_merge(base, value)
        elif value is not None:
            merged[key] = value
    return merged


def parse_config(config_input: Union[DeploymentConfig, Dict[str, Any], None]) -> DeploymentConfig:
    if config_input is None:
        return DeploymentConfig()
    if isinstance(config_input, DeploymentConfig):
        return config_input
    try:
        return DeploymentConfig.model_validate(config_input)
    except ValidationError as e:
        raise ConfigValidationError(f"Malformed deployment configuration: {e}") from e


def resolve_config(
    config_input: Union[DeploymentConfig, Dict[str, Any], None],
    defaults: Optional[Dict[str, Any]] = None,
) -> DeploymentConfig:
    """Merge user input over the defaults and check completeness.

    Raises:
        ConfigValidationError: if the input is malformed or a required
            value is still missing after merging.
    """
    user_config = parse_config(config_input)
    merged = deep_merge(defaults if defaults is not None else DEFAULT_CONFIG,
                        user_config.model_dump(exclude_none=True))
    config = DeploymentConfig.model_validate(merged).require_complete()

    logger.debug(f"Resolved deployment config: {config.model_dump()}")
    return config
