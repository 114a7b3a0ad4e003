# src/edge_deploy/settings.py
from typing import Optional
from pydantic import Field, validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

# CloudFront events a Lambda@Edge function can be associated with
EVENT_TYPES = ("viewer-request", "viewer-response", "origin-request", "origin-response")


class Settings(BaseSettings):
    """
    Single source of truth for runtime settings of the deployment pipeline.

    Configuration precedence:
    1. Environment variables (highest priority)
    2. .env file (if exists)
    3. Default values in this class (lowest priority)

    These settings tune *how* the pipeline talks to AWS. *What* gets deployed
    (bucket, function, distribution) lives in `edge_deploy.config`.

    Usage:
        from edge_deploy.settings import get_settings
        settings = get_settings()
        workers = settings.upload_workers
    """

    # Deployment Mode
    deployment_mode: str = Field(
        default="aws-prod",
        description="Deployment mode: local-dev, aws-mock, or aws-prod"
    )

    # AWS Core Settings
    aws_access_key_id: Optional[str] = Field(
        default=None,
        alias="AWS_ACCESS_KEY_ID"
    )

    aws_secret_access_key: Optional[str] = Field(
        default=None,
        alias="AWS_SECRET_ACCESS_KEY"
    )

    aws_endpoint_url: Optional[str] = Field(
        default=None,
        alias="AWS_ENDPOINT_URL"
    )

    aws_profile: Optional[str] = Field(
        default=None,
        alias="AWS_PROFILE"
    )

    # Transport
    connect_timeout: int = Field(
        default=10,
        description="Connect timeout in seconds for every AWS call"
    )

    read_timeout: int = Field(
        default=60,
        description="Read timeout in seconds for every AWS call"
    )

    max_retries: int = Field(
        default=3,
        description="botocore 'standard' mode retry attempts for throttling and transient errors"
    )

    # Asset publishing
    upload_workers: int = Field(
        default=8,
        ge=1,
        description="Size of the per-file upload worker pool"
    )

    strict_uploads: bool = Field(
        default=False,
        description="Abort the asset walk on the first failed upload"
    )

    parallel_assets: bool = Field(
        default=False,
        description="Publish static assets concurrently with the function and edge stages"
    )

    # Function deployment
    function_settle_timeout: int = Field(
        default=300,
        description="Upper bound in seconds to wait for a code update to finish"
    )

    function_poll_interval: int = Field(
        default=5,
        ge=1,
        description="Seconds between function state polls"
    )

    # Edge trigger
    trigger_event_type: str = Field(
        default="origin-request",
        description="CloudFront event type the function is bound to"
    )

    trigger_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Read-modify-write attempts on distribution config conflicts"
    )

    trigger_retry_delay: float = Field(
        default=1.0,
        description="Initial delay in seconds between conflict retries"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    @validator('deployment_mode')
    def validate_deployment_mode(cls, v):
        """Validate deployment mode is one of the allowed values."""
        valid_modes = ["local-dev", "aws-mock", "aws-prod"]
        if v not in valid_modes:
            raise ValueError(f"Invalid deployment_mode: {v}. Must be one of {valid_modes}")
        return v

    @validator('aws_endpoint_url', always=True)
    def set_endpoint_url_based_on_mode(cls, v, values):
        """Auto-set endpoint URL based on deployment mode if not explicitly provided."""
        if v is None and 'deployment_mode' in values:
            mode = values['deployment_mode']
            if mode in ["local-dev", "aws-mock"]:
                return "http://localhost:5000"
        return v

    @validator('aws_access_key_id', 'aws_secret_access_key', always=True)
    def set_mock_credentials_for_local_modes(cls, v, values):
        """Auto-set mock credentials for local modes if not provided."""
        if v is None and 'deployment_mode' in values:
            if values['deployment_mode'] in ["local-dev", "aws-mock"]:
                return "mock"
        return v

    @validator('trigger_event_type')
    def validate_trigger_event_type(cls, v):
        """Validate the trigger event type is one CloudFront accepts."""
        if v not in EVENT_TYPES:
            raise ValueError(f"Invalid trigger_event_type: {v}. Must be one of {list(EVENT_TYPES)}")
        return v

    @validator('log_level')
    def normalize_log_level(cls, v):
        return v.upper()

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    This ensures we only create one Settings instance per process.
    """
    return Settings()
