"""AWS utility functions and client management."""
import boto3
import logging
import threading
from typing import Any, Dict, Tuple
from botocore.config import Config

from edge_deploy.settings import get_settings

logger = logging.getLogger(__name__)

class AWSClientManager:
    """Singleton manager for AWS service clients.

    Each tier of a deployment may live in a different region, so clients are
    cached per (service, region) pair rather than per service.
    """
    _instance = None
    _clients: Dict[Tuple[str, str], Any] = {}
    _lock = threading.Lock()

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(AWSClientManager, cls).__new__(cls)
            cls._instance._initialize()
        return cls._instance

    def _initialize(self):
        """Initialize the client manager with settings."""
        # Get settings once during initialization
        self.settings = get_settings()

        # Cache commonly used values
        self.endpoint_url = self.settings.aws_endpoint_url
        self.mode = self.settings.deployment_mode
        self.client_config = Config(
            connect_timeout=self.settings.connect_timeout,
            read_timeout=self.settings.read_timeout,
            retries={'max_attempts': self.settings.max_retries, 'mode': 'standard'},
        )

        logger.info(f"Initializing AWSClientManager")
        logger.info(f"  Mode: {self.mode}")
        logger.info(f"  Endpoint: {self.endpoint_url}")

    def get_client(self, service_name: str, region: str) -> Any:
        """Get or create an AWS service client for a region."""
        cache_key = (service_name, region)
        # boto3's default session is not thread-safe, so creation is serialized
        with self._lock:
            if cache_key not in self._clients:
                self._clients[cache_key] = self._create_client(service_name, region)
            return self._clients[cache_key]

    def _create_client(self, service_name: str, region: str) -> Any:
        # Create client with settings-based configuration
        client_kwargs = {
            'region_name': region,
            'config': self.client_config,
        }

        # Use a named profile (e.g. SSO) when one is configured for production
        if self.settings.aws_profile and self.mode == 'aws-prod':
            try:
                session = boto3.Session(profile_name=self.settings.aws_profile)
                client = session.client(service_name, **client_kwargs)
                logger.debug(f"Created {service_name} client in {region} using profile: {self.settings.aws_profile}")
                return client
            except Exception as e:
                logger.warning(f"Failed to create client with profile {self.settings.aws_profile}: {e}")
                # Fall back to manual credential configuration

        # Add credentials from settings
        if self.settings.aws_access_key_id:
            client_kwargs['aws_access_key_id'] = self.settings.aws_access_key_id
        if self.settings.aws_secret_access_key:
            client_kwargs['aws_secret_access_key'] = self.settings.aws_secret_access_key

        # Add endpoint URL for local/mock modes
        if self.endpoint_url and self.mode in ['local-dev', 'aws-mock']:
            client_kwargs['endpoint_url'] = self.endpoint_url

        try:
            client = boto3.client(service_name, **client_kwargs)
            logger.debug(f"Created {service_name} client in {region}")
            return client
        except Exception as e:
            logger.error(f"Error creating {service_name} client: {str(e)}")
            raise

    def clear_clients(self):
        """Clear all cached clients."""
        with self._lock:
            self._clients.clear()
        logger.debug("Cleared all AWS clients")

    @classmethod
    def reset(cls):
        """Drop the singleton so the next use re-reads settings."""
        with cls._lock:
            cls._clients.clear()
        cls._instance = None

# Convenience functions for common operations

def get_s3_client(region: str):
    """Get the S3 client."""
    return AWSClientManager().get_client('s3', region)

def get_lambda_client(region: str):
    """Get the Lambda client."""
    return AWSClientManager().get_client('lambda', region)

def get_cloudfront_client(region: str):
    """Get the CloudFront client."""
    return AWSClientManager().get_client('cloudfront', region)
