"""Deploy a built web app to S3, Lambda@Edge and CloudFront."""
from edge_deploy.config import DeploymentConfig, resolve_config
from edge_deploy.pipeline import DeploymentPipeline, DeploymentResult, deploy_app

__version__ = "0.1.0"

__all__ = [
    "DeploymentConfig",
    "DeploymentPipeline",
    "DeploymentResult",
    "deploy_app",
    "resolve_config",
]
