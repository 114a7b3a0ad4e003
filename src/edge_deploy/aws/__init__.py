from edge_deploy.aws.assets import UploadReport, publish_assets
from edge_deploy.aws.cache import invalidate_cache
from edge_deploy.aws.edge import bind_trigger
from edge_deploy.aws.functions import FunctionVersion, deploy_function

__all__ = [
    "FunctionVersion",
    "UploadReport",
    "bind_trigger",
    "deploy_function",
    "invalidate_cache",
    "publish_assets",
]
