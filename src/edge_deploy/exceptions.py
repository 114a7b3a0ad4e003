"""Error taxonomy for the deployment pipeline.

Every stage raises a subclass of `DeploymentError` so callers can catch the
whole family at once. Only `DistributionConflictError` is considered
retryable; everything else is fatal to the run.
"""


class DeploymentError(Exception):
    """Base class for all pipeline failures."""
    pass


class ConfigValidationError(DeploymentError):
    """Merged deployment configuration is missing a required value."""
    pass


class SourceDirectoryError(DeploymentError):
    """A local input directory is missing or unreadable."""
    pass


class ArchiveWriteError(DeploymentError):
    """The deployment archive could not be created."""
    pass


class AssetUploadError(DeploymentError):
    """A static asset failed to upload while running in strict mode."""

    def __init__(self, message: str, key: str = None):
        super().__init__(message)
        self.key = key


class FunctionDeployError(DeploymentError):
    """Function code could not be replaced, or the update never settled."""
    pass


class FunctionPublishError(DeploymentError):
    """An immutable function version could not be published."""
    pass


class DistributionSchemaError(DeploymentError):
    """Distribution config lacks the section the trigger binder mutates."""
    pass


class DistributionConflictError(DeploymentError):
    """Distribution config changed between read and write (stale ETag)."""
    pass


class EdgeBindError(DeploymentError):
    """Any other failure reading or writing the distribution config."""
    pass


class InvalidationError(DeploymentError):
    """The cache invalidation request was not accepted."""
    pass
