"""Deployment pipeline: package, publish assets, deploy function, bind trigger, invalidate.

Every stage is idempotent or version-additive, so a failed run is recovered by
running the pipeline again. Nothing is rolled back: a failure midway leaves
earlier stages in place.
"""
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence, Union

from edge_deploy.aws.assets import UploadReport, publish_assets
from edge_deploy.aws.cache import DEFAULT_INVALIDATION_PATHS, invalidate_cache
from edge_deploy.aws.edge import bind_trigger
from edge_deploy.aws.functions import FunctionVersion, deploy_function
from edge_deploy.aws.utils import AWSClientManager
from edge_deploy.config import DeploymentConfig, resolve_config
from edge_deploy.exceptions import ConfigValidationError, InvalidationError
from edge_deploy.packaging import BuildWorkspace, package_directory, stage_server_bundle
from edge_deploy.settings import EVENT_TYPES, Settings, get_settings
from edge_deploy.state import DeploymentPhase, DeploymentTracker

logger = logging.getLogger(__name__)


@dataclass
class DeploymentResult:
    """Outcome of one pipeline run."""
    deployment_id: str
    config: DeploymentConfig
    upload_report: Optional[UploadReport] = None
    function_version: Optional[FunctionVersion] = None
    trigger: Optional[Dict[str, Any]] = None
    invalidation_id: Optional[str] = None
    invalidation_error: Optional[str] = None
    phases: Dict[str, Any] = field(default_factory=dict)

    @property
    def warnings(self) -> list:
        warnings = []
        if self.upload_report and self.upload_report.failed:
            warnings.append(f"{len(self.upload_report.failed)} asset uploads failed")
        if self.invalidation_error:
            warnings.append(f"cache invalidation failed: {self.invalidation_error}")
        return warnings

    def to_dict(self) -> Dict[str, Any]:
        return {
            'deployment_id': self.deployment_id,
            'config': self.config.model_dump(),
            'assets': self.upload_report.summary() if self.upload_report else None,
            'function_version': self.function_version.qualified_arn if self.function_version else None,
            'trigger': self.trigger,
            'invalidation_id': self.invalidation_id,
            'warnings': self.warnings,
            'phases': self.phases,
        }


class DeploymentPipeline:
    """Runs all deployment stages for one resolved `DeploymentConfig`.

    `client_manager` is anything with `get_client(service_name, region)`;
    it defaults to the process-wide `AWSClientManager`.
    """

    def __init__(
        self,
        config: DeploymentConfig,
        client_manager: Optional[Any] = None,
        settings: Optional[Settings] = None,
        state_file: Optional[str] = None,
        keep_workspace: bool = False,
    ):
        self.config = config.require_complete()
        self.settings = settings or get_settings()
        # Settings built with model_copy/model_construct skip field validation
        if self.settings.trigger_event_type not in EVENT_TYPES:
            raise ConfigValidationError(
                f"Invalid trigger_event_type: {self.settings.trigger_event_type}. "
                f"Must be one of {list(EVENT_TYPES)}"
            )
        self.client_manager = client_manager or AWSClientManager()
        self.state_file = state_file
        self.keep_workspace = keep_workspace

    def _client(self, service_name: str, region: str) -> Any:
        return self.client_manager.get_client(service_name, region)

    def _run_phase(self, tracker: DeploymentTracker, phase: DeploymentPhase,
                   func: Callable[[], Any], resources: Callable[[Any], Dict[str, Any]] = None) -> Any:
        tracker.start_phase(phase)
        try:
            result = func()
        except Exception as e:
            tracker.fail_phase(phase, str(e))
            raise
        tracker.complete_phase(phase, resources(result) if resources else None)
        return result

    def _publish_assets(self, client_dir: Path, s3_client: Any) -> UploadReport:
        object_store = self.config.object_store
        return publish_assets(
            client_dir,
            object_store.bucket,
            object_store.prefix or "",
            object_store.region,
            s3_client=s3_client,
            strict=self.settings.strict_uploads,
            max_workers=self.settings.upload_workers,
        )

    def _deploy_function(self, archive_path: Path) -> FunctionVersion:
        function = self.config.function
        return deploy_function(
            function.name,
            archive_path,
            function.region,
            lambda_client=self._client('lambda', function.region),
            settle_timeout=self.settings.function_settle_timeout,
            poll_interval=self.settings.function_poll_interval,
        )

    def _bind_trigger(self, version: FunctionVersion) -> Dict[str, Any]:
        edge = self.config.edge
        return bind_trigger(
            edge.distribution_id,
            edge.region,
            version.function_arn,
            version.version,
            event_type=self.settings.trigger_event_type,
            cloudfront_client=self._client('cloudfront', edge.region),
            max_attempts=self.settings.trigger_max_attempts,
            retry_delay=self.settings.trigger_retry_delay,
        )

    def run(
        self,
        client_dir: Union[str, Path],
        server_dir: Union[str, Path],
        prerendered_dir: Optional[Union[str, Path]] = None,
        invalidation_paths: Sequence[str] = DEFAULT_INVALIDATION_PATHS,
    ) -> DeploymentResult:
        """Deploy a built app.

        Args:
            client_dir: Static asset tree uploaded to the object store
            server_dir: Bundled server entry point, packaged for the function
            prerendered_dir: Optional pre-rendered pages shipped with the function
            invalidation_paths: Edge paths to invalidate once everything is live

        Raises:
            DeploymentError: subclass for whichever stage failed
        """
        tracker = DeploymentTracker(state_file=self.state_file)
        result = DeploymentResult(deployment_id=tracker.state.deployment_id, config=self.config)
        client_path = Path(client_dir)

        executor: Optional[ThreadPoolExecutor] = None
        assets_future: Optional[Future] = None
        success = False
        try:
            # Clients are created on this thread only; the asset worker gets its client handed in
            s3_client = self._client('s3', self.config.object_store.region)

            if self.settings.parallel_assets:
                executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="assets")
                assets_future = executor.submit(
                    self._run_phase, tracker, DeploymentPhase.PUBLISH_ASSETS,
                    lambda: self._publish_assets(client_path, s3_client), lambda report: report.summary(),
                )

            with BuildWorkspace(keep=self.keep_workspace) as workspace:
                self._run_phase(
                    tracker, DeploymentPhase.PACKAGE,
                    lambda: self._package(workspace, server_dir, prerendered_dir),
                    lambda count: {'archive': str(workspace.archive_path), 'files': count},
                )

                if assets_future is None:
                    result.upload_report = self._run_phase(
                        tracker, DeploymentPhase.PUBLISH_ASSETS,
                        lambda: self._publish_assets(client_path, s3_client), lambda report: report.summary(),
                    )

                result.function_version = self._run_phase(
                    tracker, DeploymentPhase.DEPLOY_FUNCTION,
                    lambda: self._deploy_function(workspace.archive_path),
                    lambda version: {'qualified_arn': version.qualified_arn},
                )

            result.trigger = self._run_phase(
                tracker, DeploymentPhase.BIND_TRIGGER,
                lambda: self._bind_trigger(result.function_version),
                lambda association: dict(association),
            )

            if assets_future is not None:
                result.upload_report = assets_future.result()

            self._invalidate(tracker, result, invalidation_paths)
            success = True
        finally:
            if executor is not None:
                executor.shutdown(wait=True)
            tracker.finish(success)
            result.phases = tracker.to_dict()['phases']

        for warning in result.warnings:
            logger.warning(f"Deployment {result.deployment_id}: {warning}")
        logger.info(f"Deployment {result.deployment_id} succeeded: {result.function_version.qualified_arn}")
        return result

    def _package(self, workspace: BuildWorkspace, server_dir, prerendered_dir) -> int:
        stage_server_bundle(server_dir, workspace.build_dir, prerendered_dir)
        return package_directory(workspace.build_dir, workspace.archive_path)

    def _invalidate(self, tracker: DeploymentTracker, result: DeploymentResult,
                    paths: Sequence[str]) -> None:
        # A rejected invalidation is reported but does not fail the deployment
        edge = self.config.edge
        try:
            result.invalidation_id = self._run_phase(
                tracker, DeploymentPhase.INVALIDATE_CACHE,
                lambda: invalidate_cache(
                    edge.distribution_id, list(paths), edge.region,
                    cloudfront_client=self._client('cloudfront', edge.region),
                ),
                lambda invalidation_id: {'invalidation_id': invalidation_id},
            )
        except InvalidationError as e:
            result.invalidation_error = str(e)


def deploy_app(
    config_input: Union[DeploymentConfig, Dict[str, Any], None],
    client_dir: Union[str, Path],
    server_dir: Union[str, Path],
    prerendered_dir: Optional[Union[str, Path]] = None,
    **pipeline_kwargs,
) -> DeploymentResult:
    """Merge user config over the defaults and run the whole pipeline."""
    config = resolve_config(config_input)
    pipeline = DeploymentPipeline(config, **pipeline_kwargs)
    return pipeline.run(client_dir, server_dir, prerendered_dir)
