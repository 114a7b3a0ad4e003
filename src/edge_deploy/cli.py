# cli.py
import json
import logging
import sys

import click
from pydantic import ValidationError

from edge_deploy.config import parse_config, resolve_config
from edge_deploy.exceptions import ConfigValidationError, DeploymentError
from edge_deploy.pipeline import DeploymentPipeline
from edge_deploy.settings import get_settings

logger = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def _load_config_input(config_file, bucket, prefix, s3_region, function_name,
                       function_region, distribution_id, edge_region) -> dict:
    config_input = {}
    if config_file:
        config_input = resolve_config_file(config_file)

    # Only options given on the command line override the file
    overrides = {
        "object_store": {"bucket": bucket, "prefix": prefix, "region": s3_region},
        "function": {"name": function_name, "region": function_region},
        "edge": {"distribution_id": distribution_id, "region": edge_region},
    }
    for section, values in overrides.items():
        given = {k: v for k, v in values.items() if v is not None}
        if given:
            config_input.setdefault(section, {}).update(given)
    return config_input


def resolve_config_file(config_file) -> dict:
    """Load a JSON config file, accepting either field names or the s3/lambda/cloudfront keys."""
    data = json.load(config_file)
    if not isinstance(data, dict):
        raise ConfigValidationError("Config file must contain a JSON object")
    # Round-trip through the model so aliased keys come back as field names
    return parse_config(data).model_dump(exclude_none=True)


@click.group()
def cli():
    """Deploy a built web app to S3, Lambda@Edge and CloudFront"""
    try:
        settings = get_settings()
    except ValidationError as e:
        click.echo(f"Invalid settings: {e}", err=True)
        sys.exit(2)
    _configure_logging(settings.log_level)


@cli.command()
def show_config():
    """Show current runtime settings"""
    settings = get_settings()

    print("Current Settings:")
    print(f"  Deployment Mode: {settings.deployment_mode}")
    print(f"  AWS Endpoint: {settings.aws_endpoint_url}")
    print(f"  Upload Workers: {settings.upload_workers}")
    print(f"  Strict Uploads: {settings.strict_uploads}")
    print(f"  Parallel Assets: {settings.parallel_assets}")
    print(f"  Function Settle Timeout: {settings.function_settle_timeout}s")
    print(f"  Trigger Event Type: {settings.trigger_event_type}")
    print(f"  Trigger Max Attempts: {settings.trigger_max_attempts}")


@cli.command()
@click.option("--config-file", type=click.File("r"), help="JSON deployment config (s3/lambda/cloudfront sections)")
@click.option("--bucket", help="S3 bucket for static assets")
@click.option("--prefix", help="S3 key prefix for static assets")
@click.option("--s3-region", help="S3 bucket region")
@click.option("--function-name", help="Lambda@Edge function name")
@click.option("--function-region", help="Lambda function region")
@click.option("--distribution-id", help="CloudFront distribution id")
@click.option("--edge-region", help="CloudFront client region")
@click.option("--client-dir", type=click.Path(file_okay=False), default="out/client", show_default=True,
              help="Static asset directory")
@click.option("--server-dir", type=click.Path(file_okay=False), default="out/server", show_default=True,
              help="Bundled server entry point directory")
@click.option("--prerendered-dir", type=click.Path(file_okay=False), default="out/prerendered", show_default=True,
              help="Pre-rendered pages directory (optional)")
@click.option("--invalidate", "invalidation_paths", multiple=True, default=["/*"], show_default=True,
              help="Path pattern to invalidate; repeatable")
@click.option("--strict-uploads/--best-effort-uploads", default=None, help="Abort on the first failed asset upload")
@click.option("--parallel-assets/--sequential-assets", default=None, help="Publish assets alongside the function stages")
@click.option("--state-file", type=click.Path(dir_okay=False), help="Write phase tracking to this JSON file")
def deploy(config_file, bucket, prefix, s3_region, function_name, function_region, distribution_id,
           edge_region, client_dir, server_dir, prerendered_dir, invalidation_paths, strict_uploads,
           parallel_assets, state_file):
    """Run the deployment pipeline"""
    settings = get_settings()
    updates = {}
    if strict_uploads is not None:
        updates["strict_uploads"] = strict_uploads
    if parallel_assets is not None:
        updates["parallel_assets"] = parallel_assets
    if updates:
        settings = settings.model_copy(update=updates)

    try:
        config_input = _load_config_input(config_file, bucket, prefix, s3_region, function_name,
                                          function_region, distribution_id, edge_region)
        config = resolve_config(config_input)
    except (ConfigValidationError, json.JSONDecodeError) as e:
        logger.error(f"Invalid deployment configuration: {e}")
        sys.exit(2)

    try:
        pipeline = DeploymentPipeline(config, settings=settings, state_file=state_file)
        result = pipeline.run(client_dir, server_dir, prerendered_dir, invalidation_paths)
    except ConfigValidationError as e:
        logger.error(f"Invalid deployment configuration: {e}")
        sys.exit(2)
    except DeploymentError as e:
        logger.error(f"Deployment failed: {e}")
        sys.exit(1)

    print(json.dumps(result.to_dict(), indent=2, default=str))


if __name__ == "__main__":
    cli()
