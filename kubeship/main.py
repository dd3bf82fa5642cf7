#!/usr/bin/env python3
"""
Kubeship - Main Entry Point

This is the thin orchestration layer that:
1. Loads configuration
2. Builds the run context
3. Runs the pipeline or answers infrastructure lookups

All behaviour lives in the modules.
"""

import json
import logging
import sys
from typing import Optional

import click
from dotenv import load_dotenv

from kubeship.config.provider import ConfigProvider, EnvConfigProvider, YamlConfigProvider
from kubeship.logging_config import configure_logging, register_secret
from kubeship.modules.executor import CommandExecutor
from kubeship.modules.outputs import (
    OUTPUT_KEYS,
    AwsCliOutputSource,
    InfrastructureOutputs,
    OutputSourceError,
    ResourceNotFoundError,
    TerraformOutputSource,
)
from kubeship.modules.pipeline import FAILURE_BANNER, ContextError, PipelineRunner, build_context
from kubeship.modules.pipeline.context import image_reference, resolve_account_id

logger = logging.getLogger("kubeship.main")


@click.group()
@click.option("--env-file", type=click.Path(dir_okay=False), default=None, help="Extra .env file to load")
def cli(env_file: Optional[str]):
    """Build, scan, push and deploy a container image to EKS."""
    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()


@cli.command()
@click.option("--config", "config_path", type=click.Path(dir_okay=False), default=None,
              help="YAML file overlaid on the environment")
@click.option("--log-level", default=None, help="Overrides LOG_LEVEL")
def run(config_path: Optional[str], log_level: Optional[str]):
    """Run the delivery pipeline."""
    provider: ConfigProvider = YamlConfigProvider(config_path) if config_path else EnvConfigProvider()

    try:
        config = provider.get_pipeline_config()
    except ValueError as e:
        configure_logging((log_level or "INFO").upper())
        logger.error(f"Configuration error: {e}")
        click.echo(FAILURE_BANNER)
        sys.exit(1)

    configure_logging((log_level or config.log_level).upper())
    register_secret(config.sonar.token)

    executor = CommandExecutor(cwd=config.build.workspace)

    try:
        context = build_context(config, executor)
    except ContextError as e:
        logger.error(f"Could not start pipeline: {e}")
        click.echo(FAILURE_BANNER)
        sys.exit(1)

    result = PipelineRunner(executor).run(context)
    sys.exit(0 if result.success else 1)


@cli.command()
@click.argument("key", required=False, type=click.Choice(OUTPUT_KEYS))
@click.option("--source", type=click.Choice(["terraform", "aws"]), default="terraform", show_default=True)
@click.option("--terraform-dir", default=".", show_default=True, envvar="TERRAFORM_DIR")
@click.option("--region", default="us-east-1", show_default=True, envvar="AWS_REGION")
@click.option("--cluster-name", default="my-website-cluster", show_default=True, envvar="EKS_CLUSTER_NAME")
@click.option("--repository", default="my-website", show_default=True, envvar="ECR_REPOSITORY")
@click.option("--node-group", default=None, envvar="EKS_NODE_GROUP")
@click.option("--json", "as_json", is_flag=True, help="Print all outputs as JSON")
def outputs(
    key: Optional[str],
    source: str,
    terraform_dir: str,
    region: str,
    cluster_name: str,
    repository: str,
    node_group: Optional[str],
    as_json: bool,
):
    """Print provisioned infrastructure outputs."""
    configure_logging("WARNING")
    executor = CommandExecutor()

    if source == "aws":
        output_source = AwsCliOutputSource(executor, region, cluster_name, repository, node_group)
    else:
        output_source = TerraformOutputSource(executor, terraform_dir)

    infra = InfrastructureOutputs(output_source, region)

    try:
        if key:
            click.echo(infra.get(key))
            return

        values = infra.as_dict()
    except ResourceNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except OutputSourceError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(2)

    if as_json:
        click.echo(json.dumps(values, indent=2))
    else:
        for name in OUTPUT_KEYS:
            click.echo(f"{name} = {values.get(name, '<not provisioned>')}")


@cli.command()
@click.option("--region", default="us-east-1", show_default=True, envvar="AWS_REGION")
@click.option("--account-id", default=None, envvar="AWS_ACCOUNT_ID")
@click.option("--repository", default="my-website", show_default=True, envvar="ECR_REPOSITORY")
@click.option("--tag", required=True, envvar="BUILD_NUMBER", help="Image tag (build number)")
def image(region: str, account_id: Optional[str], repository: str, tag: str):
    """Print the image reference a run would push."""
    if not account_id:
        try:
            account_id = resolve_account_id(CommandExecutor(), region)
        except ContextError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)

    click.echo(image_reference(account_id, region, repository, tag))


if __name__ == "__main__":
    cli()
