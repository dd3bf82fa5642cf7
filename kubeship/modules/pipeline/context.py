"""
Pipeline context.

Built once at the start of a run and passed to every stage. Nothing
re-reads the environment after this point.
"""

import logging
import re
from dataclasses import dataclass

from kubeship.config.provider import PipelineConfig, ScanConfig, SonarConfig
from kubeship.modules.executor import CommandExecutor

logger = logging.getLogger("kubeship.pipeline.context")

ACCOUNT_ID_PATTERN = re.compile(r"^\d{12}$")


class ContextError(RuntimeError):
    """Raised when a run-start value cannot be resolved."""


def registry_address(account_id: str, region: str) -> str:
    return f"{account_id}.dkr.ecr.{region}.amazonaws.com"


def image_reference(account_id: str, region: str, repository: str, tag: str) -> str:
    """Fully qualified image reference, e.g. 111111111111.dkr.ecr.us-east-1.amazonaws.com/my-website:42"""
    return f"{registry_address(account_id, region)}/{repository}:{tag}"


@dataclass(frozen=True)
class PipelineContext:
    """Read-only variables for one pipeline run."""

    aws_region: str
    aws_account_id: str
    ecr_repository: str
    image_tag: str
    git_commit: str
    git_branch: str
    cluster_name: str
    namespace: str
    app_name: str
    service_name: str
    manifest_dir: str
    workspace: str
    sonar: SonarConfig
    scan: ScanConfig

    @property
    def ecr_registry(self) -> str:
        return registry_address(self.aws_account_id, self.aws_region)

    @property
    def image_name(self) -> str:
        return f"{self.ecr_registry}/{self.ecr_repository}"

    @property
    def image_reference(self) -> str:
        return image_reference(self.aws_account_id, self.aws_region, self.ecr_repository, self.image_tag)

    @property
    def latest_reference(self) -> str:
        return f"{self.image_name}:latest"


def resolve_account_id(executor: CommandExecutor, region: str) -> str:
    """Ask STS which account the current credentials belong to."""
    result = executor.run(
        [
            "aws",
            "sts",
            "get-caller-identity",
            "--query",
            "Account",
            "--output",
            "text",
            "--region",
            region,
        ]
    )
    if not result.success:
        raise ContextError(f"Could not resolve AWS account id: {result.output}")
    return result.stdout.strip()


def _git(executor: CommandExecutor, *args: str) -> str:
    result = executor.run(["git", *args])
    if not result.success:
        raise ContextError(f"git {' '.join(args)} failed: {result.output}")
    return result.stdout.strip()


def build_context(config: PipelineConfig, executor: CommandExecutor) -> PipelineContext:
    """
    Resolve every run-start value and freeze it.

    Args:
        config: Loaded pipeline configuration
        executor: Executor rooted at the build workspace

    Returns:
        PipelineContext

    Raises:
        ContextError: If the account id, commit or branch cannot be resolved
    """
    account_id = config.aws.account_id or resolve_account_id(executor, config.aws.region)
    if not ACCOUNT_ID_PATTERN.match(account_id):
        raise ContextError(f"Invalid AWS account id: {account_id!r}")

    git_commit = config.build.git_commit or _git(executor, "rev-parse", "HEAD")
    git_branch = config.build.git_branch or _git(executor, "rev-parse", "--abbrev-ref", "HEAD")

    context = PipelineContext(
        aws_region=config.aws.region,
        aws_account_id=account_id,
        ecr_repository=config.build.repository,
        image_tag=config.build.build_number,
        git_commit=git_commit,
        git_branch=git_branch,
        cluster_name=config.cluster.cluster_name,
        namespace=config.cluster.namespace,
        app_name=config.cluster.app_name,
        service_name=config.cluster.service_name,
        manifest_dir=config.cluster.manifest_dir,
        workspace=config.build.workspace,
        sonar=config.sonar,
        scan=config.scan,
    )

    logger.info(
        f"Pipeline context: image={context.image_reference} "
        f"commit={context.git_commit[:12]} branch={context.git_branch}"
    )
    return context
