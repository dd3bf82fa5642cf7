#!/usr/bin/env python3
"""
Pipeline stages for Kubeship.

Each stage is a plain function taking the frozen PipelineContext and a
CommandExecutor and returning a StageResult. Commands are argument lists
built from the context; nothing goes through a shell.
"""

import logging
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from kubeship.logging_config import register_secret
from kubeship.modules.executor import CommandExecutor, CommandResult
from kubeship.modules.pipeline.context import PipelineContext
from kubeship.modules.pipeline.manifests import ManifestError, render_manifests
from kubeship.modules.pipeline.result import FailureKind, StageResult
from kubeship.modules.quality import (
    QualityGateClient,
    QualityGateError,
    QualityGateTimeoutError,
    read_report_task,
)

logger = logging.getLogger("kubeship.pipeline.stages")

StageBody = Callable[[PipelineContext, CommandExecutor], StageResult]
GateClientFactory = Callable[[PipelineContext], QualityGateClient]


@dataclass(frozen=True)
class Stage:
    """A named, ordered unit of pipeline work."""

    name: str
    body: StageBody


def run_commands(executor: CommandExecutor, commands: Sequence[Sequence[str]]) -> StageResult:
    """Run commands in order, stopping at the first non-zero exit."""
    history: List[CommandResult] = []
    for args in commands:
        result = executor.run(args)
        history.append(result)
        if not result.success:
            return StageResult.from_command(result, history)
    return StageResult.ok(history)


def checkout(ctx: PipelineContext, executor: CommandExecutor) -> StageResult:
    """Pin the workspace to the commit this run was started for."""
    return run_commands(executor, [["git", "checkout", "--force", "--detach", ctx.git_commit]])


def static_analysis(ctx: PipelineContext, executor: CommandExecutor) -> StageResult:
    args = [
        "sonar-scanner",
        f"-Dsonar.projectKey={ctx.sonar.project_key}",
        "-Dsonar.sources=.",
        f"-Dsonar.host.url={ctx.sonar.host_url}",
        f"-Dsonar.projectVersion={ctx.image_tag}",
    ]
    # Token goes through the environment so it never shows up in argv
    result = executor.run(args, env={"SONAR_TOKEN": ctx.sonar.token})
    if not result.success:
        return StageResult.from_command(result)
    return StageResult.ok([result])


def quality_gate(
    ctx: PipelineContext,
    executor: CommandExecutor,
    client_factory: Optional[GateClientFactory] = None,
) -> StageResult:
    """Wait for the quality gate verdict, bounded by the configured timeout."""
    factory = client_factory or default_gate_client
    try:
        report = read_report_task(ctx.workspace)
        client = factory(ctx)
        verdict = client.wait_for_quality_gate(
            report["ceTaskId"],
            timeout=ctx.sonar.gate_timeout,
            poll_interval=ctx.sonar.poll_interval,
        )
    except QualityGateTimeoutError as e:
        return StageResult.failed(f"Quality gate timed out: {e}", FailureKind.QUALITY_GATE_TIMEOUT)
    except QualityGateError as e:
        return StageResult.failed(f"Quality gate failed: {e}", FailureKind.QUALITY_GATE_REJECTED)

    if not verdict.passed:
        details = "; ".join(verdict.failed_conditions())
        reason = f"Quality gate status {verdict.status}"
        if details:
            reason += f": {details}"
        return StageResult.failed(reason, FailureKind.QUALITY_GATE_REJECTED)

    return StageResult.ok()


def default_gate_client(ctx: PipelineContext) -> QualityGateClient:
    return QualityGateClient(ctx.sonar.host_url, ctx.sonar.token)


def build_image(ctx: PipelineContext, executor: CommandExecutor) -> StageResult:
    return run_commands(
        executor,
        [["docker", "build", "-t", ctx.image_reference, "-t", ctx.latest_reference, "."]],
    )


def vulnerability_scan(ctx: PipelineContext, executor: CommandExecutor) -> StageResult:
    """Scan the built image.

    Findings only fail the stage when scan.fail_on_findings is set; by
    default the scanner is told to exit 0 regardless of what it finds.
    """
    exit_code = "1" if ctx.scan.fail_on_findings else "0"
    result = executor.run(
        [
            "trivy",
            "image",
            "--exit-code",
            exit_code,
            "--severity",
            ctx.scan.severity,
            "--no-progress",
            ctx.image_reference,
        ]
    )
    if result.stdout:
        logger.info(f"Scan report for {ctx.image_reference}:\n{result.stdout.strip()}")
    if not result.success:
        return StageResult.from_command(result)
    return StageResult.ok([result])


def push_image(ctx: PipelineContext, executor: CommandExecutor) -> StageResult:
    password = executor.run(["aws", "ecr", "get-login-password", "--region", ctx.aws_region])
    if not password.success:
        return StageResult.from_command(password)

    token = password.stdout.strip()
    register_secret(token)

    login = executor.run(
        ["docker", "login", "--username", "AWS", "--password-stdin", ctx.ecr_registry],
        input=token,
    )
    if not login.success:
        return StageResult.from_command(login)

    pushed = run_commands(
        executor,
        [
            ["docker", "push", ctx.image_reference],
            ["docker", "push", ctx.latest_reference],
        ],
    )
    # Login output is kept; the password result never leaves this function
    return StageResult(pushed.status, pushed.reason, pushed.kind, [login] + pushed.commands)


def update_kubeconfig(ctx: PipelineContext, executor: CommandExecutor) -> StageResult:
    return run_commands(
        executor,
        [["aws", "eks", "update-kubeconfig", "--region", ctx.aws_region, "--name", ctx.cluster_name]],
    )


def deploy(ctx: PipelineContext, executor: CommandExecutor) -> StageResult:
    manifest_dir = Path(ctx.manifest_dir)
    if not manifest_dir.is_absolute():
        manifest_dir = Path(ctx.workspace) / manifest_dir

    try:
        rendered = render_manifests(manifest_dir, ctx.app_name, ctx.image_reference)
    except ManifestError as e:
        return StageResult.failed(str(e), FailureKind.ERROR)

    result = executor.run(["kubectl", "apply", "-n", ctx.namespace, "-f", "-"], input=rendered)
    if not result.success:
        return StageResult.from_command(result)
    logger.info(result.stdout.strip())
    return StageResult.ok([result])


def verify_deployment(ctx: PipelineContext, executor: CommandExecutor) -> StageResult:
    result = run_commands(
        executor,
        [
            ["kubectl", "rollout", "status", f"deployment/{ctx.app_name}", "-n", ctx.namespace],
            ["kubectl", "get", "pods", "-n", ctx.namespace, "-l", f"app={ctx.app_name}"],
            ["kubectl", "get", "svc", ctx.service_name, "-n", ctx.namespace],
        ],
    )
    for command in result.commands:
        if command.success and command.stdout:
            logger.info(command.stdout.strip())
    return result


def cleanup(ctx: PipelineContext, executor: CommandExecutor) -> StageResult:
    """Remove local image tags. Callers treat failure as non-fatal."""
    result = executor.run(["docker", "rmi", "-f", ctx.image_reference, ctx.latest_reference])
    if not result.success:
        return StageResult.from_command(result)
    return StageResult.ok([result])


def resolve_access_url(ctx: PipelineContext, executor: CommandExecutor) -> Optional[str]:
    """Read the service's load-balancer address, hostname first then IP."""
    for field in ("hostname", "ip"):
        result = executor.run(
            [
                "kubectl",
                "get",
                "svc",
                ctx.service_name,
                "-n",
                ctx.namespace,
                "-o",
                f"jsonpath={{.status.loadBalancer.ingress[0].{field}}}",
            ]
        )
        address = result.stdout.strip() if result.success else ""
        if address:
            return f"http://{address}"
    return None


STAGE_NAMES = (
    "Checkout",
    "Static-Analysis",
    "Quality-Gate",
    "Build-Image",
    "Vulnerability-Scan",
    "Push-Image",
    "Update-Kubeconfig",
    "Deploy",
    "Verify-Deployment",
)


def default_stages(gate_client_factory: Optional[GateClientFactory] = None) -> List[Stage]:
    """The fixed delivery pipeline, in execution order."""
    bodies = (
        checkout,
        static_analysis,
        partial(quality_gate, client_factory=gate_client_factory),
        build_image,
        vulnerability_scan,
        push_image,
        update_kubeconfig,
        deploy,
        verify_deployment,
    )
    return [Stage(name, body) for name, body in zip(STAGE_NAMES, bodies)]
