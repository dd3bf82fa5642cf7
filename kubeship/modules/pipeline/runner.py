#!/usr/bin/env python3
"""
Pipeline runner for Kubeship.

Runs stages strictly in declaration order and stops at the first failure.
Post actions follow the usual CI semantics:

- always: best-effort cleanup, exactly once per run, errors suppressed
- success: print the application's access URL
- failure: print the failure banner
"""

import logging
import time
from typing import Callable, List, Optional, Sequence

import click

from kubeship.modules.executor import CommandExecutor
from kubeship.modules.pipeline.context import PipelineContext
from kubeship.modules.pipeline.result import (
    FailureKind,
    PipelineRun,
    StageRecord,
    StageResult,
    StageStatus,
)
from kubeship.modules.pipeline.stages import (
    Stage,
    StageBody,
    cleanup,
    default_stages,
    resolve_access_url,
)

logger = logging.getLogger("kubeship.pipeline.runner")

FAILURE_BANNER = "Pipeline failed! Check the logs for details."
PENDING_URL_MESSAGE = "Deployment succeeded; the load balancer address is not assigned yet."


class PipelineRunner:
    """Executes an ordered list of stages against one context."""

    def __init__(
        self,
        executor: CommandExecutor,
        stages: Optional[Sequence[Stage]] = None,
        cleanup_action: StageBody = cleanup,
        access_url_resolver: Callable[[PipelineContext, CommandExecutor], Optional[str]] = resolve_access_url,
        echo: Callable[[str], None] = click.echo,
    ):
        """
        Initialize runner.

        Args:
            executor: Executor every stage runs its commands through
            stages: Ordered stages (defaults to the delivery pipeline)
            cleanup_action: Always-run post action
            access_url_resolver: Success-only lookup of the public URL
            echo: Where user-facing messages are printed
        """
        self.executor = executor
        self.stages: List[Stage] = list(stages if stages is not None else default_stages())
        self.cleanup_action = cleanup_action
        self.access_url_resolver = access_url_resolver
        self.echo = echo

    def run(self, context: PipelineContext) -> PipelineRun:
        """
        Run every stage in order, then the post actions.

        Returns:
            PipelineRun describing executed and skipped stages
        """
        run = PipelineRun(status=StageStatus.SUCCESS)
        logger.info(f"Starting pipeline for {context.image_reference}")

        try:
            for index, stage in enumerate(self.stages):
                record = self._run_stage(stage, context)
                run.records.append(record)

                if not record.result.success:
                    run.status = StageStatus.FAILURE
                    run.skipped = [s.name for s in self.stages[index + 1:]]
                    if run.skipped:
                        logger.info(f"Skipping stages: {', '.join(run.skipped)}")
                    break
        finally:
            self._run_cleanup(context)

        if run.success:
            self._on_success(context, run)
        else:
            self._on_failure(run)

        return run

    def _run_stage(self, stage: Stage, context: PipelineContext) -> StageRecord:
        logger.info(f"Stage {stage.name}: started")
        start_time = time.monotonic()

        try:
            result = stage.body(context, self.executor)
        except Exception as e:
            logger.exception(f"Stage {stage.name} raised an error")
            result = StageResult.failed(f"{type(e).__name__}: {e}", FailureKind.ERROR)

        duration_ms = int((time.monotonic() - start_time) * 1000)

        if result.success:
            logger.info(f"Stage {stage.name}: succeeded in {duration_ms}ms")
        else:
            logger.error(f"Stage {stage.name}: failed ({result.kind.value}) - {result.reason}")

        return StageRecord(name=stage.name, result=result, duration_ms=duration_ms)

    def _run_cleanup(self, context: PipelineContext) -> None:
        """Always-run cleanup. Never raises, never changes the outcome."""
        try:
            result = self.cleanup_action(context, self.executor)
            if not result.success:
                logger.warning(f"Cleanup failed (ignored): {result.reason}")
        except Exception as e:
            logger.warning(f"Cleanup raised (ignored): {e}")

    def _on_success(self, context: PipelineContext, run: PipelineRun) -> None:
        try:
            run.access_url = self.access_url_resolver(context, self.executor)
        except Exception as e:
            logger.warning(f"Could not resolve access URL: {e}")

        if run.access_url:
            self.echo(f"Application is accessible at: {run.access_url}")
        else:
            self.echo(PENDING_URL_MESSAGE)

    def _on_failure(self, run: PipelineRun) -> None:
        failed = run.failed_stage
        if failed:
            logger.error(f"Pipeline failed at stage {failed.name}: {failed.result.reason}")
        self.echo(FAILURE_BANNER)
