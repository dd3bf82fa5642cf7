"""
Pipeline Module - Black Box Interface

Purpose: Run the fixed delivery pipeline against one frozen context
Interface: build_context(), PipelineRunner.run(), default_stages()
Hidden: Command construction, manifest rendering, post-action ordering

Stage order is fixed by declaration order and never changes at run time.
"""

from .context import ContextError, PipelineContext, build_context, image_reference
from .result import FailureKind, PipelineRun, StageRecord, StageResult, StageStatus
from .runner import FAILURE_BANNER, PipelineRunner
from .stages import STAGE_NAMES, Stage, default_stages

__all__ = [
    "FAILURE_BANNER",
    "STAGE_NAMES",
    "ContextError",
    "FailureKind",
    "PipelineContext",
    "PipelineRun",
    "PipelineRunner",
    "Stage",
    "StageRecord",
    "StageResult",
    "StageStatus",
    "build_context",
    "default_stages",
    "image_reference",
]
