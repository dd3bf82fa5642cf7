"""Stage and pipeline outcomes."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from kubeship.modules.executor import CommandResult


class StageStatus(Enum):
    """Outcome of a stage or of a whole run."""

    SUCCESS = "success"
    FAILURE = "failure"


class FailureKind(Enum):
    """Why a stage failed."""

    COMMAND_FAILED = "command_failed"
    QUALITY_GATE_REJECTED = "quality_gate_rejected"
    QUALITY_GATE_TIMEOUT = "quality_gate_timeout"
    ERROR = "error"


@dataclass(frozen=True)
class StageResult:
    """Explicit success | failure(reason) result of one stage body."""

    status: StageStatus
    reason: Optional[str] = None
    kind: Optional[FailureKind] = None
    commands: List[CommandResult] = field(default_factory=list)

    @classmethod
    def ok(cls, commands: Optional[List[CommandResult]] = None) -> "StageResult":
        return cls(StageStatus.SUCCESS, commands=list(commands or []))

    @classmethod
    def failed(
        cls,
        reason: str,
        kind: FailureKind = FailureKind.COMMAND_FAILED,
        commands: Optional[List[CommandResult]] = None,
    ) -> "StageResult":
        return cls(StageStatus.FAILURE, reason=reason, kind=kind, commands=list(commands or []))

    @classmethod
    def from_command(cls, result: CommandResult, commands: Optional[List[CommandResult]] = None) -> "StageResult":
        """Failure carrying the command line and its output."""
        history = list(commands or [])
        if result not in history:
            history.append(result)
        reason = f"'{result.command_line}' exited with {result.return_code}"
        if result.output:
            reason += f": {result.output}"
        return cls.failed(reason, FailureKind.COMMAND_FAILED, history)

    @property
    def success(self) -> bool:
        return self.status == StageStatus.SUCCESS


@dataclass(frozen=True)
class StageRecord:
    """A stage that was executed, with its result and duration."""

    name: str
    result: StageResult
    duration_ms: int


@dataclass
class PipelineRun:
    """Summary of one pipeline run."""

    status: StageStatus
    records: List[StageRecord] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    access_url: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == StageStatus.SUCCESS

    @property
    def executed(self) -> List[str]:
        return [record.name for record in self.records]

    @property
    def failed_stage(self) -> Optional[StageRecord]:
        for record in self.records:
            if not record.result.success:
                return record
        return None
