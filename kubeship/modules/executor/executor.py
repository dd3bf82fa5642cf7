#!/usr/bin/env python3
"""
Command Executor for Kubeship.

Runs external tools as argument lists and reports their outcome as a
CommandResult. Non-zero exits are data, not exceptions.
"""

import logging
import os
import subprocess
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

logger = logging.getLogger("kubeship.executor")

# Shell convention for "command not found"
MISSING_BINARY_RETURN_CODE = 127


@dataclass(frozen=True)
class CommandResult:
    """Outcome of a single external command."""

    args: List[str]
    return_code: int
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return self.return_code == 0

    @property
    def output(self) -> str:
        """Combined stdout and stderr."""
        output = self.stdout
        if self.stderr:
            output += "\n" + self.stderr
        return output.strip()

    @property
    def command_line(self) -> str:
        return " ".join(self.args)


class CommandExecutor:
    """Executes external commands without a shell."""

    def __init__(self, cwd: Optional[str] = None, env: Optional[Dict[str, str]] = None):
        """
        Initialize executor.

        Args:
            cwd: Working directory for every command (defaults to the process cwd)
            env: Extra environment variables layered over os.environ
        """
        self.cwd = cwd
        self.env = dict(env or {})

    def run(
        self,
        args: Sequence[str],
        input: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        """
        Execute a command.

        Args:
            args: Program followed by its arguments
            input: Text written to the command's stdin
            env: Per-call environment additions (e.g. credentials kept off argv)
            timeout: Optional hard limit in seconds

        Returns:
            CommandResult with captured output and return code
        """
        cmd = [str(arg) for arg in args]
        logger.debug(f"Running: {' '.join(cmd)}")

        start_time = time.monotonic()
        try:
            process = subprocess.run(
                cmd,
                input=input,
                capture_output=True,
                text=True,
                cwd=self.cwd,
                env=self._build_env(env),
                timeout=timeout,
            )
        except FileNotFoundError:
            logger.error(f"Executable not found: {cmd[0]}")
            return CommandResult(
                args=cmd,
                return_code=MISSING_BINARY_RETURN_CODE,
                stderr=f"{cmd[0]}: command not found",
                duration_ms=self._elapsed_ms(start_time),
            )
        except subprocess.TimeoutExpired:
            logger.error(f"Command timed out after {timeout}s: {cmd[0]}")
            return CommandResult(
                args=cmd,
                return_code=-1,
                stderr="Command timed out",
                duration_ms=self._elapsed_ms(start_time),
            )

        result = CommandResult(
            args=cmd,
            return_code=process.returncode,
            stdout=process.stdout or "",
            stderr=process.stderr or "",
            duration_ms=self._elapsed_ms(start_time),
        )

        if result.success:
            logger.debug(f"Command succeeded in {result.duration_ms}ms: {cmd[0]}")
        else:
            logger.warning(f"Command exited with {result.return_code}: {result.command_line}")

        return result

    def _build_env(self, extra: Optional[Dict[str, str]]) -> Optional[Dict[str, str]]:
        if not self.env and not extra:
            return None
        merged = dict(os.environ)
        merged.update(self.env)
        if extra:
            merged.update(extra)
        return merged

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return int((time.monotonic() - start_time) * 1000)
