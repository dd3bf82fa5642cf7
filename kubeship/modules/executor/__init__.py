"""
Executor Module - Black Box Interface

Purpose: Run external tools (git, docker, aws, kubectl, terraform, trivy)
Interface: CommandExecutor.run() returning a CommandResult
Hidden: subprocess handling, environment merging, missing-binary mapping

Can be replaced with a remote runner or a dry-run recorder.
"""

from .executor import CommandExecutor, CommandResult

__all__ = ["CommandExecutor", "CommandResult"]
