"""
Shared pytest fixtures for Kubeship tests.

This module provides common fixtures including:
- CommandMocker: Mock subprocess calls (git, docker, aws, kubectl, ...) with canned responses
- A ready-made PipelineContext for stage and runner tests
"""

import os
import sys
from dataclasses import dataclass
from typing import Dict, List, Optional, Pattern, Union
from unittest.mock import MagicMock, patch

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from kubeship.config.provider import ScanConfig, SonarConfig
from kubeship.logging_config import clear_secrets
from kubeship.modules.pipeline import PipelineContext


# =============================================================================
# Command Mocking Infrastructure
# =============================================================================

@dataclass
class CommandResponse:
    """Represents a mocked command response."""
    stdout: str = ""
    stderr: str = ""
    returncode: int = 0

    def to_completed_process(self) -> MagicMock:
        """Convert to a subprocess.CompletedProcess-like mock."""
        result = MagicMock()
        result.stdout = self.stdout
        result.stderr = self.stderr
        result.returncode = self.returncode
        return result


@dataclass
class CommandCall:
    """Record of a command made during testing."""
    command: List[str]
    full_command_str: str
    input: Optional[str] = None
    env: Optional[Dict[str, str]] = None
    matched_pattern: Optional[str] = None


class CommandMocker:
    """
    Mock subprocess.run with pattern-matched responses.

    Unmatched commands succeed with empty output unless a default
    response is set.

    Usage:
        def test_push(command_mocker):
            command_mocker.register("docker push", CommandResponse(returncode=1))
            ...
            assert command_mocker.was_called_with("docker push")
    """

    def __init__(self):
        self._responses = []
        self._call_history: List[CommandCall] = []
        self._default_response = CommandResponse()

    def register(
        self,
        pattern: Union[str, Pattern],
        response: CommandResponse,
        priority: int = 0
    ) -> "CommandMocker":
        """
        Register a response for commands matching the pattern.

        Args:
            pattern: String (substring match) or regex pattern
            response: CommandResponse to return when matched
            priority: Higher priority patterns are checked first

        Returns:
            self for chaining
        """
        self._responses.append((pattern, response, priority))
        self._responses.sort(key=lambda x: x[2], reverse=True)
        return self

    def set_default_response(self, response: CommandResponse) -> "CommandMocker":
        """Set the default response for unmatched commands."""
        self._default_response = response
        return self

    def mock_run(self, cmd: List[str], input: Optional[str] = None, env=None, **kwargs) -> MagicMock:
        """Side effect for patching subprocess.run."""
        cmd_str = " ".join(cmd)
        matched_pattern = None
        response = self._default_response

        for pattern, resp, _ in self._responses:
            if isinstance(pattern, str):
                if pattern in cmd_str:
                    matched_pattern = pattern
                    response = resp
                    break
            elif pattern.search(cmd_str):
                matched_pattern = pattern.pattern
                response = resp
                break

        self._call_history.append(
            CommandCall(
                command=list(cmd),
                full_command_str=cmd_str,
                input=input,
                env=env,
                matched_pattern=matched_pattern,
            )
        )
        return response.to_completed_process()

    @property
    def calls(self) -> List[CommandCall]:
        return self._call_history

    @property
    def call_count(self) -> int:
        return len(self._call_history)

    @property
    def programs(self) -> List[str]:
        """First two words of every call, e.g. 'docker push'."""
        return [" ".join(call.command[:2]) for call in self._call_history]

    def was_called_with(self, pattern: str) -> bool:
        return any(pattern in call.full_command_str for call in self._call_history)

    def get_calls_matching(self, pattern: str) -> List[CommandCall]:
        return [c for c in self._call_history if pattern in c.full_command_str]

    def reset(self):
        """Clear call history (but keep registered responses)."""
        self._call_history = []


@pytest.fixture
def command_mocker():
    """CommandMocker with subprocess.run patched."""
    mocker = CommandMocker()
    with patch("subprocess.run", side_effect=mocker.mock_run):
        yield mocker


# =============================================================================
# Pipeline fixtures
# =============================================================================

def make_context(workspace: str = "/tmp/workspace", **overrides) -> PipelineContext:
    """PipelineContext with the reference values used across tests."""
    values = dict(
        aws_region="us-east-1",
        aws_account_id="111111111111",
        ecr_repository="my-website",
        image_tag="42",
        git_commit="0123456789abcdef0123456789abcdef01234567",
        git_branch="main",
        cluster_name="my-website-cluster",
        namespace="my-website",
        app_name="my-website",
        service_name="my-website-service",
        manifest_dir="k8s",
        workspace=workspace,
        sonar=SonarConfig(
            host_url="http://sonar.example.com",
            token="sonar-secret-token",
            project_key="my-website",
            gate_timeout=300,
            poll_interval=5,
        ),
        scan=ScanConfig(severity="HIGH,CRITICAL", fail_on_findings=False),
    )
    values.update(overrides)
    return PipelineContext(**values)


@pytest.fixture
def pipeline_context(tmp_path) -> PipelineContext:
    return make_context(workspace=str(tmp_path))


@pytest.fixture(autouse=True)
def _reset_secrets():
    yield
    clear_secrets()


# =============================================================================
# Test Markers Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "command_mock: Tests using mocked subprocess calls"
    )
