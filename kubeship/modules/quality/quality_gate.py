#!/usr/bin/env python3
"""
Quality Gate client for Kubeship.

After the scanner uploads an analysis, the server processes it in a
background compute-engine task. This client polls that task until it
finishes, then reads the quality gate status for the resulting analysis.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import requests

logger = logging.getLogger("kubeship.quality")

# Compute-engine task states
FAILED_STATES = {"FAILED", "CANCELED"}

# Floor for the last request before the deadline; requests rejects 0
MIN_REQUEST_TIMEOUT = 0.001

REPORT_TASK_PATH = Path(".scannerwork") / "report-task.txt"


class QualityGateError(Exception):
    """Raised when the analysis cannot produce a gate verdict."""


class QualityGateTimeoutError(QualityGateError):
    """Raised when no verdict arrives before the deadline."""

    def __init__(self, task_id: str, timeout: float):
        self.task_id = task_id
        self.timeout = timeout
        super().__init__(f"No quality gate result for task {task_id} within {timeout:.0f}s")


@dataclass
class QualityGateStatus:
    """Quality gate verdict for one analysis."""

    status: str
    analysis_id: str
    conditions: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.status == "OK"

    def failed_conditions(self) -> List[str]:
        """Human readable summary of failing conditions."""
        return [
            f"{c.get('metricKey')} is {c.get('actualValue')} (threshold {c.get('errorThreshold')})"
            for c in self.conditions
            if c.get("status") == "ERROR"
        ]


def read_report_task(workspace: str) -> Dict[str, str]:
    """
    Parse the scanner's report-task.txt.

    Args:
        workspace: Directory the scanner ran in

    Returns:
        key=value pairs (ceTaskId, ceTaskUrl, serverUrl, projectKey, ...)

    Raises:
        QualityGateError: If the report file is missing or has no task id
    """
    path = Path(workspace) / REPORT_TASK_PATH
    if not path.exists():
        raise QualityGateError(f"Scanner report not found: {path}")

    values = {}
    with open(path, "r") as f:
        for line in f:
            line = line.strip()
            if not line or "=" not in line:
                continue
            key, _, value = line.partition("=")
            values[key.strip()] = value.strip()

    if not values.get("ceTaskId"):
        raise QualityGateError(f"No ceTaskId in {path}")

    return values


class QualityGateClient:
    """Polls the code-quality server for a quality gate verdict."""

    def __init__(
        self,
        host_url: str,
        token: str,
        session: Optional[requests.Session] = None,
        request_timeout: float = 10,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize client.

        Args:
            host_url: Server base URL
            token: User token, sent as the basic-auth username
            session: Optional requests session (injected in tests)
            request_timeout: Per-request timeout in seconds
            clock: Monotonic time source
            sleep: Sleep function used between polls
        """
        self.host_url = host_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.auth = (token, "")
        self.request_timeout = request_timeout
        self._clock = clock
        self._sleep = sleep

    def _get(
        self, path: str, params: Dict[str, str], deadline: Optional[float] = None
    ) -> Dict[str, Any]:
        timeout = self.request_timeout
        if deadline is not None:
            # A request never outlives the overall wait
            timeout = min(timeout, max(deadline - self._clock(), MIN_REQUEST_TIMEOUT))
        response = self.session.get(f"{self.host_url}{path}", params=params, timeout=timeout)
        response.raise_for_status()
        return response.json()

    def get_task(self, task_id: str, deadline: Optional[float] = None) -> Dict[str, Any]:
        return self._get("/api/ce/task", {"id": task_id}, deadline).get("task", {})

    def get_project_status(
        self, analysis_id: str, deadline: Optional[float] = None
    ) -> QualityGateStatus:
        data = self._get(
            "/api/qualitygates/project_status", {"analysisId": analysis_id}, deadline
        )
        project_status = data.get("projectStatus", {})
        return QualityGateStatus(
            status=project_status.get("status", "NONE"),
            analysis_id=analysis_id,
            conditions=project_status.get("conditions", []),
        )

    def wait_for_quality_gate(
        self, task_id: str, timeout: float = 300, poll_interval: float = 5
    ) -> QualityGateStatus:
        """
        Block until the analysis task finishes and return its gate verdict.

        Args:
            task_id: Compute-engine task id from report-task.txt
            timeout: Seconds to wait before giving up
            poll_interval: Seconds between polls

        Returns:
            QualityGateStatus for the finished analysis

        Raises:
            QualityGateTimeoutError: No verdict within timeout
            QualityGateError: The analysis task failed or was cancelled
        """
        deadline = self._clock() + timeout
        logger.info(f"Waiting up to {timeout:.0f}s for quality gate (task {task_id})")

        while True:
            try:
                task = self.get_task(task_id, deadline)
                status = task.get("status")

                if status == "SUCCESS":
                    analysis_id = task.get("analysisId")
                    if not analysis_id:
                        raise QualityGateError(f"Analysis task {task_id} has no analysisId")
                    verdict = self.get_project_status(analysis_id, deadline)
                    logger.info(f"Quality gate status: {verdict.status}")
                    return verdict

                if status in FAILED_STATES:
                    raise QualityGateError(
                        f"Analysis task {task_id} ended with {status}: "
                        f"{task.get('errorMessage', 'no details')}"
                    )

                logger.debug(f"Analysis task {task_id} is {status}")

            except requests.RequestException as e:
                # Transient server errors do not end the wait, the deadline does
                logger.warning(f"Quality gate poll failed: {e}")

            remaining = deadline - self._clock()
            if remaining <= 0:
                raise QualityGateTimeoutError(task_id, timeout)
            self._sleep(min(poll_interval, remaining))
