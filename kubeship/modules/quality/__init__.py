"""
Quality Module - Black Box Interface

Purpose: Wait for the code-quality server's verdict on an analysis
Interface: QualityGateClient.wait_for_quality_gate(), read_report_task()
Hidden: Compute-engine polling, HTTP details, deadline handling

The only bounded wait in a pipeline run lives here.
"""

from .quality_gate import (
    QualityGateClient,
    QualityGateError,
    QualityGateStatus,
    QualityGateTimeoutError,
    read_report_task,
)

__all__ = [
    "QualityGateClient",
    "QualityGateError",
    "QualityGateStatus",
    "QualityGateTimeoutError",
    "read_report_task",
]
