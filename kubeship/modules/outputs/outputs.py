#!/usr/bin/env python3
"""
Infrastructure outputs for Kubeship.

Exposes the fixed set of values that describe the provisioned cluster and
registry. Every lookup asks the source for its current value; a value that
is absent means provisioning has not completed.
"""

import json
import logging
from typing import Dict, Optional, Protocol

from kubeship.modules.executor import CommandExecutor, CommandResult

logger = logging.getLogger("kubeship.outputs")

OUTPUT_KEYS = (
    "cluster_name",
    "cluster_endpoint",
    "cluster_version",
    "ecr_repository_url",
    "configure_kubectl",
    "node_group_status",
)

# AWS error codes that mean "not provisioned (yet)"
NOT_FOUND_ERRORS = ("ResourceNotFoundException", "RepositoryNotFoundException")


class ResourceNotFoundError(LookupError):
    """Raised when an output is requested before its resource exists."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"resource not found: {key}")


class UnknownOutputError(KeyError):
    """Raised for keys outside the exported set."""


class OutputSourceError(RuntimeError):
    """Raised when the source itself cannot be queried."""


class OutputSource(Protocol):
    """Protocol for output sources."""

    def fetch(self, key: str) -> Optional[str]:
        """Return the current value for key, or None if it does not exist."""
        ...


class TerraformOutputSource:
    """Reads values from `terraform output -json`."""

    def __init__(self, executor: CommandExecutor, terraform_dir: str = "."):
        self.executor = executor
        self.terraform_dir = terraform_dir

    def _read_outputs(self) -> Dict[str, object]:
        result = self.executor.run(
            ["terraform", f"-chdir={self.terraform_dir}", "output", "-json"]
        )
        if not result.success:
            raise OutputSourceError(f"terraform output failed: {result.output}")

        try:
            outputs = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as e:
            raise OutputSourceError(f"Unparseable terraform output: {e}") from e

        return outputs or {}

    def fetch(self, key: str) -> Optional[str]:
        entry = self._read_outputs().get(key)
        if not isinstance(entry, dict):
            return None

        value = entry.get("value")
        if value is None or value == "":
            return None
        return value if isinstance(value, str) else json.dumps(value)


class AwsCliOutputSource:
    """Queries the live AWS account through the aws CLI."""

    def __init__(
        self,
        executor: CommandExecutor,
        region: str,
        cluster_name: str,
        repository: str,
        node_group_name: Optional[str] = None,
    ):
        self.executor = executor
        self.region = region
        self.cluster_name = cluster_name
        self.repository = repository
        self.node_group_name = node_group_name

    def _aws(self, *args: str) -> Optional[dict]:
        """Run an aws command; None when the resource does not exist."""
        result = self.executor.run(
            ["aws", *args, "--region", self.region, "--output", "json"]
        )
        if result.success:
            try:
                data = json.loads(result.stdout or "{}")
            except json.JSONDecodeError as e:
                raise OutputSourceError(f"Unparseable aws {args[1]} output: {e}") from e
            if not isinstance(data, dict):
                raise OutputSourceError(f"Unexpected aws {args[1]} output: {result.stdout[:200]}")
            return data
        if self._is_not_found(result):
            logger.debug(f"Not provisioned: {' '.join(args[:2])}")
            return None
        raise OutputSourceError(f"aws {' '.join(args[:2])} failed: {result.output}")

    @staticmethod
    def _is_not_found(result: CommandResult) -> bool:
        return any(code in result.stderr for code in NOT_FOUND_ERRORS)

    def _cluster(self) -> Optional[dict]:
        data = self._aws("eks", "describe-cluster", "--name", self.cluster_name)
        if not data:
            return None
        cluster = data.get("cluster", {})
        # A cluster that is still CREATING has no usable endpoint
        if cluster.get("status") != "ACTIVE":
            return None
        return cluster

    def _node_group_name(self) -> Optional[str]:
        if self.node_group_name:
            return self.node_group_name
        data = self._aws("eks", "list-nodegroups", "--cluster-name", self.cluster_name)
        nodegroups = (data or {}).get("nodegroups", [])
        return nodegroups[0] if nodegroups else None

    def fetch(self, key: str) -> Optional[str]:
        if key in ("cluster_name", "cluster_endpoint", "cluster_version"):
            cluster = self._cluster()
            if not cluster:
                return None
            field = {"cluster_name": "name", "cluster_endpoint": "endpoint", "cluster_version": "version"}[key]
            return cluster.get(field) or None

        if key == "ecr_repository_url":
            data = self._aws("ecr", "describe-repositories", "--repository-names", self.repository)
            repositories = (data or {}).get("repositories", [])
            return repositories[0].get("repositoryUri") if repositories else None

        if key == "node_group_status":
            nodegroup_name = self._node_group_name()
            if not nodegroup_name:
                return None
            data = self._aws(
                "eks",
                "describe-nodegroup",
                "--cluster-name",
                self.cluster_name,
                "--nodegroup-name",
                nodegroup_name,
            )
            return (data or {}).get("nodegroup", {}).get("status") or None

        # configure_kubectl is derived by InfrastructureOutputs
        return None


class InfrastructureOutputs:
    """Fixed key to string lookups over provisioned infrastructure."""

    def __init__(self, source: OutputSource, region: str):
        self.source = source
        self.region = region

    def get(self, key: str) -> str:
        """
        Look up one output.

        Args:
            key: One of OUTPUT_KEYS

        Returns:
            The provider's current value

        Raises:
            UnknownOutputError: key is not an exported output
            ResourceNotFoundError: provisioning has not completed
        """
        if key not in OUTPUT_KEYS:
            raise UnknownOutputError(key)

        value = self.source.fetch(key)
        if not value and key == "configure_kubectl":
            value = self._configure_kubectl()

        if not value:
            raise ResourceNotFoundError(key)
        return value

    def _configure_kubectl(self) -> Optional[str]:
        cluster_name = self.source.fetch("cluster_name")
        if not cluster_name:
            return None
        return f"aws eks --region {self.region} update-kubeconfig --name {cluster_name}"

    def as_dict(self) -> Dict[str, str]:
        """Every output whose resource exists."""
        values = {}
        for key in OUTPUT_KEYS:
            try:
                values[key] = self.get(key)
            except ResourceNotFoundError:
                continue
        return values
