"""Configuration provider following Black Box Design principles."""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Protocol

import yaml


@dataclass(frozen=True)
class AwsConfig:
    """AWS account and region."""
    region: str
    account_id: Optional[str]


@dataclass(frozen=True)
class ClusterConfig:
    """Target cluster and workload names."""
    cluster_name: str
    namespace: str
    app_name: str
    service_name: str
    manifest_dir: str


@dataclass(frozen=True)
class BuildConfig:
    """Build identity."""
    repository: str
    build_number: str
    git_commit: Optional[str]
    git_branch: Optional[str]
    workspace: str


@dataclass(frozen=True)
class SonarConfig:
    """Code-quality server configuration."""
    host_url: str
    token: str
    project_key: str
    gate_timeout: float
    poll_interval: float


@dataclass(frozen=True)
class ScanConfig:
    """Image vulnerability scan configuration."""
    severity: str
    fail_on_findings: bool


@dataclass(frozen=True)
class PipelineConfig:
    """Everything a pipeline run needs before it starts."""
    aws: AwsConfig
    cluster: ClusterConfig
    build: BuildConfig
    sonar: SonarConfig
    scan: ScanConfig
    log_level: str


class ConfigProvider(Protocol):
    """Protocol for configuration providers."""

    def get_pipeline_config(self) -> PipelineConfig:
        """Get pipeline configuration."""
        ...


REQUIRED_KEYS = {
    "BUILD_NUMBER": "Build counter used as the image tag",
    "SONAR_HOST_URL": "Code-quality server base URL",
    "SONAR_TOKEN": "Code-quality server token",
}


def _as_bool(value: Optional[str], default: str = "false") -> bool:
    return (value or default).strip().lower() == "true"


class EnvConfigProvider:
    """Environment-based configuration provider."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self._environ = os.environ if environ is None else environ

    def _get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = self._environ.get(key)
        if value is None or str(value).strip() == "":
            return default
        return str(value).strip()

    def _validate_required_keys(self) -> None:
        """
        Validate that all required keys are present.

        Raises:
            ValueError: If required keys are missing
        """
        missing_keys = [key for key in REQUIRED_KEYS if self._get(key) is None]
        if missing_keys:
            raise ValueError(
                f"Missing required configuration keys: {', '.join(missing_keys)}. "
                f"Set them in the environment or the pipeline config file."
            )

    def get_pipeline_config(self) -> PipelineConfig:
        """Get pipeline configuration from environment variables."""
        self._validate_required_keys()

        app_name = self._get("APP_NAME", "my-website")

        return PipelineConfig(
            aws=AwsConfig(
                region=self._get("AWS_REGION", "us-east-1"),
                account_id=self._get("AWS_ACCOUNT_ID"),
            ),
            cluster=ClusterConfig(
                cluster_name=self._get("EKS_CLUSTER_NAME", "my-website-cluster"),
                namespace=self._get("K8S_NAMESPACE", "my-website"),
                app_name=app_name,
                service_name=self._get("SERVICE_NAME", f"{app_name}-service"),
                manifest_dir=self._get("MANIFEST_DIR", "k8s"),
            ),
            build=BuildConfig(
                repository=self._get("ECR_REPOSITORY", "my-website"),
                build_number=self._get("BUILD_NUMBER"),
                git_commit=self._get("GIT_COMMIT"),
                git_branch=self._get("GIT_BRANCH"),
                workspace=self._get("WORKSPACE", os.getcwd()),
            ),
            sonar=SonarConfig(
                host_url=self._get("SONAR_HOST_URL").rstrip("/"),
                token=self._get("SONAR_TOKEN"),
                project_key=self._get("SONAR_PROJECT_KEY", app_name),
                gate_timeout=float(self._get("QUALITY_GATE_TIMEOUT", "300")),
                poll_interval=float(self._get("QUALITY_GATE_POLL_INTERVAL", "5")),
            ),
            scan=ScanConfig(
                severity=self._get("SCAN_SEVERITY", "HIGH,CRITICAL"),
                fail_on_findings=_as_bool(self._get("SCAN_FAIL_ON_FINDINGS")),
            ),
            log_level=self._get("LOG_LEVEL", "INFO").upper(),
        )


class YamlConfigProvider:
    """YAML file overlaid on the environment.

    The file is a flat mapping using the same keys as the environment
    (``AWS_REGION``, ``BUILD_NUMBER``, ...). File values win.
    """

    def __init__(self, path: str, environ: Optional[Mapping[str, str]] = None):
        self.path = Path(path)
        self._environ = os.environ if environ is None else environ

    def _load_file(self) -> dict:
        if not self.path.exists():
            raise ValueError(f"Config file not found: {self.path}")

        try:
            with open(self.path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise ValueError(f"Config file must contain a mapping: {self.path}")

        # Null values leave the environment value in place
        return {str(key).upper(): str(value) for key, value in data.items() if value is not None}

    def get_pipeline_config(self) -> PipelineConfig:
        """Get pipeline configuration from the file and environment."""
        merged = dict(self._environ)
        merged.update(self._load_file())
        return EnvConfigProvider(merged).get_pipeline_config()
