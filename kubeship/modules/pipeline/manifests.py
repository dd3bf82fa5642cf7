"""
Kubernetes manifest rendering.

Sets the image of the application's containers by editing parsed YAML,
never by text substitution.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List

import yaml

logger = logging.getLogger("kubeship.pipeline.manifests")

MANIFEST_SUFFIXES = (".yaml", ".yml")

# Workload kinds whose pod template carries containers
WORKLOAD_KINDS = {"Deployment", "StatefulSet", "DaemonSet", "ReplicaSet", "Job"}


class ManifestError(ValueError):
    """Raised for unreadable manifests or a missing application container."""


def load_manifests(manifest_dir: Path) -> List[Dict[str, Any]]:
    """Load every YAML document under manifest_dir in file name order."""
    if not manifest_dir.is_dir():
        raise ManifestError(f"Manifest directory not found: {manifest_dir}")

    documents = []
    for path in sorted(manifest_dir.iterdir()):
        if path.suffix not in MANIFEST_SUFFIXES:
            continue
        try:
            with open(path, "r") as f:
                loaded = [doc for doc in yaml.safe_load_all(f) if doc]
        except yaml.YAMLError as e:
            raise ManifestError(f"Invalid YAML in {path.name}: {e}") from e

        if any(not isinstance(doc, dict) for doc in loaded):
            raise ManifestError(f"{path.name} contains a document that is not a mapping")
        documents.extend(loaded)

    if not documents:
        raise ManifestError(f"No manifests found in {manifest_dir}")
    return documents


def set_container_image(documents: List[Dict[str, Any]], container_name: str, image: str) -> int:
    """
    Point every container named container_name at image.

    Returns:
        Number of containers updated
    """
    updated = 0
    for doc in documents:
        if doc.get("kind") not in WORKLOAD_KINDS:
            continue
        # Keys written with no value (``containers:``) parse as None
        template = (doc.get("spec") or {}).get("template") or {}
        pod_spec = template.get("spec") or {}
        for container in (pod_spec.get("containers") or []) + (pod_spec.get("initContainers") or []):
            if isinstance(container, dict) and container.get("name") == container_name:
                logger.debug(f"{doc['kind']}/{(doc.get('metadata') or {}).get('name')}: {container_name} -> {image}")
                container["image"] = image
                updated += 1
    return updated


def render_manifests(manifest_dir: Path, container_name: str, image: str) -> str:
    """
    Load, retarget and serialise the manifests for `kubectl apply -f -`.

    Raises:
        ManifestError: If no container named container_name exists
    """
    documents = load_manifests(manifest_dir)
    if set_container_image(documents, container_name, image) == 0:
        raise ManifestError(f"No container named '{container_name}' in {manifest_dir}")
    return yaml.safe_dump_all(documents, sort_keys=False)
