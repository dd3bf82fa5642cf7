"""
Kubeship - Container Delivery Pipeline for EKS

Builds, scans, pushes and rolls out a container image to a managed
Kubernetes cluster, and exposes the provisioned infrastructure outputs
the pipeline depends on.

Architecture:
- Each module is self-contained with clear interfaces
- Every external tool is invoked through the executor module
- Stage bodies never share mutable state; they read one frozen context

Modules:
- executor: External command execution
- outputs: Provisioned infrastructure lookups
- quality: Code-quality gate wait
- pipeline: Context, stages and the ordered runner
"""

__version__ = "1.0.0"
