"""
Outputs Module - Black Box Interface

Purpose: Surface named attributes of provisioned infrastructure
Interface: InfrastructureOutputs.get(), as_dict()
Hidden: Where values come from (Terraform state, live AWS API)

Can be replaced with any source that reports the same keys.
"""

from .outputs import (
    OUTPUT_KEYS,
    AwsCliOutputSource,
    InfrastructureOutputs,
    OutputSource,
    OutputSourceError,
    ResourceNotFoundError,
    TerraformOutputSource,
    UnknownOutputError,
)

__all__ = [
    "OUTPUT_KEYS",
    "AwsCliOutputSource",
    "InfrastructureOutputs",
    "OutputSource",
    "OutputSourceError",
    "ResourceNotFoundError",
    "TerraformOutputSource",
    "UnknownOutputError",
]
