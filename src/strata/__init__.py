"""
strata - CloudFormation stack registry deployer.

A stacks.yaml registry lists the stacks of a repository;
strata validates, creates or updates, and reports on them.
"""

from strata.errors import (
    StrataError,
    ConfigError,
    ValidationError,
    DeploymentError,
    AuthError,
)
from strata.registry import load_registry, RegistrySpec, StackSpec
from strata.aws import CloudFormationProvider, StackOutput
from strata.driver import deploy_registry, RunReport, StackResult, Outcome

__version__ = "0.1.0"

__all__ = [
    # errors
    "StrataError",
    "ConfigError",
    "ValidationError",
    "DeploymentError",
    "AuthError",
    # registry
    "load_registry",
    "RegistrySpec",
    "StackSpec",
    # provider
    "CloudFormationProvider",
    "StackOutput",
    # driver
    "deploy_registry",
    "RunReport",
    "StackResult",
    "Outcome",
]
