"""strata.aws - CloudFormation access."""

from strata.aws.provider import CloudFormationProvider, StackOutput

__all__ = ["CloudFormationProvider", "StackOutput"]
