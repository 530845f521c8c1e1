"""strata.driver - Deployment driver."""

from strata.driver.engine import (
    deploy_registry,
    select_stacks,
    plan_waves,
    Outcome,
    StackResult,
    RunReport,
)

__all__ = [
    "deploy_registry",
    "select_stacks",
    "plan_waves",
    "Outcome",
    "StackResult",
    "RunReport",
]
