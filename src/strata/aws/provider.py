"""
strata.aws.provider - CloudFormation provider.

Thin wrapper around the boto3 CloudFormation client:
validate, describe, create, update, wait and read outputs.
botocore errors are translated to strata error kinds here and
nowhere else.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

from botocore.exceptions import ClientError, NoCredentialsError, WaiterError

from strata.errors import AuthError, DeploymentError, ValidationError

logger = logging.getLogger(__name__)

# TemplateBody limit; larger templates need TemplateURL
MAX_TEMPLATE_BODY = 51_200

AUTH_ERROR_CODES = frozenset({
    "AccessDenied",
    "AccessDeniedException",
    "ExpiredToken",
    "ExpiredTokenException",
    "InvalidClientTokenId",
    "UnrecognizedClientException",
    "SignatureDoesNotMatch",
})

NO_UPDATES_MESSAGE = "No updates are to be performed"

# Stacks in this state can only be deleted
UNRECOVERABLE_STATUSES = frozenset({"ROLLBACK_COMPLETE", "DELETE_FAILED"})


@dataclass(frozen=True)
class StackOutput:
    """One stack output as returned by DescribeStacks."""
    key: str
    value: str
    description: str = ""


class CloudFormationProvider:
    """CloudFormation API calls used by the driver."""

    def __init__(self, client: Any, poll_delay: int = 5, max_attempts: int = 720):
        self.client = client
        self.poll_delay = poll_delay
        self.max_attempts = max_attempts

    @classmethod
    def from_settings(cls, settings) -> "CloudFormationProvider":
        from strata.aws.session import make_cloudformation_client

        return cls(
            make_cloudformation_client(settings),
            poll_delay=settings.poll_delay,
            max_attempts=settings.max_attempts,
        )

    # ── validation ──────────────────────────────────

    def validate_template(self, body: str) -> dict[str, Any]:
        """Run the provider's syntax check.

        Returns:
            ValidateTemplate response (Parameters, Capabilities, ...)

        Raises:
            ValidationError: Template rejected
            AuthError: Credentials rejected
        """
        if len(body.encode("utf-8")) > MAX_TEMPLATE_BODY:
            raise ValidationError(
                f"Template body exceeds {MAX_TEMPLATE_BODY} bytes; "
                f"CloudFormation only accepts larger templates from S3"
            )
        try:
            return self.client.validate_template(TemplateBody=body)
        except ClientError as e:
            raise _translate(e, validating=True) from e
        except NoCredentialsError as e:
            raise AuthError("No AWS credentials found") from e

    # ── state ───────────────────────────────────────

    def describe(self, name: str) -> dict[str, Any] | None:
        """Describe a stack. None when it does not exist."""
        try:
            response = self.client.describe_stacks(StackName=name)
        except ClientError as e:
            if _is_missing_stack(e):
                return None
            raise _translate(e) from e
        except NoCredentialsError as e:
            raise AuthError("No AWS credentials found") from e

        stacks = response.get("Stacks", [])
        return stacks[0] if stacks else None

    def status(self, name: str) -> str | None:
        stack = self.describe(name)
        return stack["StackStatus"] if stack else None

    def outputs(self, name: str) -> list[StackOutput]:
        """Outputs of a stack, in the order the provider returns them."""
        stack = self.describe(name)
        if stack is None:
            raise DeploymentError(f"Stack '{name}' does not exist")
        return [
            StackOutput(
                key=o["OutputKey"],
                value=o.get("OutputValue", ""),
                description=o.get("Description", ""),
            )
            for o in stack.get("Outputs", [])
        ]

    def failure_events(self, name: str, limit: int = 5) -> list[str]:
        """Most recent failed resource events, as readable lines."""
        try:
            response = self.client.describe_stack_events(StackName=name)
        except ClientError as e:
            logger.debug("Cannot read events for %s: %s", name, e)
            return []

        lines = []
        for event in response.get("StackEvents", []):
            status = event.get("ResourceStatus", "")
            if not status.endswith("_FAILED"):
                continue
            reason = event.get("ResourceStatusReason", "")
            lines.append(f"{event.get('LogicalResourceId', '?')} {status}: {reason}")
            if len(lines) >= limit:
                break
        return lines

    # ── operations ──────────────────────────────────

    def create(
        self,
        name: str,
        body: str,
        parameters: dict[str, str],
        capabilities: frozenset[str] | set[str] = frozenset(),
        tags: dict[str, str] | None = None,
    ) -> str:
        """Submit CreateStack. Returns the stack id."""
        try:
            response = self.client.create_stack(
                StackName=name,
                **_stack_args(body, parameters, capabilities, tags),
            )
        except ClientError as e:
            raise _translate(e) from e
        return response["StackId"]

    def update(
        self,
        name: str,
        body: str,
        parameters: dict[str, str],
        capabilities: frozenset[str] | set[str] = frozenset(),
        tags: dict[str, str] | None = None,
    ) -> str | None:
        """Submit UpdateStack.

        Returns:
            Stack id, or None when there is nothing to update
        """
        try:
            response = self.client.update_stack(
                StackName=name,
                **_stack_args(body, parameters, capabilities, tags),
            )
        except ClientError as e:
            if NO_UPDATES_MESSAGE in _message(e):
                return None
            raise _translate(e) from e
        return response["StackId"]

    def wait(self, name: str, operation: str) -> str:
        """Block until a create or update reaches a terminal state.

        Returns:
            Final stack status

        Raises:
            DeploymentError: Stack ended in a failed state or timed out
        """
        waiter_name = {
            "create": "stack_create_complete",
            "update": "stack_update_complete",
        }[operation]

        waiter = self.client.get_waiter(waiter_name)
        try:
            waiter.wait(
                StackName=name,
                WaiterConfig={"Delay": self.poll_delay, "MaxAttempts": self.max_attempts},
            )
        except WaiterError as e:
            status = _status_from_waiter(e) or self.status(name)
            raise self._failure(name, operation, status) from e

        return self.status(name) or ""

    def wait_until_settled(self, name: str) -> str | None:
        """Wait while a stack is in any *_IN_PROGRESS state."""
        for _ in range(self.max_attempts):
            status = self.status(name)
            if status is None or not status.endswith("_IN_PROGRESS"):
                return status
            logger.info("Stack %s is %s; waiting", name, status)
            time.sleep(self.poll_delay)
        raise DeploymentError(
            f"Stack '{name}' still in progress after "
            f"{self.max_attempts * self.poll_delay}s",
            status=status,
        )

    def _failure(self, name: str, operation: str, status: str | None) -> DeploymentError:
        message = f"Stack {operation} failed for '{name}'"
        if status:
            message += f" (status {status})"
        events = self.failure_events(name)
        if events:
            message += ":\n  " + "\n  ".join(events)
        return DeploymentError(message, status=status)


def _stack_args(body, parameters, capabilities, tags) -> dict[str, Any]:
    args: dict[str, Any] = {
        "TemplateBody": body,
        "Parameters": [
            {"ParameterKey": k, "ParameterValue": v}
            for k, v in parameters.items()
        ],
        "Capabilities": sorted(capabilities),
    }
    if tags:
        args["Tags"] = [{"Key": k, "Value": v} for k, v in tags.items()]
    return args


def _message(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Message", "")


def _code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")


def _is_missing_stack(error: ClientError) -> bool:
    return _code(error) == "ValidationError" and "does not exist" in _message(error)


def _translate(error: ClientError, validating: bool = False) -> Exception:
    """Map a ClientError to a strata error kind."""
    code = _code(error)
    message = _message(error) or str(error)
    if code in AUTH_ERROR_CODES:
        return AuthError(f"{code}: {message}")
    if validating and code == "ValidationError":
        return ValidationError(message)
    return DeploymentError(f"{code}: {message}" if code else message)


def _status_from_waiter(error: WaiterError) -> str | None:
    last = error.last_response or {}
    stacks = last.get("Stacks") or []
    if stacks:
        return stacks[0].get("StackStatus")
    return None
