"""
tests/conftest.py - Shared fixtures.

FakeProvider stands in for CloudFormationProvider: an in-memory
stack namespace that records every call.
"""

import os
import sys

import pytest
import yaml

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from strata.errors import AuthError, DeploymentError, ValidationError


class FakeProvider:
    """In-memory CloudFormation.

    Template bodies drive validation:
      "INVALID"        -> ValidationError
      "AWS::IAM::Role" -> requires CAPABILITY_IAM
      "THROTTLE"       -> DeploymentError (provider-side error)
    """

    def __init__(self, outputs=None, fail_deploy=(), auth_fail=False):
        self.stacks: dict[str, dict] = {}
        self.outputs_for = dict(outputs or {})
        self.fail_deploy = set(fail_deploy)
        self.auth_fail = auth_fail
        self.calls: list[tuple[str, str]] = []
        # stack name -> status reached by wait_until_settled
        self.settle_to: dict[str, str] = {}

    # helpers
    def seed(self, name, status="CREATE_COMPLETE", body="", parameters=None, outputs=None):
        self.stacks[name] = {
            "status": status,
            "body": body,
            "parameters": dict(parameters or {}),
            "outputs": list(outputs or []),
        }

    def deploy_calls(self):
        return [c for c in self.calls if c[0] in ("create", "update")]

    # provider interface
    def validate_template(self, body):
        self.calls.append(("validate", body))
        if self.auth_fail:
            raise AuthError("ExpiredToken: token expired")
        if "INVALID" in body:
            raise ValidationError("Template format error: unsupported structure")
        if "THROTTLE" in body:
            raise DeploymentError("Throttling: Rate exceeded")
        if "AWS::IAM::Role" in body:
            return {"Capabilities": ["CAPABILITY_IAM"],
                    "CapabilitiesReason": "The following resource(s) require capabilities"}
        return {"Parameters": []}

    def describe(self, name):
        stack = self.stacks.get(name)
        if stack is None:
            return None
        return {"StackName": name, "StackStatus": stack["status"]}

    def status(self, name):
        stack = self.stacks.get(name)
        return stack["status"] if stack else None

    def outputs(self, name):
        if name not in self.stacks:
            raise DeploymentError(f"Stack '{name}' does not exist")
        return list(self.stacks[name]["outputs"])

    def create(self, name, body, parameters, capabilities=frozenset(), tags=None):
        self.calls.append(("create", name))
        self.stacks[name] = {
            "status": "CREATE_IN_PROGRESS",
            "body": body,
            "parameters": dict(parameters),
            "outputs": list(self.outputs_for.get(name, [])),
        }
        return f"arn:aws:cloudformation:eu-west-1:123456789012:stack/{name}/1"

    def update(self, name, body, parameters, capabilities=frozenset(), tags=None):
        self.calls.append(("update", name))
        stack = self.stacks[name]
        if stack["body"] == body and stack["parameters"] == dict(parameters):
            return None
        stack.update(status="UPDATE_IN_PROGRESS", body=body, parameters=dict(parameters))
        if name in self.outputs_for:
            stack["outputs"] = list(self.outputs_for[name])
        return f"arn:aws:cloudformation:eu-west-1:123456789012:stack/{name}/1"

    def wait(self, name, operation):
        self.calls.append(("wait", name))
        if name in self.fail_deploy:
            status = "ROLLBACK_COMPLETE" if operation == "create" else "UPDATE_ROLLBACK_COMPLETE"
            self.stacks[name]["status"] = status
            raise DeploymentError(
                f"Stack {operation} failed for '{name}' (status {status})",
                status=status,
            )
        status = "CREATE_COMPLETE" if operation == "create" else "UPDATE_COMPLETE"
        self.stacks[name]["status"] = status
        return status

    def wait_until_settled(self, name):
        self.calls.append(("settle", name))
        status = self.stacks[name]["status"]
        self.stacks[name]["status"] = self.settle_to.get(
            name, status.replace("_IN_PROGRESS", "_COMPLETE"))
        return self.stacks[name]["status"]


@pytest.fixture
def provider():
    return FakeProvider()


def write_templates(tmp_path, templates):
    """Write template bodies under tmp_path/templates."""
    tdir = tmp_path / "templates"
    tdir.mkdir(exist_ok=True)
    for name, body in templates.items():
        (tdir / name).write_text(body)


def write_registry(tmp_path, data, filename="stacks.yaml"):
    path = tmp_path / filename
    with open(path, "w") as f:
        yaml.dump(data, f, sort_keys=False)
    return path


SIMPLE_TEMPLATE = 'AWSTemplateFormatVersion: "2010-09-09"\nResources: {}\n'
