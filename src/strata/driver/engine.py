"""
strata.driver.engine - Stack deploy engine.

Walks the registry in order (or a single target), and for each stack:
validates the template, resolves cross-stack references, creates or
updates the stack, waits for a terminal state and collects outputs.

    strata deploy -f stacks.yaml [NAME]

Validation and deployment failures are scoped to one stack: they are
recorded in the RunReport and the next stack is attempted. ConfigError
and AuthError abort the run.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from strata.aws.provider import UNRECOVERABLE_STATUSES, StackOutput
from strata.errors import ConfigError, DeploymentError, ValidationError
from strata.registry.parser import RegistrySpec, StackSpec
from strata.registry.refs import (
    PENDING,
    RefError,
    referenced_stacks,
    resolve_parameters,
)

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    PLANNED = "planned"
    VALID = "valid"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class StackResult:
    """Outcome of one stack in a run."""
    name: str
    template: str
    outcome: Outcome
    outputs: list[StackOutput] = field(default_factory=list)
    error: str | None = None
    status: str | None = None
    operation: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome not in (Outcome.FAILED, Outcome.SKIPPED)


@dataclass
class RunReport:
    """All stack results of a run, in registry order."""
    results: list[StackResult] = field(default_factory=list)

    @property
    def failed(self) -> list[StackResult]:
        return [r for r in self.results if not r.ok]

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1


class _RunState:
    """Outputs and failures shared between stacks of one run."""

    def __init__(self, provider, registry: dict[str, StackSpec]):
        self.provider = provider
        self.registry = registry
        self._lock = threading.Lock()
        self._outputs: dict[str, dict[str, str]] = {}
        self._failed: set[str] = set()
        self._planned: set[str] = set()

    def record(self, result: StackResult) -> None:
        with self._lock:
            if result.outcome is Outcome.PLANNED:
                self._planned.add(result.name)
            elif result.ok:
                self._outputs[result.name] = {o.key: o.value for o in result.outputs}
            else:
                self._failed.add(result.name)

    def failed(self, name: str) -> bool:
        with self._lock:
            return name in self._failed

    def outputs(self, name: str) -> dict[str, str] | object | None:
        """Outputs for reference resolution; PENDING for a planned stack."""
        with self._lock:
            if name in self._outputs:
                return self._outputs[name]
            if name in self._failed:
                return None
            if name in self._planned:
                return PENDING
        # Not touched by this run: read the live stack
        if self.provider.describe(name) is None:
            return None
        return {o.key: o.value for o in self.provider.outputs(name)}


def select_stacks(registry: RegistrySpec, target: str | None = None) -> list[StackSpec]:
    """Registry stacks to run, optionally filtered to one name.

    Raises:
        ConfigError: Target not in the registry
    """
    if target is None:
        return list(registry.stacks)
    spec = registry.get(target)
    if spec is None:
        raise ConfigError(
            f"Stack '{target}' not found in registry. "
            f"Available: {', '.join(registry.names()) or '(none)'}"
        )
    return [spec]


def plan_waves(stacks: list[StackSpec]) -> list[list[StackSpec]]:
    """Group stacks so each one runs after the stacks it references.

    Only references between the given stacks count; registry order is
    kept inside each wave.

    Raises:
        ConfigError: Reference cycle
    """
    by_name = {s.name: s for s in stacks}
    levels: dict[str, int] = {}

    def level(name: str, path: tuple[str, ...]) -> int:
        if name in levels:
            return levels[name]
        if name in path:
            cycle = " -> ".join(path[path.index(name):] + (name,))
            raise ConfigError(f"Reference cycle between stacks: {cycle}")
        deps = [
            d for d in referenced_stacks(by_name[name])
            if d in by_name and d != name
        ]
        levels[name] = 1 + max((level(d, path + (name,)) for d in deps), default=-1)
        return levels[name]

    for s in stacks:
        level(s.name, ())

    waves: list[list[StackSpec]] = [[] for _ in range(max(levels.values(), default=-1) + 1)]
    for s in stacks:
        waves[levels[s.name]].append(s)
    return waves


def deploy_registry(
    registry: RegistrySpec,
    provider,
    target: str | None = None,
    dry_run: bool = False,
    validate_only: bool = False,
    max_workers: int = 1,
    on_result: Callable[[StackResult], None] | None = None,
) -> RunReport:
    """Deploy the registry's stacks.

    Args:
        registry: Parsed registry
        provider: CloudFormationProvider (or a compatible fake)
        target: Only deploy this stack
        dry_run: Validate and plan create/update without submitting
        validate_only: Only run the template syntax check
        max_workers: >1 deploys independent stacks in parallel
        on_result: Called with each StackResult as it completes

    Returns:
        RunReport in registry order

    Raises:
        ConfigError: Unknown target or reference cycle
        AuthError: Credentials rejected; the run stops
    """
    stacks = select_stacks(registry, target)
    waves = plan_waves(stacks)
    state = _RunState(provider, {s.name: s for s in registry.stacks})
    results: dict[str, StackResult] = {}

    def run(spec: StackSpec) -> StackResult:
        result = _run_stack(spec, provider, state, dry_run, validate_only)
        state.record(result)
        if on_result is not None:
            on_result(result)
        return result

    if max_workers <= 1:
        # Registry order; references to later stacks read live outputs
        for spec in stacks:
            results[spec.name] = run(spec)
    else:
        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            for wave in waves:
                futures = [(s.name, pool.submit(run, s)) for s in wave]
                for name, future in futures:
                    results[name] = future.result()

    return RunReport(results=[results[s.name] for s in stacks])


def _run_stack(
    spec: StackSpec,
    provider,
    state: _RunState,
    dry_run: bool,
    validate_only: bool,
) -> StackResult:
    template = str(spec.template_path)
    result = StackResult(name=spec.name, template=template, outcome=Outcome.FAILED)

    # 1. Validate
    try:
        _validate(spec, provider)
    except ValidationError as e:
        logger.warning("Template validation failed for %s: %s", spec.name, e)
        result.error = f"Template validation failed: {e}"
        return result
    except DeploymentError as e:
        # Throttling and other provider errors
        logger.warning("Template validation errored for %s: %s", spec.name, e)
        result.error = f"Template validation errored: {e}"
        return result

    if validate_only:
        result.outcome = Outcome.VALID
        return result

    # 2. Resolve references
    blocked = [d for d in referenced_stacks(spec) if state.failed(d)]
    if blocked:
        result.outcome = Outcome.SKIPPED
        result.error = f"Skipped: referenced stack(s) failed: {', '.join(blocked)}"
        return result
    try:
        parameters = resolve_parameters(spec, state.registry, state.outputs)
    except (RefError, DeploymentError) as e:
        result.error = f"Reference error: {e}"
        return result

    # 3. Create or update, then wait
    try:
        _apply(spec, parameters, provider, result, dry_run)
    except DeploymentError as e:
        logger.warning("Deployment failed for %s: %s", spec.name, e)
        result.outcome = Outcome.FAILED
        result.error = str(e)
        result.status = e.status or result.status
    return result


def _read_template(spec: StackSpec) -> str:
    """Template body as UTF-8 text.

    Raises:
        ValidationError: Missing, unreadable or not UTF-8
    """
    if not spec.template_path.is_file():
        raise ValidationError(f"Template file not found: {spec.template_path}")
    try:
        return spec.template_path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ValidationError(f"Template {spec.template_path} is not valid UTF-8: {e}") from e
    except OSError as e:
        raise ValidationError(f"Cannot read template {spec.template_path}: {e}") from e


def _validate(spec: StackSpec, provider) -> None:
    body = _read_template(spec)
    response = provider.validate_template(body)

    required = set(response.get("Capabilities") or [])
    missing = required - set(spec.capabilities)
    if missing:
        reason = response.get("CapabilitiesReason", "")
        raise ValidationError(
            f"Template requires {', '.join(sorted(missing))}; "
            f"add it to the stack's capabilities. {reason}".strip()
        )


def _apply(
    spec: StackSpec,
    parameters: dict[str, str],
    provider,
    result: StackResult,
    dry_run: bool,
) -> None:
    status = provider.status(spec.name)

    # REVIEW_IN_PROGRESS never settles on its own
    if status is not None and status.endswith("_IN_PROGRESS") and status != "REVIEW_IN_PROGRESS":
        status = provider.wait_until_settled(spec.name)

    if status in UNRECOVERABLE_STATUSES or status == "REVIEW_IN_PROGRESS":
        raise DeploymentError(
            f"Stack '{spec.name}' is in {status} and cannot be updated; "
            f"delete it before redeploying",
            status=status,
        )

    operation = "create" if status is None else "update"
    result.operation = operation

    if dry_run:
        logger.info("Dry run: would %s %s", operation, spec.name)
        result.outcome = Outcome.PLANNED
        result.status = status
        return

    try:
        body = _read_template(spec)
    except ValidationError as e:
        raise DeploymentError(str(e)) from e
    args = (spec.name, body, parameters, spec.capabilities, spec.tags)

    if operation == "create":
        logger.info("Creating stack %s", spec.name)
        provider.create(*args)
        result.status = provider.wait(spec.name, "create")
        result.outcome = Outcome.CREATED
    else:
        logger.info("Updating stack %s", spec.name)
        if provider.update(*args) is None:
            logger.info("No updates for %s", spec.name)
            result.status = status
            result.outcome = Outcome.UNCHANGED
        else:
            result.status = provider.wait(spec.name, "update")
            result.outcome = Outcome.UPDATED

    # 4. Outputs
    result.outputs = provider.outputs(spec.name)
