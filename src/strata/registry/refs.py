"""
strata.registry.refs - Cross-stack parameter references.

Parameter values can reference other stacks using the
${stack_name.field} syntax. Supported fields:

  ${stack.name}                -> stack name
  ${stack.outputs.<Key>}       -> output value of a deployed stack
  ${stack.parameters.<Key>}    -> parameter value from the registry

Example:
    stacks:
      - name: network
        template: templates/network.yaml

      - name: app
        template: templates/app.yaml
        parameters:
          VpcId: ${network.outputs.VpcId}
          Subnets: "${network.outputs.PrivateSubnetA},${network.outputs.PrivateSubnetB}"
"""

from __future__ import annotations

import re
from typing import Callable

from strata.errors import StrataError
from strata.registry.parser import StackSpec

# ${stack_name.field} or ${stack_name.outputs.Key}
_REF_PATTERN = re.compile(r"\$\{([A-Za-z][-A-Za-z0-9]*)\.([A-Za-z0-9_.:-]+)\}")

# Returned by an output lookup for a stack that is only planned (dry run);
# its output references resolve to "<stack.outputs.Key>" placeholders.
PENDING = object()

# stack name -> {output key -> value}, PENDING, or None when the stack is unknown
OutputLookup = Callable[[str], object]


class RefError(StrataError):
    """Reference resolution error."""
    pass


def referenced_stacks(spec: StackSpec) -> list[str]:
    """Names of the stacks a spec's parameters refer to, in first-seen order."""
    names: list[str] = []
    for value in spec.parameters.values():
        for match in _REF_PATTERN.finditer(value):
            if match.group(1) not in names:
                names.append(match.group(1))
    return names


def resolve_parameters(
    spec: StackSpec,
    registry: dict[str, StackSpec],
    outputs: OutputLookup,
) -> dict[str, str]:
    """Resolve all references in a stack's parameters.

    Args:
        spec: Stack whose parameters are resolved
        registry: Stack name -> StackSpec for the whole registry
        outputs: Callback returning the outputs of a stack

    Returns:
        New parameter dict with references substituted

    Raises:
        RefError: Unknown stack, field or output key
    """
    return {
        key: _resolve_string(value, spec, registry, outputs)
        for key, value in spec.parameters.items()
    }


def _resolve_string(
    value: str,
    spec: StackSpec,
    registry: dict[str, StackSpec],
    outputs: OutputLookup,
) -> str:
    """Resolve ${ref} patterns within a string."""

    def replacer(match: re.Match) -> str:
        stack_name = match.group(1)
        field_path = match.group(2)

        if stack_name == spec.name:
            raise RefError(
                f"Stack '{spec.name}' cannot reference itself: "
                f"'${{{stack_name}.{field_path}}}'"
            )
        return _get_field(stack_name, field_path, registry, outputs)

    return _REF_PATTERN.sub(replacer, value)


def _get_field(
    stack_name: str,
    field_path: str,
    registry: dict[str, StackSpec],
    outputs: OutputLookup,
) -> str:
    parts = field_path.split(".", 1)
    field = parts[0]

    if field == "name":
        return stack_name

    if field == "parameters" and len(parts) > 1:
        target = registry.get(stack_name)
        if target is None:
            raise RefError(
                f"Unknown stack reference: '${{{stack_name}.{field_path}}}'. "
                f"Available stacks: {list(registry.keys())}"
            )
        if parts[1] not in target.parameters:
            raise RefError(
                f"Stack '{stack_name}' has no parameter '{parts[1]}'"
            )
        return target.parameters[parts[1]]

    if field == "outputs" and len(parts) > 1:
        values = outputs(stack_name)
        if values is PENDING:
            return f"<{stack_name}.outputs.{parts[1]}>"
        if values is None:
            raise RefError(
                f"No outputs available for stack '{stack_name}' "
                f"(not deployed, or failed in this run)"
            )
        if parts[1] not in values:
            raise RefError(
                f"Stack '{stack_name}' has no output '{parts[1]}'. "
                f"Available: {list(values.keys())}"
            )
        return values[parts[1]]

    raise RefError(
        f"Unknown field '{field_path}' for stack '{stack_name}'. "
        f"Supported: name, outputs.<Key>, parameters.<Key>"
    )
