"""
strata.values - Merge helpers for registry overlays.

Precedence (low to high):
  stacks.yaml -> stacks.<stage>.yaml -> -f overlays -> --set key=val

Deep merge: nested dicts are merged, scalars and lists are overridden.
"""

from __future__ import annotations

import copy
from typing import Any


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dicts. Override wins.

    >>> deep_merge({"a": {"b": 1, "c": 2}}, {"a": {"b": 99}})
    {'a': {'b': 99, 'c': 2}}
    """
    result = copy.deepcopy(base)
    for key, value in override.items():
        if (
            key in result
            and isinstance(result[key], dict)
            and isinstance(value, dict)
        ):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def parse_set_values(set_args: list[str]) -> dict:
    """Convert --set key=value arguments to a nested dict.

    Values stay strings: CloudFormation parameters are strings anyway.

    >>> parse_set_values(["stacks.network.parameters.Cidr=10.0.0.0/16"])
    {'stacks': {'network': {'parameters': {'Cidr': '10.0.0.0/16'}}}}
    """
    result: dict = {}
    for arg in set_args:
        if "=" not in arg:
            raise ValueError(f"Invalid --set format: '{arg}' (expected key=value)")
        key, value = arg.split("=", 1)
        parts = key.split(".")
        if not all(parts):
            raise ValueError(f"Invalid --set key: '{key}'")
        current = result
        for part in parts[:-1]:
            node = current.setdefault(part, {})
            if not isinstance(node, dict):
                raise ValueError(f"Conflicting --set keys at '{part}'")
            current = node
        current[parts[-1]] = value
    return result


def stringify(value: Any) -> str:
    """Render a YAML scalar or list as a CloudFormation parameter string.

    >>> stringify(True)
    'true'
    >>> stringify(["a", "b"])
    'a,b'
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return ",".join(stringify(v) for v in value)
    return str(value)
