"""
strata.registry.merger - Registry overlay merger.

Deep merges multiple -f files:
  strata deploy -f stacks.yaml -f stacks.prod.yaml --set ...

Merge strategy:
  - First file must be the base registry (list or mapping with stacks)
  - Subsequent files are overlays matched by stack name
  - --set is applied last

Overlay format:
    stacks:
      network:              # matches by stack name
        parameters:
          Cidr: 10.20.0.0/16
      ci-role:
        tags:
          env: prod
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from strata.errors import ConfigError
from strata.values import deep_merge, parse_set_values


def merge_registry_files(file_paths: list[str | Path]) -> dict[str, Any]:
    """Merge multiple registry/overlay files.

    The first file must be a complete registry.
    Subsequent files can override stack fields.

    Args:
        file_paths: File paths list (in precedence order)

    Returns:
        Merged registry dict (always the mapping form)
    """
    if not file_paths:
        raise ConfigError("At least one registry file is required")

    base = _normalize(_load_yaml(file_paths[0]), file_paths[0])

    for fp in file_paths[1:]:
        overlay = _load_yaml(fp)
        if not isinstance(overlay, dict):
            raise ConfigError(f"Overlay must be a YAML mapping: {fp}")
        base = _merge_overlay(base, overlay)

    return base


def apply_set_args(data: dict[str, Any], set_args: list[str]) -> dict[str, Any]:
    """Apply --set arguments to the merged registry.

    Format: stacks.<name>.<field>[.<key>]=<value>

    Example:
      --set stacks.network.parameters.Cidr=10.1.0.0/16
      --set stacks.app.tags.owner=payments
    """
    if not set_args:
        return data

    try:
        overrides = parse_set_values(set_args)
    except ValueError as e:
        raise ConfigError(str(e)) from e

    unsupported = [k for k in overrides if k != "stacks"]
    if unsupported:
        raise ConfigError(
            f"--set only supports 'stacks.<name>...' keys, got: {unsupported}"
        )

    for name, fields in overrides.get("stacks", {}).items():
        if not isinstance(fields, dict):
            raise ConfigError(f"--set stacks.{name} needs a field, e.g. "
                              f"stacks.{name}.parameters.Key=Value")
        if _find(data["stacks"], name) is None:
            raise ConfigError(f"--set refers to unknown stack '{name}'")

    return _merge_overlay(data, {"stacks": overrides.get("stacks", {})})


def _load_yaml(path: str | Path) -> Any:
    """Read a YAML file."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"File not found: {p}")
    with open(p) as f:
        try:
            return yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {p}: {e}") from e


def _normalize(data: Any, path: str | Path) -> dict[str, Any]:
    """Turn a bare list registry into the mapping form."""
    if isinstance(data, list):
        return {"stacks": data}
    if isinstance(data, dict):
        result = dict(data)
        result.setdefault("stacks", [])
        return result
    raise ConfigError(f"Expected YAML mapping or list in {path}")


def _merge_overlay(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Apply an overlay to the base registry.

    The overlay supports two formats:

    Format 1 - stacks list (matched by name, new names appended):
        stacks:
          - name: network
            parameters:
              Cidr: 10.20.0.0/16

    Format 2 - name -> fields mapping:
        stacks:
          network:
            parameters:
              Cidr: 10.20.0.0/16
    """
    result = dict(base)

    if "metadata" in overlay:
        result["metadata"] = deep_merge(
            result.get("metadata") or {},
            overlay["metadata"] or {},
        )

    if "stacks" not in overlay:
        return result

    overlay_stacks = overlay["stacks"]
    base_stacks = result.get("stacks") or []

    if isinstance(overlay_stacks, dict):
        result["stacks"] = _merge_stacks_dict(base_stacks, overlay_stacks)
    elif isinstance(overlay_stacks, list):
        result["stacks"] = _merge_stacks_list(base_stacks, overlay_stacks)
    else:
        raise ConfigError("Overlay 'stacks' must be a list or a mapping")

    return result


def _merge_stacks_dict(
    base_stacks: list[dict],
    overlay_map: dict[str, dict],
) -> list[dict]:
    """Mapping overlay: name -> fields merge. Unknown names are errors."""
    known = {_name_of(s) for s in base_stacks}
    missing = [n for n in overlay_map if n not in known]
    if missing:
        raise ConfigError(
            f"Overlay refers to unknown stack(s) {missing}. "
            f"Use the list format to add new stacks."
        )

    result = []
    for stack in base_stacks:
        name = _name_of(stack)
        if name in overlay_map and isinstance(stack, dict):
            result.append(deep_merge(stack, overlay_map[name] or {}))
        else:
            result.append(stack)
    return result


def _merge_stacks_list(
    base_stacks: list[dict],
    overlay_stacks: list[dict],
) -> list[dict]:
    """List overlay: match by name and merge, preserving base order."""
    result = list(base_stacks)
    for stack in overlay_stacks:
        name = _name_of(stack)
        idx = _find(result, name) if name else None
        if idx is None:
            result.append(stack)
        else:
            result[idx] = deep_merge(result[idx], stack)
    return result


def _find(stacks: list, name: str) -> int | None:
    for i, stack in enumerate(stacks):
        if _name_of(stack) == name:
            return i
    return None


def _name_of(stack: Any) -> str | None:
    if isinstance(stack, dict) and stack.get("name"):
        return str(stack["name"])
    return None
