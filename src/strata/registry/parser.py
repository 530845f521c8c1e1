"""
strata.registry.parser - Stack registry YAML parser.

stacks.yaml format:

    apiVersion: strata.io/v1
    kind: Registry
    metadata:
      name: platform
      region: eu-west-1
    stacks:
      - name: network
        template: templates/network.yaml
        description: Shared VPC
        parameters:
          Cidr: 10.0.0.0/16
      - name: ci-role
        template: templates/ci-role.yaml
        capabilities: [CAPABILITY_NAMED_IAM]

A bare list of stack records is accepted as well. The parser
validates every record and converts the document to a RegistrySpec.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from strata.errors import ConfigError
from strata.values import stringify


API_VERSION = "strata.io/v1"

KNOWN_CAPABILITIES = frozenset({
    "CAPABILITY_IAM",
    "CAPABILITY_NAMED_IAM",
    "CAPABILITY_AUTO_EXPAND",
})

# CloudFormation stack name rule
_STACK_NAME = re.compile(r"^[A-Za-z][-A-Za-z0-9]{0,127}$")


@dataclass(frozen=True)
class StackSpec:
    """A single registry record."""
    name: str
    template_path: Path
    capabilities: frozenset[str] = frozenset()
    parameters: dict[str, str] = field(default_factory=dict)
    description: str = ""
    tags: dict[str, str] = field(default_factory=dict)


@dataclass
class RegistrySpec:
    """Parsed registry document."""
    stacks: list[StackSpec] = field(default_factory=list)
    name: str | None = None
    region: str | None = None
    base_dir: Path = field(default_factory=Path)
    raw: Any = None

    def names(self) -> list[str]:
        return [s.name for s in self.stacks]

    def get(self, name: str) -> StackSpec | None:
        for s in self.stacks:
            if s.name == name:
                return s
        return None


class StackParseError(ConfigError):
    """Registry parse error."""
    pass


def parse_registry_file(path: str | Path) -> RegistrySpec:
    """Parse a stacks.yaml file.

    Args:
        path: Path to stacks.yaml

    Returns:
        RegistrySpec object

    Raises:
        StackParseError: Format error
        FileNotFoundError: File not found
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Registry file not found: {p}")

    with open(p) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise StackParseError(f"Invalid YAML in {p}: {e}") from e

    return parse_registry_data(data, base_dir=p.parent)


def parse_registry_data(data: Any, base_dir: str | Path = ".") -> RegistrySpec:
    """Create a RegistrySpec from a loaded document.

    Args:
        data: stacks.yaml content (mapping or list)
        base_dir: Directory relative template paths resolve against

    Returns:
        RegistrySpec object
    """
    if isinstance(data, list):
        records = data
        metadata: dict = {}
    elif isinstance(data, dict):
        api_version = data.get("apiVersion", "")
        if api_version and api_version != API_VERSION:
            raise StackParseError(
                f"Unsupported apiVersion: '{api_version}'. Expected '{API_VERSION}'"
            )

        kind = data.get("kind", "")
        if kind and kind != "Registry":
            raise StackParseError(
                f"Unsupported kind: '{kind}'. Expected 'Registry'"
            )

        metadata = data.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise StackParseError("metadata must be a mapping")

        records = data.get("stacks", [])
        if not isinstance(records, list):
            raise StackParseError("stacks must be a list")
    else:
        raise StackParseError(
            f"Registry must be a YAML mapping or list, got {type(data).__name__}"
        )

    base = Path(base_dir)
    stacks: list[StackSpec] = []
    seen_names: set[str] = set()

    for i, record in enumerate(records):
        spec = _parse_record(record, i, base)
        if spec.name in seen_names:
            raise StackParseError(f"Duplicate stack name: '{spec.name}'")
        seen_names.add(spec.name)
        stacks.append(spec)

    return RegistrySpec(
        stacks=stacks,
        name=metadata.get("name"),
        region=metadata.get("region"),
        base_dir=base,
        raw=data,
    )


def _parse_record(record: Any, i: int, base: Path) -> StackSpec:
    if not isinstance(record, dict):
        raise StackParseError(f"stacks[{i}] must be a mapping")

    name = record.get("name")
    if not name:
        raise StackParseError(f"stacks[{i}].name is required")
    name = str(name)
    if not _STACK_NAME.match(name):
        raise StackParseError(
            f"stacks[{i}].name '{name}' is not a valid stack name "
            f"(letters, digits and hyphens, starting with a letter, max 128)"
        )

    template = record.get("template")
    if not template:
        raise StackParseError(f"stacks[{i}].template is required")
    template_path = Path(str(template))
    if not template_path.is_absolute():
        template_path = base / template_path

    capabilities = record.get("capabilities") or []
    if not isinstance(capabilities, list):
        raise StackParseError(f"stacks[{i}].capabilities must be a list")
    for j, c in enumerate(capabilities):
        if not isinstance(c, str):
            raise StackParseError(
                f"stacks[{i}].capabilities[{j}] must be a string, got {type(c).__name__}"
            )
    unknown = [c for c in capabilities if c not in KNOWN_CAPABILITIES]
    if unknown:
        raise StackParseError(
            f"stacks[{i}].capabilities: unknown value(s) {unknown}. "
            f"Allowed: {sorted(KNOWN_CAPABILITIES)}"
        )

    description = record.get("description") or ""

    return StackSpec(
        name=name,
        template_path=template_path,
        capabilities=frozenset(capabilities),
        parameters=_string_map(record.get("parameters"), f"stacks[{i}].parameters"),
        description=str(description),
        tags=_string_map(record.get("tags"), f"stacks[{i}].tags"),
    )


def _string_map(value: Any, where: str) -> dict[str, str]:
    """Validate a key/value mapping and stringify its values."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise StackParseError(f"{where} must be a mapping")

    result: dict[str, str] = {}
    for key, item in value.items():
        if isinstance(item, dict):
            raise StackParseError(f"{where}.{key} must be a scalar or list")
        result[str(key)] = stringify(item)
    return result
