"""
strata.registry.loader - Load a registry from files.

Merges the base registry with its overlays, applies --set,
then parses the result:

    strata deploy -f stacks.yaml -f stacks.prod.yaml --set ...
"""

from __future__ import annotations

from pathlib import Path

from strata.registry.merger import merge_registry_files, apply_set_args
from strata.registry.parser import RegistrySpec, parse_registry_data


def load_registry(
    file_paths: list[str | Path],
    set_args: list[str] | None = None,
) -> RegistrySpec:
    """Load and parse a registry.

    Args:
        file_paths: Base registry + overlay files
        set_args: --set key=value list

    Returns:
        RegistrySpec; relative templates resolve against the base file

    Raises:
        ConfigError: Malformed document or overrides
        FileNotFoundError: A file is missing
    """
    data = merge_registry_files(file_paths)
    if set_args:
        data = apply_set_args(data, list(set_args))
    return parse_registry_data(data, base_dir=Path(file_paths[0]).parent)
