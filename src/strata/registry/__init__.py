"""strata.registry - Stack registry documents."""

from strata.registry.parser import (
    parse_registry_file,
    parse_registry_data,
    RegistrySpec,
    StackSpec,
    StackParseError,
)
from strata.registry.merger import merge_registry_files, apply_set_args
from strata.registry.refs import resolve_parameters, referenced_stacks, RefError
from strata.registry.stage import resolve_stages, resolve_registry_files
from strata.registry.loader import load_registry

__all__ = [
    "parse_registry_file",
    "parse_registry_data",
    "RegistrySpec",
    "StackSpec",
    "StackParseError",
    "merge_registry_files",
    "apply_set_args",
    "resolve_parameters",
    "referenced_stacks",
    "RefError",
    "resolve_stages",
    "resolve_registry_files",
    "load_registry",
]
