"""
strata.registry.stage - Stage overlay resolution.

Stage resolution priority:
    --stage flag > STRATA_STAGE env var > None (base only)

A stage maps to an overlay file next to the registry:
    --stage prod -> stacks.prod.yaml
    --stage staging -> stacks.staging.yaml

Multiple stages are supported (composition):
    --stage prod --stage eu -> stacks.prod.yaml + stacks.eu.yaml
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from strata.errors import ConfigError

logger = logging.getLogger(__name__)

REGISTRY_FILE = "stacks.yaml"


def resolve_stages(
    flag_stages: list[str] | tuple[str, ...] | None = None,
) -> list[str]:
    """Resolve the stage list.

    Priority: flag > env var > empty

    Args:
        flag_stages: --stage values from CLI

    Returns:
        Stage name list (may be empty)
    """
    if flag_stages:
        return list(flag_stages)

    env_stage = os.environ.get("STRATA_STAGE", "").strip()
    if env_stage:
        # Comma-separated: STRATA_STAGE=prod,eu
        return [s.strip() for s in env_stage.split(",") if s.strip()]

    return []


def resolve_registry_files(
    workspace_dir: str | Path | None,
    stages: list[str],
    extra_files: list[str] | None = None,
) -> list[str]:
    """Resolve the registry file list.

    Without -C, the first -f file (if any) is the base registry.

    File order (low to high precedence):
    1. base registry (stacks.yaml or the first -f file)
    2. stacks.<stage>.yaml (in stage order)
    3. Extra -f files

    Args:
        workspace_dir: Directory holding stacks.yaml (None = cwd)
        stages: Stage names
        extra_files: Additional -f files

    Returns:
        List of file paths
    """
    ws = Path(workspace_dir or ".")
    extra = list(extra_files or [])
    base = ws / REGISTRY_FILE

    if extra and (workspace_dir is None or not base.exists()):
        files = [extra.pop(0)]
    elif base.exists():
        files = [str(base)]
    else:
        raise ConfigError(
            f"No registry found: {base} does not exist. "
            f"Pass one with -f or use -C <dir>."
        )

    # Stage overlays live next to the base registry
    stage_dir = Path(files[0]).parent
    for stage in stages:
        stage_file = stage_dir / f"stacks.{stage}.yaml"
        if stage_file.exists():
            files.append(str(stage_file))
        else:
            logger.warning("Stage file not found: %s", stage_file)

    files.extend(extra)
    return files
