"""Runtime configuration for chartsync commands.

Resolves the repository root and package filter from CLI flags and the
environment, and loads the optional repository ``configuration.yaml``.
CLI flags take precedence over the environment, which takes precedence over
defaults.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional

import yaml

from constants import Constants
from common.errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass
class RunConfig:
    """Settings for one invocation.

    ``update_generated`` controls whether the index writer refreshes the
    top-level ``generated`` timestamp.
    """

    repo_root: Path
    package: Optional[str] = None
    update_generated: bool = False


@dataclass
class ValidateTarget:
    """One ``validate`` entry of configuration.yaml."""

    path: str
    skip: List[str] = field(default_factory=list)


@dataclass
class RepositoryConfig:
    """Parsed configuration.yaml."""

    validate: List[ValidateTarget] = field(default_factory=list)


def build_run_config(args: Any) -> RunConfig:
    """Build a RunConfig from parsed CLI arguments and the environment."""
    repo_root = getattr(args, "REPO_ROOT", None) or os.environ.get(Constants.ENV_REPO_ROOT) or os.getcwd()
    package = getattr(args, "PACKAGE", None) or os.environ.get(Constants.ENV_PACKAGE) or None
    return RunConfig(
        repo_root=Path(repo_root).resolve(),
        package=package,
        update_generated=bool(getattr(args, "UPDATE_GENERATED", False)),
    )


def load_repository_config(repo_root: Path) -> RepositoryConfig:
    """Load ``configuration.yaml`` from the repository root.

    A missing file yields an empty configuration.

    Raises:
        ConfigError: If the file cannot be read or has the wrong shape.
    """
    path = Path(repo_root) / Constants.CONFIG_FILE
    if not path.exists():
        logger.debug("No %s in %s", Constants.CONFIG_FILE, repo_root)
        return RepositoryConfig()
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as exc:
        raise ConfigError(f"failed to read {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"failed to parse {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping at the top level")

    targets = []
    for entry in data.get("validate") or []:
        if not isinstance(entry, dict) or not entry.get("path"):
            raise ConfigError(f"{path}: every validate entry needs a path")
        skip = entry.get("skip") or []
        if not isinstance(skip, list):
            raise ConfigError(f"{path}: validate skip must be a list")
        targets.append(ValidateTarget(path=str(entry["path"]), skip=[str(s) for s in skip]))
    return RepositoryConfig(validate=targets)
