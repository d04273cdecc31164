"""Shortcuts for common discovery queries."""
import os
from typing import Sequence

from .config import PathfinderConfig
from .finder import Pathfinder
from .types import PathfinderQuery, PathResult

DEFAULT_CONFIG_EXTENSIONS = ('.yaml', '.yml', '.json')
DEFAULT_SCHEMA_PATTERNS = ('**/*.schema.json', '**/*.schema.yaml')


def _extension_patterns(extensions: Sequence[str]) -> list[str]:
    return [f"**/*{ext if ext.startswith('.') else '.' + ext}" for ext in extensions]


def _find(root: str | os.PathLike, include: Sequence[str], config: PathfinderConfig | None) -> list[PathResult]:
    with Pathfinder(config) as finder:
        return finder.find(PathfinderQuery(root, include=list(include)))


def find_config_files(root: str | os.PathLike, extensions: Sequence[str] = DEFAULT_CONFIG_EXTENSIONS,
                      config: PathfinderConfig | None = None) -> list[PathResult]:
    """Find configuration files (YAML and JSON by default) below root."""
    return _find(root, _extension_patterns(extensions), config)


def find_schema_files(root: str | os.PathLike, config: PathfinderConfig | None = None) -> list[PathResult]:
    return _find(root, DEFAULT_SCHEMA_PATTERNS, config)


def find_by_extensions(root: str | os.PathLike, extensions: Sequence[str],
                       config: PathfinderConfig | None = None) -> list[PathResult]:
    """Find files with any of the given extensions; a leading dot is optional.

    An empty extension list finds nothing and does not touch the filesystem.
    """
    if not extensions:
        return []
    return _find(root, _extension_patterns(extensions), config)
