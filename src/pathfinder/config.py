import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .constants import CONFIG_ENVIRONMENT_VARIABLE, DEFAULT_CONFIG_FILE_NAME, DEFAULT_MAX_WORKERS, DEFAULT_CACHE_TTL
from .errors import PathfinderError, PathfinderErrorCode, Severity
from .types import (
    ChecksumAlgorithm,
    ChecksumEncoding,
    ConstraintType,
    EnforcementLevel,
    LoaderType,
    PathConstraint,
)


class PathfinderSettings:
    """Settings manager for pathfinder configuration files.

    Provides a read-only key-value interface to a TOML settings file. This class is
    agnostic to the schema of the settings - it loads the file and exposes the raw
    data structure. PathfinderConfig.from_settings() interprets the 'pathfinder' table.

    Example:
        settings = PathfinderSettings(Path('pathfinder.toml'))
        max_workers = settings.get('pathfinder.max_workers', 4)
        log_path = settings.get('logging.path')
    """

    def __init__(self, settings_file: Path | None = None):
        """Initialize settings from a TOML file.

        If settings_file is None, the PATHFINDER_CONFIG environment variable is consulted,
        then pathfinder.toml in the current directory. A missing file yields empty settings,
        and all get() calls return their defaults.

        Args:
            settings_file: Path to the TOML settings file
        """
        if settings_file is None:
            settings_file = locate_settings_file()

        self._settings_file = settings_file
        self._settings: dict[str, Any] = {}

        if settings_file is not None and settings_file.exists():
            with open(settings_file, 'rb') as f:
                self._settings = tomllib.load(f)

    @property
    def settings_file(self) -> Path | None:
        return self._settings_file

    def get(self, key: str, default=None):
        """Get a setting value by dot-notation key with optional default.

        Returns the default value if the key path does not exist or if any intermediate
        value is not a dictionary.

        Examples:
            >>> settings.get('pathfinder.constraint.enforcement_level', 'warn')
            'strict'
            >>> settings.get('nonexistent.key', 'fallback')
            'fallback'
        """
        keys = key.split('.')
        value = self._settings

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value


def locate_settings_file() -> Path | None:
    env_path = os.environ.get(CONFIG_ENVIRONMENT_VARIABLE)
    if env_path:
        return Path(env_path)

    candidate = Path.cwd() / DEFAULT_CONFIG_FILE_NAME
    if candidate.exists():
        return candidate
    return None


@dataclass(frozen=True)
class PathfinderConfig:
    """Immutable configuration shared read-only by every find() call of a Pathfinder.

    Attributes:
        max_workers: Upper bound of concurrently running checksum operations (>= 1)
        cache_enabled: Keep parsed ignore-file rules across find() calls
        cache_ttl: Lifetime of cached ignore-file rules in seconds
        constraint: Boundary applied to every resolved path
        loader_type: Loader stamped on results
        calculate_checksums: Attach checksums to discovered files
        checksum_algorithm: Hash used for checksums
        checksum_encoding: Serialized checksum encoding
        honor_ignore_files: Apply ignore files unless a query overrides it
    """
    max_workers: int = DEFAULT_MAX_WORKERS
    cache_enabled: bool = False
    cache_ttl: float = DEFAULT_CACHE_TTL
    constraint: PathConstraint | None = None
    loader_type: LoaderType = LoaderType.LOCAL
    calculate_checksums: bool = False
    checksum_algorithm: ChecksumAlgorithm = ChecksumAlgorithm.XXH3_128
    checksum_encoding: ChecksumEncoding = ChecksumEncoding.HEX
    honor_ignore_files: bool = True

    def __post_init__(self):
        if isinstance(self.max_workers, bool) or not isinstance(self.max_workers, int) or self.max_workers < 1:
            raise _invalid_config(f"max_workers must be an integer >= 1, got {self.max_workers!r}",
                                  max_workers=self.max_workers)

        if isinstance(self.cache_ttl, bool) or not isinstance(self.cache_ttl, (int, float)) or self.cache_ttl < 0:
            raise _invalid_config(f"cache_ttl must be a number >= 0, got {self.cache_ttl!r}",
                                  cache_ttl=self.cache_ttl)

        # Normalize enum-typed fields so string values from settings files are accepted
        object.__setattr__(self, 'loader_type', _parse_enum(LoaderType, self.loader_type, 'loader_type'))
        object.__setattr__(self, 'checksum_algorithm',
                           _parse_enum(ChecksumAlgorithm, self.checksum_algorithm, 'checksum_algorithm'))
        object.__setattr__(self, 'checksum_encoding',
                           _parse_enum(ChecksumEncoding, self.checksum_encoding, 'checksum_encoding'))

        if self.constraint is not None:
            if not isinstance(self.constraint, PathConstraint):
                raise _invalid_config(f"constraint must be a PathConstraint, got {type(self.constraint).__name__}")
            object.__setattr__(self, 'constraint', PathConstraint(
                self.constraint.root,
                _parse_enum(ConstraintType, self.constraint.type, 'constraint.type'),
                _parse_enum(EnforcementLevel, self.constraint.enforcement_level, 'constraint.enforcement_level'),
            ))

    @classmethod
    def from_settings(cls, settings: PathfinderSettings) -> 'PathfinderConfig':
        """Build a configuration from the [pathfinder] table of a settings file.

        Keys not present in the file keep their defaults. A [pathfinder.constraint] table
        with at least a 'root' key produces a PathConstraint.
        """
        kwargs: dict[str, Any] = {}
        for field in ('max_workers', 'cache_enabled', 'cache_ttl', 'loader_type', 'calculate_checksums',
                      'checksum_algorithm', 'checksum_encoding', 'honor_ignore_files'):
            value = settings.get(f'pathfinder.{field}')
            if value is not None:
                kwargs[field] = value

        constraint_root = settings.get('pathfinder.constraint.root')
        if constraint_root is not None:
            kwargs['constraint'] = PathConstraint(
                constraint_root,
                settings.get('pathfinder.constraint.type', ConstraintType.REPOSITORY),
                settings.get('pathfinder.constraint.enforcement_level', EnforcementLevel.WARN),
            )

        return cls(**kwargs)


def load_config(settings_file: str | os.PathLike | None = None) -> PathfinderConfig:
    """Load a PathfinderConfig from a TOML settings file (see PathfinderSettings)."""
    return PathfinderConfig.from_settings(
        PathfinderSettings(Path(settings_file) if settings_file is not None else None))


def _parse_enum(enum_type, value, field: str):
    try:
        return enum_type(value)
    except ValueError:
        allowed = ', '.join(member.value for member in enum_type)
        raise _invalid_config(f"{field} must be one of [{allowed}], got {value!r}", **{field: value}) from None


def _invalid_config(message: str, **context) -> PathfinderError:
    return PathfinderError(PathfinderErrorCode.INVALID_CONFIG, message, severity=Severity.HIGH, context=context)
