from .finder import Pathfinder
from .config import PathfinderConfig, PathfinderSettings, load_config
from .errors import PathfinderError, PathfinderErrorCode, Severity
from .repository_root import find_repository_root
from .checksum import ChecksumMetadata, calculate_checksum, calculate_checksums_batch, calculate_checksums_batch_async
from .convenience import find_by_extensions, find_config_files, find_schema_files
from .constants import GIT_MARKERS, GO_MOD_MARKERS, MONOREPO_MARKERS, NODE_MARKERS, PYTHON_MARKERS
from .types import (
    ChecksumAlgorithm,
    ChecksumEncoding,
    ConstraintType,
    EnforcementLevel,
    FileMetadata,
    FindRepoOptions,
    LoaderType,
    PathConstraint,
    PathfinderCallbacks,
    PathfinderQuery,
    PathResult,
    with_boundary,
    with_constraint,
    with_follow_symlinks,
    with_max_depth,
    with_stop_at_first,
)
from .safety import is_path_within_root, to_posix_path
from .validators import ValidationResult, assert_valid_config, assert_valid_path_result, validate_config, \
    validate_path_result, validate_query

VERSION = '0.1.0'
