"""Default values and well-known repository markers."""

# Ignore files read in each directory, in order. Rules from later files win.
DEFAULT_IGNORE_FILES = ('.pathfinderignore', '.gitignore')

# Upward steps allowed when searching for a repository root
DEFAULT_MAX_DEPTH = 10

# Chunk size used when streaming files through a hasher
DEFAULT_BUFFER_SIZE = 65536

MAX_PATH_LENGTH = 4096

DEFAULT_MAX_WORKERS = 4
DEFAULT_CACHE_TTL = 300

# Environment variable naming the settings file
CONFIG_ENVIRONMENT_VARIABLE = 'PATHFINDER_CONFIG'
DEFAULT_CONFIG_FILE_NAME = 'pathfinder.toml'

GIT_MARKERS = ('.git',)
NODE_MARKERS = ('package.json', 'package-lock.json')
GO_MOD_MARKERS = ('go.mod',)
PYTHON_MARKERS = ('pyproject.toml', 'setup.py', 'requirements.txt', 'Pipfile')
MONOREPO_MARKERS = ('lerna.json', 'pnpm-workspace.yaml', 'nx.json', 'turbo.json', 'rush.json')
