"""Error types raised and reported by pathfinder.

Every error crossing the public boundary is a PathfinderError carrying a code,
a severity and a context dictionary. The context always names the pathfinder
domain and, when known, the correlation id of the instance that produced it.
"""
from enum import StrEnum
from typing import Any


class Severity(StrEnum):
    INFO = 'info'
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'
    CRITICAL = 'critical'


class PathfinderErrorCode(StrEnum):
    INVALID_CONFIG = 'pathfinder.invalid_config'
    INVALID_ROOT = 'pathfinder.invalid_root'
    INVALID_START_PATH = 'pathfinder.invalid_start_path'
    INVALID_BOUNDARY = 'pathfinder.invalid_boundary'
    REPOSITORY_NOT_FOUND = 'pathfinder.repository_not_found'
    SECURITY_VIOLATION = 'pathfinder.security_violation'
    CONSTRAINT_VIOLATION = 'pathfinder.constraint_violation'
    TRAVERSAL_LOOP = 'pathfinder.traversal_loop'
    TRAVERSAL_FAILED = 'pathfinder.traversal_failed'
    TRAVERSAL_TIMEOUT = 'pathfinder.traversal_timeout'
    CHECKSUM_FAILED = 'pathfinder.checksum_failed'
    IGNORE_FILE_ERROR = 'pathfinder.ignore_file_error'
    VALIDATION_FAILED = 'pathfinder.validation_failed'


DOMAIN = 'pathfinder'
CATEGORY = 'filesystem'


class PathfinderError(Exception):
    """Structured error with code, severity and context.

    Attributes:
        code: PathfinderErrorCode identifying the failure
        message: Human-readable description
        severity: Severity of the failure; CRITICAL and HIGH are logged as errors
        context: Dictionary with at least 'domain' and 'category', plus
                 'correlation_id' when the error was produced by an instance
    """

    def __init__(self, code: PathfinderErrorCode, message: str, *,
                 severity: Severity = Severity.MEDIUM,
                 context: dict[str, Any] | None = None,
                 correlation_id: str | None = None):
        super().__init__(message)
        self.code = PathfinderErrorCode(code)
        self.message = message
        self.severity = Severity(severity)
        self.context: dict[str, Any] = {'domain': DOMAIN, 'category': CATEGORY}
        if context:
            self.context.update(context)
        if correlation_id is not None:
            self.context['correlation_id'] = correlation_id

    @property
    def correlation_id(self) -> str | None:
        return self.context.get('correlation_id')

    @property
    def is_fatal(self) -> bool:
        return self.severity in (Severity.HIGH, Severity.CRITICAL)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to a dictionary suitable for JSON serialization."""
        data = {
            'code': str(self.code),
            'message': self.message,
            'severity': str(self.severity),
            'context': {k: str(v) if hasattr(v, '__fspath__') else v for k, v in self.context.items()},
        }
        if self.__cause__ is not None:
            data['cause'] = repr(self.__cause__)
        return data

    def __repr__(self) -> str:
        return f"PathfinderError({self.code!s}, {self.message!r}, severity={self.severity!s})"

    @classmethod
    def wrap(cls, error: BaseException, code: PathfinderErrorCode, *,
             severity: Severity = Severity.MEDIUM,
             context: dict[str, Any] | None = None,
             correlation_id: str | None = None) -> 'PathfinderError':
        """Convert an arbitrary exception into a PathfinderError.

        An existing PathfinderError keeps its own code and message; only the
        context and correlation id are merged in. Other exceptions become the
        __cause__ of a new error with the requested code.
        """
        if isinstance(error, PathfinderError):
            if context:
                for key, value in context.items():
                    error.context.setdefault(key, value)
            if correlation_id is not None:
                error.context.setdefault('correlation_id', correlation_id)
            return error

        wrapped = cls(code, str(error) or type(error).__name__, severity=severity,
                      context=context, correlation_id=correlation_id)
        wrapped.__cause__ = error
        return wrapped
