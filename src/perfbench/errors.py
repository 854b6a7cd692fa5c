"""Error types for perfbench.

Error codes follow the server's numbering so that a failing invocation
exits with the same status the server would report for the same class
of problem.
"""

from __future__ import annotations

BAD_ARGUMENTS = 36
NOT_IMPLEMENTED = 48
LOGICAL_ERROR = 49
FILE_DOESNT_EXIST = 107


class PerfTestError(Exception):
    """Base exception for perfbench runtime errors."""

    def __init__(self, message: str, code: int = LOGICAL_ERROR):
        super().__init__(message)
        self.code = code


class TestConfigError(PerfTestError):
    """Raised when a test descriptor is malformed or contradictory.

    Fatal for the whole batch: no partial report is produced.
    """

    __test__ = False  # keep pytest from collecting this class

    def __init__(self, message: str, code: int = BAD_ARGUMENTS):
        super().__init__(message, code)


class PreconditionUnsupportedError(PerfTestError):
    """Raised when a precondition cannot be evaluated on this platform."""

    def __init__(self, message: str, code: int = NOT_IMPLEMENTED):
        super().__init__(message, code)


def exit_code_for(exc: BaseException) -> int:
    """Map an exception to a process exit status (1..255)."""
    code = getattr(exc, "code", None)
    if isinstance(code, int) and 0 < code < 256:
        return code
    return 1
