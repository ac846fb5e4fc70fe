"""
Custom exception classes for the application.

This module defines domain-specific exceptions that provide better error handling
and clearer error messages throughout the media server.
"""


class ApplicationError(Exception):
    """Base exception for all application errors"""

    def __init__(self, message: str, details: dict | None = None, hint: str | None = None):
        self.message = message
        self.details = details or {}
        self.hint = hint
        super().__init__(self.message)


class ValidationError(ApplicationError):
    """Raised when a request is missing a required field or carries a bad value"""

    def __init__(self, message: str, field: str | None = None):
        details = {"field": field} if field else {}
        super().__init__(message, details)


class ToolUnavailableError(ApplicationError):
    """Raised when an external binary cannot be spawned"""

    def __init__(self, program: str, message: str | None = None, hint: str | None = None):
        self.program = program
        msg = message or f"{program} not available"
        super().__init__(msg, {"program": program}, hint)


class ExternalToolError(ApplicationError):
    """Raised when an external binary ran but exited non-zero"""

    def __init__(self, program: str, exit_code: int, stderr: str = ""):
        self.program = program
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(
            f"{program} exited with code {exit_code}",
            {"program": program, "exit_code": exit_code},
        )


class TranscodeError(ApplicationError):
    """Raised when the media engine fails mid-job"""

    def __init__(self, job_kind: str, message: str, stderr: str = ""):
        self.job_kind = job_kind
        self.stderr = stderr
        super().__init__(message, {"job_kind": job_kind})


class DownloadError(ApplicationError):
    """Raised when a remote asset cannot be fetched"""

    def __init__(self, message: str, reason: str | None = None, hint: str | None = None):
        self.reason = reason
        details = {"reason": reason} if reason else {}
        super().__init__(message, details, hint)


class FallbackExhausted(ApplicationError):
    """Raised when every step of a fallback chain failed"""

    def __init__(self, attempts: list):
        self.attempts = attempts
        names = ", ".join(name for name, _ in attempts) or "none"
        super().__init__(f"All fallback steps failed ({names})", {"steps": [name for name, _ in attempts]})

    @property
    def all_unavailable(self) -> bool:
        """True when no step got as far as running its tool"""
        return bool(self.attempts) and all(
            isinstance(error, ToolUnavailableError) for _, error in self.attempts
        )

    @property
    def last_error(self) -> Exception | None:
        return self.attempts[-1][1] if self.attempts else None
