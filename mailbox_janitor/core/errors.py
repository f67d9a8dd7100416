"""Custom exceptions for the mailbox janitor."""

from pathlib import Path


def sanitize_path_for_error(path: str | Path) -> str:
    """Extract only the filename from a path for safe error messages.

    Prevents leaking full system paths in error messages which could
    expose sensitive directory structure information.

    Args:
        path: Full path or filename.

    Returns:
        Just the filename portion.
    """
    if isinstance(path, Path):
        return path.name
    return Path(path).name


class JanitorError(Exception):
    """Base exception for all mailbox janitor errors."""

    pass


class ValidationError(JanitorError):
    """Raised when an identifier is unsafe to store or purge."""

    def __init__(self, identifier: object, reason: str) -> None:
        self.identifier = identifier
        self.reason = reason
        super().__init__(f"invalid identifier {identifier!r}: {reason}")


class DuplicateError(JanitorError):
    """Raised when an identifier is already pending deletion."""

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(f"Identifier already pending: {identifier}")


class StorageError(JanitorError):
    """Raised when the pending store cannot be read or written."""

    pass


class FileLockError(StorageError):
    """Raised when the cross-process store lock cannot be acquired."""

    def __init__(
        self,
        lock_path: str,
        timeout: float,
        message: str | None = None,
    ) -> None:
        self.lock_path = lock_path
        self.timeout = timeout
        safe_name = sanitize_path_for_error(lock_path)
        self.message = message or f"Failed to acquire file lock at {safe_name} after {timeout}s"
        super().__init__(self.message)


class ExecutionError(JanitorError):
    """Raised when the external purge command fails.

    Carries the combined stdout/stderr of the command so the failure can be
    logged with its diagnostics.
    """

    def __init__(
        self,
        identifier: str,
        message: str,
        returncode: int | None = None,
        output: str = "",
    ) -> None:
        self.identifier = identifier
        self.returncode = returncode
        self.output = output
        detail = f"{message} (identifier={identifier}"
        if returncode is not None:
            detail += f", returncode={returncode}"
        detail += ")"
        if output:
            detail += f", output: {output.strip()}"
        super().__init__(detail)


class ConfigurationError(JanitorError):
    """Raised when configuration is invalid."""

    pass
