"""Exception hierarchy for depbot."""

from __future__ import annotations


class DepbotError(Exception):
    """Base exception for depbot errors."""

    pass


class ConfigError(DepbotError):
    """Raised when the configuration file holds invalid values."""

    pass


class ClassificationError(DepbotError):
    """Raised when a version string cannot be parsed.

    Callers of the classifier never see this: classification fails closed
    to ``patch`` and upgrade checks fail closed to ``False``.
    """

    pass


class PlatformError(DepbotError):
    """Raised when the hosting platform or git rejects an operation."""

    pass


class GitError(PlatformError):
    """Raised when a local git command fails."""

    def __init__(self, cmd: list[str], returncode: int, stderr: str):
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"{' '.join(cmd)} failed ({returncode}): {stderr}")


class OpenRequestsUnavailableError(PlatformError):
    """Raised when open pull requests cannot be listed at all.

    Every decision depends on that list, so this aborts the whole pass.
    """

    pass


class GenerationEmptyError(DepbotError):
    """Raised when a group yields no file changes or no actual differences."""

    pass


class RegistryError(DepbotError):
    """Raised when a package registry lookup fails."""

    pass
