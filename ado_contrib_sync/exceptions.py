"""Exceptions for ado_contrib_sync."""

from pathlib import Path


class SyncError(Exception):
    """Base class for all contribution sync errors."""


class RemoteError(SyncError):
    """Non-2xx response from the Azure DevOps REST API."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Azure DevOps API error ({status_code}): {body}")


class ReplayError(SyncError):
    """A git command in the contributions repository exited non-zero."""

    def __init__(self, message: str, output: str = ""):
        self.output = output
        if output:
            message = f"{message}: {output}"
        super().__init__(message)


class ConfigError(SyncError):
    """Saved configuration could not be read or parsed."""

    def __init__(self, path: Path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid config file {path}: {reason}")
