from typing import Any, Optional


class WorkspaceError(Exception):
    """Base class for every error raised by workspace_sync."""


class ConfigurationError(WorkspaceError):
    pass


class AuthError(WorkspaceError):
    pass


class NotAuthenticatedError(AuthError):
    def __init__(self, message: str = "User not authenticated") -> None:
        super().__init__(message)


class StoreError(WorkspaceError):
    def __init__(self, message: str, code: Optional[str] = None, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details

    def __str__(self) -> str:
        if self.code:
            return f"{self.message} ({self.code})"
        return self.message


class LoadTimeoutError(WorkspaceError):
    pass


class DocumentTreeError(WorkspaceError, ValueError):
    pass


class BlockDataError(WorkspaceError, ValueError):
    def __init__(self, kind: str, errors: list) -> None:
        super().__init__(f"Invalid data for {kind} block: {', '.join(errors)}")
        self.kind = kind
        self.errors = errors
