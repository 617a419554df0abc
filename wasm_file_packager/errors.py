"""Exception hierarchy shared by the packaging pipeline."""


class PackagerError(RuntimeError):
    """Raised when packaging fails."""


class ConfigurationError(PackagerError, ValueError):
    """Raised when user-supplied options cannot form a valid configuration."""


class PathSafetyError(PackagerError):
    """Raised when an auto-mapped destination escapes the working directory."""


class NothingToDoError(PackagerError):
    """Raised when no files are left to package."""

    def __init__(self, message: str = "Nothing to do!") -> None:
        super().__init__(message)
