"""Exception hierarchy for configuration and server failures."""

from __future__ import annotations


class StreamfishError(Exception):
    """Base class for every error raised by the package."""


class StreamfishConfigError(StreamfishError):
    """Raised when the configuration cannot be loaded or is invalid."""


class ConfigFileError(StreamfishConfigError):
    """The configuration file could not be opened or read."""

    def __init__(self, detail: object | None = None) -> None:
        super().__init__("Failed to open the configuration file")
        self.detail = detail


class ConfigParseError(StreamfishConfigError):
    """The configuration file could not be parsed."""

    def __init__(self, detail: object | None = None) -> None:
        super().__init__("Failed to parse the configuration file")
        self.detail = detail


class TargetBoundsError(StreamfishConfigError):
    """A target specification has a start or end that is not a valid integer."""

    def __init__(self, value: str) -> None:
        super().__init__(
            f"Failed to parse target bounds due to incorrect of start or end: {value}"
        )
        self.value = value


class TargetFormatError(StreamfishConfigError):
    """A target specification has the wrong number of fields."""

    def __init__(self, value: str) -> None:
        super().__init__(f"Failed to parse target due to incorrect format: {value}")
        self.value = value


class TargetFileNotFoundError(StreamfishConfigError):
    """The configured target file does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Failed to find target file: {path}")
        self.path = path


class ServerError(StreamfishError):
    """A processing server could not be configured or served."""

    INVALID_URI = (
        "Failed to establish a channel with the processing server due to invalid URI"
    )
    INVALID_SOCKET_ADDRESS = (
        "Failed to parse a valid address from the provided host and port "
        "of the processing server"
    )
    SERVE_TCP = "Failed to serve the processing server on TCP"
    SERVE_UDS = "Failed to serve the processing server on UDS"
    UNIX_DOMAIN_SOCKET_LISTENER = "Failed to bind a listener to a domain socket"
    UNIX_DOMAIN_SOCKET_REMOVE = "Failed to remove a domain socket path"
    UNIX_DOMAIN_SOCKET_PARENT_DIRECTORY_CREATE = (
        "Failed to create parent directory of a domain socket path"
    )
    UNIX_DOMAIN_SOCKET_PARENT_DIRECTORY_PATH = (
        "Failed to obtain parent directory of a domain socket path"
    )

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message