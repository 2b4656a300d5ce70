class GhSksError(Exception):
    """Base class for errors raised by gh-sks."""


class ConfigError(GhSksError):
    """The mapping store is missing or cannot be read."""


class PermissionDenied(GhSksError):
    pass


class InvalidArgument(GhSksError):
    pass


class NotFound(GhSksError):
    pass


class FetchError(GhSksError):
    """Keys for an external identity could not be fetched."""

    def __init__(self, identity: str, reason: str):
        super().__init__(f"github:{identity}: {reason}")
        self.identity = identity
        self.reason = reason


class ReconcileError(GhSksError):
    """A credential file could not be rewritten. The original is untouched."""
