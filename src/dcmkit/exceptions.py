"""Custom exceptions for dcmkit."""

from typing import Any


class DcmKitError(Exception):
    """Base exception for all dcmkit errors."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.details = details or {}


class ArtifactStructureError(DcmKitError):
    """Raised when a document is not a recognized configuration item shape."""


class InputValidationError(DcmKitError):
    """Raised when caller input is rejected before any mutation."""


class FragmentSpecError(InputValidationError):
    """Raised when an element attribute specification is malformed."""


class SettingReferenceError(DcmKitError):
    """Raised when a rule references a setting missing from its document."""


class StoreUnavailableError(DcmKitError):
    """Raised when the persistence collaborator cannot be used."""


class ConfigError(DcmKitError):
    """Raised when composer configuration cannot be loaded."""
