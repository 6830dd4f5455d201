"""Error taxonomy for archdraw."""
from __future__ import annotations

from typing import Optional


class ArchdrawError(ValueError):
    """Structured error with stable code for CLI mapping."""

    code = "E_ARCHDRAW"

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code
        self.message = message

    def __str__(self) -> str:
        return self.message


class UnknownEntity(ArchdrawError):
    code = "E_UNKNOWN_ENTITY"

    def __init__(self, entity_id: str, message: Optional[str] = None) -> None:
        super().__init__(message or f'unknown entity id "{entity_id}"')
        self.entity_id = entity_id


class DuplicateId(ArchdrawError):
    code = "E_DUPLICATE_ID"

    def __init__(self, entity_id: str) -> None:
        super().__init__(f'duplicate entity id "{entity_id}"')
        self.entity_id = entity_id


class ModelFrozen(ArchdrawError):
    """Raised when topology changes after the model was handed to layout."""

    code = "E_MODEL_FROZEN"


class LayoutFailure(ArchdrawError):
    code = "E_LAYOUT_FAILED"


class ConfigMissing(ArchdrawError):
    code = "E_CONFIG_MISSING"

    def __init__(self, option: str) -> None:
        super().__init__(f'required configuration option "{option}" is missing')
        self.option = option


class ConfigInvalid(ArchdrawError):
    code = "E_CONFIG_INVALID"


class DocumentError(ArchdrawError):
    code = "E_DOCUMENT"


__all__ = [
    "ArchdrawError",
    "UnknownEntity",
    "DuplicateId",
    "ModelFrozen",
    "LayoutFailure",
    "ConfigMissing",
    "ConfigInvalid",
    "DocumentError",
]
