# kiln/errors.py
from __future__ import annotations


class KilnError(Exception):
    """Base class for all generation errors."""


class ResolutionError(KilnError):
    """
    A description referenced something that could not be resolved.

    Carries the kind of the missing thing ("material", "model", "texture",
    "render path", "camera", "texture unit") and the offending name so the
    description can be located.
    """

    def __init__(self, kind: str, name: str, message: str = "") -> None:
        self.kind = kind
        self.name = name
        super().__init__(message or f"Cannot resolve {kind} '{name}'")


class MissingResourceError(ResolutionError):
    pass


class MissingCameraError(ResolutionError):
    def __init__(self, node_name: str) -> None:
        super().__init__(
            "camera",
            node_name,
            f"Camera node '{node_name}' must contain camera component",
        )


class UnknownTextureUnitError(ResolutionError):
    def __init__(self, unit_name: str) -> None:
        super().__init__(
            "texture unit",
            unit_name,
            f"Unrecognized input texture unit '{unit_name}'",
        )


class GenerationError(KilnError):
    """Generation of a single named texture failed."""

    def __init__(self, texture_name: str, cause: Exception) -> None:
        self.texture_name = texture_name
        self.cause = cause
        super().__init__(f"Cannot generate texture '{texture_name}': {cause}")
