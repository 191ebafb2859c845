from kiln.api import build_mesh, fill_gaps, generate_textures
from kiln.errors import (
    GenerationError,
    KilnError,
    MissingCameraError,
    MissingResourceError,
    ResolutionError,
    UnknownTextureUnitError,
)
from kiln.log import setup_logging

__version__ = "0.1.0"

__all__ = [
    "build_mesh",
    "fill_gaps",
    "generate_textures",
    "GenerationError",
    "KilnError",
    "MissingCameraError",
    "MissingResourceError",
    "ResolutionError",
    "UnknownTextureUnitError",
    "setup_logging",
]
