# kiln/settings.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

# Threshold below which alpha (or luma) marks a pixel as a gap.
GAP_EPSILON = 0.00005

Color = tuple[float, float, float, float]


@dataclass(frozen=True, slots=True)
class GapFillSettings:
    """Policy for distance-field gap filling."""

    epsilon: float = GAP_EPSILON
    downsample: int = 0
    is_transparent: bool = True

    def __post_init__(self) -> None:
        if self.downsample < 0:
            raise ValueError(f"downsample must be >= 0, got {self.downsample}")


@dataclass(frozen=True, slots=True)
class NoiseSettings:
    """Post-processing applied after all noise octaves are accumulated."""

    bias: float = 0.0
    contrast: float = 0.0
    range: tuple[float, float] = (0.0, 1.0)
    first_color: Color = (0.0, 0.0, 0.0, 1.0)
    second_color: Color = (1.0, 1.0, 1.0, 1.0)


@dataclass(frozen=True, slots=True)
class FactorySettings:
    """Where and when a texture factory writes its outputs."""

    output_directory: Path = Path(".")
    force_generation: bool = False
