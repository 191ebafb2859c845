# kiln/util/ids.py
from __future__ import annotations

from typing import NewType

TextureName = NewType("TextureName", str)

# Name under which chained gap-fill passes see their previous output.
INPUT_TEXTURE = TextureName("Input")

# Shader parameter carrying noise scale and seed into octave passes.
NOISE_PARAMETER = "MatDiffColor"
