import numpy as np
import pytest

from kiln.settings import NoiseSettings
from kiln.textures.noise import (
    NoiseOctave,
    apply_noise_modifiers,
    aspect_scale,
    colorize,
    smooth_step_ex,
)


def test_aspect_scale():
    assert aspect_scale(8, 4) == (2.0, 1.0)
    assert aspect_scale(4, 8) == (1.0, 2.0)
    assert aspect_scale(5, 5) == (1.0, 1.0)


def test_smooth_step_ex_blends_with_contrast():
    x = np.array([0.0, 0.25, 0.5, 1.0])

    np.testing.assert_allclose(smooth_step_ex(x, 0.0), x)
    np.testing.assert_allclose(smooth_step_ex(x, 1.0), [0.0, 0.15625, 0.5, 1.0])


def test_single_unit_octave_is_identity():
    values = np.array([[0.0, 0.3, 1.0]], dtype=np.float32)

    result = apply_noise_modifiers(values, 1.0, NoiseSettings())

    np.testing.assert_allclose(result, values, rtol=1e-6)


def test_modifiers_order():
    values = np.array([[1.0]], dtype=np.float32)
    settings = NoiseSettings(bias=0.25, contrast=1.0, range=(0.0, 0.5))

    # 1.0 / 2 -> +0.25 -> smoothstep(0.75) -> remap into [0, 0.5]
    result = apply_noise_modifiers(values, 2.0, settings)

    assert result[0, 0] == pytest.approx(0.84375 * 0.5)


def test_bias_is_clamped():
    values = np.array([[0.9]], dtype=np.float32)

    result = apply_noise_modifiers(values, 1.0, NoiseSettings(bias=0.5))

    assert result[0, 0] == 1.0


def test_no_octaves_gives_flat_result():
    result = apply_noise_modifiers(np.zeros((2, 2), np.float32), 0.0, NoiseSettings())

    assert not np.isnan(result).any()
    np.testing.assert_array_equal(result, np.zeros((2, 2)))


def test_colorize_two_color_gradient():
    values = np.array([[0.0, 0.5, 1.0]], dtype=np.float32)

    image = colorize(values, (1.0, 0.0, 0.0, 1.0), (0.0, 0.0, 1.0, 0.0))

    np.testing.assert_allclose(image[0, 1], [0.5, 0.0, 0.5, 0.5])
    np.testing.assert_allclose(image[0, 2], [0.0, 0.0, 1.0, 0.0])


def test_octave_defaults():
    octave = NoiseOctave(4.0, 4.0)
    assert octave.magnitude == 1.0
    assert octave.seed == 0.0
