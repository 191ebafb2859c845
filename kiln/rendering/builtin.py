# kiln/rendering/builtin.py
"""
Render paths shipped with kiln.

TEXTURED draws geometry with its diffuse texture tinted by MatDiffColor.
VALUE_NOISE draws one tileable noise octave; MatDiffColor carries
(scale x, scale y, seed, seed). GAP_DILATION grows colored texels of its
diffuse input one pixel into transparent neighbors; InputInvSize carries
(1 / width, 1 / height).
"""

from __future__ import annotations

from typing import Dict

from kiln.rendering.interface import RenderPath

_VERTEX = """
#version 330

uniform mat4 u_view_proj;
uniform mat4 u_model;

in vec3 in_pos;
in vec4 in_uv;

out vec2 v_uv;

void main() {
    v_uv = in_uv.xy;
    gl_Position = u_view_proj * u_model * vec4(in_pos, 1.0);
}
"""

_TEXTURED_FRAGMENT = """
#version 330

uniform sampler2D u_diffuse;
uniform vec4 MatDiffColor = vec4(1.0);

in vec2 v_uv;
out vec4 f_color;

void main() {
    f_color = texture(u_diffuse, v_uv) * MatDiffColor;
}
"""

_NOISE_FRAGMENT = """
#version 330

uniform vec4 MatDiffColor = vec4(1.0, 1.0, 0.0, 0.0);

in vec2 v_uv;
out vec4 f_color;

float hash(vec2 cell, float seed) {
    return fract(sin(dot(cell, vec2(127.1, 311.7)) + seed * 74.7) * 43758.5453);
}

void main() {
    vec2 scale = max(floor(MatDiffColor.xy + 0.5), vec2(1.0));
    vec2 p = v_uv * scale;
    vec2 cell = floor(p);
    vec2 f = fract(p);
    vec2 u = f * f * (3.0 - 2.0 * f);

    // Wrap lattice cells so the octave tiles.
    vec2 c00 = mod(cell, scale);
    vec2 c11 = mod(cell + 1.0, scale);
    float a = hash(c00, MatDiffColor.z);
    float b = hash(vec2(c11.x, c00.y), MatDiffColor.z);
    float c = hash(vec2(c00.x, c11.y), MatDiffColor.z);
    float d = hash(c11, MatDiffColor.z);

    float n = mix(mix(a, b, u.x), mix(c, d, u.x), u.y);
    f_color = vec4(n, n, n, 1.0);
}
"""

_DILATION_FRAGMENT = """
#version 330

uniform sampler2D u_diffuse;
uniform vec4 InputInvSize;

in vec2 v_uv;
out vec4 f_color;

void main() {
    vec4 center = texture(u_diffuse, v_uv);
    if (center.a > 0.00005) {
        f_color = center;
        return;
    }

    vec3 sum = vec3(0.0);
    float count = 0.0;
    for (int y = -1; y <= 1; ++y) {
        for (int x = -1; x <= 1; ++x) {
            vec4 s = texture(u_diffuse, fract(v_uv + vec2(x, y) * InputInvSize.xy));
            if (s.a > 0.00005) {
                sum += s.rgb;
                count += 1.0;
            }
        }
    }
    f_color = count > 0.0 ? vec4(sum / count, 1.0) : center;
}
"""

TEXTURED = RenderPath("Textured", _VERTEX, _TEXTURED_FRAGMENT)
VALUE_NOISE = RenderPath("ValueNoise", _VERTEX, _NOISE_FRAGMENT, (0.0, 0.0, 0.0, 1.0))
GAP_DILATION = RenderPath("GapDilation", _VERTEX, _DILATION_FRAGMENT)

# Uniform through which dilation passes learn the input texel size.
INPUT_SIZE_PARAMETER = "InputInvSize"

BUILTIN_RENDER_PATHS: Dict[str, RenderPath] = {
    path.name: path for path in (TEXTURED, VALUE_NOISE, GAP_DILATION)
}
