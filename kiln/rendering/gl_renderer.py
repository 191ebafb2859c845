# kiln/rendering/gl_renderer.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import moderngl
import numpy as np

from kiln.geometry.model import MergedMesh
from kiln.rendering.interface import Renderer, RenderPath
from kiln.rendering.material import Material
from kiln.rendering.scene import IntRect, SceneNode, TransientScene
from kiln.rendering.transform import to_uniform_bytes
from kiln.settings import Color
from kiln.textures.image import as_image

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GLTarget:
    fbo: moderngl.Framebuffer
    color: moderngl.Texture
    depth: moderngl.Renderbuffer
    width: int
    height: int


class ModernGLRenderer(Renderer):
    """
    Renderer drawing into float RGBA framebuffers of a moderngl context.

    Creates a standalone (headless) context when none is given. Programs are
    compiled once per render path; mesh buffers and input textures live only
    for the frame that uses them.
    """

    def __init__(self, ctx: Optional[moderngl.Context] = None) -> None:
        self._ctx = ctx if ctx is not None else moderngl.create_standalone_context()
        self._programs: Dict[RenderPath, moderngl.Program] = {}

    @property
    def ctx(self) -> moderngl.Context:
        return self._ctx

    def create_target(self, width: int, height: int, clear_color: Color) -> GLTarget:
        color = self._ctx.texture((width, height), 4, dtype="f4")
        color.filter = (moderngl.NEAREST, moderngl.NEAREST)
        depth = self._ctx.depth_renderbuffer((width, height))
        fbo = self._ctx.framebuffer(color_attachments=[color], depth_attachment=depth)

        fbo.use()
        fbo.clear(*clear_color, depth=1.0)
        return GLTarget(fbo=fbo, color=color, depth=depth, width=width, height=height)

    def release_target(self, target: GLTarget) -> None:
        target.fbo.release()
        target.color.release()
        target.depth.release()

    def read_target(self, target: GLTarget) -> np.ndarray:
        data = target.fbo.read(components=4, dtype="f4")
        pixels = np.frombuffer(data, dtype=np.float32).reshape(
            target.height, target.width, 4
        )
        # Framebuffer rows start at the bottom.
        return as_image(np.flipud(pixels).copy())

    def program_for(self, render_path: RenderPath) -> moderngl.Program:
        program = self._programs.get(render_path)
        if program is None:
            program = self._ctx.program(
                vertex_shader=render_path.vertex_shader,
                fragment_shader=render_path.fragment_shader,
            )
            self._programs[render_path] = program
            logger.debug("Compiled program for render path '%s'", render_path.name)
        return program

    def render_frame(
        self,
        scene: TransientScene,
        camera: SceneNode,
        viewport: IntRect,
        render_path: RenderPath,
        target: GLTarget,
    ) -> None:
        if camera.camera is None:
            raise ValueError(f"Node '{camera.name}' has no camera component")

        program = self.program_for(render_path)
        ctx = self._ctx

        target.fbo.use()
        _clear_depth(target.fbo)
        ctx.viewport = (
            viewport.left,
            target.height - viewport.bottom,
            viewport.width,
            viewport.height,
        )
        ctx.enable(moderngl.DEPTH_TEST)

        view_proj = camera.camera.projection() @ camera.view_matrix()
        _write_matrix(program, "u_view_proj", view_proj)

        transient: List = []
        try:
            for node, static_model in scene.drawables():
                model = static_model.model
                _write_matrix(program, "u_model", node.world_matrix())

                vbo = ctx.buffer(model.vertices)
                ibo = ctx.buffer(model.indices)
                vao = self._vertex_array(program, model, vbo, ibo)
                transient.extend((vao, vbo, ibo))

                for geometry in range(model.num_geometries):
                    material = static_model.material(geometry)
                    if material is None or model.num_lod_levels(geometry) == 0:
                        continue
                    transient.extend(self._bind_material(program, material))

                    draw = model.draw_range(geometry, 0)
                    if draw.index_count == 0:
                        continue
                    vao.render(
                        moderngl.TRIANGLES,
                        vertices=draw.index_count,
                        first=draw.index_offset,
                    )
        finally:
            for resource in reversed(transient):
                resource.release()
            ctx.disable(moderngl.DEPTH_TEST)

    def _vertex_array(
        self,
        program: moderngl.Program,
        model: MergedMesh,
        vbo: moderngl.Buffer,
        ibo: moderngl.Buffer,
    ) -> moderngl.VertexArray:
        """Bind the attributes the program uses; skip the rest with padding."""
        program_attribs = {
            name for name in program if isinstance(program[name], moderngl.Attribute)
        }
        if not program_attribs:
            raise RuntimeError("Program has no vertex attributes")

        fmt_parts: List[str] = []
        attrs: List[str] = []
        for element in model.vertex_layout.elements:
            if element.attribute_name in program_attribs:
                fmt_parts.append(element.type.gl_format)
                attrs.append(element.attribute_name)
            else:
                fmt_parts.append(f"{element.type.size}x")

        if not attrs:
            raise RuntimeError(
                "No compatible vertex attributes between model layout and program"
            )

        return self._ctx.vertex_array(
            program,
            [(vbo, " ".join(fmt_parts), *attrs)],
            index_buffer=ibo,
            index_element_size=model.index_element_size,
        )

    def _bind_material(
        self, program: moderngl.Program, material: Material
    ) -> List[moderngl.Texture]:
        textures: List[moderngl.Texture] = []
        for unit, image in material.textures.items():
            height, width = image.shape[:2]
            texture = self._ctx.texture(
                (width, height),
                4,
                data=np.ascontiguousarray(image, dtype=np.float32).tobytes(),
                dtype="f4",
            )
            texture.filter = (moderngl.NEAREST, moderngl.NEAREST)
            texture.use(location=int(unit))
            textures.append(texture)

            sampler = program.get(unit.sampler_name, None)
            if sampler is not None:
                sampler.value = int(unit)

        for name, value in material.parameters.items():
            _write_parameter(program, name, value)
        return textures


def _clear_depth(fbo: moderngl.Framebuffer) -> None:
    """Reset depth between views while keeping what earlier views drew."""
    mask = fbo.color_mask
    fbo.color_mask = (False, False, False, False)
    fbo.clear(depth=1.0)
    fbo.color_mask = mask


def _write_matrix(program: moderngl.Program, name: str, matrix: np.ndarray) -> None:
    member = program.get(name, None)
    if member is not None:
        member.write(to_uniform_bytes(matrix))


def _write_parameter(
    program: moderngl.Program, name: str, value: Sequence[float]
) -> None:
    member = program.get(name, None)
    if member is None:
        return
    if member.dimension == 1:
        member.value = float(value[0])
    else:
        padded = tuple(value) + (0.0,) * max(0, member.dimension - len(value))
        member.value = padded[: member.dimension]
