# kiln/textures/pipeline.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from kiln.errors import GenerationError, KilnError, MissingCameraError, MissingResourceError
from kiln.geometry.model import MergedMesh
from kiln.geometry.primitives import QuadModelCache
from kiln.rendering.builtin import GAP_DILATION, INPUT_SIZE_PARAMETER, VALUE_NOISE
from kiln.rendering.interface import Renderer, RenderPath
from kiln.rendering.material import Material, TextureUnit
from kiln.rendering.resources import ResourceCache, ResourceLibrary
from kiln.rendering.scene import CameraComponent, IntRect, SceneNode, StaticModel, TransientScene
from kiln.settings import Color, FactorySettings, GapFillSettings, NoiseSettings
from kiln.textures.description import (
    GeometryDescription,
    MaterialRef,
    ModelRef,
    OrthoCameraDescription,
    RenderPathRef,
    TextureDescription,
    TextureFactoryDescriptor,
)
from kiln.textures.distance_field import fill_image_gaps
from kiln.textures.image import (
    TRANSPARENT,
    convert_color_key_to_alpha,
    copy_image_alpha,
    new_image,
    reset_image_alpha,
    save_image,
)
from kiln.textures.noise import NoiseOctave, apply_noise_modifiers, aspect_scale, colorize
from kiln.util.ids import INPUT_TEXTURE, NOISE_PARAMETER

logger = logging.getLogger(__name__)

TextureMap = Mapping[str, np.ndarray]


class TextureStage(Enum):
    UNRESOLVED = "unresolved"
    VIEWS_CONSTRUCTED = "views_constructed"
    RENDERED = "rendered"
    GAP_FILLED = "gap_filled"
    NOISE_COMPOSED = "noise_composed"
    FINALIZED = "finalized"
    FAILED = "failed"


@dataclass(slots=True)
class ViewDescription:
    """One camera's view of a texture's geometry."""

    camera_node: SceneNode
    geometry_node: SceneNode
    viewport: IntRect
    render_path: RenderPath


@dataclass(slots=True)
class GenerationReport:
    textures: Dict[str, np.ndarray] = field(default_factory=dict)
    failures: Dict[str, GenerationError] = field(default_factory=dict)
    stages: Dict[str, TextureStage] = field(default_factory=dict)
    written: List[Path] = field(default_factory=list)
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return not self.failures

    def find_texture(self, name: str) -> Optional[np.ndarray]:
        texture = self.textures.get(name)
        if texture is not None:
            return texture
        key = name.lower()
        for existing, image in self.textures.items():
            if existing.lower() == key:
                return image
        return None


class TexturePipeline:
    """
    Turns texture descriptions into images through a Renderer.

    Names in descriptions (models, materials, render paths, input textures)
    are resolved through `resources`; input textures are looked up in the
    caller's texture map first. A resolution failure aborts only the texture
    being generated.
    """

    def __init__(
        self,
        renderer: Renderer,
        resources: Optional[ResourceCache] = None,
        gap_fill: GapFillSettings = GapFillSettings(),
        quad_cache: Optional[QuadModelCache] = None,
    ) -> None:
        self.renderer = renderer
        self.resources = resources if resources is not None else ResourceLibrary()
        self.gap_fill = gap_fill
        self.quad_cache = quad_cache if quad_cache is not None else QuadModelCache()

    # -- resolution --------------------------------------------------------

    def _resolve_model(self, ref: ModelRef) -> MergedMesh:
        if isinstance(ref, MergedMesh):
            return ref
        model = self.resources.find_model(ref)
        if model is None:
            raise MissingResourceError("model", ref)
        return model

    def _resolve_material(self, ref: MaterialRef) -> Optional[Material]:
        if ref is None or isinstance(ref, Material):
            return ref
        material = self.resources.find_material(ref)
        if material is None:
            raise MissingResourceError("material", ref)
        return material

    def _resolve_render_path(self, ref: RenderPathRef) -> RenderPath:
        if isinstance(ref, RenderPath):
            return ref
        render_path = self.resources.find_render_path(ref)
        if render_path is None:
            raise MissingResourceError("render path", ref)
        return render_path

    def _resolve_input(self, name: str, textures: TextureMap) -> np.ndarray:
        texture = textures.get(name)
        if texture is None:
            texture = self.resources.find_texture(name)
        if texture is None:
            raise MissingResourceError("texture", name)
        return texture

    # -- rendering ---------------------------------------------------------

    def construct_views(
        self, description: TextureDescription, textures: TextureMap
    ) -> List[ViewDescription]:
        """Resolve everything a description references into renderable views."""
        if description.is_flat_fill:
            return []
        render_path = self._resolve_render_path(description.render_path)

        inputs = {
            unit: self._resolve_input(name, textures)
            for unit, name in description.textures.items()
        }

        geometry_node = SceneNode(name="Geometry")
        for geometry in description.geometries:
            geometry_node.models.append(self._static_model(geometry, inputs, description))

        views = []
        for index, camera in enumerate(description.cameras):
            camera_node = SceneNode(
                name=f"Camera{index}",
                position=camera.position,
                rotation=camera.rotation,
                camera=CameraComponent(far_clip=camera.far_clip, ortho_size=camera.size),
            )
            views.append(
                ViewDescription(
                    camera_node=camera_node,
                    geometry_node=geometry_node,
                    viewport=camera.resolved_viewport(description.width, description.height),
                    render_path=render_path,
                )
            )
        return views

    def _static_model(
        self,
        geometry: GeometryDescription,
        inputs: Mapping[TextureUnit, np.ndarray],
        description: TextureDescription,
    ) -> StaticModel:
        model = self._resolve_model(geometry.model)
        label = geometry.name or (geometry.model if isinstance(geometry.model, str) else "geometry")
        materials: List[Optional[Material]] = []
        for index, ref in enumerate(geometry.materials):
            material = self._resolve_material(ref)
            if material is None:
                raise MissingResourceError("material", f"{label}[{index}]")

            # Overrides must not leak into the shared asset.
            material = material.clone()
            for unit, texture in inputs.items():
                material.set_texture(unit, texture)
            material.parameters.update(description.parameters)
            materials.append(material)
        return StaticModel(model=model, materials=materials)

    def render_views(
        self,
        width: int,
        height: int,
        views: Sequence[ViewDescription],
        clear_color: Color = TRANSPARENT,
    ) -> np.ndarray:
        """Render views into one image; views built by hand must carry a camera."""
        target = self.renderer.create_target(width, height, clear_color)
        try:
            for view in views:
                if view.camera_node.camera is None:
                    raise MissingCameraError(view.camera_node.name)
                with TransientScene() as scene:
                    scene.add(view.geometry_node)
                    scene.add(view.camera_node)
                    self.renderer.render_frame(
                        scene, view.camera_node, view.viewport, view.render_path, target
                    )
            return self.renderer.read_target(target)
        finally:
            self.renderer.release_target(target)

    def render_texture(
        self, description: TextureDescription, textures: TextureMap
    ) -> np.ndarray:
        """Render one description; degenerate ones become a flat fill."""
        if description.is_flat_fill:
            return new_image(description.width, description.height, description.color)

        views = self.construct_views(description, textures)
        return self.render_views(
            description.width,
            description.height,
            views,
            views[0].render_path.clear_color,
        )

    # -- orchestration -----------------------------------------------------

    def generate(
        self,
        entries: Iterable[Tuple[str, TextureDescription]] | TextureFactoryDescriptor,
        overrides: Optional[TextureMap] = None,
    ) -> GenerationReport:
        """
        Generate every entry in order.

        Each finished texture is visible to later entries under its own name,
        so descriptions can chain. Failures are logged and collected; the
        remaining entries still run.
        """
        report = GenerationReport()
        available: Dict[str, np.ndarray] = dict(overrides or {})

        for name, description in entries:
            report.stages[name] = TextureStage.UNRESOLVED
            try:
                image = self._generate_one(name, description, available, report)
            except KilnError as e:
                logger.error("Cannot generate texture '%s': %s", name, e)
                report.failures[name] = GenerationError(name, e)
                report.stages[name] = TextureStage.FAILED
                continue

            report.textures[name] = image
            available[name] = image

        logger.info(
            "Generated %d textures, %d failed",
            len(report.textures),
            len(report.failures),
        )
        return report

    def _generate_one(
        self,
        name: str,
        description: TextureDescription,
        textures: TextureMap,
        report: GenerationReport,
    ) -> np.ndarray:
        if description.is_flat_fill:
            logger.debug("Texture '%s' has nothing to render, using flat fill", name)
            report.stages[name] = TextureStage.FINALIZED
            return new_image(description.width, description.height, description.color)

        views = self.construct_views(description, textures)
        report.stages[name] = TextureStage.VIEWS_CONSTRUCTED

        image = self.render_views(
            description.width,
            description.height,
            views,
            views[0].render_path.clear_color,
        )
        report.stages[name] = TextureStage.RENDERED

        if description.fill_gaps:
            image = fill_image_gaps(
                image,
                self.gap_fill.downsample,
                self.gap_fill.is_transparent,
                self.gap_fill.epsilon,
            )
            report.stages[name] = TextureStage.GAP_FILLED

        report.stages[name] = TextureStage.FINALIZED
        logger.debug("Generated texture '%s' (%dx%d)", name, description.width, description.height)
        return image

    # -- procedural passes -------------------------------------------------

    def _quad_description(
        self,
        width: int,
        height: int,
        render_path: RenderPathRef,
        model: Optional[ModelRef],
        material: MaterialRef,
    ) -> TextureDescription:
        return TextureDescription(
            width=width,
            height=height,
            cameras=[OrthoCameraDescription.identity(width, height)],
            geometries=[
                GeometryDescription(
                    model=model if model is not None else self.quad_cache.get(),
                    materials=[material if material is not None else Material()],
                )
            ],
            render_path=render_path,
        )

    def generate_perlin_noise_octave(
        self,
        width: int,
        height: int,
        scale: Tuple[float, float],
        seed: float,
        render_path: RenderPathRef = VALUE_NOISE,
        model: Optional[ModelRef] = None,
        material: MaterialRef = None,
    ) -> np.ndarray:
        description = self._quad_description(width, height, render_path, model, material)
        description.set_parameter(NOISE_PARAMETER, (scale[0], scale[1], seed, seed))
        return self.render_texture(description, {})

    def generate_perlin_noise(
        self,
        width: int,
        height: int,
        octaves: Sequence[NoiseOctave],
        settings: NoiseSettings = NoiseSettings(),
        render_path: RenderPathRef = VALUE_NOISE,
        model: Optional[ModelRef] = None,
        material: MaterialRef = None,
        report: Optional[GenerationReport] = None,
        name: str = "Noise",
    ) -> np.ndarray:
        """
        Sum noise octaves weighted by magnitude, then normalize, apply bias,
        contrast and range, and map the result onto a two-color gradient.

        Octave scales are corrected for the texture's aspect ratio so cells
        stay square. When `report` is given the result is recorded in it
        under `name`, with its stages.
        """
        if report is not None:
            report.stages[name] = TextureStage.UNRESOLVED
        ax, ay = aspect_scale(width, height)
        accumulated = np.zeros((height, width), dtype=np.float32)
        total_magnitude = 0.0

        for octave in octaves:
            image = self.generate_perlin_noise_octave(
                width,
                height,
                (octave.scale_x * ax, octave.scale_y * ay),
                octave.seed,
                render_path,
                model,
                material,
            )
            accumulated += image[..., 0] * octave.magnitude
            total_magnitude += octave.magnitude

        values = apply_noise_modifiers(accumulated, total_magnitude, settings)
        image = colorize(values, settings.first_color, settings.second_color)
        if report is not None:
            report.stages[name] = TextureStage.NOISE_COMPOSED
            report.textures[name] = image
            report.stages[name] = TextureStage.FINALIZED
        return image

    def fill_texture_gaps(
        self,
        image: np.ndarray,
        depth: int,
        is_transparent: bool = True,
        render_path: RenderPathRef = GAP_DILATION,
        model: Optional[ModelRef] = None,
        material: MaterialRef = None,
        size_parameter: str = INPUT_SIZE_PARAMETER,
    ) -> np.ndarray:
        """
        Run `depth` chained dilation passes over `image` on the renderer.

        Each pass sees the previous result as the "Input" texture. Images
        without meaningful alpha have black keyed out first; the result gets
        the original alpha back, or opaque alpha for keyed images.
        """
        if depth < 0:
            raise ValueError(f"depth must be >= 0, got {depth}")

        height, width = image.shape[:2]
        current = image if is_transparent else convert_color_key_to_alpha(image)

        for _ in range(depth):
            description = self._quad_description(width, height, render_path, model, material)
            description.textures[TextureUnit.DIFFUSE] = INPUT_TEXTURE
            description.set_parameter(size_parameter, (1.0 / width, 1.0 / height, 0.0, 0.0))
            current = self.render_texture(description, {INPUT_TEXTURE: current})

        if is_transparent:
            return copy_image_alpha(current, image)
        return reset_image_alpha(current)


def run_texture_factory(
    descriptor: TextureFactoryDescriptor,
    pipeline: TexturePipeline,
    settings: FactorySettings = FactorySettings(),
    overrides: Optional[TextureMap] = None,
) -> GenerationReport:
    """
    Generate every texture of `descriptor` and write its outputs as PNG.

    Nothing is generated when all outputs already exist, unless forced.
    """
    directory = settings.output_directory
    if not settings.force_generation and descriptor.check_all_outputs(directory):
        logger.info("All texture outputs exist in %s, skipping generation", directory)
        return GenerationReport(skipped=True)

    report = pipeline.generate(descriptor, overrides)

    for texture_name, file_name in descriptor.resolved_outputs():
        image = report.find_texture(texture_name)
        if image is None:
            if texture_name not in report.failures:
                logger.error("Output texture '%s' is not defined", texture_name)
                report.failures[texture_name] = GenerationError(
                    texture_name, MissingResourceError("texture", texture_name)
                )
            continue

        path = directory / file_name
        save_image(image, path)
        report.written.append(path)
        logger.info("Saved texture '%s' to %s", texture_name, path)

    return report
