import numpy as np
import pytest

from kiln.errors import GenerationError, MissingCameraError, MissingResourceError
from kiln.rendering.interface import RenderPath
from kiln.rendering.material import Material, TextureUnit
from kiln.rendering.scene import IntRect, SceneNode
from kiln.settings import FactorySettings, GapFillSettings, NoiseSettings
from kiln.textures.description import (
    GeometryDescription,
    OrthoCameraDescription,
    TextureDescription,
    TextureFactoryDescriptor,
)
from kiln.textures.image import load_image
from kiln.textures.noise import NoiseOctave
from kiln.textures.pipeline import (
    GenerationReport,
    TexturePipeline,
    TextureStage,
    ViewDescription,
    run_texture_factory,
)


@pytest.fixture
def pipeline(renderer, library):
    return TexturePipeline(renderer, library)


def quad_texture(width=4, height=4, material="Plain", **kwargs):
    return TextureDescription(
        width=width,
        height=height,
        cameras=[OrthoCameraDescription.identity(width, height)],
        geometries=[GeometryDescription("Quad", [material])],
        render_path="Fake",
        **kwargs,
    )


def test_flat_fill_skips_renderer(pipeline, renderer):
    description = TextureDescription(width=3, height=2, color=(0.1, 0.2, 0.3, 1.0))

    report = pipeline.generate([("Flat", description)])

    assert report.ok
    assert report.stages["Flat"] is TextureStage.FINALIZED
    assert renderer.targets == []
    np.testing.assert_allclose(report.textures["Flat"][1, 2], [0.1, 0.2, 0.3, 1.0], rtol=1e-6)


def test_rendered_texture_goes_through_every_stage(pipeline, renderer):
    description = quad_texture()
    description.set_parameter("MatDiffColor", (0.5, 0.5, 0.5, 1.0))

    report = pipeline.generate([("Gray", description)])

    assert report.stages["Gray"] is TextureStage.FINALIZED
    np.testing.assert_allclose(report.textures["Gray"], np.full((4, 4, 4), [0.5, 0.5, 0.5, 1.0]))
    assert len(renderer.frames) == 1
    assert renderer.targets[0].released


def test_shared_material_is_not_modified(pipeline, library):
    shared = library.get_material("Plain")
    description = quad_texture()
    description.set_parameter("MatDiffColor", (1.0, 0.0, 0.0, 1.0))

    pipeline.generate([("Red", description)])

    assert shared.parameters == {}
    assert shared.textures == {}


def test_failure_aborts_only_its_texture(pipeline, caplog):
    broken = quad_texture(material="Missing")
    fine = TextureDescription(color=(0.0, 1.0, 0.0, 1.0))

    report = pipeline.generate([("Broken", broken), ("Fine", fine)])

    assert not report.ok
    assert "Fine" in report.textures
    assert "Broken" not in report.textures
    assert report.stages["Broken"] is TextureStage.FAILED

    failure = report.failures["Broken"]
    assert isinstance(failure, GenerationError)
    assert isinstance(failure.cause, MissingResourceError)
    assert failure.cause.kind == "material"
    assert failure.cause.name == "Missing"
    assert "Broken" in caplog.text


def test_missing_model_and_render_path_are_reported(pipeline):
    no_model = quad_texture()
    no_model.geometries = [GeometryDescription("Cube", ["Plain"])]
    no_path = quad_texture()
    no_path.render_path = "Deferred"

    report = pipeline.generate([("A", no_model), ("B", no_path)])

    assert report.failures["A"].cause.kind == "model"
    assert report.failures["B"].cause.kind == "render path"
    assert report.failures["B"].cause.name == "Deferred"


def test_missing_input_texture_is_reported(pipeline):
    description = quad_texture(textures={TextureUnit.DIFFUSE: "Nowhere"})

    report = pipeline.generate([("T", description)])

    assert report.failures["T"].cause.kind == "texture"
    assert report.failures["T"].cause.name == "Nowhere"


def test_absent_material_is_reported(pipeline, renderer, caplog):
    description = quad_texture(material=None)
    fine = TextureDescription(color=(0.0, 1.0, 0.0, 1.0))

    with caplog.at_level("ERROR"):
        report = pipeline.generate([("T", description), ("Fine", fine)])

    assert "T" not in report.textures
    assert "Fine" in report.textures
    assert report.stages["T"] is TextureStage.FAILED
    cause = report.failures["T"].cause
    assert cause.kind == "material"
    assert cause.name == "Quad[0]"
    assert any(r.levelname == "ERROR" and "'T'" in r.getMessage() for r in caplog.records)
    assert renderer.frames == []


def test_textures_chain_by_name(pipeline, renderer):
    base = TextureDescription(width=4, height=4, color=(1.0, 0.0, 0.0, 1.0))
    derived = quad_texture(textures={TextureUnit.DIFFUSE: "Base"})

    report = pipeline.generate([("Base", base), ("Derived", derived)])

    np.testing.assert_allclose(report.textures["Derived"], report.textures["Base"])
    material = renderer.frames[0].materials[0]
    assert material.texture(TextureUnit.DIFFUSE) is report.textures["Base"]


def test_overrides_win_over_resources(pipeline, library, make_image):
    library.register_texture("Input", make_image(4, 4, (0.0, 0.0, 1.0, 1.0)))
    override = make_image(4, 4, (0.0, 1.0, 0.0, 1.0))
    description = quad_texture(textures={TextureUnit.DIFFUSE: "Input"})

    report = pipeline.generate([("T", description)], overrides={"Input": override})

    np.testing.assert_allclose(report.textures["T"], override)


def test_views_respect_camera_viewports(pipeline):
    description = quad_texture(width=4, height=2)
    description.cameras = [OrthoCameraDescription(viewport=IntRect(0, 0, 2, 2))]

    image = pipeline.render_texture(description, {})

    np.testing.assert_allclose(image[:, :2, 3], 1.0)
    np.testing.assert_allclose(image[:, 2:, 3], 0.0)


def test_every_camera_gets_a_view(pipeline, renderer):
    description = quad_texture()
    description.cameras = [
        OrthoCameraDescription.identity(4, 4),
        OrthoCameraDescription.identity(4, 4, offset=(1.0, 0.0, 0.0)),
    ]

    views = pipeline.construct_views(description, {})

    assert len(views) == 2
    assert views[1].camera_node.position == (1.5, 0.5, 0.0)
    assert all(v.render_path.name == "Fake" for v in views)


def test_view_without_camera_component_fails(pipeline, quad):
    view = ViewDescription(
        camera_node=SceneNode(name="Eye"),
        geometry_node=SceneNode(name="Geometry"),
        viewport=IntRect(0, 0, 2, 2),
        render_path=RenderPath("Fake"),
    )

    with pytest.raises(MissingCameraError) as err:
        pipeline.render_views(2, 2, [view])
    assert err.value.name == "Eye"


def test_post_render_gap_fill(renderer, library, make_image):
    pipeline = TexturePipeline(renderer, library, gap_fill=GapFillSettings())
    source = make_image(4, 4, (0.0, 0.0, 0.0, 0.0))
    source[0, 0] = (1.0, 1.0, 0.0, 1.0)
    description = quad_texture(textures={TextureUnit.DIFFUSE: "Src"}, fill_gaps=True)

    report = pipeline.generate([("T", description)], overrides={"Src": source})

    result = report.textures["T"]
    np.testing.assert_allclose(result[3, 3], [1.0, 1.0, 0.0, 0.0])
    assert report.stages["T"] is TextureStage.FINALIZED


def test_noise_octaves_are_accumulated(pipeline, renderer):
    octaves = [NoiseOctave(0.5, 0.5, magnitude=2.0, seed=3.0)]

    image = pipeline.generate_perlin_noise(4, 4, octaves, render_path=RenderPath("Fake"))

    # The fake renderer writes the octave scale into red: 0.5 * 2 / 2.
    np.testing.assert_allclose(image, np.full((4, 4, 4), [0.5, 0.5, 0.5, 1.0]))
    params = renderer.frames[0].materials[0].parameters["MatDiffColor"]
    assert params == (0.5, 0.5, 3.0, 3.0)


def test_noise_is_recorded_in_report(pipeline):
    report = GenerationReport()

    image = pipeline.generate_perlin_noise(
        4, 4, [NoiseOctave(0.5, 0.5)], render_path=RenderPath("Fake"), report=report, name="Clouds"
    )

    assert report.textures["Clouds"] is image
    assert report.stages["Clouds"] is TextureStage.FINALIZED
    assert report.ok


def test_noise_scale_is_aspect_corrected(pipeline, renderer):
    pipeline.generate_perlin_noise(
        8,
        4,
        [NoiseOctave(0.25, 0.25)],
        NoiseSettings(first_color=(0, 0, 0, 1), second_color=(1, 1, 1, 1)),
        render_path=RenderPath("Fake"),
    )

    params = renderer.frames[0].materials[0].parameters["MatDiffColor"]
    assert params[:2] == (0.5, 0.25)


def test_gap_fill_passes_chain_input(pipeline, renderer, make_image):
    image = make_image(2, 2, (0.3, 0.3, 0.3, 1.0))
    image[1, 1] = (0.0, 0.0, 0.0, 0.25)

    result = pipeline.fill_texture_gaps(image, 3, render_path=RenderPath("Fake"))

    assert len(renderer.frames) == 3
    material = renderer.frames[-1].materials[0]
    assert "InputInvSize" in material.parameters
    assert material.parameters["InputInvSize"][:2] == (0.5, 0.5)
    np.testing.assert_allclose(result[..., 3], image[..., 3])


def test_gap_fill_keys_out_black_for_opaque_images(pipeline, renderer, make_image):
    image = make_image(2, 1, (0.0, 0.0, 0.0, 1.0))
    image[0, 1] = (1.0, 0.0, 0.0, 1.0)

    result = pipeline.fill_texture_gaps(
        image, 1, is_transparent=False, render_path=RenderPath("Fake")
    )

    seen = renderer.frames[0].materials[0].texture(TextureUnit.DIFFUSE)
    assert seen[0, 0, 3] == 0.0
    np.testing.assert_allclose(result[..., 3], 1.0)
    np.testing.assert_allclose(result[0, 1], [1.0, 0.0, 0.0, 1.0])


def test_gap_fill_depth_zero_returns_input(pipeline, renderer, make_image):
    image = make_image(2, 2, (0.5, 0.5, 0.5, 1.0))

    result = pipeline.fill_texture_gaps(image, 0)

    np.testing.assert_allclose(result, image)
    assert renderer.frames == []


def test_factory_run_writes_and_skips(tmp_path, pipeline, renderer):
    descriptor = TextureFactoryDescriptor()
    descriptor.add_texture("Red", TextureDescription(width=2, height=2, color=(1, 0, 0, 1)))
    descriptor.add_output("red", "out/red.png")
    settings = FactorySettings(output_directory=tmp_path)

    report = run_texture_factory(descriptor, pipeline, settings)

    assert report.ok
    assert report.written == [tmp_path / "out" / "red.png"]
    np.testing.assert_allclose(load_image(tmp_path / "out" / "red.png")[0, 0], [1, 0, 0, 1])

    again = run_texture_factory(descriptor, pipeline, settings)
    assert again.skipped
    assert again.written == []

    forced = run_texture_factory(
        descriptor, pipeline, FactorySettings(output_directory=tmp_path, force_generation=True)
    )
    assert forced.written


def test_factory_run_reports_undefined_outputs(tmp_path, pipeline):
    descriptor = TextureFactoryDescriptor()
    descriptor.add_texture("A", TextureDescription())
    descriptor.add_output("Ghost", "ghost.png")

    report = run_texture_factory(descriptor, pipeline, FactorySettings(output_directory=tmp_path))

    assert not report.ok
    assert report.failures["Ghost"].cause.kind == "texture"
    assert not (tmp_path / "ghost.png").exists()


def test_materials_may_be_given_directly(renderer, quad):
    pipeline = TexturePipeline(renderer)
    material = Material(parameters={"MatDiffColor": (0.0, 0.0, 1.0, 1.0)})
    description = TextureDescription(
        width=2,
        height=2,
        cameras=[OrthoCameraDescription.identity(2, 2)],
        geometries=[GeometryDescription(quad, [material])],
        render_path=RenderPath("Fake"),
    )

    image = pipeline.render_texture(description, {})

    np.testing.assert_allclose(image[0, 0], [0, 0, 1, 1])
    assert renderer.frames[0].materials[0] is not material
