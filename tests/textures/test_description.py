import pytest

from kiln.rendering.interface import RenderPath
from kiln.rendering.scene import IntRect
from kiln.textures.description import (
    GeometryDescription,
    OrthoCameraDescription,
    TextureDescription,
    TextureFactoryDescriptor,
)


def renderable(quad):
    return TextureDescription(
        width=4,
        height=2,
        cameras=[OrthoCameraDescription.identity(4, 2)],
        geometries=[GeometryDescription(quad, ["Plain"])],
        render_path="Fake",
    )


def test_identity_camera_frames_unit_square():
    camera = OrthoCameraDescription.identity(16, 8, offset=(0.25, 0.0, 0.0))

    assert camera.position == (0.75, 0.5, 0.0)
    assert camera.size == (1.0, 1.0)
    assert camera.far_clip == 1.0
    assert camera.viewport == IntRect(0, 0, 16, 8)


def test_empty_viewport_covers_texture():
    camera = OrthoCameraDescription()

    assert camera.resolved_viewport(5, 3) == IntRect(0, 0, 5, 3)


def test_flat_fill_when_anything_is_missing(quad):
    full = renderable(quad)
    assert not full.is_flat_fill

    assert TextureDescription().is_flat_fill
    assert TextureDescription(geometries=full.geometries, render_path="Fake").is_flat_fill
    assert TextureDescription(cameras=full.cameras, render_path="Fake").is_flat_fill
    assert TextureDescription(cameras=full.cameras, geometries=full.geometries).is_flat_fill


def test_with_default_camera(quad):
    description = TextureDescription(
        width=8, height=4, geometries=[GeometryDescription(quad, [None])],
        render_path=RenderPath("Fake"),
    )

    framed = description.with_default_camera()

    assert framed.cameras == [OrthoCameraDescription.identity(8, 4)]
    assert description.cameras == []
    assert framed.with_default_camera() is framed


def test_texture_size_must_be_positive():
    with pytest.raises(ValueError):
        TextureDescription(width=0)


def test_parameters_are_stored_as_tuples():
    description = TextureDescription()
    description.set_parameter("Roughness", 0.5)
    description.set_parameter("MatDiffColor", [1, 0, 0, 1])

    assert description.parameters == {
        "Roughness": (0.5,),
        "MatDiffColor": (1.0, 0.0, 0.0, 1.0),
    }


def test_descriptor_names_are_case_insensitive():
    descriptor = TextureFactoryDescriptor()

    assert descriptor.add_texture("Bricks", TextureDescription())
    assert not descriptor.add_texture("BRICKS", TextureDescription())

    assert len(descriptor) == 1
    assert descriptor.find_texture("bricks") == 0
    assert descriptor.find_texture("tiles") == -1
    with pytest.raises(KeyError):
        descriptor.get_texture("tiles")


def test_outputs_default_to_every_texture():
    descriptor = TextureFactoryDescriptor()
    descriptor.add_texture("A", TextureDescription())
    descriptor.add_texture("B", TextureDescription())

    assert descriptor.resolved_outputs() == [("A", "A.png"), ("B", "B.png")]

    descriptor.add_output("B", "maps/b_diffuse.png")
    assert descriptor.resolved_outputs() == [("B", "maps/b_diffuse.png")]

    descriptor.remove_all_outputs()
    descriptor.remove_all_textures()
    assert descriptor.resolved_outputs() == []


def test_check_all_outputs(tmp_path):
    descriptor = TextureFactoryDescriptor()
    descriptor.add_texture("A", TextureDescription())
    descriptor.add_output("A", "a.png")

    assert not descriptor.check_all_outputs(tmp_path)

    (tmp_path / "a.png").write_bytes(b"")
    assert descriptor.check_all_outputs(tmp_path)


def test_variations_share_description(quad):
    descriptor = TextureFactoryDescriptor()
    base = renderable(quad)

    added = descriptor.add_variations(
        base, {"Diffuse": RenderPath("D"), "Normal": RenderPath("N")}
    )

    assert added == 2
    assert descriptor.get_texture("normal").render_path == RenderPath("N")
    assert descriptor.get_texture("diffuse").width == 4
