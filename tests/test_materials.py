"""Tests for materials, textures and texture transforms"""

import numpy as np
import pygltflib
import pytest

from src.gltfimporter.config.import_options import ImportOptions
from src.gltfimporter.loaders.gltf_importer import GltfImporter
from src.gltfimporter.loaders.material import ShadingModel
from src.gltfimporter.loaders.texture_transform import TextureTransform
from src.gltfimporter.loaders.textures import FilterMode, WrapMode, filter_mode_for, mip_count_for, wrap_mode_for

from gltf_builders import DocumentBuilder


def textured_document(material_kwargs=None, extensions_used=None, sampler=None):
    builder = DocumentBuilder()
    image = builder.add_png_image(4, 2, (0, 255, 0, 255))
    texture = builder.add_texture(image, sampler)
    kwargs = {
        "name": "Painted",
        "pbrMetallicRoughness": pygltflib.PbrMetallicRoughness(
            baseColorFactor=[0.5, 0.5, 0.5, 1.0],
            metallicFactor=0.25,
            roughnessFactor=0.75,
            baseColorTexture=pygltflib.TextureInfo(index=texture)),
    }
    kwargs.update(material_kwargs or {})
    builder.gltf.materials.append(pygltflib.Material(**kwargs))
    builder.gltf.extensionsUsed = list(extensions_used or [])
    return builder.build()


def test_metallic_roughness_material():
    """Test factors and base color slot are read"""
    importer = GltfImporter(textured_document())
    entry = importer.load_material(0)
    material = entry.material

    assert material.name == "Painted"
    assert material.shading_model == ShadingModel.METALLIC_ROUGHNESS
    assert material.shader_name == "GLTF/PbrMetallicRoughness"
    assert material.base_color_factor == (0.5, 0.5, 0.5, 1.0)
    assert material.metallic_factor == 0.25
    assert material.roughness_factor == 0.75
    slot = material.get_texture("base_color")
    assert slot.texture.image.width == 4
    assert slot.texture.image.height == 2
    assert np.array_equal(slot.texture.image.pixels[0, 0], [0, 255, 0, 255])


def test_vertex_color_variant():
    """Test both variants share textures and differ in vertex colors"""
    entry = GltfImporter(textured_document()).load_material(0)

    assert entry.material.vertex_colors_enabled is False
    assert entry.material_with_vertex_color.vertex_colors_enabled is True
    assert entry.material_with_vertex_color.get_texture("base_color") is entry.material.get_texture("base_color")
    assert entry.variant_for(True) is entry.material_with_vertex_color


def test_default_material_is_shared():
    """Test a null material index always gives the same default"""
    importer = GltfImporter(textured_document())
    first = importer.load_material(None)

    assert importer.load_material(-1) is first
    assert first.material.name == "Default"
    assert first.definition is None


def test_material_built_once():
    """Test repeated loads return the cached entry"""
    importer = GltfImporter(textured_document())
    assert importer.load_material(0) is importer.load_material(0)


def test_custom_shader_and_lod():
    """Test shader override and maximum LOD are recorded"""
    options = ImportOptions(custom_shader_name="Custom/Toon", maximum_lod=150)
    material = GltfImporter(textured_document(), options=options).load_material(0).material

    assert material.shader_name == "Custom/Toon"
    assert material.maximum_lod == 150


def test_specular_glossiness_requires_declaration():
    """Test spec-gloss is used only when the document declares it"""
    spec_gloss = {"KHR_materials_pbrSpecularGlossiness": {
        "diffuseFactor": [1.0, 0.0, 0.0, 1.0],
        "specularFactor": [0.1, 0.2, 0.3],
        "glossinessFactor": 0.4,
        "diffuseTexture": {"index": 0},
    }}

    declared = GltfImporter(textured_document(
        {"extensions": spec_gloss}, ["KHR_materials_pbrSpecularGlossiness"])).load_material(0).material
    undeclared = GltfImporter(textured_document({"extensions": spec_gloss})).load_material(0).material

    assert declared.shading_model == ShadingModel.SPECULAR_GLOSSINESS
    assert declared.shader_name == "GLTF/PbrSpecularGlossiness"
    assert declared.diffuse_factor == (1.0, 0.0, 0.0, 1.0)
    assert declared.specular_factor == (0.1, 0.2, 0.3)
    assert declared.glossiness_factor == 0.4
    assert declared.get_texture("diffuse") is not None
    assert undeclared.shading_model == ShadingModel.METALLIC_ROUGHNESS


def test_normal_occlusion_emissive():
    """Test shared slots, alpha and double-sided settings"""
    document = textured_document({
        "normalTexture": pygltflib.NormalMaterialTexture(index=0, scale=0.5),
        "occlusionTexture": pygltflib.OcclusionTextureInfo(index=0, strength=0.3),
        "emissiveTexture": pygltflib.TextureInfo(index=0, texCoord=1),
        "emissiveFactor": [1.0, 0.5, 0.0],
        "alphaMode": "MASK",
        "alphaCutoff": 0.3,
        "doubleSided": True,
    })
    material = GltfImporter(document).load_material(0).material

    assert material.normal_scale == 0.5
    assert material.occlusion_strength == pytest.approx(0.3)
    assert material.get_texture("emissive").tex_coord == 1
    assert material.emissive_factor == (1.0, 0.5, 0.0)
    assert material.alpha_mode == "MASK"
    assert material.alpha_cutoff == pytest.approx(0.3)
    assert material.double_sided is True


def test_texture_transform_requires_declaration():
    """Test KHR_texture_transform is read only when declared"""
    transform = {"KHR_texture_transform": {"offset": [0.5, 0.0], "scale": [2.0, 2.0], "texCoord": 1}}
    info = pygltflib.TextureInfo(index=0, extensions=transform)
    kwargs = {"pbrMetallicRoughness": pygltflib.PbrMetallicRoughness(baseColorTexture=info)}

    declared = GltfImporter(textured_document(kwargs, ["KHR_texture_transform"])).load_material(0).material
    undeclared = GltfImporter(textured_document(kwargs)).load_material(0).material

    slot = declared.get_texture("base_color")
    assert np.allclose(slot.transform.offset, [0.5, 0.0])
    assert np.allclose(slot.transform.scale, [2.0, 2.0])
    assert slot.effective_tex_coord == 1
    assert undeclared.get_texture("base_color").transform is None


def test_texture_transform_matrix():
    """Test scale then offset applied to UVs"""
    transform = TextureTransform(offset=(0.5, 0.25), scale=(2.0, 2.0))
    assert np.allclose(transform.apply([[0.0, 0.0], [1.0, 1.0]]), [[0.5, 0.25], [2.5, 2.25]])

    rotated = TextureTransform(rotation=np.pi / 2)
    assert np.allclose(rotated.apply([[1.0, 0.0]]), [[0.0, -1.0]], atol=1e-6)


@pytest.mark.parametrize("min_filter,expected", [
    (9728, FilterMode.POINT),
    (9984, FilterMode.POINT),
    (9985, FilterMode.POINT),
    (9729, FilterMode.BILINEAR),
    (9986, FilterMode.BILINEAR),
    (9987, FilterMode.TRILINEAR),
    (None, FilterMode.TRILINEAR),
    (1234, FilterMode.TRILINEAR),
])
def test_filter_mapping(min_filter, expected):
    """Test glTF min filters map to host filter modes"""
    assert filter_mode_for(min_filter) == expected


@pytest.mark.parametrize("wrap_s,expected", [
    (33071, WrapMode.CLAMP),
    (10497, WrapMode.REPEAT),
    (33648, WrapMode.MIRROR),
    (1, WrapMode.REPEAT),
])
def test_wrap_mapping(wrap_s, expected):
    """Test glTF wrap modes map to host wrap modes"""
    assert wrap_mode_for(wrap_s) == expected


def test_sampler_applied_to_texture():
    """Test a texture's sampler sets its filter and wrap"""
    builder = DocumentBuilder()
    image = builder.add_png_image()
    sampler = builder.add_sampler(min_filter=9728, wrap_s=33071)
    builder.add_texture(image, sampler)
    builder.add_texture(image)
    importer = GltfImporter(builder.build())

    sampled = importer.load_texture(0)
    plain = importer.load_texture(1)

    assert sampled.filter_mode == FilterMode.POINT
    assert sampled.wrap_mode == WrapMode.CLAMP
    assert plain.filter_mode == FilterMode.TRILINEAR
    assert plain.wrap_mode == WrapMode.REPEAT
    assert importer.get_texture(0) is sampled


def test_shared_image_decoded_once():
    """Test two textures on one image decode it once"""
    builder = DocumentBuilder()
    image = builder.add_png_image(embedded=False)
    builder.add_texture(image)
    builder.add_texture(image)
    importer = GltfImporter(builder.build())

    first = importer.load_texture(0)
    second = importer.load_texture(1)

    assert first is not second
    assert first.image is second.image
    assert importer.status.textures_loaded == 1


def test_color_space_kept_per_texture():
    """Test textures sharing an image keep their own color space"""
    builder = DocumentBuilder()
    image = builder.add_png_image()
    color = builder.add_texture(image)
    normal = builder.add_texture(image)
    builder.gltf.materials.append(pygltflib.Material(
        pbrMetallicRoughness=pygltflib.PbrMetallicRoughness(baseColorTexture=pygltflib.TextureInfo(index=color)),
        normalTexture=pygltflib.NormalMaterialTexture(index=normal)))
    importer = GltfImporter(builder.build())
    material = importer.load_material(0).material

    base = material.get_texture("base_color").texture
    bump = material.get_texture("normal").texture
    assert base.is_linear is False
    assert bump.is_linear is True
    assert base.image is bump.image
    assert importer.status.textures_loaded == 1


def test_mipmaps_and_cpu_copy():
    """Test mip chain length and pixel release"""
    builder = DocumentBuilder()
    builder.add_texture(builder.add_png_image(8, 3))
    document = builder.build()

    kept = GltfImporter(document).load_texture(0)
    released = GltfImporter(document, options=ImportOptions(
        keep_cpu_copy_of_texture=False, generate_mipmaps=False)).load_texture(0)

    assert kept.image.mip_count == 4
    assert kept.readable is True
    assert released.image.mip_count == 1
    assert released.image.pixels is None
    assert released.readable is False
    assert mip_count_for(1, 1) == 1
