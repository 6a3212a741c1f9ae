"""
Material

PBR material description produced from glTF materials, in either the
metallic-roughness or the specular-glossiness workflow.
"""

import copy
import logging
from enum import Enum
from typing import Dict, Optional, Tuple

from .texture_transform import TextureTransform
from ..config import settings
from ..errors import DocumentIntegrityError

logger = logging.getLogger(__name__)


class ShadingModel(Enum):
    METALLIC_ROUGHNESS = "metallic_roughness"
    SPECULAR_GLOSSINESS = "specular_glossiness"


class TextureSlot:
    """A texture bound to a material input, with its UV set and transform."""

    def __init__(self, texture, tex_coord: int = 0, transform: Optional[TextureTransform] = None):
        self.texture = texture
        self.tex_coord = tex_coord
        self.transform = transform

    @property
    def effective_tex_coord(self) -> int:
        """UV set after a KHR_texture_transform texCoord override."""
        if self.transform is not None and self.transform.texcoord is not None:
            return self.transform.texcoord
        return self.tex_coord


class Material:
    """
    Represents a PBR material.

    One type covers both workflows; shading_model says which of the
    factor groups is meaningful:
    - Metallic/Roughness: base color, metallic, roughness
    - Specular/Glossiness: diffuse, specular, glossiness
    Normal, occlusion and emissive inputs are shared.
    """

    def __init__(self, name: str = "Material",
                 shading_model: ShadingModel = ShadingModel.METALLIC_ROUGHNESS):
        """
        Initialize material.

        Args:
            name: Material name for debugging
            shading_model: Workflow the factors belong to
        """
        self.name = name
        self.shading_model = shading_model
        self.shader_name = (settings.SPECULAR_GLOSSINESS_SHADER
                            if shading_model == ShadingModel.SPECULAR_GLOSSINESS
                            else settings.METALLIC_ROUGHNESS_SHADER)
        self.maximum_lod = settings.DEFAULT_MAXIMUM_LOD

        # Metallic/roughness
        self.base_color_factor: Tuple[float, ...] = (1.0, 1.0, 1.0, 1.0)
        self.metallic_factor = 1.0
        self.roughness_factor = 1.0

        # Specular/glossiness
        self.diffuse_factor: Tuple[float, ...] = (1.0, 1.0, 1.0, 1.0)
        self.specular_factor: Tuple[float, ...] = (1.0, 1.0, 1.0)
        self.glossiness_factor = 1.0

        self.emissive_factor: Tuple[float, ...] = (0.0, 0.0, 0.0)
        self.normal_scale = 1.0  # Normal map intensity
        self.occlusion_strength = 1.0

        # Alpha mode ("OPAQUE", "MASK", "BLEND")
        self.alpha_mode = "OPAQUE"
        self.alpha_cutoff = 0.5  # Threshold for MASK mode
        self.double_sided = False

        self.vertex_colors_enabled = False

        # Slot name -> TextureSlot; names match the glTF inputs
        self.texture_slots: Dict[str, TextureSlot] = {}

    def set_texture(self, slot: str, texture_slot: TextureSlot):
        self.texture_slots[slot] = texture_slot

    def get_texture(self, slot: str) -> Optional[TextureSlot]:
        return self.texture_slots.get(slot)

    def clone_with_vertex_color(self) -> "Material":
        """Copy sharing the same textures, with vertex colors enabled."""
        clone = copy.copy(self)
        clone.texture_slots = dict(self.texture_slots)
        clone.vertex_colors_enabled = True
        return clone

    def __repr__(self):
        return f"Material(name='{self.name}', model={self.shading_model.value})"


class MaterialCacheEntry:
    """Both variants of a built material plus its source definition."""

    def __init__(self, material: Material, material_with_vertex_color: Material, definition):
        self.material = material
        self.material_with_vertex_color = material_with_vertex_color
        self.definition = definition

    def variant_for(self, has_vertex_colors: bool) -> Material:
        return self.material_with_vertex_color if has_vertex_colors else self.material


def _info_get(info, key: str, default=None):
    """Texture infos are dataclasses in the core schema and dicts inside extensions."""
    if info is None:
        return default
    if isinstance(info, dict):
        value = info.get(key, default)
    else:
        value = getattr(info, key, default)
    return default if value is None else value


class MaterialBuilder:
    """
    Builds materials for one import session.

    A null material index maps to one shared default material.
    """

    def __init__(self, document, cache, texture_builder, options):
        """
        Initialize builder.

        Args:
            document: Parsed glTF document
            cache: AssetCache with the materials table
            texture_builder: TextureBuilder for slot textures
            options: ImportOptions (shader override, maximum LOD)
        """
        self.document = document
        self.cache = cache
        self.texture_builder = texture_builder
        self.options = options
        self.default_material: Optional[MaterialCacheEntry] = None

    @property
    def extensions_used(self):
        return self.document.extensionsUsed or []

    def build_material(self, material_index: Optional[int]) -> MaterialCacheEntry:
        """
        Build (or fetch) a material.

        Args:
            material_index: Index into document.materials; None or -1 for the default

        Returns:
            MaterialCacheEntry with both vertex color variants
        """
        if material_index is None or material_index < 0:
            if self.default_material is None:
                self.default_material = self._create(None, None)
            return self.default_material

        materials = self.document.materials or []
        if not material_index < len(materials):
            raise DocumentIntegrityError(f"Material index {material_index} out of range")

        entry = self.cache.get("materials", material_index)
        if entry is not None:
            return entry
        entry = self._create(materials[material_index], material_index)
        return self.cache.store("materials", material_index, entry)

    def _uses_spec_gloss(self, definition) -> bool:
        extensions = getattr(definition, 'extensions', None) or {}
        return settings.EXT_SPEC_GLOSS in self.extensions_used and settings.EXT_SPEC_GLOSS in extensions

    def _slot(self, info, is_linear: bool) -> TextureSlot:
        texture = self.texture_builder.build_texture(_info_get(info, 'index'), is_linear)
        return TextureSlot(texture,
                           _info_get(info, 'texCoord', 0),
                           TextureTransform.from_texture_info(info, self.extensions_used))

    def _create(self, definition, material_index: Optional[int]) -> MaterialCacheEntry:
        if definition is None:
            material = Material(settings.DEFAULT_MATERIAL_NAME)
        else:
            model = (ShadingModel.SPECULAR_GLOSSINESS if self._uses_spec_gloss(definition)
                     else ShadingModel.METALLIC_ROUGHNESS)
            material = Material(definition.name or f"Material{material_index}", model)

        if self.options.custom_shader_name:
            material.shader_name = self.options.custom_shader_name
        material.maximum_lod = self.options.maximum_lod

        if definition is not None:
            self._apply_definition(material, definition)

        entry = MaterialCacheEntry(material, material.clone_with_vertex_color(), definition)
        logger.debug("Built material '%s' (%s)", material.name, material.shading_model.value)
        return entry

    def _apply_definition(self, material: Material, definition):
        if definition.alphaMode:
            material.alpha_mode = definition.alphaMode
        if definition.alphaCutoff is not None:
            material.alpha_cutoff = definition.alphaCutoff
        material.double_sided = bool(definition.doubleSided)

        pbr = definition.pbrMetallicRoughness
        if pbr is not None and material.shading_model == ShadingModel.METALLIC_ROUGHNESS:
            if pbr.baseColorFactor:
                material.base_color_factor = tuple(pbr.baseColorFactor)
            if pbr.metallicFactor is not None:
                material.metallic_factor = pbr.metallicFactor
            if pbr.roughnessFactor is not None:
                material.roughness_factor = pbr.roughnessFactor
            if pbr.baseColorTexture is not None:
                material.set_texture("base_color", self._slot(pbr.baseColorTexture, False))
            if pbr.metallicRoughnessTexture is not None:
                material.set_texture("metallic_roughness", self._slot(pbr.metallicRoughnessTexture, True))

        if material.shading_model == ShadingModel.SPECULAR_GLOSSINESS:
            spec_gloss = definition.extensions[settings.EXT_SPEC_GLOSS] or {}
            material.diffuse_factor = tuple(spec_gloss.get('diffuseFactor', material.diffuse_factor))
            material.specular_factor = tuple(spec_gloss.get('specularFactor', material.specular_factor))
            material.glossiness_factor = spec_gloss.get('glossinessFactor', material.glossiness_factor)
            if spec_gloss.get('diffuseTexture') is not None:
                material.set_texture("diffuse", self._slot(spec_gloss['diffuseTexture'], False))
            if spec_gloss.get('specularGlossinessTexture') is not None:
                material.set_texture("specular_glossiness",
                                     self._slot(spec_gloss['specularGlossinessTexture'], False))

        if definition.normalTexture is not None:
            material.set_texture("normal", self._slot(definition.normalTexture, True))
            material.normal_scale = _info_get(definition.normalTexture, 'scale', 1.0)

        if definition.occlusionTexture is not None:
            material.set_texture("occlusion", self._slot(definition.occlusionTexture, True))
            material.occlusion_strength = _info_get(definition.occlusionTexture, 'strength', 1.0)

        if definition.emissiveTexture is not None:
            material.set_texture("emissive", self._slot(definition.emissiveTexture, False))
        if definition.emissiveFactor is not None:
            material.emissive_factor = tuple(definition.emissiveFactor)
