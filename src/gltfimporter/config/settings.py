"""
Importer Configuration Settings

Default values and fixed constants used by the glTF importer.
Modify these values to change importer defaults.
"""

# ============================================================================
# Import Options Defaults
# ============================================================================

DEFAULT_MAXIMUM_LOD = 300          # Shader LOD recorded on created materials
DEFAULT_TIMEOUT = 8.0              # Seconds of work per scheduler slice
KEEP_CPU_COPY_OF_MESH = True       # Keep merged mesh arrays readable
KEEP_CPU_COPY_OF_TEXTURE = True    # Keep decoded pixels after texture creation
GENERATE_MIPMAPS = True            # Record a full mip chain for textures
CULL_FAR_LOD = False               # Drop the full-detail tier beyond the last LOD
SKIP_TEXTURE_LOADING = False       # Build geometry only

# Low memory abort
ABORT_ON_LOW_MEMORY = False
LOW_MEMORY_THRESHOLD_MB = 256      # Abort when less than this is available

# ============================================================================
# Naming
# ============================================================================

GENERATED_NODE_PREFIX = "Node"     # Unnamed nodes become Node<index>[_<n>]
DEFAULT_SCENE_NAME = "GLTF Scene"
DEFAULT_MATERIAL_NAME = "Default"
MORPH_TARGET_PREFIX = "Morphtarget"
ANIMATION_NAME_FORMAT = "animation:{0}"

# Shaders assigned when no custom shader override is given
METALLIC_ROUGHNESS_SHADER = "GLTF/PbrMetallicRoughness"
SPECULAR_GLOSSINESS_SHADER = "GLTF/PbrSpecularGlossiness"

# ============================================================================
# glTF Extensions
# ============================================================================

EXT_LOD = "MSFT_lod"
EXT_LOD_SCREEN_COVERAGE = "MSFT_screencoverage"   # Stored in node extras
EXT_SPEC_GLOSS = "KHR_materials_pbrSpecularGlossiness"
EXT_TEXTURE_TRANSFORM = "KHR_texture_transform"

# ============================================================================
# Host Conventions
# ============================================================================

# glTF is right-handed; the host is left-handed. X is mirrored.
COORDINATE_SPACE_CONVERSION_SCALE = (-1.0, 1.0, 1.0)
TANGENT_SPACE_CONVERSION_SCALE = (-1.0, 1.0, 1.0, -1.0)

# glTF morph weights are [0, 1]; host blend shape weights are [0, 100]
BLEND_SHAPE_WEIGHT_SCALE = 100.0

# Meshes above this vertex count need 32-bit indices
MAX_16BIT_INDEX_VERTICES = 65535
