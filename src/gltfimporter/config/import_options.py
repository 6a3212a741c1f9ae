"""Options recognised by the importer."""

from __future__ import annotations

import json
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from . import settings
from ..scene.scene_node import ColliderType


@dataclass
class ImportOptions:
    """Per-importer configuration. Defaults come from :mod:`settings`."""

    maximum_lod: int = settings.DEFAULT_MAXIMUM_LOD
    timeout: float = settings.DEFAULT_TIMEOUT
    collider: ColliderType = ColliderType.NONE
    custom_shader_name: Optional[str] = None
    keep_cpu_copy_of_mesh: bool = settings.KEEP_CPU_COPY_OF_MESH
    keep_cpu_copy_of_texture: bool = settings.KEEP_CPU_COPY_OF_TEXTURE
    generate_mipmaps: bool = settings.GENERATE_MIPMAPS
    cull_far_lod: bool = settings.CULL_FAR_LOD
    skip_texture_loading: bool = settings.SKIP_TEXTURE_LOADING
    abort_on_low_memory: bool = settings.ABORT_ON_LOW_MEMORY
    low_memory_threshold_mb: int = settings.LOW_MEMORY_THRESHOLD_MB

    # Collaborators
    data_loader: Any = None
    progress: Optional[Callable] = None

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ImportOptions":
        """Build options from a plain mapping (unknown keys are rejected)."""

        known = {f.name for f in fields(cls)}
        unknown = set(payload) - known
        if unknown:
            raise ValueError(f"Unknown import options: {', '.join(sorted(unknown))}")

        values = dict(payload)
        collider = values.get("collider")
        if isinstance(collider, str):
            values["collider"] = ColliderType(collider.lower())
        return cls(**values)

    @classmethod
    def from_json(cls, path: Path | str) -> "ImportOptions":
        with Path(path).open("r", encoding="utf-8") as handle:
            return cls.from_dict(json.load(handle))
