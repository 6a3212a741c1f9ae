"""
Skin

Binds the bones of an imported hierarchy to a skinned mesh.
"""

from typing import List, Optional

import numpy as np


class SkinBinding:
    """
    Skin binds a set of bone nodes to a mesh.

    Contains:
    - Bones (scene nodes) in joint order, matching JOINTS_0 indices
    - Bind poses (inverse bind matrices in host space, column vectors)
    - The root bone the hierarchy is animated from
    """

    def __init__(self, name: str = "Skin"):
        """
        Initialize skin.

        Args:
            name: Skin name for debugging
        """
        self.name = name
        self.bones: List = []
        self.bind_poses: List[np.ndarray] = []
        self.root_bone = None

    def add_bone(self, bone, bind_pose: Optional[np.ndarray] = None):
        """
        Add a bone to the skin.

        Args:
            bone: SceneNode acting as joint
            bind_pose: Inverse bind matrix; identity when the skin declares none
        """
        if bind_pose is None:
            bind_pose = np.identity(4, dtype='f4')
        self.bones.append(bone)
        self.bind_poses.append(np.asarray(bind_pose, dtype='f4'))

    @property
    def bone_names(self) -> List[str]:
        return [bone.name for bone in self.bones]

    def get_bind_poses_array(self) -> np.ndarray:
        """
        Bind poses as one array.

        Returns:
            Numpy array of shape (num_bones, 4, 4) with dtype float32
        """
        if not self.bind_poses:
            return np.zeros((0, 4, 4), dtype='f4')
        return np.stack(self.bind_poses).astype('f4')

    def __repr__(self):
        root = self.root_bone.name if self.root_bone is not None else None
        return f"SkinBinding(name='{self.name}', bones={len(self.bones)}, root='{root}')"
