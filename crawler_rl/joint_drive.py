from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional
import numpy as np

from .physics import CrawlerPhysics, ROOT
from .utils import inverse_lerp, lerp


@dataclass
class GroundContact:
    """Tracks whether a body part touches the ground.

    `update` returns True on the step where contact begins.
    """
    touching_ground: bool = False
    terminate_on_contact: bool = False
    penalize_contact: bool = False
    penalty: float = 0.0

    def update(self, touching: bool) -> bool:
        entered = bool(touching) and not self.touching_ground
        self.touching_ground = bool(touching)
        return entered


@dataclass
class TargetContact:
    touching_target: bool = False


@dataclass
class BodyPart:
    name: str
    controller: "JointDriveController"
    ground_contact: GroundContact = field(default_factory=GroundContact)
    target_contact: TargetContact = field(default_factory=TargetContact)

    current_x_norm_rot: float = 0.0
    current_y_norm_rot: float = 0.0
    current_z_norm_rot: float = 0.0
    current_euler_joint_rotation: np.ndarray = field(default_factory=lambda: np.zeros(3))
    current_strength: float = 0.0

    @property
    def is_root(self) -> bool:
        return self.name == ROOT

    @property
    def physics(self) -> CrawlerPhysics:
        return self.controller.physics

    def set_joint_target_rotation(self, x: float, y: float, z: float) -> None:
        """Map normalized [-1, 1] targets onto the joint's angular limits."""
        spec = self.physics.joint_spec(self.name)
        euler = np.zeros(3)
        norm = np.zeros(3)
        for axis, v in enumerate((x, y, z)):
            t = float(np.clip((float(v) + 1.0) * 0.5, 0.0, 1.0))
            lo, hi = float(spec.low[axis]), float(spec.high[axis])
            euler[axis] = lerp(lo, hi, t)
            norm[axis] = inverse_lerp(lo, hi, euler[axis])
        self.current_x_norm_rot, self.current_y_norm_rot, self.current_z_norm_rot = (float(n) for n in norm)
        self.current_euler_joint_rotation = euler
        self.physics.set_joint_target(self.name, euler)

    def set_joint_strength(self, strength: float) -> None:
        s = float(np.clip(float(strength), -1.0, 1.0))
        raw = (s + 1.0) * 0.5 * self.controller.max_joint_force_limit
        self.current_strength = raw
        self.physics.set_joint_strength(self.name, raw)

    def reset(self) -> None:
        self.ground_contact.touching_ground = False
        self.target_contact.touching_target = False
        if self.is_root:
            return
        self.set_joint_target_rotation(0.0, 0.0, 0.0)
        self.set_joint_strength(1.0)


class JointDriveController:
    """Registry of body parts and their joint drives."""

    def __init__(self, physics: CrawlerPhysics, max_joint_force_limit: Optional[float] = None):
        self.physics = physics
        if max_joint_force_limit is None:
            max_joint_force_limit = physics.joint_cfg.max_joint_force_limit
        if max_joint_force_limit <= 0.0:
            raise ValueError(f"max_joint_force_limit must be positive, got {max_joint_force_limit}")
        self.max_joint_force_limit = float(max_joint_force_limit)
        self.body_parts_dict: Dict[str, BodyPart] = {}
        self.body_parts_list: List[BodyPart] = []

    def setup_body_part(self, name: str) -> BodyPart:
        if name in self.body_parts_dict:
            raise ValueError(f"Body part already set up: {name}")
        if name != ROOT and name not in self.physics.joints:
            raise ValueError(f"Unknown body part: {name}")
        bp = BodyPart(name=name, controller=self)
        bp.reset()
        self.body_parts_dict[name] = bp
        self.body_parts_list.append(bp)
        return bp

    def __getitem__(self, name: str) -> BodyPart:
        return self.body_parts_dict[name]
