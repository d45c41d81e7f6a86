from __future__ import annotations
import json
import os
from dataclasses import dataclass, field, fields, asdict, is_dataclass
from typing import Any, Dict, Tuple


@dataclass
class AgentConfig:
    maximum_walking_speed: float = 999.0  # max walk velocity magnitude that is rewarded

    # Target
    target_spawn_radius: float = 10.0
    detect_targets: bool = True
    respawn_target_when_touched: bool = True
    touch_target_reward: float = 1.0

    # Reward functions to use
    reward_moving_towards_target: bool = True
    reward_facing_target: bool = True
    reward_use_time_penalty: bool = False

    w_moving_towards: float = 0.03
    w_facing: float = 0.01
    time_penalty: float = -0.001

    use_foot_grounded_visualization: bool = False

    # Episode / decision schedule (fixed steps)
    max_step: int = 5000  # 0 = unlimited
    decision_period: int = 5
    take_actions_between_decisions: bool = True

    max_raycast_dist: float = 10.0

    # Ground contact rules, by body part name
    terminate_on_ground_contact: Tuple[str, ...] = ("body",)
    penalize_ground_contact: Tuple[str, ...] = ()
    ground_contact_penalty: float = -1.0


@dataclass
class JointDriveConfig:
    max_joint_spring: float = 150.0
    joint_dampen: float = 4.0
    max_joint_force_limit: float = 40.0
    joint_inertia: float = 0.05


@dataclass
class CrawlerBodyParams:
    # NOTE: lengths are in meters, angles in radians.
    body_half_size: Tuple[float, float, float] = (0.3, 0.3, 0.1)
    body_mass: float = 5.0

    hip_radius: float = 0.4
    upper_length: float = 0.5
    lower_length: float = 0.5
    leg_radius: float = 0.06
    leg_mass: float = 0.5  # per segment, only used for gravity and body inertia

    # Joint limits (lo, hi) per drive axis. Mid-range is the neutral standing pose.
    upper_x_limit: Tuple[float, float] = (-0.35, 1.05)
    upper_z_limit: Tuple[float, float] = (-0.6, 0.6)
    lower_x_limit: Tuple[float, float] = (0.4, 2.0)


@dataclass
class SurrogateConfig:
    dt: float = 0.02
    substeps: int = 10
    gravity: float = 9.81

    # Penalty contact (per contact point)
    contact_stiffness: float = 2000.0
    contact_damping: float = 90.0
    friction_viscous: float = 150.0
    friction_coulomb: float = 1.0
    angular_drag: float = 0.05

    ground_height: float = 0.0
    contact_tolerance: float = 0.02
    spawn_clearance: float = 0.005

    target_half_size: float = 0.5


@dataclass
class RenderConfig:
    fig_size: Tuple[float, float] = (6.0, 4.0)
    dpi: int = 80
    elev: float = 25.0
    azim: float = -60.0
    view_radius: float = 2.0
    grounded_color: str = "tab:green"
    ungrounded_color: str = "tab:red"
    target_color: str = "tab:orange"


@dataclass
class CrawlerSettings:
    agent: AgentConfig = field(default_factory=AgentConfig)
    joint_drive: JointDriveConfig = field(default_factory=JointDriveConfig)
    body: CrawlerBodyParams = field(default_factory=CrawlerBodyParams)
    physics: SurrogateConfig = field(default_factory=SurrogateConfig)
    render: RenderConfig = field(default_factory=RenderConfig)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CrawlerSettings":
        """Overlay a nested dict (e.g. parsed JSON) on the default settings."""
        settings = cls()
        for section, values in data.items():
            if section not in {f.name for f in fields(cls)}:
                raise ValueError(f"Unknown settings section: {section}")
            if not isinstance(values, dict):
                raise ValueError(f"Settings section '{section}' must be a mapping, got {type(values).__name__}")
            _overlay(getattr(settings, section), values, section)
        return settings


def _overlay(obj: Any, values: Dict[str, Any], section: str) -> None:
    known = {f.name: f for f in fields(obj)}
    for key, value in values.items():
        if key not in known:
            raise ValueError(f"Unknown key '{key}' in settings section '{section}'")
        current = getattr(obj, key)
        # JSON has no tuples
        if isinstance(current, tuple):
            if not isinstance(value, (list, tuple)):
                raise ValueError(f"{section}.{key} expects a list, got {value!r}")
            value = tuple(value)
        elif isinstance(current, bool):
            if not isinstance(value, bool):
                raise ValueError(f"{section}.{key} expects a bool, got {value!r}")
        elif isinstance(current, (int, float)) and not is_dataclass(current):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{section}.{key} expects a number, got {value!r}")
            if isinstance(current, int) and not float(value).is_integer():
                raise ValueError(f"{section}.{key} expects an integer, got {value!r}")
            value = type(current)(value)
        setattr(obj, key, value)


def load_settings(path: str) -> CrawlerSettings:
    if not os.path.exists(path):
        raise FileNotFoundError(f"Settings file does not exist: {path}")
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Settings file must contain a JSON object: {path}")
    return CrawlerSettings.from_dict(data)
