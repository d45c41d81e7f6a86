from __future__ import annotations
import logging
from typing import Dict, Optional
import numpy as np

from .config import CrawlerSettings
from .joint_drive import BodyPart, JointDriveController
from .math3d import Frame, clamp_magnitude, from_to_rotation, look_rotation, quat_rotate, FORWARD
from .physics import CrawlerPhysics, FOOT_NAMES, LEG_COUNT, PART_NAMES, ROOT, lower_name, upper_name
from .sensors import VectorSensor

log = logging.getLogger(__name__)

ACTION_SIZE = 2 * LEG_COUNT + LEG_COUNT + 2 * LEG_COUNT  # 20
OBSERVATION_SIZE = 4 + 3 + 1 + 10 + (len(PART_NAMES) - 1) * 15  # 138

GROUNDED = "grounded"
UNGROUNDED = "ungrounded"


class CrawlerAgent:
    """Observation, action and reward logic for the crawler.

    The orientation cube is a stable reference frame: it sits on the body and looks at the
    target (yaw only). Velocities and positions are observed in its space.
    """

    def __init__(
        self,
        physics: CrawlerPhysics,
        settings: Optional[CrawlerSettings] = None,
        rng: Optional[np.random.RandomState] = None,
    ):
        self.settings = settings or CrawlerSettings()
        self.cfg = self.settings.agent
        self.physics = physics
        self.rng = rng if rng is not None else np.random.RandomState(0)

        self.target = np.array([self.cfg.target_spawn_radius, 0.0, self._target_height()], dtype=np.float64)
        self.orientation_cube = Frame()

        self.jd_controller: Optional[JointDriveController] = None
        self.foot_materials: Dict[str, str] = {}

        # reward / episode bookkeeping
        self.reward = 0.0
        self.cumulative_reward = 0.0
        self.step_count = 0
        self.done = False
        self.interrupted = False
        self.targets_reached = 0

    # ----------------- setup -----------------
    def initialize(self) -> None:
        self.update_orientation_cube()

        for key in ("terminate_on_ground_contact", "penalize_ground_contact"):
            unknown = sorted(set(getattr(self.cfg, key)) - set(PART_NAMES))
            if unknown:
                raise ValueError(f"Unknown body part(s) in {key}: {unknown}")

        self.jd_controller = JointDriveController(self.physics, self.settings.joint_drive.max_joint_force_limit)
        for name in PART_NAMES:
            bp = self.jd_controller.setup_body_part(name)
            bp.ground_contact.terminate_on_contact = name in self.cfg.terminate_on_ground_contact
            bp.ground_contact.penalize_contact = name in self.cfg.penalize_ground_contact
            bp.ground_contact.penalty = float(self.cfg.ground_contact_penalty)

    @property
    def body(self) -> BodyPart:
        return self._controller().body_parts_dict[ROOT]

    def _controller(self) -> JointDriveController:
        if self.jd_controller is None:
            raise RuntimeError("CrawlerAgent.initialize() must be called first")
        return self.jd_controller

    def _target_height(self) -> float:
        return self.physics.cfg.ground_height + self.physics.cfg.target_half_size

    def body_forward(self) -> np.ndarray:
        return quat_rotate(self.physics.rotation(ROOT), FORWARD)

    # ----------------- observations -----------------
    def collect_observation_body_part(self, bp: BodyPart, sensor: VectorSensor) -> None:
        """Add relevant information on one body part to the observation."""
        cube = self.orientation_cube
        sensor.add_observation(1.0 if bp.ground_contact.touching_ground else 0.0)

        sensor.add_observation(cube.inverse_transform_direction(self.physics.velocity(bp.name)))
        sensor.add_observation(cube.inverse_transform_direction(self.physics.angular_velocity(bp.name)))

        # position relative to the body in cube space
        rel = self.physics.position(bp.name) - self.physics.position(ROOT)
        sensor.add_observation(cube.inverse_transform_direction(rel))

        if not bp.is_root:
            sensor.add_observation(self.physics.local_rotation(bp.name))
            sensor.add_observation(bp.current_strength / self._controller().max_joint_force_limit)

    def collect_observations(self, sensor: VectorSensor) -> None:
        cube = self.orientation_cube
        sensor.add_observation(from_to_rotation(self.body_forward(), cube.forward))

        sensor.add_observation(cube.inverse_transform_point(self.target))

        max_dist = self.cfg.max_raycast_dist
        hit = self.physics.raycast_down(self.physics.position(ROOT), max_dist)
        sensor.add_observation(hit / max_dist if hit is not None else 1.0)

        for bp in self._controller().body_parts_list:
            self.collect_observation_body_part(bp, sensor)

    # ----------------- actions -----------------
    def on_action_received(self, actions: np.ndarray) -> None:
        a = np.asarray(actions, dtype=np.float64).reshape(-1)
        if a.shape[0] != ACTION_SIZE:
            raise ValueError(f"Expected {ACTION_SIZE} actions, got {a.shape[0]}")
        if not np.isfinite(a).all():
            raise ValueError("Actions must be finite")
        bp_dict = self._controller().body_parts_dict

        i = 0
        for leg in range(LEG_COUNT):
            bp_dict[upper_name(leg)].set_joint_target_rotation(a[i], 0.0, a[i + 1])
            i += 2
        for leg in range(LEG_COUNT):
            bp_dict[lower_name(leg)].set_joint_target_rotation(a[i], 0.0, 0.0)
            i += 1

        for leg in range(LEG_COUNT):
            bp_dict[upper_name(leg)].set_joint_strength(a[i])
            i += 1
        for leg in range(LEG_COUNT):
            bp_dict[lower_name(leg)].set_joint_strength(a[i])
            i += 1

    # ----------------- per fixed step -----------------
    def update_orientation_cube(self) -> None:
        body_pos = self.physics.position(ROOT)
        walk_dir = self.target - self.orientation_cube.position
        walk_dir[2] = 0.0  # flatten
        look = look_rotation(walk_dir)
        if look is None:
            log.debug("Target is directly above/below the orientation cube; keeping previous heading")
        else:
            self.orientation_cube.rotation = look
        self.orientation_cube.position = body_pos

    def fixed_update(self) -> None:
        controller = self._controller()
        self.update_ground_contacts()

        for bp in controller.body_parts_list:
            bp.target_contact.touching_target = self.physics.part_touches_sphere(
                bp.name, self.target, self.physics.cfg.target_half_size
            )

        if self.cfg.detect_targets:
            for bp in controller.body_parts_list:
                if bp.target_contact.touching_target:
                    self.touched_target()

        self.update_orientation_cube()

        if self.cfg.use_foot_grounded_visualization:
            for name in FOOT_NAMES:
                touching = controller.body_parts_dict[name].ground_contact.touching_ground
                self.foot_materials[name] = GROUNDED if touching else UNGROUNDED

        if self.cfg.reward_moving_towards_target:
            self.reward_function_moving_towards()
        if self.cfg.reward_facing_target:
            self.reward_function_facing_target()
        if self.cfg.reward_use_time_penalty:
            self.reward_function_time_penalty()

    def update_ground_contacts(self) -> None:
        """Pull contact flags from physics and apply the contact-enter rules."""
        for bp in self._controller().body_parts_list:
            entered = bp.ground_contact.update(self.physics.touching_ground(bp.name))
            if not entered:
                continue
            if bp.ground_contact.penalize_contact:
                self.set_reward(bp.ground_contact.penalty)
            if bp.ground_contact.terminate_on_contact:
                log.debug("%s touched the ground at step %d; ending episode", bp.name, self.step_count)
                self.end_episode()

    def touched_target(self) -> None:
        self.add_reward(self.cfg.touch_target_reward)
        self.targets_reached += 1
        log.debug("Target reached (%d this episode)", self.targets_reached)
        if self.cfg.respawn_target_when_touched:
            self.get_random_target_pos()

    def get_random_target_pos(self) -> None:
        """Move the target to a random position within target_spawn_radius."""
        # uniform point inside the unit ball, projected onto the ground plane
        while True:
            p = self.rng.uniform(-1.0, 1.0, size=3)
            if float(p @ p) <= 1.0:
                break
        p = p * self.cfg.target_spawn_radius
        self.target = np.array([p[0], p[1], self._target_height()], dtype=np.float64)
        for bp in self._controller().body_parts_list:
            bp.target_contact.touching_target = False

    # ----------------- rewards -----------------
    def reward_function_moving_towards(self) -> None:
        """Reward moving towards the target, penalize moving away."""
        vel = clamp_magnitude(self.physics.velocity(ROOT), self.cfg.maximum_walking_speed)
        self.add_reward(self.cfg.w_moving_towards * float(np.dot(self.orientation_cube.forward, vel)))

    def reward_function_facing_target(self) -> None:
        self.add_reward(self.cfg.w_facing * float(np.dot(self.orientation_cube.forward, self.body_forward())))

    def reward_function_time_penalty(self) -> None:
        self.add_reward(self.cfg.time_penalty)

    def add_reward(self, increment: float) -> None:
        self.reward += float(increment)
        self.cumulative_reward += float(increment)

    def set_reward(self, reward: float) -> None:
        self.cumulative_reward += float(reward) - self.reward
        self.reward = float(reward)

    def consume_reward(self) -> float:
        """Reward accumulated since the last decision; resets it."""
        r = self.reward
        self.reward = 0.0
        return r

    # ----------------- episode -----------------
    def increment_step(self) -> None:
        self.step_count += 1
        if self.cfg.max_step > 0 and self.step_count >= self.cfg.max_step and not self.done:
            self.interrupted = True
            self.end_episode()

    def end_episode(self) -> None:
        self.done = True

    def on_episode_begin(self) -> None:
        """Reset body parts, randomize heading and (optionally) the target."""
        for bp in self._controller().body_parts_dict.values():
            bp.reset()

        # random start rotation to help generalize
        self.physics.reset_pose(yaw=float(self.rng.uniform(0.0, 2.0 * np.pi)))

        self.reward = 0.0
        self.cumulative_reward = 0.0
        self.step_count = 0
        self.done = False
        self.interrupted = False
        self.targets_reached = 0
        self.foot_materials = {}

        self.orientation_cube.position = self.physics.position(ROOT)
        if self.cfg.detect_targets and self.cfg.respawn_target_when_touched:
            self.get_random_target_pos()
        self.update_orientation_cube()

        for bp in self._controller().body_parts_list:
            bp.ground_contact.update(self.physics.touching_ground(bp.name))
