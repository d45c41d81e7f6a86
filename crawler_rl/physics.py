from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
import numpy as np

from .config import CrawlerBodyParams, JointDriveConfig, SurrogateConfig
from .math3d import (
    angular_velocity_from_quats,
    quat_from_euler,
    quat_from_matrix,
    quat_integrate,
    quat_to_matrix,
    rot_y,
    rot_z,
)

log = logging.getLogger(__name__)

LEG_COUNT = 4
ROOT = "body"


def upper_name(i: int) -> str:
    return f"leg{i}Upper"


def lower_name(i: int) -> str:
    return f"leg{i}Lower"


PART_NAMES: Tuple[str, ...] = (ROOT,) + tuple(
    n for i in range(LEG_COUNT) for n in (upper_name(i), lower_name(i))
)
FOOT_NAMES: Tuple[str, ...] = tuple(lower_name(i) for i in range(LEG_COUNT))

# Hip mounts around the body: leg0 front-left, leg1 back-left, leg2 back-right, leg3 front-right
LEG_MOUNT_YAW: Tuple[float, ...] = tuple(np.pi / 4 + i * np.pi / 2 for i in range(LEG_COUNT))

# DOF layout per leg: [upper_x, upper_z, lower_x]
DOF_PER_LEG = 3
NUM_DOF = LEG_COUNT * DOF_PER_LEG


@dataclass
class JointSpec:
    name: str
    dofs: Tuple[Optional[int], Optional[int], Optional[int]]  # DOF index driven by the x, y, z axis
    low: np.ndarray   # (3,) per-axis lower limit
    high: np.ndarray  # (3,) per-axis upper limit


class CrawlerPhysics:
    """Surrogate dynamics for a four-legged crawler.

    This is NOT a rigid-body engine. The root is a box driven by penalty contacts at the knees,
    the feet and the bottom corners of the body. Legs are massless kinematic chains whose joint
    angles follow strength-limited PD drives.

    Body frame: x forward, y left, z up. A leg's x drive pitches it about its horizontal hinge
    (positive = down), the z drive sweeps it about the vertical axis.
    """

    def __init__(
        self,
        body: Optional[CrawlerBodyParams] = None,
        joint_cfg: Optional[JointDriveConfig] = None,
        cfg: Optional[SurrogateConfig] = None,
    ):
        self.body = body or CrawlerBodyParams()
        self.joint_cfg = joint_cfg or JointDriveConfig()
        self.cfg = cfg or SurrogateConfig()
        if self.cfg.substeps < 1:
            raise ValueError(f"substeps must be >= 1, got {self.cfg.substeps}")
        if self.cfg.dt <= 0.0:
            raise ValueError(f"dt must be positive, got {self.cfg.dt}")

        self.joints: Dict[str, JointSpec] = {}
        for i in range(LEG_COUNT):
            b = self.body
            self.joints[upper_name(i)] = JointSpec(
                name=upper_name(i),
                dofs=(i * DOF_PER_LEG, None, i * DOF_PER_LEG + 1),
                low=np.array([b.upper_x_limit[0], 0.0, b.upper_z_limit[0]]),
                high=np.array([b.upper_x_limit[1], 0.0, b.upper_z_limit[1]]),
            )
            self.joints[lower_name(i)] = JointSpec(
                name=lower_name(i),
                dofs=(i * DOF_PER_LEG + 2, None, None),
                low=np.array([b.lower_x_limit[0], 0.0, 0.0]),
                high=np.array([b.lower_x_limit[1], 0.0, 0.0]),
            )

        self._q_lo = np.zeros(NUM_DOF)
        self._q_hi = np.zeros(NUM_DOF)
        for spec in self.joints.values():
            for axis, dof in enumerate(spec.dofs):
                if dof is not None:
                    self._q_lo[dof] = spec.low[axis]
                    self._q_hi[dof] = spec.high[axis]
        if np.any(self._q_lo > self._q_hi):
            raise ValueError("Joint limits must satisfy lo <= hi")

        self.total_mass = float(self.body.body_mass + 2 * LEG_COUNT * self.body.leg_mass)
        self.inertia = self._compute_inertia()

        # state
        self.t = 0.0
        self.pos = np.zeros(3)
        self.quat = quat_from_euler(0.0, 0.0, 0.0)
        self.vel = np.zeros(3)
        self.omega = np.zeros(3)
        self.q = self.neutral_q()
        self.qd = np.zeros(NUM_DOF)
        self.q_target = self.neutral_q()
        self.q_strength = np.full(NUM_DOF, self.joint_cfg.max_joint_force_limit)
        self.diverged = False

        self._poses: Dict[str, Tuple[np.ndarray, np.ndarray]] = {}
        self._local_rot: Dict[str, np.ndarray] = {}
        self._segments: Dict[str, Tuple[np.ndarray, np.ndarray]] = {}
        self._part_vel: Dict[str, np.ndarray] = {}
        self._part_omega: Dict[str, np.ndarray] = {}
        self._touching: Dict[str, bool] = {}

        self.reset_pose(0.0)

    # ----------------- joints -----------------
    def neutral_q(self) -> np.ndarray:
        return 0.5 * (self._q_lo + self._q_hi)

    def joint_spec(self, name: str) -> JointSpec:
        if name not in self.joints:
            raise ValueError(f"'{name}' has no joint (root or unknown part)")
        return self.joints[name]

    def set_joint_target(self, name: str, euler: np.ndarray) -> None:
        spec = self.joint_spec(name)
        for axis, dof in enumerate(spec.dofs):
            if dof is not None:
                self.q_target[dof] = float(euler[axis])

    def set_joint_strength(self, name: str, strength: float) -> None:
        spec = self.joint_spec(name)
        for dof in spec.dofs:
            if dof is not None:
                self.q_strength[dof] = float(strength)

    def _integrate_joints(self, h: float) -> None:
        jd = self.joint_cfg
        tau = jd.max_joint_spring * (self.q_target - self.q) - jd.joint_dampen * self.qd
        tau = np.clip(tau, -self.q_strength, self.q_strength)
        self.qd = self.qd + tau / max(jd.joint_inertia, 1e-6) * h
        self.q = self.q + self.qd * h

        hit = (self.q < self._q_lo) | (self.q > self._q_hi)
        self.q = np.clip(self.q, self._q_lo, self._q_hi)
        self.qd[hit] *= -0.2

    # ----------------- kinematics (body frame) -----------------
    def _leg_kinematics(self, q: np.ndarray) -> List[Dict[str, np.ndarray]]:
        b = self.body
        legs = []
        for i, phi in enumerate(LEG_MOUNT_YAW):
            ux, uz, lx = (float(v) for v in q[i * DOF_PER_LEG:(i + 1) * DOF_PER_LEG])
            R_mount = rot_z(phi)
            hip = R_mount @ np.array([b.hip_radius, 0.0, 0.0])
            R_up = R_mount @ rot_z(uz) @ rot_y(ux)
            knee = hip + R_up @ np.array([b.upper_length, 0.0, 0.0])
            R_low = R_up @ rot_y(lx)
            foot = knee + R_low @ np.array([b.lower_length, 0.0, 0.0])
            legs.append({"hip": hip, "knee": knee, "foot": foot, "R_up": R_up, "R_low": R_low, "lx": lx})
        return legs

    def _body_corners(self) -> np.ndarray:
        hx, hy, hz = self.body.body_half_size
        return np.array([[sx * hx, sy * hy, -hz] for sx in (1, -1) for sy in (1, -1)], dtype=np.float64)

    def _local_points(self, q: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Contact points in body frame, (N, 3), and their radii, (N,).

        Order: [knee_0, foot_0, ..., knee_3, foot_3, 4 body corners].
        """
        pts = []
        for leg in self._leg_kinematics(q):
            pts.append(leg["knee"])
            pts.append(leg["foot"])
        leg_pts = np.stack(pts, axis=0)
        corners = self._body_corners()
        radii = np.concatenate([
            np.full(leg_pts.shape[0], self.body.leg_radius),
            np.zeros(corners.shape[0]),
        ])
        return np.concatenate([leg_pts, corners], axis=0), radii

    def _compute_inertia(self) -> np.ndarray:
        b = self.body
        hx, hy, hz = b.body_half_size
        m = b.body_mass
        inertia = np.diag([
            m / 3.0 * (hy * hy + hz * hz),
            m / 3.0 * (hx * hx + hz * hz),
            m / 3.0 * (hx * hx + hy * hy),
        ])
        # leg segments as point masses at their neutral centres
        for leg in self._leg_kinematics(self.neutral_q()):
            for c in (0.5 * (leg["hip"] + leg["knee"]), 0.5 * (leg["knee"] + leg["foot"])):
                inertia += b.leg_mass * (float(c @ c) * np.eye(3) - np.outer(c, c))
        return inertia

    # ----------------- reset -----------------
    def spawn_height(self) -> float:
        pts, radii = self._local_points(self.neutral_q())
        return float(np.max(radii - pts[:, 2])) + self.cfg.spawn_clearance

    def reset_pose(self, yaw: float = 0.0, origin: Tuple[float, float] = (0.0, 0.0)) -> None:
        """Neutral pose at rest, rotated by yaw about the spawn origin."""
        self.t = 0.0
        self.q = self.neutral_q()
        self.qd = np.zeros(NUM_DOF)
        self.q_target = self.neutral_q()
        self.q_strength = np.full(NUM_DOF, self.joint_cfg.max_joint_force_limit)

        self.pos = np.array([float(origin[0]), float(origin[1]), self.cfg.ground_height + self.spawn_height()])
        self.quat = quat_from_euler(0.0, 0.0, float(yaw))
        self.vel = np.zeros(3)
        self.omega = np.zeros(3)
        self.diverged = False

        self._refresh(prev=None, dt=self.cfg.dt)

    # ----------------- dynamics -----------------
    def step(self) -> None:
        """Advance one fixed step (cfg.dt)."""
        if self.diverged:
            return
        prev = {name: (p.copy(), r.copy()) for name, (p, r) in self._poses.items()}
        h = self.cfg.dt / self.cfg.substeps
        for _ in range(self.cfg.substeps):
            self._substep(h)
        self.t += self.cfg.dt

        if not (np.isfinite(self.pos).all() and np.isfinite(self.quat).all() and np.isfinite(self.q).all()):
            self.diverged = True
            log.warning("Crawler state became non-finite at t=%.3f", self.t)
            return
        self._refresh(prev=prev, dt=self.cfg.dt)

    def _substep(self, h: float) -> None:
        c = self.cfg
        p_before, radii = self._local_points(self.q)
        self._integrate_joints(h)
        p_after, _ = self._local_points(self.q)

        R = quat_to_matrix(self.quat)
        r = p_after @ R.T
        local_rate = (p_after - p_before) / h
        v_pts = self.vel[None, :] + np.cross(self.omega[None, :], r) + local_rate @ R.T

        depth = c.ground_height - (self.pos[2] + r[:, 2] - radii)
        in_contact = depth > 0.0

        fn = np.where(in_contact, c.contact_stiffness * depth - c.contact_damping * v_pts[:, 2], 0.0)
        fn = np.maximum(fn, 0.0)

        ft = -c.friction_viscous * v_pts[:, :2]
        ft_norm = np.linalg.norm(ft, axis=1)
        limit = c.friction_coulomb * fn
        scale = np.where(ft_norm > limit, limit / np.maximum(ft_norm, 1e-12), 1.0)
        ft = ft * scale[:, None]
        ft[~in_contact] = 0.0

        f_pts = np.column_stack([ft, fn])
        force = f_pts.sum(axis=0) + np.array([0.0, 0.0, -self.total_mass * c.gravity])
        torque = np.cross(r, f_pts).sum(axis=0)

        self.vel = self.vel + force / self.total_mass * h
        inertia_world = R @ self.inertia @ R.T
        self.omega = self.omega + np.linalg.solve(inertia_world, torque) * h
        self.omega = self.omega * max(0.0, 1.0 - c.angular_drag * h)

        self.pos = self.pos + self.vel * h
        self.quat = quat_integrate(self.quat, self.omega, h)

    def _refresh(self, prev: Optional[Dict[str, Tuple[np.ndarray, np.ndarray]]], dt: float) -> None:
        """Recompute per-part world poses, velocities and ground flags."""
        R = quat_to_matrix(self.quat)
        poses: Dict[str, Tuple[np.ndarray, np.ndarray]] = {ROOT: (self.pos.copy(), self.quat.copy())}
        local_rot: Dict[str, np.ndarray] = {}
        segments: Dict[str, Tuple[np.ndarray, np.ndarray]] = {}

        for i, leg in enumerate(self._leg_kinematics(self.q)):
            hip = self.pos + R @ leg["hip"]
            knee = self.pos + R @ leg["knee"]
            foot = self.pos + R @ leg["foot"]
            up, low = upper_name(i), lower_name(i)
            poses[up] = (0.5 * (hip + knee), quat_from_matrix(R @ leg["R_up"]))
            poses[low] = (0.5 * (knee + foot), quat_from_matrix(R @ leg["R_low"]))
            local_rot[up] = quat_from_matrix(leg["R_up"])
            local_rot[low] = quat_from_matrix(rot_y(leg["lx"]))
            segments[up] = (hip, knee)
            segments[low] = (knee, foot)

        part_vel: Dict[str, np.ndarray] = {ROOT: self.vel.copy()}
        part_omega: Dict[str, np.ndarray] = {ROOT: self.omega.copy()}
        for name in PART_NAMES[1:]:
            if prev is None:
                part_vel[name] = np.zeros(3)
                part_omega[name] = np.zeros(3)
            else:
                part_vel[name] = (poses[name][0] - prev[name][0]) / dt
                part_omega[name] = angular_velocity_from_quats(prev[name][1], poses[name][1], dt)

        # ground flags
        pts, radii = self._local_points(self.q)
        z = self.pos[2] + (pts @ R.T)[:, 2] - radii
        touching = (self.cfg.ground_height - z) > -self.cfg.contact_tolerance
        flags: Dict[str, bool] = {ROOT: bool(np.any(touching[2 * LEG_COUNT:]))}
        for i in range(LEG_COUNT):
            knee_i, foot_i = 2 * i, 2 * i + 1
            flags[upper_name(i)] = bool(touching[knee_i])
            flags[lower_name(i)] = bool(touching[knee_i] or touching[foot_i])

        self._poses = poses
        self._local_rot = local_rot
        self._segments = segments
        self._part_vel = part_vel
        self._part_omega = part_omega
        self._touching = flags

    # ----------------- queries -----------------
    def _check(self, name: str) -> None:
        if name not in self._poses:
            raise ValueError(f"Unknown body part: {name}")

    def position(self, name: str) -> np.ndarray:
        self._check(name)
        return self._poses[name][0].copy()

    def rotation(self, name: str) -> np.ndarray:
        self._check(name)
        return self._poses[name][1].copy()

    def local_rotation(self, name: str) -> np.ndarray:
        """Rotation relative to the parent part (body for upper legs, upper leg for lower legs)."""
        self._check(name)
        if name == ROOT:
            return self.quat.copy()
        return self._local_rot[name].copy()

    def velocity(self, name: str) -> np.ndarray:
        self._check(name)
        return self._part_vel[name].copy()

    def angular_velocity(self, name: str) -> np.ndarray:
        self._check(name)
        return self._part_omega[name].copy()

    def touching_ground(self, name: str) -> bool:
        self._check(name)
        return self._touching[name]

    def segment(self, name: str) -> Tuple[np.ndarray, np.ndarray]:
        """World endpoints (proximal, distal) of a leg segment."""
        if name not in self._segments:
            raise ValueError(f"'{name}' is not a leg segment")
        a, b = self._segments[name]
        return a.copy(), b.copy()

    def body_outline(self) -> np.ndarray:
        """World positions of the four bottom corners of the body box, (4, 3)."""
        R = quat_to_matrix(self.quat)
        corners = self._body_corners()[[0, 1, 3, 2]]  # perimeter order
        return self.pos[None, :] + corners @ R.T

    def raycast_down(self, origin: np.ndarray, max_dist: float) -> Optional[float]:
        """Distance from origin straight down to the ground plane, or None if nothing is hit."""
        d = float(origin[2]) - self.cfg.ground_height
        if 0.0 <= d <= max_dist:
            return d
        return None

    def part_touches_sphere(self, name: str, center: np.ndarray, radius: float) -> bool:
        self._check(name)
        center = np.asarray(center, dtype=np.float64)
        if name == ROOT:
            R = quat_to_matrix(self.quat)
            local = R.T @ (center - self.pos)
            half = np.asarray(self.body.body_half_size, dtype=np.float64)
            closest = np.clip(local, -half, half)
            return float(np.linalg.norm(local - closest)) <= radius
        a, b = self._segments[name]
        ab = b - a
        t = float(np.clip(np.dot(center - a, ab) / max(float(ab @ ab), 1e-12), 0.0, 1.0))
        dist = float(np.linalg.norm(center - (a + t * ab)))
        return dist <= radius + self.body.leg_radius
