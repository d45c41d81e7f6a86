from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional
import numpy as np

# Quaternions are (x, y, z, w).
IDENTITY_QUAT = np.array([0.0, 0.0, 0.0, 1.0], dtype=np.float64)
UP = np.array([0.0, 0.0, 1.0], dtype=np.float64)
FORWARD = np.array([1.0, 0.0, 0.0], dtype=np.float64)


def rot_x(a: float) -> np.ndarray:
    ca, sa = np.cos(a), np.sin(a)
    return np.array([[1, 0, 0], [0, ca, -sa], [0, sa, ca]], dtype=np.float64)


def rot_y(a: float) -> np.ndarray:
    ca, sa = np.cos(a), np.sin(a)
    return np.array([[ca, 0, sa], [0, 1, 0], [-sa, 0, ca]], dtype=np.float64)


def rot_z(a: float) -> np.ndarray:
    ca, sa = np.cos(a), np.sin(a)
    return np.array([[ca, -sa, 0], [sa, ca, 0], [0, 0, 1]], dtype=np.float64)


def quat_normalize(q: np.ndarray) -> np.ndarray:
    n = float(np.linalg.norm(q))
    if n < 1e-12:
        return IDENTITY_QUAT.copy()
    return np.asarray(q, dtype=np.float64) / n


def quat_mul(q1: np.ndarray, q2: np.ndarray) -> np.ndarray:
    """Hamilton product q1 * q2 (apply q2 first, then q1)."""
    x1, y1, z1, w1 = q1
    x2, y2, z2, w2 = q2
    return np.array([
        w1 * x2 + x1 * w2 + y1 * z2 - z1 * y2,
        w1 * y2 - x1 * z2 + y1 * w2 + z1 * x2,
        w1 * z2 + x1 * y2 - y1 * x2 + z1 * w2,
        w1 * w2 - x1 * x2 - y1 * y2 - z1 * z2,
    ], dtype=np.float64)


def quat_conjugate(q: np.ndarray) -> np.ndarray:
    return np.array([-q[0], -q[1], -q[2], q[3]], dtype=np.float64)


def quat_rotate(q: np.ndarray, v: np.ndarray) -> np.ndarray:
    u = np.asarray(q[:3], dtype=np.float64)
    w = float(q[3])
    v = np.asarray(v, dtype=np.float64)
    t = 2.0 * np.cross(u, v)
    return v + w * t + np.cross(u, t)


def quat_from_axis_angle(axis: np.ndarray, angle: float) -> np.ndarray:
    axis = np.asarray(axis, dtype=np.float64)
    n = float(np.linalg.norm(axis))
    if n < 1e-12:
        return IDENTITY_QUAT.copy()
    s = np.sin(0.5 * angle) / n
    return np.array([axis[0] * s, axis[1] * s, axis[2] * s, np.cos(0.5 * angle)], dtype=np.float64)


def quat_from_euler(roll: float, pitch: float, yaw: float) -> np.ndarray:
    """Rz(yaw) @ Ry(pitch) @ Rx(roll)."""
    qx = quat_from_axis_angle(np.array([1.0, 0.0, 0.0]), roll)
    qy = quat_from_axis_angle(np.array([0.0, 1.0, 0.0]), pitch)
    qz = quat_from_axis_angle(np.array([0.0, 0.0, 1.0]), yaw)
    return quat_mul(qz, quat_mul(qy, qx))


def quat_to_matrix(q: np.ndarray) -> np.ndarray:
    x, y, z, w = quat_normalize(q)
    return np.array([
        [1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)],
        [2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)],
        [2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)],
    ], dtype=np.float64)


def quat_from_matrix(m: np.ndarray) -> np.ndarray:
    """Rotation matrix -> unit quaternion with w >= 0."""
    m = np.asarray(m, dtype=np.float64)
    tr = m[0, 0] + m[1, 1] + m[2, 2]
    if tr > 0.0:
        s = np.sqrt(tr + 1.0) * 2.0
        q = np.array([
            (m[2, 1] - m[1, 2]) / s,
            (m[0, 2] - m[2, 0]) / s,
            (m[1, 0] - m[0, 1]) / s,
            0.25 * s,
        ])
    elif m[0, 0] > m[1, 1] and m[0, 0] > m[2, 2]:
        s = np.sqrt(1.0 + m[0, 0] - m[1, 1] - m[2, 2]) * 2.0
        q = np.array([
            0.25 * s,
            (m[0, 1] + m[1, 0]) / s,
            (m[0, 2] + m[2, 0]) / s,
            (m[2, 1] - m[1, 2]) / s,
        ])
    elif m[1, 1] > m[2, 2]:
        s = np.sqrt(1.0 + m[1, 1] - m[0, 0] - m[2, 2]) * 2.0
        q = np.array([
            (m[0, 1] + m[1, 0]) / s,
            0.25 * s,
            (m[1, 2] + m[2, 1]) / s,
            (m[0, 2] - m[2, 0]) / s,
        ])
    else:
        s = np.sqrt(1.0 + m[2, 2] - m[0, 0] - m[1, 1]) * 2.0
        q = np.array([
            (m[0, 2] + m[2, 0]) / s,
            (m[1, 2] + m[2, 1]) / s,
            0.25 * s,
            (m[1, 0] - m[0, 1]) / s,
        ])
    q = quat_normalize(q)
    if q[3] < 0.0:
        q = -q
    return q


def quat_integrate(q: np.ndarray, omega: np.ndarray, h: float) -> np.ndarray:
    """Advance orientation q by world-frame angular velocity omega over h seconds."""
    speed = float(np.linalg.norm(omega))
    if speed < 1e-12:
        return quat_normalize(q)
    dq = quat_from_axis_angle(omega / speed, speed * h)
    return quat_normalize(quat_mul(dq, q))


def from_to_rotation(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Shortest-arc rotation taking direction a onto direction b."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    na, nb = float(np.linalg.norm(a)), float(np.linalg.norm(b))
    if na < 1e-12 or nb < 1e-12:
        return IDENTITY_QUAT.copy()
    a = a / na
    b = b / nb
    d = float(np.dot(a, b))
    if d >= 1.0 - 1e-9:
        return IDENTITY_QUAT.copy()
    if d <= -1.0 + 1e-9:
        # antiparallel: any axis orthogonal to a
        axis = np.cross(a, FORWARD)
        if np.linalg.norm(axis) < 1e-6:
            axis = np.cross(a, np.array([0.0, 1.0, 0.0]))
        return quat_from_axis_angle(axis, np.pi)
    c = np.cross(a, b)
    return quat_normalize(np.array([c[0], c[1], c[2], 1.0 + d], dtype=np.float64))


def look_rotation(forward: np.ndarray, up: np.ndarray = UP) -> Optional[np.ndarray]:
    """Rotation whose local +x points along forward and local +z stays as close to up as possible.

    Returns None for a (near) zero forward vector.
    """
    f = np.asarray(forward, dtype=np.float64)
    n = float(np.linalg.norm(f))
    if n < 1e-9:
        return None
    f = f / n
    left = np.cross(up, f)
    if np.linalg.norm(left) < 1e-9:
        alt_up = FORWARD if abs(f[0]) < 0.9 else np.array([0.0, 1.0, 0.0])
        left = np.cross(alt_up, f)
    left = left / np.linalg.norm(left)
    top = np.cross(f, left)
    return quat_from_matrix(np.stack([f, left, top], axis=1))


def clamp_magnitude(v: np.ndarray, max_len: float) -> np.ndarray:
    v = np.asarray(v, dtype=np.float64)
    n = float(np.linalg.norm(v))
    if n > max_len and n > 0.0:
        return v * (max_len / n)
    return v


def angular_velocity_from_quats(q_prev: np.ndarray, q_next: np.ndarray, dt: float) -> np.ndarray:
    """World-frame angular velocity that rotates q_prev into q_next over dt."""
    dq = quat_mul(q_next, quat_conjugate(q_prev))
    if dq[3] < 0.0:
        dq = -dq
    v = dq[:3]
    s = float(np.linalg.norm(v))
    if s < 1e-12:
        return 2.0 * v / max(dt, 1e-9)
    angle = 2.0 * np.arctan2(s, float(dq[3]))
    return (v / s) * angle / max(dt, 1e-9)


@dataclass
class Frame:
    """A rigid transform (unit scale), e.g. the orientation cube."""
    position: np.ndarray = field(default_factory=lambda: np.zeros(3, dtype=np.float64))
    rotation: np.ndarray = field(default_factory=lambda: IDENTITY_QUAT.copy())

    @property
    def forward(self) -> np.ndarray:
        return quat_rotate(self.rotation, FORWARD)

    def inverse_transform_direction(self, v: np.ndarray) -> np.ndarray:
        return quat_rotate(quat_conjugate(self.rotation), v)

    def inverse_transform_point(self, p: np.ndarray) -> np.ndarray:
        return self.inverse_transform_direction(np.asarray(p, dtype=np.float64) - self.position)

    def transform_point(self, p: np.ndarray) -> np.ndarray:
        return self.position + quat_rotate(self.rotation, p)
