from __future__ import annotations
import logging
import os
from typing import Any, Callable, Dict, List, Optional
import numpy as np
import matplotlib.pyplot as plt
import imageio.v2 as imageio

from .agent import GROUNDED
from .math3d import FORWARD
from .physics import LEG_COUNT, ROOT, lower_name, upper_name

log = logging.getLogger(__name__)


def _foot_color(env, name: str) -> str:
    rcfg = env.settings.render
    materials = env.agent.foot_materials
    if env.settings.agent.use_foot_grounded_visualization and name in materials:
        grounded = materials[name] == GROUNDED
    else:
        grounded = env.physics.touching_ground(name)
    return rcfg.grounded_color if grounded else rcfg.ungrounded_color


def _draw_crawler_3d(ax, env, title: str = "") -> None:
    physics = env.physics
    rcfg = env.settings.render

    def seg(a, b, lw=3, color=None):
        ax.plot([a[0], b[0]], [a[1], b[1]], [a[2], b[2]], linewidth=lw, color=color)

    outline = physics.body_outline()
    for i in range(outline.shape[0]):
        seg(outline[i], outline[(i + 1) % outline.shape[0]], lw=2, color="black")

    for i in range(LEG_COUNT):
        hip, knee = physics.segment(upper_name(i))
        _, foot = physics.segment(lower_name(i))
        seg(hip, knee, color="tab:blue")
        seg(knee, foot, color="tab:blue")
        ax.scatter([foot[0]], [foot[1]], [foot[2]], s=30, color=_foot_color(env, lower_name(i)))

    target = env.agent.target
    ax.scatter([target[0]], [target[1]], [target[2]], s=80, marker="s", color=rcfg.target_color)

    # orientation cube heading
    cube = env.agent.orientation_cube
    c = cube.position
    f = cube.transform_point(FORWARD * 0.6) - c
    ax.quiver(c[0], c[1], c[2], f[0], f[1], f[2], color="tab:green", linewidth=1)

    # ground plane reference
    g = env.settings.physics.ground_height
    r = rcfg.view_radius
    ax.plot([c[0] - r, c[0] + r], [c[1], c[1]], [g, g], linewidth=1, color="gray")
    ax.plot([c[0], c[0]], [c[1] - r, c[1] + r], [g, g], linewidth=1, color="gray")

    ax.set_title(title)
    ax.set_xlabel("x")
    ax.set_ylabel("y")
    ax.set_zlabel("z")

    # view and limits centered at the body
    body = physics.position(ROOT)
    ax.set_xlim(body[0] - r, body[0] + r)
    ax.set_ylim(body[1] - r, body[1] + r)
    ax.set_zlim(g, g + r)
    ax.view_init(elev=rcfg.elev, azim=rcfg.azim)
    ax.grid(False)


def render_frame(env, title: Optional[str] = None) -> np.ndarray:
    """Draw the current crawler state to an RGB array (H, W, 3)."""
    rcfg = env.settings.render
    fig = plt.figure(figsize=rcfg.fig_size, dpi=rcfg.dpi)
    try:
        ax = fig.add_subplot(1, 1, 1, projection="3d")
        if title is None:
            info_t = float(env.physics.t)
            title = f"t={info_t:.2f}s  reward={env.agent.cumulative_reward:.3f}"
        _draw_crawler_3d(ax, env, title=title)
        fig.canvas.draw()
        rgba = np.asarray(fig.canvas.buffer_rgba())
        return rgba[:, :, :3].copy()
    finally:
        plt.close(fig)


def record_episode(
    env,
    policy_act: Callable[[np.ndarray], np.ndarray],
    out_path: str,
    seconds: float = 10.0,
    fps: Optional[int] = None,
    fixed_duration: bool = True,
    seed: Optional[int] = None,
    title_prefix: str = "Crawler",
) -> Dict[str, Any]:
    """Roll out one episode and render one frame per decision to an MP4.

    If fixed_duration=True, pads the video to 'seconds' even if the episode ends early.
    """
    if not out_path.lower().endswith(".mp4"):
        raise ValueError(f"Only .mp4 output is supported, got {out_path}")
    if seconds <= 0.0:
        raise ValueError(f"seconds must be positive, got {seconds}")
    if fps is None:
        fps = max(1, int(round(1.0 / env.decision_dt)))

    if hasattr(policy_act, "reset"):
        policy_act.reset()
    obs, info = env.reset(seed=seed)
    max_decisions = max(1, int(round(seconds / env.decision_dt)))
    target_frames = int(round(seconds * fps))

    frames: List[np.ndarray] = [render_frame(env, title=f"{title_prefix} | t=0.00s")]
    total_reward = 0.0
    done = False
    for _ in range(max_decisions):
        obs, r, done, info = env.step(policy_act(obs))
        total_reward += float(r)
        frames.append(render_frame(env, title=f"{title_prefix} | t={info['t']:.2f}s  reward={total_reward:.3f}"))
        if done:
            break

    if fixed_duration:
        while len(frames) < target_frames:
            frames.append(frames[-1])

    out_dir = os.path.dirname(out_path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    imageio.mimsave(out_path, frames, fps=fps, codec="libx264", quality=8)
    log.info("Saved %d frames to %s", len(frames), out_path)
    return {
        "frames": len(frames),
        "seconds": len(frames) / float(fps),
        "final_t": float(info.get("t", 0.0)),
        "total_reward": float(total_reward),
        "done": bool(done),
    }
