from __future__ import annotations
import logging
from typing import Any, Dict, Optional, Tuple
import numpy as np
import gymnasium as gym
from gymnasium import spaces

from .agent import ACTION_SIZE, OBSERVATION_SIZE, CrawlerAgent
from .config import CrawlerSettings
from .physics import CrawlerPhysics, ROOT
from .sensors import VectorSensor

log = logging.getLogger(__name__)


class CrawlerEnv:
    """Crawler locomotion task: walk towards (and touch) a target.

    One `step` is one decision: the action is held for `decision_period` fixed physics steps.
    """

    OBS_DIM = OBSERVATION_SIZE
    ADIM = ACTION_SIZE

    def __init__(self, settings: Optional[CrawlerSettings] = None, seed: int = 0):
        self.settings = settings or CrawlerSettings()
        if self.settings.agent.decision_period < 1:
            raise ValueError(f"decision_period must be >= 1, got {self.settings.agent.decision_period}")
        self.rng = np.random.RandomState(seed)
        self.physics = CrawlerPhysics(
            body=self.settings.body,
            joint_cfg=self.settings.joint_drive,
            cfg=self.settings.physics,
        )
        self.agent = CrawlerAgent(self.physics, settings=self.settings, rng=self.rng)
        self.agent.initialize()
        self._needs_reset = True

    @property
    def cfg(self):
        return self.settings.agent

    @property
    def decision_dt(self) -> float:
        return self.settings.physics.dt * self.settings.agent.decision_period

    def _get_obs(self) -> np.ndarray:
        sensor = VectorSensor()
        self.agent.collect_observations(sensor)
        obs = sensor.build()
        assert obs.shape[0] == self.OBS_DIM, f"obs dim mismatch: {obs.shape}"
        return obs

    def _info(self) -> Dict[str, Any]:
        agent = self.agent
        cube_fwd = agent.orientation_cube.forward
        return {
            "t": float(self.physics.t),
            "step_count": int(agent.step_count),
            "cumulative_reward": float(agent.cumulative_reward),
            "interrupted": bool(agent.interrupted),
            "diverged": bool(self.physics.diverged),
            "targets_reached": int(agent.targets_reached),
            "body_height": float(self.physics.position(ROOT)[2] - self.settings.physics.ground_height),
            "forward_speed": float(np.dot(cube_fwd, self.physics.velocity(ROOT))),
            "facing": float(np.dot(cube_fwd, agent.body_forward())),
            "target": agent.target.tolist(),
        }

    def reset(self, seed: Optional[int] = None) -> Tuple[np.ndarray, Dict[str, Any]]:
        if seed is not None:
            # keep the agent sharing the env's generator
            self.rng.seed(int(seed))
        self.agent.on_episode_begin()
        self._needs_reset = False
        return self._get_obs(), self._info()

    def step(self, action: np.ndarray) -> Tuple[np.ndarray, float, bool, Dict[str, Any]]:
        if self._needs_reset:
            raise RuntimeError("step() called before reset() or after the episode ended")
        action = np.asarray(action, dtype=np.float32)

        agent = self.agent
        agent.consume_reward()
        for k in range(self.cfg.decision_period):
            if k == 0 or self.cfg.take_actions_between_decisions:
                agent.on_action_received(action)
            self.physics.step()
            if self.physics.diverged:
                agent.end_episode()
                break
            agent.fixed_update()
            agent.increment_step()
            if agent.done:
                break

        r = agent.consume_reward()
        done = bool(agent.done)
        if done:
            self._needs_reset = True
            log.debug(
                "Episode end: steps=%d reward=%.3f interrupted=%s",
                agent.step_count, agent.cumulative_reward, agent.interrupted,
            )
        return self._get_obs(), float(r), done, self._info()


class CrawlerGymEnv(gym.Env):
    """Gymnasium view of CrawlerEnv, for external RL runtimes."""

    metadata = {"render_modes": ["rgb_array"], "render_fps": 10}

    def __init__(self, settings: Optional[CrawlerSettings] = None, render_mode: Optional[str] = None, seed: int = 0):
        super().__init__()
        if render_mode is not None and render_mode not in self.metadata["render_modes"]:
            raise ValueError(f"Unsupported render_mode: {render_mode}")
        self.env = CrawlerEnv(settings=settings, seed=seed)
        self.render_mode = render_mode
        self.metadata = dict(self.metadata, render_fps=int(round(1.0 / self.env.decision_dt)))

        self.observation_space = spaces.Box(low=-np.inf, high=np.inf, shape=(CrawlerEnv.OBS_DIM,), dtype=np.float32)
        self.action_space = spaces.Box(low=-1.0, high=1.0, shape=(CrawlerEnv.ADIM,), dtype=np.float32)

    def reset(self, *, seed: Optional[int] = None, options: Optional[Dict[str, Any]] = None):
        super().reset(seed=seed)
        return self.env.reset(seed=seed)

    def step(self, action):
        obs, r, done, info = self.env.step(action)
        truncated = bool(done and info["interrupted"])
        terminated = bool(done and not truncated)
        return obs, r, terminated, truncated, info

    def render(self):
        if self.render_mode == "rgb_array":
            from .render import render_frame
            return render_frame(self.env)
        return None


def make_env(settings: Optional[CrawlerSettings] = None, seed: int = 0, gym_api: bool = False, render_mode: Optional[str] = None):
    if gym_api:
        return CrawlerGymEnv(settings=settings, render_mode=render_mode, seed=seed)
    return CrawlerEnv(settings=settings, seed=seed)
