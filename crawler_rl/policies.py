from __future__ import annotations
import os
from typing import Optional
import numpy as np
import torch

from .agent import ACTION_SIZE
from .physics import LEG_COUNT

# +1 if a positive z (sweep) target moves the leg towards the body's front
LEG_FORWARD_SIGN = (-1.0, -1.0, 1.0, 1.0)
# diagonal pairs (0, 2) and (1, 3) move in phase
LEG_PHASE = (0.0, np.pi, 0.0, np.pi)


class ZeroPolicy:
    """Neutral pose at half strength."""

    def __init__(self, act_dim: int = ACTION_SIZE):
        self.act_dim = act_dim

    def __call__(self, obs: np.ndarray) -> np.ndarray:
        return np.zeros(self.act_dim, dtype=np.float32)


class RandomPolicy:
    def __init__(self, act_dim: int = ACTION_SIZE, seed: int = 0):
        self.act_dim = act_dim
        self.rng = np.random.RandomState(seed)

    def __call__(self, obs: np.ndarray) -> np.ndarray:
        return self.rng.uniform(-1.0, 1.0, size=self.act_dim).astype(np.float32)


class GaitPolicy:
    """Open-loop trot: diagonal legs swing together, lifted while moving forward.

    Walks along the body's own forward axis; it ignores the target.
    """

    def __init__(
        self,
        frequency: float = 1.5,
        sweep_amplitude: float = 0.8,
        lift_amplitude: float = 0.8,
        decision_dt: float = 0.1,
        strength: float = 1.0,
    ):
        if decision_dt <= 0.0:
            raise ValueError(f"decision_dt must be positive, got {decision_dt}")
        self.frequency = float(frequency)
        self.sweep_amplitude = float(sweep_amplitude)
        self.lift_amplitude = float(lift_amplitude)
        self.decision_dt = float(decision_dt)
        self.strength = float(strength)
        self.t = 0.0

    def reset(self) -> None:
        self.t = 0.0

    def __call__(self, obs: np.ndarray) -> np.ndarray:
        a = np.zeros(ACTION_SIZE, dtype=np.float32)
        w = 2.0 * np.pi * self.frequency * self.t
        for leg in range(LEG_COUNT):
            phase = w + LEG_PHASE[leg]
            # foot position ~ cos(phase); lifted while sin(phase) > 0, planted for the other half
            a[2 * leg] = -self.lift_amplitude * max(0.0, np.sin(phase))
            a[2 * leg + 1] = LEG_FORWARD_SIGN[leg] * self.sweep_amplitude * np.cos(phase)
        a[2 * LEG_COUNT + LEG_COUNT:] = self.strength
        self.t += self.decision_dt
        return np.clip(a, -1.0, 1.0)


class TorchScriptPolicy:
    """Wraps an exported TorchScript actor: obs (1, obs_dim) -> action (1, act_dim)."""

    def __init__(self, path: str, device: str = "cpu", act_dim: int = ACTION_SIZE):
        if not os.path.exists(path):
            raise FileNotFoundError(f"Policy checkpoint does not exist: {path}")
        self.device = device
        self.act_dim = act_dim
        self.module = torch.jit.load(path, map_location=device)
        self.module.eval()

    def __call__(self, obs: np.ndarray) -> np.ndarray:
        o = torch.as_tensor(obs, dtype=torch.float32, device=self.device).unsqueeze(0)
        with torch.no_grad():
            out = self.module(o)
        if isinstance(out, (tuple, list)):
            out = out[0]
        a = out.squeeze(0).detach().cpu().numpy().astype(np.float32)
        if a.shape != (self.act_dim,):
            raise ValueError(f"Policy returned shape {a.shape}, expected ({self.act_dim},)")
        return np.clip(a, -1.0, 1.0)


def make_policy(
    name: str,
    seed: int = 0,
    checkpoint: Optional[str] = None,
    device: str = "cpu",
    decision_dt: float = 0.1,
):
    name = name.lower()
    if name == "zero":
        return ZeroPolicy()
    if name == "random":
        return RandomPolicy(seed=seed)
    if name == "gait":
        return GaitPolicy(decision_dt=decision_dt)
    if name == "torchscript":
        if checkpoint is None:
            raise ValueError("policy 'torchscript' needs a checkpoint path")
        return TorchScriptPolicy(checkpoint, device=device)
    raise ValueError(f"Unknown policy: {name}")
