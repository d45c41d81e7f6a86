from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
import numpy as np


@dataclass
class EpisodeStats:
    total_reward: float
    decisions: int
    steps: int
    targets_reached: int
    interrupted: bool
    final_info: Dict[str, Any] = field(default_factory=dict)


def run_episode(
    env,
    policy_act: Callable[[np.ndarray], np.ndarray],
    max_decisions: Optional[int] = None,
    seed: Optional[int] = None,
) -> EpisodeStats:
    if hasattr(policy_act, "reset"):
        policy_act.reset()
    obs, info = env.reset(seed=seed)
    ep_rew = 0.0
    last_info = info
    decisions = 0
    while max_decisions is None or decisions < max_decisions:
        a = policy_act(obs)
        obs, r, done, step_info = env.step(a)
        ep_rew += float(r)
        decisions += 1
        last_info = step_info
        if done:
            break
    return EpisodeStats(
        total_reward=ep_rew,
        decisions=decisions,
        steps=int(last_info.get("step_count", 0)),
        targets_reached=int(last_info.get("targets_reached", 0)),
        interrupted=bool(last_info.get("interrupted", False)),
        final_info=last_info,
    )


def evaluate(
    env,
    policy_act: Callable[[np.ndarray], np.ndarray],
    episodes: int,
    max_decisions: Optional[int] = None,
    seed: Optional[int] = None,
    on_episode: Optional[Callable[[int, EpisodeStats], None]] = None,
) -> List[EpisodeStats]:
    if episodes < 1:
        raise ValueError(f"episodes must be >= 1, got {episodes}")
    results = []
    for ep in range(episodes):
        stats = run_episode(
            env, policy_act, max_decisions=max_decisions,
            seed=None if seed is None else seed + ep,
        )
        results.append(stats)
        if on_episode is not None:
            on_episode(ep, stats)
    return results


def summarize(results: List[EpisodeStats]) -> Dict[str, float]:
    if not results:
        raise ValueError("No episodes to summarize")
    rewards = np.array([r.total_reward for r in results], dtype=np.float64)
    return {
        "episodes": float(len(results)),
        "reward_mean": float(rewards.mean()),
        "reward_std": float(rewards.std()),
        "steps_mean": float(np.mean([r.steps for r in results])),
        "targets_reached_mean": float(np.mean([r.targets_reached for r in results])),
        "interrupted_frac": float(np.mean([1.0 if r.interrupted else 0.0 for r in results])),
    }
