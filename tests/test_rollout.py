"""Tests for episode rollouts and summaries."""

import pytest

from crawler_rl.policies import GaitPolicy, ZeroPolicy
from crawler_rl.rollout import EpisodeStats, evaluate, run_episode, summarize


class TestRollout:

    def test_run_episode_respects_max_decisions(self, env):
        stats = run_episode(env, ZeroPolicy(), max_decisions=3, seed=0)
        assert stats.decisions == 3
        assert stats.steps == 3 * env.cfg.decision_period
        assert not stats.interrupted

    def test_evaluate_calls_back(self, env):
        seen = []
        results = evaluate(env, GaitPolicy(decision_dt=env.decision_dt), episodes=2, max_decisions=2, seed=5,
                           on_episode=lambda ep, s: seen.append(ep))
        assert len(results) == 2
        assert seen == [0, 1]

    def test_evaluate_is_reproducible(self, env):
        policy = GaitPolicy(decision_dt=env.decision_dt)
        a = evaluate(env, policy, episodes=2, max_decisions=4, seed=11)
        b = evaluate(env, policy, episodes=2, max_decisions=4, seed=11)
        assert [s.total_reward for s in a] == pytest.approx([s.total_reward for s in b])

    def test_evaluate_invalid(self, env):
        with pytest.raises(ValueError):
            evaluate(env, ZeroPolicy(), episodes=0)

    def test_summarize(self):
        results = [
            EpisodeStats(total_reward=1.0, decisions=2, steps=10, targets_reached=1, interrupted=False),
            EpisodeStats(total_reward=3.0, decisions=4, steps=20, targets_reached=0, interrupted=True),
        ]
        summary = summarize(results)
        assert summary["episodes"] == 2.0
        assert summary["reward_mean"] == pytest.approx(2.0)
        assert summary["reward_std"] == pytest.approx(1.0)
        assert summary["steps_mean"] == pytest.approx(15.0)
        assert summary["targets_reached_mean"] == pytest.approx(0.5)
        assert summary["interrupted_frac"] == pytest.approx(0.5)

    def test_summarize_empty(self):
        with pytest.raises(ValueError):
            summarize([])
