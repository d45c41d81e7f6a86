"""Tests for baseline and TorchScript policies."""

import numpy as np
import pytest
import torch
import torch.nn as nn

from crawler_rl.agent import ACTION_SIZE, OBSERVATION_SIZE
from crawler_rl.config import CrawlerSettings
from crawler_rl.envs import CrawlerEnv
from crawler_rl.physics import ROOT
from crawler_rl.policies import GaitPolicy, RandomPolicy, TorchScriptPolicy, ZeroPolicy, make_policy


class TestBaselinePolicies:

    def test_zero(self):
        a = ZeroPolicy()(np.zeros(OBSERVATION_SIZE))
        assert a.shape == (ACTION_SIZE,)
        assert not a.any()

    def test_random_is_seeded(self):
        obs = np.zeros(OBSERVATION_SIZE)
        a = RandomPolicy(seed=3)(obs)
        b = RandomPolicy(seed=3)(obs)
        assert np.allclose(a, b)
        assert np.all(np.abs(a) <= 1.0)

    def test_gait(self):
        policy = GaitPolicy(decision_dt=0.1)
        obs = np.zeros(OBSERVATION_SIZE)
        first = policy(obs)
        assert first.shape == (ACTION_SIZE,)
        assert np.all(np.abs(first) <= 1.0)
        assert np.allclose(first[12:], 1.0)
        second = policy(obs)
        assert not np.allclose(first, second)
        policy.reset()
        assert np.allclose(policy(obs), first)

    @pytest.mark.parametrize("seed", [0, 1, 2])
    def test_gait_walks_forward(self, seed):
        settings = CrawlerSettings.from_dict({"agent": {"detect_targets": False}})
        env = CrawlerEnv(settings=settings, seed=seed)
        policy = GaitPolicy(decision_dt=env.decision_dt)
        obs, _ = env.reset(seed=seed)
        travelled = 0.0
        for _ in range(50):
            before = env.physics.position(ROOT)
            obs, _, done, _ = env.step(policy(obs))
            travelled += float((env.physics.position(ROOT) - before) @ env.agent.body_forward())
            if done:
                break
        assert travelled > 0.0

    def test_gait_invalid_dt(self):
        with pytest.raises(ValueError):
            GaitPolicy(decision_dt=0.0)

    def test_make_policy(self):
        assert isinstance(make_policy("zero"), ZeroPolicy)
        assert isinstance(make_policy("Random", seed=1), RandomPolicy)
        assert isinstance(make_policy("gait", decision_dt=0.2), GaitPolicy)
        with pytest.raises(ValueError):
            make_policy("ppo")
        with pytest.raises(ValueError):
            make_policy("torchscript")


class TestTorchScriptPolicy:

    def _export(self, path, out_dim):
        torch.manual_seed(0)
        model = nn.Sequential(nn.Linear(OBSERVATION_SIZE, 32), nn.Tanh(), nn.Linear(32, out_dim))
        torch.jit.script(model).save(str(path))

    def test_load_and_act(self, tmp_path):
        path = tmp_path / "actor.pt"
        self._export(path, ACTION_SIZE)
        policy = make_policy("torchscript", checkpoint=str(path))
        a = policy(np.ones(OBSERVATION_SIZE, dtype=np.float32))
        assert a.shape == (ACTION_SIZE,)
        assert a.dtype == np.float32
        assert np.all(np.abs(a) <= 1.0)

    def test_wrong_output_shape(self, tmp_path):
        path = tmp_path / "actor.pt"
        self._export(path, 5)
        policy = TorchScriptPolicy(str(path))
        with pytest.raises(ValueError):
            policy(np.zeros(OBSERVATION_SIZE, dtype=np.float32))

    def test_missing_checkpoint(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            TorchScriptPolicy(str(tmp_path / "missing.pt"))
