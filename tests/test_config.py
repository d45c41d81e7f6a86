"""Tests for settings loading."""

import json

import pytest

from crawler_rl.config import CrawlerSettings, load_settings


class TestCrawlerSettings:

    def test_defaults(self, settings):
        a = settings.agent
        assert a.decision_period == 5
        assert a.max_step == 5000
        assert a.target_spawn_radius == 10.0
        assert a.reward_moving_towards_target and a.reward_facing_target
        assert not a.reward_use_time_penalty
        assert settings.joint_drive.max_joint_force_limit > 0.0

    def test_overlay(self):
        s = CrawlerSettings.from_dict({
            "agent": {"max_step": 100, "detect_targets": False, "terminate_on_ground_contact": []},
            "body": {"upper_z_limit": [-0.4, 0.4]},
        })
        assert s.agent.max_step == 100
        assert s.agent.detect_targets is False
        assert s.agent.terminate_on_ground_contact == ()
        assert s.body.upper_z_limit == (-0.4, 0.4)
        # untouched sections keep defaults
        assert s.physics == CrawlerSettings().physics

    def test_integral_float_for_int(self):
        s = CrawlerSettings.from_dict({"agent": {"decision_period": 4.0}})
        assert s.agent.decision_period == 4
        assert isinstance(s.agent.decision_period, int)

    def test_int_coerced_to_float(self):
        s = CrawlerSettings.from_dict({"agent": {"target_spawn_radius": 3}})
        assert isinstance(s.agent.target_spawn_radius, float)

    @pytest.mark.parametrize("data", [
        {"nope": {}},
        {"agent": {"nope": 1}},
        {"agent": {"detect_targets": 1}},
        {"agent": {"max_step": "10"}},
        {"agent": {"max_step": True}},
        {"agent": {"max_step": 2.5}},
        {"body": {"upper_x_limit": 0.5}},
        {"agent": 3},
    ])
    def test_invalid(self, data):
        with pytest.raises(ValueError):
            CrawlerSettings.from_dict(data)

    def test_load_round_trip(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text(json.dumps(CrawlerSettings().to_dict()), encoding="utf-8")
        assert load_settings(str(path)) == CrawlerSettings()

    def test_load_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(str(tmp_path / "missing.json"))

    def test_load_not_object(self, tmp_path):
        path = tmp_path / "settings.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(ValueError):
            load_settings(str(path))
