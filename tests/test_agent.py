"""Tests for crawler observations, actions and rewards."""

import numpy as np
import pytest

from crawler_rl.agent import ACTION_SIZE, GROUNDED, OBSERVATION_SIZE, UNGROUNDED, CrawlerAgent
from crawler_rl.config import CrawlerSettings
from crawler_rl.envs import CrawlerEnv
from crawler_rl.math3d import IDENTITY_QUAT
from crawler_rl.physics import FOOT_NAMES, LEG_COUNT, ROOT, lower_name, upper_name
from crawler_rl.sensors import VectorSensor


def make_env(**agent_overrides):
    settings = CrawlerSettings.from_dict({"agent": agent_overrides})
    env = CrawlerEnv(settings=settings, seed=1)
    env.reset(seed=1)
    return env


class TestObservations:

    def test_size(self, env):
        sensor = VectorSensor()
        env.agent.collect_observations(sensor)
        obs = sensor.build()
        assert len(sensor) == OBSERVATION_SIZE == 138
        assert obs.dtype == np.float32
        assert np.isfinite(obs).all()

    def test_layout_head(self, env):
        sensor = VectorSensor()
        env.agent.collect_observations(sensor)
        obs = sensor.build()
        # rotation from body forward to cube forward is a unit quaternion
        assert np.linalg.norm(obs[:4]) == pytest.approx(1.0, abs=1e-5)
        # target in cube space lies straight ahead
        assert obs[4] > 0.0
        assert obs[5] == pytest.approx(0.0, abs=1e-5)
        height = env.physics.position(ROOT)[2]
        assert obs[7] == pytest.approx(height / env.cfg.max_raycast_dist, abs=1e-6)

    def test_raycast_miss(self, env):
        env.agent.cfg.max_raycast_dist = 0.1
        sensor = VectorSensor()
        env.agent.collect_observations(sensor)
        assert sensor.build()[7] == 1.0

    def test_body_part_block(self, env):
        agent = env.agent
        sensor = VectorSensor()
        agent.collect_observation_body_part(agent.jd_controller[ROOT], sensor)
        assert len(sensor) == 10
        sensor.reset()
        agent.collect_observation_body_part(agent.jd_controller[lower_name(0)], sensor)
        values = sensor.build()
        assert len(values) == 15
        # grounded foot, full strength after reset
        assert values[0] == 1.0
        assert values[-1] == pytest.approx(1.0)


class TestActions:

    def test_wrong_length(self, env):
        with pytest.raises(ValueError):
            env.agent.on_action_received(np.zeros(ACTION_SIZE - 1))

    def test_non_finite(self, env):
        a = np.zeros(ACTION_SIZE)
        a[3] = np.nan
        with pytest.raises(ValueError):
            env.agent.on_action_received(a)

    def test_layout(self, env):
        a = np.zeros(ACTION_SIZE)
        a[0:2 * LEG_COUNT] = [-1.0, 1.0] * LEG_COUNT
        a[2 * LEG_COUNT:3 * LEG_COUNT] = 1.0
        a[12:16] = 1.0
        a[16:20] = -1.0
        env.agent.on_action_received(a)
        jd = env.agent.jd_controller
        for leg in range(LEG_COUNT):
            up, low = jd[upper_name(leg)], jd[lower_name(leg)]
            assert up.current_x_norm_rot == pytest.approx(0.0)
            assert up.current_z_norm_rot == pytest.approx(1.0)
            assert low.current_x_norm_rot == pytest.approx(1.0)
            assert up.current_strength == pytest.approx(jd.max_joint_force_limit)
            assert low.current_strength == pytest.approx(0.0)


class TestRewards:

    def test_set_reward_overrides_step_reward(self, env):
        agent = env.agent
        agent.add_reward(0.5)
        agent.set_reward(-1.0)
        assert agent.reward == pytest.approx(-1.0)
        assert agent.cumulative_reward == pytest.approx(-1.0)
        assert agent.consume_reward() == pytest.approx(-1.0)
        assert agent.reward == 0.0

    def test_facing_target(self, env):
        agent = env.agent
        body = env.physics.position(ROOT)
        agent.target = body + 5.0 * agent.body_forward()
        agent.update_orientation_cube()
        agent.reward_function_facing_target()
        assert agent.reward == pytest.approx(env.cfg.w_facing)

    def test_moving_towards(self, env, monkeypatch):
        agent = env.agent
        agent.orientation_cube.rotation = IDENTITY_QUAT.copy()
        monkeypatch.setattr(env.physics, "velocity", lambda name: np.array([2.0, 0.0, 0.0]))
        agent.reward_function_moving_towards()
        assert agent.reward == pytest.approx(0.06)

    def test_moving_towards_clamped(self, env, monkeypatch):
        agent = env.agent
        agent.cfg.maximum_walking_speed = 1.0
        agent.orientation_cube.rotation = IDENTITY_QUAT.copy()
        monkeypatch.setattr(env.physics, "velocity", lambda name: np.array([-2.0, 0.0, 0.0]))
        agent.reward_function_moving_towards()
        assert agent.reward == pytest.approx(-0.03)

    def test_time_penalty(self, env):
        env.agent.reward_function_time_penalty()
        assert env.agent.reward == pytest.approx(-0.001)

    def test_disabled_rewards(self):
        env = make_env(reward_moving_towards_target=False, reward_facing_target=False, detect_targets=False)
        env.agent.fixed_update()
        assert env.agent.reward == 0.0

    def test_time_penalty_only(self):
        env = make_env(reward_moving_towards_target=False, reward_facing_target=False, reward_use_time_penalty=True,
                       detect_targets=False)
        env.agent.fixed_update()
        assert env.agent.reward == pytest.approx(-0.001)


class TestTarget:

    def test_spawn_within_radius(self, env):
        agent = env.agent
        for _ in range(20):
            agent.get_random_target_pos()
            assert np.linalg.norm(agent.target[:2]) <= env.cfg.target_spawn_radius
            assert agent.target[2] == pytest.approx(env.physics.cfg.target_half_size)

    def test_touched_target_respawns(self, env):
        agent = env.agent
        before = agent.target.copy()
        agent.touched_target()
        assert agent.targets_reached == 1
        assert agent.reward == pytest.approx(1.0)
        assert not np.allclose(agent.target, before)

    def test_touched_target_without_respawn(self):
        env = make_env(respawn_target_when_touched=False)
        before = env.agent.target.copy()
        env.agent.touched_target()
        assert np.allclose(env.agent.target, before)

    def test_contact_in_fixed_update(self, env):
        agent = env.agent
        agent.target = env.physics.position(ROOT)
        agent.fixed_update()
        assert agent.targets_reached == 1
        assert not np.allclose(agent.target, env.physics.position(ROOT))

    def test_heading_kept_when_target_overhead(self, env):
        agent = env.agent
        rotation = agent.orientation_cube.rotation.copy()
        start = agent.orientation_cube.position.copy()
        agent.target = start + np.array([0.0, 0.0, 3.0])
        env.physics.reset_pose(yaw=0.3, origin=(0.5, -0.5))
        agent.update_orientation_cube()
        assert np.allclose(agent.orientation_cube.rotation, rotation)
        assert np.allclose(agent.orientation_cube.position, env.physics.position(ROOT))
        assert not np.allclose(agent.orientation_cube.position, start)

    def test_detection_disabled(self):
        env = make_env(detect_targets=False)
        env.agent.target = env.physics.position(ROOT)
        env.agent.fixed_update()
        assert env.agent.targets_reached == 0


class TestEpisode:

    def test_body_ground_contact_ends_episode(self, env, monkeypatch):
        monkeypatch.setattr(env.physics, "touching_ground", lambda name: True)
        env.agent.update_ground_contacts()
        assert env.agent.done
        assert not env.agent.interrupted

    def test_ground_contact_penalty(self, monkeypatch):
        env = make_env(terminate_on_ground_contact=[], penalize_ground_contact=["body"], ground_contact_penalty=-0.5)
        env.agent.add_reward(0.2)
        monkeypatch.setattr(env.physics, "touching_ground", lambda name: name == ROOT)
        env.agent.update_ground_contacts()
        assert not env.agent.done
        assert env.agent.reward == pytest.approx(-0.5)

    def test_max_step_interrupts(self):
        env = make_env(max_step=3)
        _, _, done, info = env.step(np.zeros(ACTION_SIZE))
        assert done
        assert info["interrupted"]
        assert info["step_count"] == 3

    def test_episode_begin_resets_bookkeeping(self, env):
        agent = env.agent
        agent.add_reward(3.0)
        agent.targets_reached = 2
        agent.end_episode()
        agent.on_episode_begin()
        assert agent.cumulative_reward == 0.0
        assert agent.targets_reached == 0
        assert not agent.done
        assert agent.jd_controller[FOOT_NAMES[0]].ground_contact.touching_ground

    def test_foot_materials(self):
        env = make_env(use_foot_grounded_visualization=True)
        env.agent.fixed_update()
        assert set(env.agent.foot_materials) == set(FOOT_NAMES)
        assert all(m in (GROUNDED, UNGROUNDED) for m in env.agent.foot_materials.values())

    @pytest.mark.parametrize("key", ["terminate_on_ground_contact", "penalize_ground_contact"])
    def test_unknown_contact_part(self, key):
        settings = CrawlerSettings.from_dict({"agent": {key: ["bdy"]}})
        with pytest.raises(ValueError):
            CrawlerEnv(settings=settings)

    def test_requires_initialize(self, physics):
        agent = CrawlerAgent(physics)
        with pytest.raises(RuntimeError):
            agent.on_episode_begin()
