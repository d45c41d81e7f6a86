import matplotlib

matplotlib.use("Agg")

import pytest

from crawler_rl.config import CrawlerSettings
from crawler_rl.envs import CrawlerEnv
from crawler_rl.physics import CrawlerPhysics


@pytest.fixture
def settings():
    return CrawlerSettings()


@pytest.fixture
def physics(settings):
    return CrawlerPhysics(body=settings.body, joint_cfg=settings.joint_drive, cfg=settings.physics)


@pytest.fixture
def env(settings):
    e = CrawlerEnv(settings=settings, seed=0)
    e.reset(seed=0)
    return e
