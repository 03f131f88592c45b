"""
Shared fixtures for the parking environment tests.

Forces a headless Matplotlib backend before anything imports pyplot and
provides small builders for a controller wired to a kinematic scene.
"""

import copy

import matplotlib

matplotlib.use("Agg")

import numpy as np  # noqa: E402
import pytest  # noqa: E402

from parking_episode import EpisodeController  # noqa: E402
from parking_gym import DEFAULT_CONFIG  # noqa: E402
from parking_scene import KinematicScene  # noqa: E402
from reset_registry import ResetRegistry  # noqa: E402
from session_counters import SessionCounters  # noqa: E402

# Default scene: target spot centred at (4, 0.5, 0), staging area around it.
SPOT_CENTER = (4.0, 0.0, 0.0)
OUTSIDE_POINT = (0.0, 0.0, 0.0)


def make_config(**sections):
    """Deep copy of DEFAULT_CONFIG with per-section dict updates."""
    config = copy.deepcopy(DEFAULT_CONFIG)
    for key, value in sections.items():
        if isinstance(value, dict) and isinstance(config.get(key), dict):
            config[key].update(value)
        else:
            config[key] = value
    return config


def build_controller(config=None, seed=0, with_registry=True):
    config = config or make_config()
    scene = KinematicScene.from_config(config["scene"], config["vehicle"])
    registry = ResetRegistry(scene, scene.bodies()) if with_registry else None
    counters = SessionCounters(clock=lambda: 0.0)
    controller = EpisodeController(
        scene,
        scene.agent,
        config,
        target_spot=scene.target_spot,
        staging_area=scene.staging_area,
        origin=scene.origin,
        reset_registry=registry,
        counters=counters,
        rng=np.random.default_rng(seed),
    )
    return controller


def place(controller, position, yaw=0.0):
    controller.scene.set_pose(controller.agent, position, yaw)


@pytest.fixture
def controller():
    ctrl = build_controller()
    ctrl.begin_episode()
    return ctrl
