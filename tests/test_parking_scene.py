"""Kinematic scene: frame conventions, integration and enter events."""

import numpy as np
import pytest

from parking_scene import (
    EVENT_COLLISION_ENTER,
    EVENT_TRIGGER_ENTER,
    TAG_OBSTACLE,
    TAG_PARKING_AREA,
    TAG_PARKING_SPOT,
    Body,
    KinematicScene,
    Volume,
)
from tests.conftest import make_config


@pytest.fixture
def scene():
    config = make_config()
    return KinematicScene.from_config(config["scene"], config["vehicle"])


def test_forward_vector_follows_yaw():
    body = Body(name="car", tag="Agent", position=np.zeros(3))
    np.testing.assert_allclose(body.forward(), [0.0, 0.0, 1.0], atol=1e-12)
    body.yaw = 90.0
    np.testing.assert_allclose(body.forward(), [1.0, 0.0, 0.0], atol=1e-12)
    np.testing.assert_allclose(body.right(), [0.0, 0.0, -1.0], atol=1e-12)


def test_volume_contains_is_inclusive():
    volume = Volume("spot", TAG_PARKING_SPOT, np.array([0.0, 0.5, 0.0]), np.array([2.0, 1.0, 4.0]))
    assert volume.contains((1.0, 0.0, 2.0))
    assert volume.contains((0.0, 0.5, 0.0))
    assert not volume.contains((1.01, 0.5, 0.0))


def test_get_bounds_matches_volume(scene):
    lo, hi = scene.get_bounds(scene.target_spot)
    np.testing.assert_allclose(lo, [2.75, 0.0, -2.5])
    np.testing.assert_allclose(hi, [5.25, 1.0, 2.5])


def test_forward_force_integrates_with_drag(scene):
    agent = scene.agent
    scene.apply_forward_force(agent, 5.0)
    scene.advance(0.1)
    expected_speed = 5.0 / agent.mass * 0.1 * (1.0 - agent.drag * 0.1)
    np.testing.assert_allclose(agent.velocity, [0.0, 0.0, expected_speed])
    np.testing.assert_allclose(agent.position, [0.0, 0.0, expected_speed * 0.1])
    assert np.array_equal(agent.pending_force, np.zeros(3))


def test_rotate_wraps_heading(scene):
    scene.set_pose(scene.agent, (0.0, 0.0, 0.0), 350.0)
    scene.rotate(scene.agent, 20.0)
    assert scene.get_rotation(scene.agent) == pytest.approx(10.0)


def test_obstacles_do_not_move(scene):
    obstacle = scene.obstacles[0]
    start = obstacle.position.copy()
    scene.apply_forward_force(obstacle, 100.0)
    scene.advance(0.5)
    assert np.array_equal(obstacle.position, start)


def test_wheel_positions_keep_missing_entries():
    config = make_config(vehicle={"wheel_offsets": [[-0.8, 0.0, 1.3], None]})
    scene = KinematicScene.from_config(config["scene"], config["vehicle"])
    scene.set_pose(scene.agent, (1.0, 0.0, 1.0), 0.0)
    wheels = scene.wheel_positions(scene.agent)
    assert wheels[1] is None
    np.testing.assert_allclose(wheels[0], [0.2, 0.0, 2.3])


def test_trigger_enter_fires_once_per_entry(scene):
    scene.set_pose(scene.agent, (4.0, 0.0, 0.0), 0.0)
    events = scene.advance(0.02)
    assert [(e.kind, e.tag) for e in events] == [
        (EVENT_TRIGGER_ENTER, TAG_PARKING_SPOT),
        (EVENT_TRIGGER_ENTER, TAG_PARKING_AREA),
    ]
    assert scene.advance(0.02) == []

    scene.set_pose(scene.agent, (-2.0, 0.0, 0.0), 0.0)
    assert scene.advance(0.02) == []
    scene.set_pose(scene.agent, (4.0, 0.0, 0.0), 0.0)
    assert len(scene.advance(0.02)) == 2


def test_collision_enter_reported_after_triggers(scene):
    scene.set_pose(scene.agent, (4.5, 0.0, -2.5), 0.0)
    events = scene.advance(0.02)
    kinds = [e.kind for e in events]
    assert kinds[-1] == EVENT_COLLISION_ENTER
    assert events[-1].tag == TAG_OBSTACLE
    assert events[-1].other == "parked_car_left"
    assert EVENT_TRIGGER_ENTER in kinds[:-1]
