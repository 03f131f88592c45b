"""Randomized scene layouts stay reachable and loadable."""

import json

import numpy as np
import pytest

from generate_scene_config import (
    _farthest_spawn_distance,
    main,
    overlaps_keep_out,
    sample_scene_config,
    spawn_keep_out,
)
from parking_gym import DEFAULT_CONFIG, ParkingEnv


@pytest.mark.parametrize("seed", range(15))
def test_target_reachable_from_every_spawn_corner(seed):
    config = sample_scene_config(seed)
    target = config["scene"]["target_spot"]["center"]
    threshold = config["episode"]["far_distance_threshold"]
    assert _farthest_spawn_distance(config["spawn_region"], target) <= threshold


@pytest.mark.parametrize("seed", range(15))
def test_staging_area_encloses_target_spot(seed):
    scene = sample_scene_config(seed)["scene"]
    spot_c = np.array(scene["target_spot"]["center"])
    spot_s = np.array(scene["target_spot"]["size"])
    area_c = np.array(scene["staging_area"]["center"])
    area_s = np.array(scene["staging_area"]["size"])
    assert np.all(area_c - area_s / 2.0 <= spot_c - spot_s / 2.0)
    assert np.all(area_c + area_s / 2.0 >= spot_c + spot_s / 2.0)


@pytest.mark.parametrize("seed", range(300))
def test_layout_clears_spawn_keep_out(seed):
    config = sample_scene_config(seed)
    scene = config["scene"]
    keep_out = spawn_keep_out(config["spawn_region"], config["vehicle"]["length"] / 2.0)

    spot = scene["target_spot"]
    assert spot["center"][0] - spot["size"][0] / 2.0 >= keep_out[1] - 1e-9
    for obstacle in scene["obstacles"]:
        assert not overlaps_keep_out(obstacle["center"], obstacle["size"], keep_out)


def test_overlaps_keep_out_edges():
    keep_out = spawn_keep_out([-3.5, 1.2, -3.5, 3.5], 2.0)
    assert keep_out == pytest.approx((-5.8, 3.5, -5.8, 5.8))
    assert overlaps_keep_out([3.9, 0.75, 0.0], [2.0, 1.5, 4.0], keep_out)
    assert not overlaps_keep_out([4.6, 0.75, 0.0], [2.0, 1.5, 4.0], keep_out)
    assert not overlaps_keep_out([0.0, 0.75, 8.0], [2.0, 1.5, 4.0], keep_out)


@pytest.mark.parametrize("seed", range(40))
def test_first_idle_step_never_collides(seed):
    env = ParkingEnv(config=sample_scene_config(seed))
    for episode_seed in range(5):
        env.reset(seed=episode_seed)
        info = env.step(np.zeros(2, dtype=np.float32))[4]
        assert info["terminal_reason"] != "collided_with_obstacle"
        assert not any(event.startswith("collision_enter") for event in info["events"])


def test_non_scene_sections_untouched():
    config = sample_scene_config(3)
    assert config["spawn_region"] == DEFAULT_CONFIG["spawn_region"]
    assert config["reward"] == DEFAULT_CONFIG["reward"]
    assert config["episode"] == DEFAULT_CONFIG["episode"]


def test_same_seed_same_layout():
    assert sample_scene_config(9) == sample_scene_config(9)


def test_cli_writes_loadable_config(tmp_path, capsys):
    out = tmp_path / "configs" / "scene.json"
    main(["--out", str(out), "--seed", "4"])
    assert "Wrote config" in capsys.readouterr().out

    config = json.loads(out.read_text(encoding="utf-8"))
    env = ParkingEnv(config=config)
    obs, _ = env.reset()
    np.testing.assert_allclose(obs[3:6], config["scene"]["target_spot"]["center"], rtol=1e-6)
