"""Demo CLI helpers and short headless policy runs."""

import json

import numpy as np
import pytest

import parking_demo
from parking_demo import ManualController, build_config, merge_config, policy_demo, steer_to_target
from parking_gym import ParkingEnv


def test_merge_config_is_recursive_and_pure():
    base = {"episode": {"max_duration": 30.0, "far_distance_threshold": 10.0}, "dt": 0.02}
    merged = merge_config(base, {"episode": {"max_duration": 5.0}})
    assert merged["episode"] == {"max_duration": 5.0, "far_distance_threshold": 10.0}
    assert base["episode"]["max_duration"] == 30.0


def test_build_config_applies_overrides():
    config = build_config({"reward": {"success": 5.0}})
    assert config["reward"]["success"] == 5.0
    assert config["reward"]["collision"] == -1.0
    assert config["rng_seed"] == 42


class _Key:
    def __init__(self, key):
        self.key = key


def test_manual_controller_maps_arrow_keys():
    env = ParkingEnv(config={"rng_seed": 0})
    env.reset()
    controller = ManualController()
    controller._on_key_press(_Key("Up"))
    controller._on_key_press(_Key("left"))
    np.testing.assert_array_equal(controller.action(env), np.array([1.0, -1.0], dtype=np.float32))

    controller._on_key_release(_Key("up"))
    controller._on_key_press(_Key("escape"))
    assert controller.axes() == (0.0, -1.0)
    assert not controller.running


def test_steer_to_target_turns_toward_target():
    env = ParkingEnv(config={"rng_seed": 0})
    env.reset()
    # Facing +z with the target at +x: positive yaw turns toward it.
    env.scene.set_pose(env.scene.agent, (0.0, 0.0, 0.0), 0.0)
    move, turn = steer_to_target(env)
    assert turn == pytest.approx(1.0)
    assert move > 0.0


def test_policy_demo_runs_and_persists_counters(tmp_path, capsys):
    counters = tmp_path / "counters.json"
    policy_demo(2, 50, policy="heuristic", config=build_config(), counters_path=counters)
    out = capsys.readouterr().out
    assert out.count("Episode ") >= 2
    assert "Successful Parks:" in out
    assert json.loads(counters.read_text(encoding="utf-8"))["EpisodeCount"] == 2


def test_main_rejects_bad_config(tmp_path, monkeypatch, capsys):
    monkeypatch.setattr(parking_demo, "setup_logging", lambda **kwargs: None)
    bad = tmp_path / "bad.json"
    bad.write_text("[1, 2, 3]", encoding="utf-8")
    with pytest.raises(SystemExit) as excinfo:
        parking_demo.main(["--config", str(bad)])
    assert excinfo.value.code == 1
    assert "Failed to load config" in capsys.readouterr().err


def test_main_random_mode(monkeypatch, capsys):
    monkeypatch.setattr(parking_demo, "setup_logging", lambda **kwargs: None)
    parking_demo.main(["--mode", "random", "--episodes", "1", "--max-steps", "20"])
    assert "Episode 1 finished" in capsys.readouterr().out


def test_main_forwards_logging_flags(tmp_path, monkeypatch):
    seen = {}
    monkeypatch.setattr(parking_demo, "setup_logging", lambda **kwargs: seen.update(kwargs))
    log_file = tmp_path / "demo.log"
    parking_demo.main(
        [
            "--mode", "random", "--episodes", "1", "--max-steps", "5",
            "--log-level", "DEBUG", "--log-file", str(log_file), "--log-json",
        ]
    )
    assert seen == {"level": "DEBUG", "file_path": log_file, "serialize": True}
    assert parking_demo.parse_args([]).log_json is False
