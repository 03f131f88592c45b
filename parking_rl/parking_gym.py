"""Gymnasium environment wrapping the parking episode controller.

Observations are ``[agent.xyz, target.xyz, distance]`` and actions are two
continuous scalars ``(move, turn)``. Angles in the public configuration are
expressed in degrees. 基于回合控制器的 Gymnasium 泊车环境，观测为车辆与目标的
局部坐标及距离，动作为前进与转向两个连续量。
"""

import copy
from typing import Dict, List, Optional, Tuple

import gymnasium as gym
from gymnasium import spaces
import matplotlib.pyplot as plt
import numpy as np

from parking_episode import EpisodeController, EpisodeState
from parking_scene import KinematicScene
from reset_registry import ResetRegistry
from session_counters import SessionCounters


# All angles in DEFAULT_CONFIG (and any user overrides) are expressed in degrees.
# 默认配置（以及外部覆盖项）中的角度均采用度数表示。
DEFAULT_CONFIG: Dict = {
    "dt": 0.02,
    "rng_seed": None,
    "auto_reset": False,
    "counters_path": None,
    # [xmin, xmax, zmin, zmax] relative to the scene origin, y = 0.
    "spawn_region": [-3.5, 1.2, -3.5, 3.5],
    "spawn_heading_range": [0.0, 360.0],
    "vehicle": {
        "move_speed": 5.0,
        "turn_speed": 200.0,  # deg/s at full turn input
        "mass": 1.0,
        "drag": 0.5,
        "length": 4.0,
        "width": 1.8,
        "height": 1.5,
        # Body frame: x right, y up, z forward.
        "wheel_offsets": [
            [-0.8, 0.0, 1.3],
            [0.8, 0.0, 1.3],
            [-0.8, 0.0, -1.3],
            [0.8, 0.0, -1.3],
        ],
    },
    "episode": {
        "max_duration": 30.0,
        "far_distance_threshold": 10.0,
        "required_inside_time": 3.0,
        "required_wheels_inside_time": 3.0,
    },
    "reward": {
        "distance_scale": 0.1,
        "spot_touch": 0.5,
        "area_touch": 0.5,
        "inside_per_second": 0.2,
        "wheels_inside_per_second": 0.1,
        "success": 2.0,
        "time_limit": -0.5,
        "too_far": -1.0,
        "collision": -1.0,
    },
    "scene": {
        "origin": [0.0, 0.0, 0.0],
        "target_spot": {"center": [4.0, 0.5, 0.0], "size": [2.5, 1.0, 5.0]},
        "staging_area": {"center": [4.0, 0.5, 0.0], "size": [3.5, 1.0, 6.0]},
        "obstacles": [
            {"name": "parked_car_left", "center": [4.5, 0.75, -5.0], "size": [2.0, 1.5, 4.0]},
            {"name": "parked_car_right", "center": [4.5, 0.75, 5.0], "size": [2.0, 1.5, 4.0]},
        ],
    },
}


class ParkingEnv(gym.Env):
    """Gymnasium-compatible parking environment driven by ``EpisodeController``.

    基于 Gymnasium 的泊车环境；奖励与终止逻辑全部由回合控制器负责。
    """
    metadata = {"render_modes": ["human"]}

    def __init__(
        self,
        config: Optional[Dict] = None,
        render_mode: Optional[str] = None,
        counters: Optional[SessionCounters] = None,
    ) -> None:
        super().__init__()
        self.config = self._merge_config(config)
        self._validate_config(self.config)
        self.rng = np.random.default_rng(self.config["rng_seed"])
        self.render_mode = render_mode
        self.dt = float(self.config["dt"])
        self.auto_reset = bool(self.config["auto_reset"])
        self.vehicle_cfg = self.config["vehicle"]

        self.observation_space = spaces.Box(
            low=-np.inf,
            high=np.inf,
            shape=(7,),
            dtype=np.float32,
        )
        # Advisory bounds only: actions are passed through without clipping.
        self.action_space = spaces.Box(
            low=np.array([-1.0, -1.0], dtype=np.float32),
            high=np.array([1.0, 1.0], dtype=np.float32),
            dtype=np.float32,
        )

        self.scene = KinematicScene.from_config(self.config["scene"], self.vehicle_cfg)
        self.reset_registry = ResetRegistry(self.scene, self.scene.bodies())
        if counters is None:
            counters = SessionCounters.from_path(self.config["counters_path"])
        self.counters = counters
        self.controller = EpisodeController(
            self.scene,
            self.scene.agent,
            self.config,
            target_spot=self.scene.target_spot,
            staging_area=self.scene.staging_area,
            origin=self.scene.origin,
            reset_registry=self.reset_registry,
            counters=self.counters,
            rng=self.rng,
        )

        self.current_step = 0
        self.last_action = np.zeros(2, dtype=float)
        self.last_reward = 0.0

        self.fig = None
        self.ax = None

    def _merge_config(self, override: Optional[Dict]) -> Dict:
        """Merge user overrides into the default config section by section.

        合并用户覆盖项：字典类型的配置段逐项更新，其余字段直接替换。
        """
        base_cfg = copy.deepcopy(DEFAULT_CONFIG)
        if override is None:
            return base_cfg

        user_cfg = copy.deepcopy(override)
        for key, value in user_cfg.items():
            if key not in base_cfg or not isinstance(value, dict):
                base_cfg[key] = value
            else:
                base_cfg[key].update(value)
        return base_cfg

    @staticmethod
    def _validate_config(config: Dict) -> None:
        if float(config["dt"]) <= 0.0:
            raise ValueError("dt must be positive.")
        spawn = config["spawn_region"]
        if len(spawn) != 4 or spawn[0] > spawn[1] or spawn[2] > spawn[3]:
            raise ValueError("spawn_region must be [xmin, xmax, zmin, zmax] with min <= max.")
        heading = config["spawn_heading_range"]
        if len(heading) != 2 or heading[0] > heading[1]:
            raise ValueError("spawn_heading_range must be [low, high] with low <= high.")
        for key in ("max_duration", "far_distance_threshold", "required_inside_time", "required_wheels_inside_time"):
            if float(config["episode"][key]) <= 0.0:
                raise ValueError(f"episode.{key} must be positive.")
        vehicle_cfg = config["vehicle"]
        if float(vehicle_cfg["mass"]) <= 0.0:
            raise ValueError("vehicle.mass must be positive.")
        if float(vehicle_cfg["drag"]) < 0.0:
            raise ValueError("vehicle.drag must be non-negative.")

    def reset(
        self,
        *,
        seed: Optional[int] = None,
        options: Optional[Dict] = None,
    ) -> Tuple[np.ndarray, Dict]:
        super().reset(seed=seed)
        if seed is not None:
            self.rng = np.random.default_rng(seed)
            self.controller.rng = self.rng
        self.current_step = 0
        self.controller.begin_episode()
        self.last_action = np.zeros(2, dtype=float)
        self.last_reward = 0.0
        return self.controller.observe(), self._info(events=[])

    def step(self, action: np.ndarray) -> Tuple[np.ndarray, float, bool, bool, Dict]:
        if self.controller.episode is None:
            raise RuntimeError("Cannot call step() before reset().")
        self.current_step += 1

        events: List = []
        state = self.controller.observe_and_act(action, self.dt)
        if state is EpisodeState.RUNNING:
            events = self.scene.advance(self.dt)
            for event in events:
                self.controller.on_event(event)

        reward = float(self.controller.reward.collect())
        terminated = not self.controller.running
        observation = self.controller.observe()
        info = self._info(events)

        self.last_action = np.array(action, dtype=float)
        self.last_reward = reward

        if terminated:
            info["final_observation"] = observation
            if self.auto_reset:
                observation, _ = self.reset()
        return observation, reward, terminated, False, info

    def _info(self, events: List) -> Dict:
        episode = self.controller.episode
        reason = self.controller.terminal_reason
        return {
            "terminal_reason": None if reason is None else reason.value,
            "distance_to_target": self.controller.distance_to_target(),
            "inside_time": episode.inside_time,
            "wheels_inside_time": episode.wheels_inside_time,
            "elapsed": episode.elapsed,
            "episode": episode.index,
            "events": [f"{event.kind}:{event.other}" for event in events],
        }

    def render(self) -> None:
        if self.render_mode != "human":
            raise NotImplementedError("Only human render mode is implemented.")

        if self.fig is None:
            plt.ion()
            plt.rcParams["keymap.save"] = []  # avoid save dialog on 's' key during manual control
            self.fig, self.ax = plt.subplots(figsize=(10, 6))
            plt.show(block=False)

        self.ax.cla()
        self.ax.set_aspect("equal")
        self.ax.grid(True, linestyle="--", alpha=0.3)
        self.ax.set_xlabel("x [m]")
        self.ax.set_ylabel("z [m]")
        # Top-down view: world x on the horizontal axis, world z on the vertical.
        origin = self.scene.origin
        xmin, xmax, zmin, zmax = self.config["spawn_region"]
        self.ax.add_patch(
            plt.Rectangle(
                (origin[0] + xmin, origin[2] + zmin),
                xmax - xmin,
                zmax - zmin,
                fill=False,
                linestyle=":",
                color="gray",
            )
        )
        if self.scene.staging_area is not None:
            self._draw_volume(self.scene.staging_area, color="tab:blue", alpha=0.12)
        if self.scene.target_spot is not None:
            self._draw_volume(self.scene.target_spot, color="tab:green", alpha=0.25)
        for obstacle in self.scene.obstacles:
            self._draw_body(obstacle, color="tab:red")
        self._draw_body(self.scene.agent, color="tab:orange")
        self._draw_wheels()

        self.ax.set_xlim(origin[0] - 6.0, origin[0] + 8.0)
        self.ax.set_ylim(origin[2] - 8.0, origin[2] + 8.0)

        episode = self.controller.episode
        if episode is not None:
            text_lines = list(self.counters.display_lines())
            text_lines.extend(
                [
                    "",
                    f"Step: {self.current_step} (dt={self.dt:.2f}s)",
                    f"Elapsed: {episode.elapsed:.1f} s",
                    f"Distance: {self.controller.distance_to_target():.2f} m",
                    f"Spot dwell: {episode.inside_time:.2f} s",
                    f"Wheels dwell: {episode.wheels_inside_time:.2f} s",
                    f"Action: move {self.last_action[0]:+.2f}, turn {self.last_action[1]:+.2f}",
                    f"Reward: {self.last_reward:+.3f} (total {self.controller.reward.cumulative:+.3f})",
                ]
            )
            if self.controller.terminal_reason is not None:
                text_lines.append(f"Terminal: {self.controller.terminal_reason.value}")
            self.ax.text(
                1.02,
                0.99,
                "\n".join(text_lines),
                transform=self.ax.transAxes,
                fontsize=8,
                va="top",
            )

        plt.pause(0.001)

    def close(self) -> None:
        if self.fig is not None:
            plt.close(self.fig)
            self.fig = None
            self.ax = None
        self.counters.save()

    # Drawing helpers --------------------------------------------------------
    def _draw_volume(self, volume, color: str, alpha: float) -> None:
        lo, hi = volume.min, volume.max
        self.ax.add_patch(
            plt.Rectangle(
                (lo[0], lo[2]),
                hi[0] - lo[0],
                hi[2] - lo[2],
                color=color,
                alpha=alpha,
            )
        )

    def _draw_body(self, body, color: str) -> None:
        corners = body.footprint_corners()[:, [0, 2]]
        self.ax.add_patch(plt.Polygon(corners, closed=True, color=color, alpha=0.8))
        nose = body.position + body.forward() * (body.length / 2.0)
        self.ax.plot([body.position[0], nose[0]], [body.position[2], nose[2]], color="black", lw=1.0)

    def _draw_wheels(self) -> None:
        for wheel in self.scene.wheel_positions(self.scene.agent):
            if wheel is None:
                continue
            self.ax.plot(wheel[0], wheel[2], marker="s", markersize=4, color="black")
