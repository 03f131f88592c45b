"""Command-line entry points for ParkingEnv demos.

Provides manual (keyboard-driven), random and steer-to-target heuristic loops
using a shared configuration pipeline. 命令行演示入口：手动、随机策略与简单的
朝目标驾驶启发式策略，复用同一套配置逻辑。
"""

import argparse
import json
import math
import sys
import time
from pathlib import Path
from typing import Dict, Optional, Tuple

import numpy as np

from parking_gym import DEFAULT_CONFIG, ParkingEnv
from parking_logging import setup_logging


# ---------------------------------------------------------------------------
# Configuration helpers 配置辅助函数
# ---------------------------------------------------------------------------
def merge_config(base: Dict, overrides: Dict) -> Dict:
    """Recursively merge two dictionaries without mutating the inputs.

    递归合并两个字典，且不修改原始数据。
    """
    merged = {}
    for key, value in base.items():
        if isinstance(value, dict):
            merged[key] = value.copy()
        else:
            merged[key] = value

    for key, value in overrides.items():
        if key not in merged or not isinstance(value, dict):
            merged[key] = value
        else:
            merged[key] = merge_config(merged[key], value)
    return merged


def build_config(overrides: Optional[Dict] = None) -> Dict:
    config = merge_config(DEFAULT_CONFIG, {"rng_seed": 42})
    if overrides:
        config = merge_config(config, overrides)
    return config


def load_config(path: Path) -> Dict:
    """Read a JSON config file into a dictionary."""
    with path.open("r", encoding="utf-8") as fh:
        data = json.load(fh)
        if not isinstance(data, dict):
            raise ValueError("Config file must contain a JSON object at the top level.")
        return data


# ---------------------------------------------------------------------------
# Controllers 控制器定义
# ---------------------------------------------------------------------------
class ManualController:
    """Arrow keys mapped onto the vertical/horizontal input axes.

    方向键映射为纵向/横向两个输入轴，再经由回合控制器的 heuristic 转换为动作。
    """

    def __init__(self) -> None:
        self.running = True
        self._key_state: Dict[str, bool] = {}

    def attach(self, env: ParkingEnv) -> None:
        if env.fig is None:
            env.render()
        canvas = env.fig.canvas
        canvas.mpl_connect("key_press_event", self._on_key_press)
        canvas.mpl_connect("key_release_event", self._on_key_release)

    def _on_key_press(self, event) -> None:
        if event.key is None:
            return
        key = event.key.lower()
        self._key_state[key] = True
        if key == "escape":
            self.running = False

    def _on_key_release(self, event) -> None:
        if event.key is None:
            return
        self._key_state[event.key.lower()] = False

    def axes(self) -> Tuple[float, float]:
        vertical = 0.0
        horizontal = 0.0
        if self._key_state.get("up", False):
            vertical += 1.0
        if self._key_state.get("down", False):
            vertical -= 1.0
        if self._key_state.get("right", False):
            horizontal += 1.0
        if self._key_state.get("left", False):
            horizontal -= 1.0
        return vertical, horizontal

    def action(self, env: ParkingEnv) -> np.ndarray:
        move, turn = env.controller.heuristic(*self.axes())
        return np.array([move, turn], dtype=np.float32)


def steer_to_target(env: ParkingEnv) -> np.ndarray:
    """Drive toward the target centre and brake once close.

    简单启发式：转向目标方向前进，接近目标后反向制动。
    """
    agent = env.scene.agent
    target = env.controller.target_position
    if target is None:
        return np.zeros(2, dtype=np.float32)
    offset = target - agent.position
    desired_yaw = math.degrees(math.atan2(offset[0], offset[2]))
    heading_error = (desired_yaw - agent.yaw + 180.0) % 360.0 - 180.0
    turn = float(np.clip(heading_error / 30.0, -1.0, 1.0))

    distance = env.controller.distance_to_target()
    forward_speed = float(np.dot(agent.velocity, agent.forward()))
    if distance < 0.6:
        move = float(np.clip(-forward_speed, -1.0, 1.0))
    elif abs(heading_error) > 60.0:
        move = 0.2
    else:
        move = float(np.clip(distance / 2.0, 0.2, 1.0))
    return np.array([move, turn], dtype=np.float32)


# ---------------------------------------------------------------------------
# Demo loops 演示主循环
# ---------------------------------------------------------------------------
def manual_demo(
    episodes: int,
    max_steps: int,
    sleep_scale: float = 1.0,
    *,
    config: Optional[Dict] = None,
    counters_path: Optional[Path] = None,
) -> None:
    """Run the interactive manual-driving loop with keyboard control."""
    env = ParkingEnv(config=_with_counters(config or build_config(), counters_path), render_mode="human")
    controller = ManualController()
    try:
        env.reset()
        controller.attach(env)
        for ep in range(episodes):
            info: Dict = {}
            step = 0
            if ep > 0:
                env.reset()
            for step in range(max_steps):
                if not controller.running:
                    break
                obs, reward, terminated, truncated, info = env.step(controller.action(env))
                env.render()
                if sleep_scale > 0:
                    time.sleep(env.dt * sleep_scale)
                if terminated or truncated:
                    break
            _report(ep, step, env, info)
            if not controller.running:
                break
    finally:
        env.close()
        _print_counters(env)


def policy_demo(
    episodes: int,
    max_steps: int,
    *,
    policy: str = "random",
    visualize: bool = False,
    sleep_scale: float = 0.0,
    config: Optional[Dict] = None,
    counters_path: Optional[Path] = None,
) -> None:
    """Play episodes with random or heuristic actions for smoke-testing."""
    env = ParkingEnv(
        config=_with_counters(config or build_config(), counters_path),
        render_mode="human" if visualize else None,
    )
    env.action_space.seed(int(env.rng.integers(0, 2**31 - 1)))
    try:
        for ep in range(episodes):
            env.reset()
            info: Dict = {}
            step = 0
            for step in range(max_steps):
                if policy == "heuristic":
                    action = steer_to_target(env)
                else:
                    action = env.action_space.sample()
                obs, reward, terminated, truncated, info = env.step(action)
                if visualize:
                    env.render()
                    if sleep_scale > 0:
                        time.sleep(env.dt * sleep_scale)
                if terminated or truncated:
                    break
            _report(ep, step, env, info)
    finally:
        env.close()
        _print_counters(env)


def _with_counters(config: Dict, counters_path: Optional[Path]) -> Dict:
    if counters_path is None:
        return config
    return merge_config(config, {"counters_path": str(counters_path)})


def _report(ep: int, step: int, env: ParkingEnv, info: Dict) -> None:
    outcome = env.controller.last_outcome
    total = env.controller.reward.cumulative
    reason = info.get("terminal_reason") or "step_limit"
    if outcome is not None and outcome.index == env.controller.episode_index:
        total = outcome.cumulative_reward
    print(
        f"Episode {ep + 1} finished in {step + 1} steps "
        f"Total reward {total:+.3f} Termination {reason}",
        flush=True,
    )


def _print_counters(env: ParkingEnv) -> None:
    for line in env.counters.display_lines():
        print(line, flush=True)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="ParkingEnv demo runner.")
    parser.add_argument("--mode", choices=["manual", "random", "heuristic"], default="random")
    parser.add_argument("--episodes", type=int, default=1)
    parser.add_argument("--max-steps", type=int, default=2000)
    parser.add_argument("--render", action="store_true", help="Render random/heuristic runs.")
    parser.add_argument(
        "--sleep-scale",
        type=float,
        default=1.0,
        help="Scale factor for animation speed when rendering.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Optional path to a JSON file with ParkingEnv configuration overrides.",
    )
    parser.add_argument(
        "--counters",
        type=Path,
        help="JSON file holding persisted episode/success/time counters.",
    )
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--log-file", type=Path, default=None)
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Emit log records as JSON lines (loguru serialize).",
    )
    return parser.parse_args(argv)


def main(argv=None) -> None:
    """Entry point that resolves config overrides and dispatches demos.

    主入口：合并配置覆盖项后执行手动、随机或启发式演示。
    """
    args = parse_args(argv)
    setup_logging(level=args.log_level, file_path=args.log_file, serialize=args.log_json)
    config = build_config()
    if args.config is not None:
        try:
            overrides = load_config(args.config)
        except (OSError, ValueError) as exc:
            print(f"Failed to load config from {args.config}: {exc}", file=sys.stderr)
            sys.exit(1)
        config = merge_config(config, overrides)
    try:
        if args.mode == "manual":
            manual_demo(
                args.episodes,
                args.max_steps,
                sleep_scale=args.sleep_scale,
                config=config,
                counters_path=args.counters,
            )
        else:
            policy_demo(
                args.episodes,
                args.max_steps,
                policy=args.mode,
                visualize=args.render,
                sleep_scale=args.sleep_scale,
                config=config,
                counters_path=args.counters,
            )
    except KeyboardInterrupt:
        print("Interrupted by user.")


if __name__ == "__main__":
    main()
