"""Utilities for producing randomized ParkingEnv scene layouts.

Only the scene layout is randomized: target spot, staging area and flanking
obstacles. The spawn rectangle, episode limits and reward constants stay at
their defaults so training runs remain comparable. 仅随机化场景布局（目标车位、
停车区域、两侧障碍物），出生区域、回合限制与奖励常数保持默认。
"""

import argparse
import json
import math
import random
from copy import deepcopy
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from parking_gym import DEFAULT_CONFIG


# Clearance kept between the spawn rectangle (plus half a car length) and the
# target spot or any obstacle.
SPAWN_CLEARANCE = 0.3
# Fraction of the far-distance threshold the target may sit from the farthest spawn corner.
REACH_MARGIN = 0.95
# Each rejected spot draw shrinks the jitter window toward the spawn-nearest placement.
MAX_SPOT_ATTEMPTS = 60


def _farthest_spawn_distance(spawn_region: List[float], target: List[float]) -> float:
    xmin, xmax, zmin, zmax = spawn_region
    return max(
        math.hypot(x - target[0], target[1], z - target[2])
        for x in (xmin, xmax)
        for z in (zmin, zmax)
    )


def spawn_keep_out(spawn_region: List[float], half_length: float) -> Tuple[float, float, float, float]:
    """Spawn rectangle widened by half a car length plus clearance (xmin, xmax, zmin, zmax)."""
    xmin, xmax, zmin, zmax = spawn_region
    pad = half_length + SPAWN_CLEARANCE
    return xmin - pad, xmax + pad, zmin - pad, zmax + pad


def overlaps_keep_out(center: List[float], size: List[float], keep_out: Tuple[float, ...]) -> bool:
    """True when the box footprint (x/z) intersects the keep-out rectangle."""
    x_lo, x_hi, z_lo, z_hi = keep_out
    half_x = size[0] / 2.0
    half_z = size[2] / 2.0
    return (
        center[0] - half_x < x_hi
        and center[0] + half_x > x_lo
        and center[2] - half_z < z_hi
        and center[2] + half_z > z_lo
    )


# ---------------------------------------------------------------------------
# Core sampler 采样核心逻辑
# ---------------------------------------------------------------------------
def sample_scene_config(seed: Optional[int] = None) -> Dict:
    """Create a config with a randomized scene section derived from DEFAULT_CONFIG.

    基于 DEFAULT_CONFIG 随机生成场景段，保证目标始终在过远阈值之内，且车位与
    障碍物不与出生区域（外扩半个车长）重叠。
    """
    rng = random.Random(seed)
    config: Dict = deepcopy(DEFAULT_CONFIG)
    config["rng_seed"] = rng.randint(0, 1_000_000)

    spawn_region = config["spawn_region"]
    half_length = float(config["vehicle"]["length"]) / 2.0
    reach = float(config["episode"]["far_distance_threshold"]) * REACH_MARGIN
    keep_out = spawn_keep_out(spawn_region, half_length)

    scene_cfg = config["scene"]
    spot_length = round(rng.uniform(4.6, 5.4), 2)
    spot_width = round(rng.uniform(2.3, 2.8), 2)
    # Rounded up so the 2-decimal spot centre never slips back into the keep-out.
    min_x = math.ceil((keep_out[1] + spot_width / 2.0) * 100.0) / 100.0

    x_span, z_span = 2.0, 1.5
    for _ in range(MAX_SPOT_ATTEMPTS):
        spot_x = round(rng.uniform(min_x, min_x + x_span), 2)
        spot_z = round(rng.uniform(-z_span, z_span), 2)
        target = [spot_x, 0.5, spot_z]
        if _farthest_spawn_distance(spawn_region, target) <= reach:
            break
        x_span *= 0.8
        z_span *= 0.8
    else:
        target = [min_x, 0.5, 0.0]
        if _farthest_spawn_distance(spawn_region, target) > reach:
            raise ValueError(
                "No target spot clears the spawn keep-out within the far-distance threshold."
            )
        spot_x, spot_z = target[0], target[2]

    scene_cfg["target_spot"] = {
        "center": target,
        "size": [spot_width, 1.0, spot_length],
    }

    # Staging area encloses the spot with a margin on every side.
    margin_x = round(rng.uniform(0.4, 0.8), 2)
    margin_z = round(rng.uniform(0.3, 0.7), 2)
    area_size = [round(spot_width + 2 * margin_x, 2), 1.0, round(spot_length + 2 * margin_z, 2)]
    scene_cfg["staging_area"] = {"center": list(target), "size": area_size}

    # Parked cars just beyond the staging area's z extent; any that would reach
    # into the spawn keep-out are dropped.
    obstacles = []
    for side, name in ((-1.0, "parked_car_left"), (1.0, "parked_car_right")):
        if rng.random() < 0.25:
            continue
        car_length = round(rng.uniform(3.8, 4.6), 2)
        gap = round(rng.uniform(0.0, 0.6), 2)
        center_z = spot_z + side * (area_size[2] / 2.0 + gap + car_length / 2.0)
        center = [round(spot_x + rng.uniform(0.0, 0.5), 2), 0.75, round(center_z, 2)]
        size = [2.0, 1.5, car_length]
        if overlaps_keep_out(center, size, keep_out):
            continue
        obstacles.append({"name": name, "center": center, "size": size})
    scene_cfg["obstacles"] = obstacles
    return config


# ---------------------------------------------------------------------------
# CLI plumbing 命令行接口
# ---------------------------------------------------------------------------
def write_config(config: Dict, path: Path) -> None:
    """Serialize config to JSON with UTF-8 and trailing newline."""
    with path.open("w", encoding="utf-8") as fh:
        json.dump(config, fh, indent=2)
        fh.write("\n")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate randomized ParkingEnv scene configs.")
    parser.add_argument("--out", type=Path, required=True, help="Output JSON file path.")
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Optional RNG seed for deterministic generation.",
    )
    return parser.parse_args(argv)


def main(argv=None) -> None:
    args = parse_args(argv)
    config = sample_scene_config(args.seed)
    args.out.parent.mkdir(parents=True, exist_ok=True)
    write_config(config, args.out)
    print(f"Wrote config to {args.out}")


if __name__ == "__main__":
    main()
