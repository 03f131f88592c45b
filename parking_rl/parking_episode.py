"""Episode lifecycle and reward-shaping state machine for the parking agent.

One ``EpisodeController`` owns one agent's episode: spawn randomisation, the
per-tick shaping rewards, the two dwell timers, the one-shot region rewards and
the four terminal transitions. The host loop (``ParkingEnv``) calls
``observe_and_act`` once per tick and forwards scene events through
``on_event``. 回合控制器：负责出生点随机化、逐步奖励塑形、驻留计时、
一次性区域奖励以及四种终止条件。
"""

import enum
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from parking_scene import (
    EVENT_COLLISION_ENTER,
    EVENT_TRIGGER_ENTER,
    TAG_OBSTACLE,
    TAG_PARKING_AREA,
    TAG_PARKING_SPOT,
    Body,
    SceneEvent,
    SpatialQuery,
    Volume,
)
from reset_registry import ResetRegistry
from session_counters import SessionCounters


logger = logging.getLogger(__name__)


class EpisodeState(enum.Enum):
    RUNNING = "running"
    TERMINATED = "terminated"


class TerminalReason(enum.Enum):
    TIME_LIMIT_EXCEEDED = "time_limit_exceeded"
    TOO_FAR_FROM_TARGET = "too_far_from_target"
    PARKED_SUCCESSFULLY = "parked_successfully"
    COLLIDED_WITH_OBSTACLE = "collided_with_obstacle"


class RegionTag(enum.Enum):
    TARGET_SPOT = TAG_PARKING_SPOT
    STAGING_AREA = TAG_PARKING_AREA
    OBSTACLE = TAG_OBSTACLE


@dataclass
class Episode:
    """Mutable per-episode bookkeeping. 单个回合的状态记录。"""

    index: int
    start_time: float
    previous_distance: float
    elapsed: float = 0.0
    inside_time: float = 0.0
    wheels_inside_time: float = 0.0
    spot_touch_rewarded: bool = False
    area_touch_rewarded: bool = False
    terminated: bool = False
    terminal_reason: Optional[TerminalReason] = None


@dataclass(frozen=True)
class EpisodeOutcome:
    index: int
    reason: TerminalReason
    final_reward: float
    cumulative_reward: float
    elapsed: float


class RewardSignal:
    """Reward accumulator handed to the trainer.

    ``add`` stacks contributions, ``set`` replaces whatever has not been
    collected yet, ``collect`` returns the pending value and clears it. The
    episode total follows the same set-adjusted bookkeeping.
    """

    def __init__(self) -> None:
        self.pending = 0.0
        self.cumulative = 0.0

    def add(self, value: float) -> None:
        self.pending += float(value)
        self.cumulative += float(value)

    def set(self, value: float) -> None:
        self.cumulative += float(value) - self.pending
        self.pending = float(value)

    def collect(self) -> float:
        value = self.pending
        self.pending = 0.0
        return value

    def reset(self) -> None:
        self.pending = 0.0
        self.cumulative = 0.0


class EpisodeController:
    """Owns the Running/Terminated lifecycle of a single parking agent.

    Collaborators are injected: the scene (``SpatialQuery``), an optional
    ``ResetRegistry`` restored after obstacle collisions, and optional
    ``SessionCounters`` notified of new episodes and successful parks.
    Missing target, staging area or wheel references degrade to "never
    satisfied" instead of raising.
    """

    def __init__(
        self,
        scene: SpatialQuery,
        agent: Body,
        config: Dict,
        *,
        target_spot: Optional[Volume] = None,
        staging_area: Optional[Volume] = None,
        target_position: Optional[Sequence[float]] = None,
        origin: Sequence[float] = (0.0, 0.0, 0.0),
        reset_registry: Optional[ResetRegistry] = None,
        counters: Optional[SessionCounters] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self.scene = scene
        self.agent = agent
        self.target_spot = target_spot
        self.staging_area = staging_area
        if target_position is None and target_spot is not None:
            target_position = target_spot.center
        self.target_position = (
            None if target_position is None else np.asarray(target_position, dtype=float).copy()
        )
        self.origin = np.asarray(origin, dtype=float).copy()
        self.reset_registry = reset_registry
        self.counters = counters
        self.rng = rng if rng is not None else np.random.default_rng()

        self.episode_cfg = config["episode"]
        self.reward_cfg = config["reward"]
        self.vehicle_cfg = config["vehicle"]
        self.spawn_region = tuple(float(v) for v in config["spawn_region"])
        self.heading_range = tuple(float(v) for v in config.get("spawn_heading_range", (0.0, 360.0)))

        self.time = 0.0
        self.episode_index = 0
        self.state = EpisodeState.TERMINATED
        self.episode: Optional[Episode] = None
        self.last_outcome: Optional[EpisodeOutcome] = None
        self.reward = RewardSignal()

    # Lifecycle --------------------------------------------------------------
    def begin_episode(self) -> Episode:
        """Start a fresh episode, superseding any previous one.

        清零速度，在出生矩形内随机放置车辆并随机朝向，重置计时器与一次性奖励标记。
        """
        self.scene.set_velocity(self.agent, (0.0, 0.0, 0.0))
        self.scene.set_angular_velocity(self.agent, (0.0, 0.0, 0.0))

        xmin, xmax, zmin, zmax = self.spawn_region
        local = np.array(
            [self.rng.uniform(xmin, xmax), 0.0, self.rng.uniform(zmin, zmax)],
            dtype=float,
        )
        heading = float(self.rng.uniform(*self.heading_range))
        self.scene.set_pose(self.agent, self.origin + local, heading)

        self.episode_index += 1
        self.episode = Episode(
            index=self.episode_index,
            start_time=self.time,
            previous_distance=self.distance_to_target(),
        )
        self.reward.reset()
        self.state = EpisodeState.RUNNING

        if self.counters is not None:
            self.counters.increment_episode()
        return self.episode

    @property
    def running(self) -> bool:
        return self.state is EpisodeState.RUNNING

    @property
    def terminal_reason(self) -> Optional[TerminalReason]:
        return None if self.episode is None else self.episode.terminal_reason

    # Observation ------------------------------------------------------------
    def local_agent_position(self) -> np.ndarray:
        return self.scene.get_position(self.agent) - self.origin

    def local_target_position(self) -> np.ndarray:
        if self.target_position is None:
            return np.zeros(3)
        return self.target_position - self.origin

    def distance_to_target(self) -> float:
        if self.target_position is None:
            return 0.0
        return self.scene.distance_between(self.scene.get_position(self.agent), self.target_position)

    def observe(self) -> np.ndarray:
        """Return ``[agent.xyz, target.xyz, distance]`` in the local frame."""
        return np.concatenate(
            [
                self.local_agent_position(),
                self.local_target_position(),
                [self.distance_to_target()],
            ]
        ).astype(np.float32)

    # Tick -------------------------------------------------------------------
    # 每个仿真步调用一次；顺序固定：超时 -> 施加动作 -> 距离奖励 -> 过远 -> 车位驻留 -> 车轮驻留 -> 成功。
    def observe_and_act(self, action: Sequence[float], dt: float) -> EpisodeState:
        """Advance one tick; inputs pass through unclamped."""
        self.time += dt
        if not self.running:
            return self.state
        episode = self.episode
        episode.elapsed = self.time - episode.start_time

        if episode.elapsed > self.episode_cfg["max_duration"]:
            self._terminate(TerminalReason.TIME_LIMIT_EXCEEDED, self.reward_cfg["time_limit"])
            return self.state

        move_input = float(action[0])
        turn_input = float(action[1])
        self.scene.apply_forward_force(self.agent, move_input * self.vehicle_cfg["move_speed"])
        self.scene.rotate(self.agent, turn_input * self.vehicle_cfg["turn_speed"] * dt)

        current_distance = self.distance_to_target()
        delta = episode.previous_distance - current_distance
        self.reward.add(delta * self.reward_cfg["distance_scale"])
        episode.previous_distance = current_distance

        if current_distance > self.episode_cfg["far_distance_threshold"]:
            self._terminate(TerminalReason.TOO_FAR_FROM_TARGET, self.reward_cfg["too_far"])
            return self.state

        if self._agent_in_target_spot():
            episode.inside_time += dt
            self.reward.add(self.reward_cfg["inside_per_second"] * dt)
        else:
            episode.inside_time = 0.0

        if self._all_wheels_in_staging_area():
            episode.wheels_inside_time += dt
            self.reward.add(self.reward_cfg["wheels_inside_per_second"] * dt)
        else:
            episode.wheels_inside_time = 0.0

        if (
            episode.inside_time >= self.episode_cfg["required_inside_time"]
            and episode.wheels_inside_time >= self.episode_cfg["required_wheels_inside_time"]
        ):
            self.reward.set(self.reward_cfg["success"])
            if self.counters is not None:
                self.counters.increment_successful_parks()
            self._terminate(TerminalReason.PARKED_SUCCESSFULLY)
        return self.state

    def heuristic(self, vertical: float, horizontal: float) -> Tuple[float, float]:
        """Map manual input axes straight onto (move, turn)."""
        return float(vertical), float(horizontal)

    # Events -----------------------------------------------------------------
    def on_event(self, event: SceneEvent) -> None:
        if event.kind == EVENT_TRIGGER_ENTER:
            self.on_region_enter(RegionTag(event.tag))
        elif event.kind == EVENT_COLLISION_ENTER and event.tag == RegionTag.OBSTACLE.value:
            self.on_obstacle_collision(event.other)

    def on_region_enter(self, tag: RegionTag) -> None:
        """One-shot touch rewards for the target spot and the staging area."""
        if not self.running:
            return
        episode = self.episode
        if tag is RegionTag.TARGET_SPOT and not episode.spot_touch_rewarded:
            self.reward.add(self.reward_cfg["spot_touch"])
            episode.spot_touch_rewarded = True
            logger.debug("First contact with parking spot in episode %d", episode.index)
        if tag is RegionTag.STAGING_AREA and not episode.area_touch_rewarded:
            self.reward.add(self.reward_cfg["area_touch"])
            episode.area_touch_rewarded = True
            logger.debug("First contact with parking area in episode %d", episode.index)

    def on_obstacle_collision(self, other: Optional[str] = None) -> None:
        """Additive collision penalty, scene-wide restore, then terminate."""
        if not self.running:
            return
        self.reward.add(self.reward_cfg["collision"])
        if self.reset_registry is not None:
            self.reset_registry.restore_all()
        if other is not None:
            logger.debug("Collision with obstacle '%s'", other)
        self._terminate(TerminalReason.COLLIDED_WITH_OBSTACLE)

    # Helpers ----------------------------------------------------------------
    def _agent_in_target_spot(self) -> bool:
        if self.target_spot is None:
            return False
        return self.scene.bounds_contains(self.target_spot, self.scene.get_position(self.agent))

    def _all_wheels_in_staging_area(self) -> bool:
        """All wheel projections inside the staging area's horizontal rectangle.

        Missing (None) wheels never count as inside, so any gap in the wheel
        list keeps the predicate false; an empty list is never satisfied either.
        """
        if self.staging_area is None:
            return False
        wheels = self.scene.wheel_positions(self.agent)
        if not wheels:
            return False
        area_min, area_max = self.scene.get_bounds(self.staging_area)
        inside = 0
        for wheel in wheels:
            if wheel is None:
                continue
            x, z = float(wheel[0]), float(wheel[2])
            if area_min[0] <= x <= area_max[0] and area_min[2] <= z <= area_max[2]:
                inside += 1
        return inside == len(wheels)

    def _terminate(self, reason: TerminalReason, final_reward: Optional[float] = None) -> None:
        if final_reward is not None:
            self.reward.set(final_reward)
        episode = self.episode
        episode.terminated = True
        episode.terminal_reason = reason
        self.state = EpisodeState.TERMINATED
        self.last_outcome = EpisodeOutcome(
            index=episode.index,
            reason=reason,
            final_reward=self.reward.pending,
            cumulative_reward=self.reward.cumulative,
            elapsed=episode.elapsed,
        )
        logger.info(
            "episode_terminated episode=%d reason=%s final_reward=%.3f cumulative_reward=%.3f elapsed=%.2f",
            episode.index,
            reason.value,
            self.reward.pending,
            self.reward.cumulative,
            episode.elapsed,
        )
