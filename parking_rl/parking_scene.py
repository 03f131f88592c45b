"""Minimal kinematic host scene consumed by the parking episode controller.

The controller only talks to the scene through the ``SpatialQuery`` protocol
(pose/velocity queries, forward force, yaw rotation, bounds checks).
``KinematicScene`` is a small in-process implementation of that protocol so the
environment can run without an external engine. 场景只提供位姿查询、施力、
旋转与包围盒判断等窄接口，供回合控制器调用。

Frame convention: y is up, yaw is measured in degrees about +y, and the forward
vector for yaw ψ is (sin ψ, 0, cos ψ).
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

import numpy as np


TAG_PARKING_SPOT = "ParkingSpot"
TAG_PARKING_AREA = "ParkingArea"
TAG_OBSTACLE = "Obstacle"
TAG_AGENT = "Agent"

EVENT_TRIGGER_ENTER = "trigger_enter"
EVENT_COLLISION_ENTER = "collision_enter"


def _vec3(value: Sequence[float]) -> np.ndarray:
    arr = np.asarray(value, dtype=float).reshape(3)
    return arr.copy()


@dataclass
class Volume:
    """Axis-aligned trigger volume (parking spot, staging area)."""

    name: str
    tag: str
    center: np.ndarray
    size: np.ndarray

    @property
    def min(self) -> np.ndarray:
        return self.center - self.size / 2.0

    @property
    def max(self) -> np.ndarray:
        return self.center + self.size / 2.0

    def contains(self, point: Sequence[float]) -> bool:
        p = np.asarray(point, dtype=float)
        return bool(np.all(p >= self.min) and np.all(p <= self.max))

    def overlaps(self, lo: np.ndarray, hi: np.ndarray) -> bool:
        return bool(np.all(lo < self.max) and np.all(hi > self.min))


@dataclass
class Body:
    """Rigid body with a box footprint and optional wheel reference points.

    带矩形占地与车轮参考点的刚体；车轮偏移为车体坐标系，可为 None 表示缺失。
    """

    name: str
    tag: str
    position: np.ndarray
    yaw: float = 0.0
    length: float = 1.0
    width: float = 1.0
    height: float = 1.0
    mass: float = 1.0
    drag: float = 0.0
    kinematic: bool = False
    wheel_offsets: List[Optional[np.ndarray]] = field(default_factory=list)
    velocity: np.ndarray = field(default_factory=lambda: np.zeros(3))
    angular_velocity: np.ndarray = field(default_factory=lambda: np.zeros(3))
    pending_force: np.ndarray = field(default_factory=lambda: np.zeros(3))

    def forward(self) -> np.ndarray:
        yaw = math.radians(self.yaw)
        return np.array([math.sin(yaw), 0.0, math.cos(yaw)], dtype=float)

    def right(self) -> np.ndarray:
        yaw = math.radians(self.yaw)
        return np.array([math.cos(yaw), 0.0, -math.sin(yaw)], dtype=float)

    def to_world(self, offset: Sequence[float]) -> np.ndarray:
        """Transform a body-frame offset (x right, y up, z forward) to world."""
        x, y, z = (float(v) for v in offset)
        return self.position + self.right() * x + np.array([0.0, y, 0.0]) + self.forward() * z

    def footprint_corners(self) -> np.ndarray:
        half_l = self.length / 2.0
        half_w = self.width / 2.0
        return np.array(
            [
                self.to_world((sx * half_w, 0.0, sz * half_l))
                for sx, sz in ((-1, -1), (1, -1), (1, 1), (-1, 1))
            ]
        )

    def aabb(self) -> Tuple[np.ndarray, np.ndarray]:
        corners = self.footprint_corners()
        lo = corners.min(axis=0)
        hi = corners.max(axis=0)
        lo[1] = self.position[1]
        hi[1] = self.position[1] + self.height
        return lo, hi


@dataclass(frozen=True)
class SceneEvent:
    """Enter event produced by ``KinematicScene.advance``."""

    kind: str
    tag: str
    other: str


class SpatialQuery(Protocol):
    """Narrow scene interface consumed by the episode controller and registry."""

    def get_position(self, body: Body) -> np.ndarray:
        ...

    def get_rotation(self, body: Body) -> float:
        ...

    def set_pose(self, body: Body, position: Sequence[float], yaw: float) -> None:
        ...

    def set_velocity(self, body: Body, velocity: Sequence[float]) -> None:
        ...

    def set_angular_velocity(self, body: Body, angular_velocity: Sequence[float]) -> None:
        ...

    def apply_forward_force(self, body: Body, magnitude: float) -> None:
        ...

    def rotate(self, body: Body, degrees: float) -> None:
        ...

    def distance_between(self, a: Sequence[float], b: Sequence[float]) -> float:
        ...

    def bounds_contains(self, volume: Volume, point: Sequence[float]) -> bool:
        ...

    def get_bounds(self, volume: Volume) -> Tuple[np.ndarray, np.ndarray]:
        ...

    def wheel_positions(self, body: Body) -> List[Optional[np.ndarray]]:
        ...


class KinematicScene:
    """In-process host: integrates forces and reports trigger/collision enters."""

    def __init__(
        self,
        agent: Body,
        target_spot: Optional[Volume] = None,
        staging_area: Optional[Volume] = None,
        obstacles: Optional[List[Body]] = None,
        origin: Sequence[float] = (0.0, 0.0, 0.0),
    ) -> None:
        self.agent = agent
        self.target_spot = target_spot
        self.staging_area = staging_area
        self.obstacles: List[Body] = list(obstacles or [])
        self.origin = _vec3(origin)
        self._contacts: Dict[str, bool] = {}

    @classmethod
    def from_config(cls, scene_cfg: Dict, vehicle_cfg: Dict) -> "KinematicScene":
        """Build agent, target spot, staging area and obstacles from config dicts.

        根据配置字典构造车辆、目标车位、停车区域以及障碍物。
        """
        wheel_offsets: List[Optional[np.ndarray]] = []
        for offset in vehicle_cfg.get("wheel_offsets", []):
            wheel_offsets.append(None if offset is None else _vec3(offset))

        origin = _vec3(scene_cfg.get("origin", (0.0, 0.0, 0.0)))
        agent = Body(
            name="agent",
            tag=TAG_AGENT,
            position=origin.copy(),
            length=float(vehicle_cfg["length"]),
            width=float(vehicle_cfg["width"]),
            height=float(vehicle_cfg["height"]),
            mass=float(vehicle_cfg["mass"]),
            drag=float(vehicle_cfg["drag"]),
            wheel_offsets=wheel_offsets,
        )

        target_spot = None
        spot_cfg = scene_cfg.get("target_spot")
        if spot_cfg is not None:
            target_spot = Volume(
                name="target_spot",
                tag=TAG_PARKING_SPOT,
                center=origin + _vec3(spot_cfg["center"]),
                size=_vec3(spot_cfg["size"]),
            )

        staging_area = None
        area_cfg = scene_cfg.get("staging_area")
        if area_cfg is not None:
            staging_area = Volume(
                name="staging_area",
                tag=TAG_PARKING_AREA,
                center=origin + _vec3(area_cfg["center"]),
                size=_vec3(area_cfg["size"]),
            )

        obstacles = []
        for idx, obs_cfg in enumerate(scene_cfg.get("obstacles", [])):
            center = origin + _vec3(obs_cfg["center"])
            size = _vec3(obs_cfg["size"])
            obstacles.append(
                Body(
                    name=obs_cfg.get("name", f"obstacle_{idx}"),
                    tag=TAG_OBSTACLE,
                    position=np.array([center[0], center[1] - size[1] / 2.0, center[2]]),
                    yaw=float(obs_cfg.get("yaw", 0.0)),
                    length=float(size[2]),
                    width=float(size[0]),
                    height=float(size[1]),
                    kinematic=True,
                )
            )

        return cls(agent, target_spot, staging_area, obstacles, origin)

    # SpatialQuery -----------------------------------------------------------
    def get_position(self, body: Body) -> np.ndarray:
        return body.position.copy()

    def get_rotation(self, body: Body) -> float:
        return float(body.yaw) % 360.0

    def set_pose(self, body: Body, position: Sequence[float], yaw: float) -> None:
        body.position = _vec3(position)
        body.yaw = float(yaw) % 360.0

    def set_velocity(self, body: Body, velocity: Sequence[float]) -> None:
        body.velocity = _vec3(velocity)
        body.pending_force = np.zeros(3)

    def set_angular_velocity(self, body: Body, angular_velocity: Sequence[float]) -> None:
        body.angular_velocity = _vec3(angular_velocity)

    def apply_forward_force(self, body: Body, magnitude: float) -> None:
        body.pending_force = body.pending_force + body.forward() * float(magnitude)

    def rotate(self, body: Body, degrees: float) -> None:
        body.yaw = (body.yaw + float(degrees)) % 360.0

    def distance_between(self, a: Sequence[float], b: Sequence[float]) -> float:
        return float(np.linalg.norm(np.asarray(a, dtype=float) - np.asarray(b, dtype=float)))

    def bounds_contains(self, volume: Volume, point: Sequence[float]) -> bool:
        return volume.contains(point)

    def get_bounds(self, volume: Volume) -> Tuple[np.ndarray, np.ndarray]:
        return volume.min, volume.max

    def wheel_positions(self, body: Body) -> List[Optional[np.ndarray]]:
        return [None if offset is None else body.to_world(offset) for offset in body.wheel_offsets]

    # Simulation -------------------------------------------------------------
    # 物理推进：积分外力与阻尼，并检测触发器/碰撞的“进入”事件。
    def bodies(self) -> List[Body]:
        return [self.agent] + self.obstacles

    def trigger_volumes(self) -> List[Volume]:
        return [v for v in (self.target_spot, self.staging_area) if v is not None]

    def advance(self, dt: float) -> List[SceneEvent]:
        """Integrate one physics step and return new trigger/collision enters."""
        for body in self.bodies():
            self._integrate(body, dt)
        return self._detect_enters()

    def _integrate(self, body: Body, dt: float) -> None:
        if body.kinematic:
            body.pending_force = np.zeros(3)
            return
        accel = body.pending_force / body.mass
        velocity = body.velocity + accel * dt
        velocity *= max(0.0, 1.0 - body.drag * dt)
        velocity[1] = 0.0
        body.velocity = velocity
        body.position = body.position + velocity * dt
        body.yaw = (body.yaw + math.degrees(body.angular_velocity[1]) * dt) % 360.0
        body.pending_force = np.zeros(3)

    def _detect_enters(self) -> List[SceneEvent]:
        lo, hi = self.agent.aabb()
        events: List[SceneEvent] = []

        for volume in self.trigger_volumes():
            if self._update_contact(volume.name, volume.overlaps(lo, hi)):
                events.append(SceneEvent(EVENT_TRIGGER_ENTER, volume.tag, volume.name))

        for obstacle in self.obstacles:
            o_lo, o_hi = obstacle.aabb()
            touching = bool(np.all(lo < o_hi) and np.all(hi > o_lo))
            if self._update_contact(obstacle.name, touching):
                events.append(SceneEvent(EVENT_COLLISION_ENTER, obstacle.tag, obstacle.name))
        return events

    def _update_contact(self, key: str, touching: bool) -> bool:
        was_touching = self._contacts.get(key, False)
        self._contacts[key] = touching
        return touching and not was_touching
