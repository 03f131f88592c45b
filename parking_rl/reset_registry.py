"""Baseline pose snapshots for scene bodies, restored after a collision.

记录场景刚体的初始位姿，碰撞后一次性恢复全部刚体并清零速度。
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np

from parking_scene import Body, SpatialQuery


logger = logging.getLogger(__name__)


class ResetRegistry:
    """Holds (position, yaw) baselines and writes them back on demand."""

    def __init__(self, scene: SpatialQuery, bodies: Optional[Iterable[Optional[Body]]] = None) -> None:
        self.scene = scene
        self._bodies: List[Body] = []
        self._baselines: Dict[int, Tuple[np.ndarray, float]] = {}
        self._restoring = False
        for body in bodies or []:
            self.register(body)

    def __len__(self) -> int:
        return len(self._bodies)

    def register(self, body: Optional[Body]) -> None:
        """Snapshot the body's current pose; the first snapshot wins."""
        if body is None or id(body) in self._baselines:
            return
        position = np.array(self.scene.get_position(body), dtype=float)
        yaw = float(self.scene.get_rotation(body))
        self._baselines[id(body)] = (position, yaw)
        self._bodies.append(body)

    def baseline(self, body: Body) -> Optional[Tuple[np.ndarray, float]]:
        snapshot = self._baselines.get(id(body))
        if snapshot is None:
            return None
        position, yaw = snapshot
        return position.copy(), yaw

    def restore_all(self) -> None:
        """Return every registered body to its baseline pose with zero velocity.

        将所有已注册刚体恢复到初始位姿，线速度与角速度归零。
        """
        if self._restoring:
            logger.warning("restore_all called while a restore is in progress; ignored")
            return
        self._restoring = True
        try:
            for body in self._bodies:
                position, yaw = self._baselines[id(body)]
                self.scene.set_pose(body, position, yaw)
                self.scene.set_velocity(body, (0.0, 0.0, 0.0))
                self.scene.set_angular_velocity(body, (0.0, 0.0, 0.0))
        finally:
            self._restoring = False
        logger.debug("Restored %d registered bodies to baseline", len(self._bodies))
