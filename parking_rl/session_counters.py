"""Durable training-session counters shown on the render overlay.

Counts episodes, successful parks and cumulative training time across process
restarts. Values live in a small JSON key-value file. 训练会话计数器：
回合数、成功泊车次数与累计训练时长，跨进程重启持久化到 JSON 文件。
"""

import json
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union


EPISODE_KEY = "EpisodeCount"
TIME_KEY = "CumulativeTime"
SUCCESSFUL_PARKS_KEY = "SuccessfulParks"


class CounterStore:
    """JSON file holding the three counter values under fixed keys."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def load(self) -> Dict[str, float]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as fh:
                data = json.load(fh)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Counter file '{self.path}' is not valid JSON: {exc}.") from exc
        if not isinstance(data, dict):
            raise ValueError(f"Counter file '{self.path}' must contain a JSON object.")
        return data

    def save(self, values: Dict[str, float]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as fh:
            json.dump(values, fh, indent=2)
            fh.write("\n")


class SessionCounters:
    """Episode / success / training-time counters with optional persistence.

    The episode controller only calls the two ``increment_*`` methods; it never
    reads counter state back.
    """

    def __init__(
        self,
        store: Optional[CounterStore] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self._clock = clock
        self.episode_count = 0
        self.successful_parks = 0
        self.cumulative_time = 0.0
        if store is not None:
            values = store.load()
            self.episode_count = int(values.get(EPISODE_KEY, 0))
            self.cumulative_time = float(values.get(TIME_KEY, 0.0))
            self.successful_parks = int(values.get(SUCCESSFUL_PARKS_KEY, 0))
        self._session_start = self._clock()

    @classmethod
    def from_path(cls, path: Optional[Union[str, Path]], **kwargs) -> "SessionCounters":
        store = CounterStore(path) if path is not None else None
        return cls(store, **kwargs)

    def increment_episode(self) -> None:
        self.episode_count += 1

    def increment_successful_parks(self) -> None:
        self.successful_parks += 1

    def session_time(self) -> float:
        return self._clock() - self._session_start

    def total_elapsed(self) -> float:
        return self.cumulative_time + self.session_time()

    def reset(self) -> None:
        self.episode_count = 0
        self.successful_parks = 0
        self.cumulative_time = 0.0
        self._session_start = self._clock()

    def save(self) -> None:
        """Fold the running session into the cumulative time and persist."""
        self.cumulative_time += self.session_time()
        self._session_start = self._clock()
        if self.store is not None:
            self.store.save(
                {
                    EPISODE_KEY: self.episode_count,
                    TIME_KEY: self.cumulative_time,
                    SUCCESSFUL_PARKS_KEY: self.successful_parks,
                }
            )

    def display_lines(self) -> List[str]:
        total = int(self.total_elapsed())
        hours, rest = divmod(total, 3600)
        minutes, seconds = divmod(rest, 60)
        return [
            f"Episode: {self.episode_count}",
            f"Training Time: {hours:02d}:{minutes:02d}:{seconds:02d}",
            f"Successful Parks: {self.successful_parks}",
        ]
