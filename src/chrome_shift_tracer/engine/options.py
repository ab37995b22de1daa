import dataclasses
from typing import Optional

from ..config import TracerConfig

MICROS_PER_SECOND = 1_000_000


@dataclasses.dataclass(frozen=True)
class EngineOptions:
    """Thresholds the handlers need, in trace microseconds."""

    cluster_gap_us: int = 1 * MICROS_PER_SECOND
    cluster_limit_us: int = 5 * MICROS_PER_SECOND
    recent_input_window_us: int = 500_000

    @classmethod
    def from_config(cls, config: Optional[TracerConfig]) -> "EngineOptions":
        if config is None:
            return cls()
        return cls(
            cluster_gap_us=int(config.cluster_gap * MICROS_PER_SECOND),
            cluster_limit_us=int(config.cluster_limit * MICROS_PER_SECOND),
            recent_input_window_us=int(config.recent_input_window * MICROS_PER_SECOND),
        )
