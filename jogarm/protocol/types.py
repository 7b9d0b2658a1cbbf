"""
Type definitions for jogging commands, feedback and output trajectories.

All message types are immutable so a shared-state field can be handed over
by reference under its lock.
"""

import math
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TypeAlias

import numpy as np
from numpy.typing import NDArray

Vec3 = tuple[float, float, float]


def _frozen_mapping(values: Mapping[str, float]) -> Mapping[str, float]:
    return MappingProxyType({str(k): float(v) for k, v in values.items()})


@dataclass(slots=True, frozen=True)
class CartesianCommand:
    """Twist command. An empty frame means the configured command frame."""

    linear: Vec3 = (0.0, 0.0, 0.0)
    angular: Vec3 = (0.0, 0.0, 0.0)
    frame: str = ""
    stamp: float = field(default_factory=time.monotonic)

    def __post_init__(self) -> None:
        if len(self.linear) != 3 or len(self.angular) != 3:
            raise ValueError("linear and angular velocity must have 3 components")
        object.__setattr__(self, "linear", tuple(float(v) for v in self.linear))
        object.__setattr__(self, "angular", tuple(float(v) for v in self.angular))

    def as_vector(self) -> NDArray[np.float64]:
        """[vx, vy, vz, wx, wy, wz]"""
        return np.array(self.linear + self.angular, dtype=np.float64)

    def is_zero(self) -> bool:
        return not any(self.linear) and not any(self.angular)

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in self.linear + self.angular)


@dataclass(slots=True, frozen=True)
class JointCommand:
    """Per-joint velocity command keyed by joint name."""

    velocities: Mapping[str, float] = field(default_factory=dict)
    stamp: float = field(default_factory=time.monotonic)

    def __post_init__(self) -> None:
        object.__setattr__(self, "velocities", _frozen_mapping(self.velocities))

    def is_zero(self) -> bool:
        return not any(self.velocities.values())

    def is_finite(self) -> bool:
        return all(math.isfinite(v) for v in self.velocities.values())


# Dispatched once per calculation tick
JogCommand: TypeAlias = CartesianCommand | JointCommand


@dataclass(slots=True, frozen=True)
class JointState:
    """Joint feedback. May carry joints outside the controlled group."""

    positions: Mapping[str, float]
    velocities: Mapping[str, float] = field(default_factory=dict)
    stamp: float = field(default_factory=time.monotonic)

    def __post_init__(self) -> None:
        object.__setattr__(self, "positions", _frozen_mapping(self.positions))
        object.__setattr__(self, "velocities", _frozen_mapping(self.velocities))

    @classmethod
    def from_arrays(
        cls,
        names: list[str] | tuple[str, ...],
        positions,
        velocities=None,
        stamp: float | None = None,
    ) -> "JointState":
        """Build from parallel name/value sequences."""
        pos = dict(zip(names, np.asarray(positions, dtype=np.float64).tolist()))
        vel = (
            dict(zip(names, np.asarray(velocities, dtype=np.float64).tolist()))
            if velocities is not None
            else {}
        )
        if stamp is None:
            return cls(positions=pos, velocities=vel)
        return cls(positions=pos, velocities=vel, stamp=stamp)

    def positions_for(self, names: tuple[str, ...], out: NDArray[np.float64]) -> bool:
        """Copy positions for ``names`` into ``out``. False if any is missing."""
        for i, name in enumerate(names):
            value = self.positions.get(name)
            if value is None:
                return False
            out[i] = value
        return True


@dataclass(slots=True, frozen=True)
class TrajectoryPoint:
    positions: tuple[float, ...] | None
    velocities: tuple[float, ...] | None
    accelerations: tuple[float, ...] | None
    time_from_start: float


@dataclass(slots=True, frozen=True)
class JointTrajectory:
    """Outgoing joint trajectory; ``stamp`` is on the monotonic clock."""

    joint_names: tuple[str, ...]
    points: tuple[TrajectoryPoint, ...]
    stamp: float
    frame_id: str = ""

    def to_array(self, field_name: str) -> list[float]:
        """Flatten the first point's ``positions`` or ``velocities`` for array outputs."""
        if not self.points:
            return []
        values = getattr(self.points[0], field_name)
        if values is None:
            raise ValueError(f"Trajectory has no {field_name}")
        return list(values)


class CommandValidity(Enum):
    FRESH = 0
    STALE = 1


class MotionState(Enum):
    TRACKING = 0
    DECELERATING = 1  # A singularity or collision scale is below 1
    HALTED = 2
