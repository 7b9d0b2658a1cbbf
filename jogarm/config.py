"""
Central configuration for jogarm tunables and jogging parameters.

Module-level constants are environment-overridable runtime defaults.
``JogParameters`` holds the per-robot jogging configuration; it is
immutable once loaded and is read by every task without locking.
"""

from __future__ import annotations

import logging
import math
import os
from pathlib import Path
from typing import Annotated, Literal

import msgspec

from jogarm.errors import ConfigError

TRACE: int = 5
logging.addLevelName(TRACE, "TRACE")
# Add Logger.trace if missing
if not hasattr(logging.Logger, "trace"):

    def _trace(self, msg, *args, **kwargs):
        if self.isEnabledFor(TRACE):
            self._log(TRACE, msg, args, **kwargs)

    logging.Logger.trace = _trace  # type: ignore[attr-defined]
    logging.TRACE = TRACE  # type: ignore[attr-defined]

TRACE_ENABLED = str(os.getenv("JOGARM_TRACE", "0")).lower() in ("1", "true", "yes", "on")

logger = logging.getLogger(__name__)

LOG_LEVEL_DEFAULT: str = "INFO"

# Parameter file used by the CLI when --params is not given
PARAMS_FILE: str | None = os.getenv("JOGARM_PARAMS")

# Time before a deadline at which LoopTimer stops sleeping and spins (ms)
BUSY_THRESHOLD_MS: float = float(os.getenv("JOGARM_BUSY_THRESHOLD_MS", "1.0"))

# How long stop() waits for each periodic task to exit (s)
TASK_JOIN_TIMEOUT_S: float = float(os.getenv("JOGARM_TASK_JOIN_TIMEOUT_S", "2.0"))

# Minimum interval between repeats of the same hot-path warning (s)
WARN_THROTTLE_S: float = float(os.getenv("JOGARM_WARN_THROTTLE_S", "2.0"))

PositiveFloat = Annotated[float, msgspec.Meta(gt=0.0)]
NonNegativeFloat = Annotated[float, msgspec.Meta(ge=0.0)]


class JogParameters(msgspec.Struct, frozen=True, kw_only=True, forbid_unknown_fields=True):
    """
    Jogging parameters.

    Thresholds are in the units of what they compare against: singularity
    thresholds are Jacobian singular values, collision thresholds are
    clearance distances (m). Periods and timeouts are seconds.
    """

    move_group_name: str = "manipulator"
    planning_frame: str = "base_link"
    # Frame used for Cartesian commands that do not name one
    command_frame: str = "base_link"

    # "unitless": components in [-1, 1] scaled by the *_scale factors.
    # "speed_units": components in m/s and rad/s.
    command_in_type: Literal["unitless", "speed_units"] = "unitless"
    command_out_type: Literal["trajectory", "array"] = "trajectory"

    linear_scale: PositiveFloat = 0.4
    rotational_scale: PositiveFloat = 0.8
    joint_scale: PositiveFloat = 0.5

    lower_singularity_threshold: PositiveFloat = 0.04
    hard_stop_singularity_threshold: NonNegativeFloat = 0.01
    lower_collision_proximity_threshold: PositiveFloat = 0.03
    hard_stop_collision_proximity_threshold: NonNegativeFloat = 0.005

    low_pass_filter_coeff: PositiveFloat = 2.0

    publish_period: PositiveFloat = 0.008
    publish_delay: NonNegativeFloat = 0.005

    collision_check: bool = True
    collision_check_period: PositiveFloat = 0.02

    incoming_command_timeout: PositiveFloat = 0.2
    joint_limit_margin: NonNegativeFloat = 0.1

    publish_joint_positions: bool = True
    publish_joint_velocities: bool = True
    publish_joint_accelerations: bool = False

    # Copies of each waypoint sent per cycle (some simulators need several)
    num_redundant_points: Annotated[int, msgspec.Meta(ge=1)] = 1
    # Consecutive halted trajectories to publish before going quiet; 0 = always
    num_halt_msgs_to_publish: Annotated[int, msgspec.Meta(ge=0)] = 4

    # Raise process priority and pin to a core at controller start
    realtime_priority: bool = False

    def __post_init__(self) -> None:
        if self.command_in_type not in ("unitless", "speed_units"):
            raise ConfigError(
                f"command_in_type must be 'unitless' or 'speed_units', got {self.command_in_type!r}"
            )
        if self.command_out_type not in ("trajectory", "array"):
            raise ConfigError(
                f"command_out_type must be 'trajectory' or 'array', got {self.command_out_type!r}"
            )

        for name in self.__struct_fields__:
            value = getattr(self, name)
            if isinstance(value, float) and not math.isfinite(value):
                raise ConfigError(f"{name} must be finite, got {value}")

        for name in (
            "linear_scale",
            "rotational_scale",
            "joint_scale",
            "low_pass_filter_coeff",
            "publish_period",
            "collision_check_period",
            "incoming_command_timeout",
            "lower_singularity_threshold",
            "lower_collision_proximity_threshold",
        ):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")

        for name in (
            "publish_delay",
            "joint_limit_margin",
            "hard_stop_singularity_threshold",
            "hard_stop_collision_proximity_threshold",
        ):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must not be negative")

        if self.hard_stop_singularity_threshold >= self.lower_singularity_threshold:
            raise ConfigError(
                "hard_stop_singularity_threshold must be below lower_singularity_threshold"
            )
        if (
            self.hard_stop_collision_proximity_threshold
            >= self.lower_collision_proximity_threshold
        ):
            raise ConfigError(
                "hard_stop_collision_proximity_threshold must be below "
                "lower_collision_proximity_threshold"
            )

        if not (self.publish_joint_positions or self.publish_joint_velocities):
            raise ConfigError(
                "At least one of publish_joint_positions / publish_joint_velocities must be true"
            )
        if self.command_out_type == "array" and (
            self.publish_joint_positions == self.publish_joint_velocities
        ):
            raise ConfigError(
                "command_out_type 'array' requires exactly one of "
                "publish_joint_positions / publish_joint_velocities"
            )

        if self.num_redundant_points < 1:
            raise ConfigError("num_redundant_points must be at least 1")
        if self.num_halt_msgs_to_publish < 0:
            raise ConfigError("num_halt_msgs_to_publish must not be negative")

    @property
    def control_rate_hz(self) -> float:
        return 1.0 / self.publish_period


def load_parameters(path: str | os.PathLike[str]) -> JogParameters:
    """
    Load and validate jogging parameters from a TOML or JSON file.

    Raises:
        ConfigError: If the file cannot be read, has an unsupported suffix,
            or holds missing/invalid values.
    """
    p = Path(path)
    try:
        raw = p.read_bytes()
    except OSError as e:
        raise ConfigError(f"Cannot read parameter file {p}: {e}") from e

    suffix = p.suffix.lower()
    try:
        if suffix == ".toml":
            params = msgspec.toml.decode(raw, type=JogParameters)
        elif suffix == ".json":
            params = msgspec.json.decode(raw, type=JogParameters)
        else:
            raise ConfigError(f"Unsupported parameter file type: {p.suffix!r}")
    except (msgspec.ValidationError, msgspec.DecodeError) as e:
        raise ConfigError(f"Invalid parameters in {p}: {e}") from e

    logger.info(f"Loaded jogging parameters from {p}")
    return params
