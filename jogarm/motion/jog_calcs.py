"""
Jogging calculations.

Each tick converts the latest velocity command into a one-period joint
increment, scales it for collision and singularity proximity, enforces joint
velocity and position limits, low-pass filters the result and writes a
trajectory for the publisher. Any halt zeroes velocities, holds position and
re-primes the filters so that resuming never jumps.
"""

import logging
import threading
import time
from collections.abc import Callable, Sequence
from enum import Enum

import numpy as np

from jogarm.config import TRACE, JogParameters
from jogarm.motion.filters import FilterBank
from jogarm.motion.kinematics import (
    JointLimits,
    KinematicsOracle,
    decelerate_for_singularity,
    express_in_frame,
    pseudo_inverse_from_svd,
)
from jogarm.protocol.types import (
    CartesianCommand,
    CommandValidity,
    JointCommand,
    JointTrajectory,
    MotionState,
    TrajectoryPoint,
)
from jogarm.server.loop_timer import LoopTimer, format_hz_summary
from jogarm.server.state import SharedState
from jogarm.utils.throttle import warn_throttled

logger = logging.getLogger(__name__)


class TickOutcome(Enum):
    IDLE = "idle"  # No command or feedback received yet
    PUBLISH = "publish"
    HALT = "halt"  # Stop-here trajectory, publishable
    ABORT = "abort"  # Invalid input or model failure; nothing to publish


class JogCalculator:
    """Periodic task that owns the trajectory and the jogging flags in SharedState."""

    def __init__(
        self,
        params: JogParameters,
        shared: SharedState,
        kinematics: KinematicsOracle,
        joint_names: Sequence[str],
        limits: Sequence[JointLimits],
        clock: Callable[[], float] = time.monotonic,
    ):
        if len(joint_names) != len(limits):
            raise ValueError("joint_names and limits must have the same length")
        self.params = params
        self.shared = shared
        self.kinematics = kinematics
        self.joint_names = tuple(joint_names)
        self._index = {name: i for i, name in enumerate(self.joint_names)}
        self._clock = clock

        n = len(self.joint_names)
        self._lower = np.array([lim.lower for lim in limits], dtype=np.float64)
        self._upper = np.array([lim.upper for lim in limits], dtype=np.float64)
        self._max_step = (
            np.array([lim.max_velocity for lim in limits], dtype=np.float64)
            * params.publish_period
        )

        self._velocity_filters = FilterBank(n, params.low_pass_filter_coeff)
        self._position_filters = FilterBank(n, params.low_pass_filter_coeff)
        self._filters_primed = False

        # Working buffers, reused every tick
        self._q = np.zeros(n)
        self._delta = np.zeros(n)
        self._positions = np.zeros(n)
        self._velocities = np.zeros(n)
        self._zeros = (0.0,) * n
        self._last_positions: np.ndarray | None = None

        self.validity = CommandValidity.FRESH
        self.motion_state = MotionState.HALTED
        self.sigma_min: float | None = None
        self._near_singularity = False
        self._halt_count = 0

    @property
    def joint_delta(self) -> np.ndarray:
        """Joint increment computed on the last tick, before filtering."""
        return self._delta.copy()

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def tick(self) -> TickOutcome:
        command = self.shared.get_command()
        joint_state = self.shared.get_joint_state()
        collision_scale = self.shared.get_collision_scale()
        now = self._clock()

        if command is None or joint_state is None:
            return TickOutcome.IDLE
        if not joint_state.positions_for(self.joint_names, self._q):
            warn_throttled(
                logger, "missing_joints", "Joint feedback is missing group joints"
            )
            return self._abort()

        if not self._filters_primed:
            self._reset_filters(self._q)
            self._filters_primed = True

        stale = now - command.stamp >= self.params.incoming_command_timeout
        self.shared.set_command_is_stale(stale)
        self._update_validity(stale)

        is_cartesian = isinstance(command, CartesianCommand)
        moving = not command.is_zero()
        self.shared.set_zero_cartesian_cmd(not (is_cartesian and moving))
        self.shared.set_zero_joint_cmd(not (not is_cartesian and moving))

        if stale or not moving:
            # Holding still does not clear a collision or singularity warning
            warning = collision_scale < 1.0 or self._near_singularity
            return self._halt(now, warning, is_cartesian)

        match command:
            case CartesianCommand():
                singularity_scale = self._cartesian_delta(command, collision_scale)
            case JointCommand():
                self._near_singularity = False
                singularity_scale = self._joint_delta(command, collision_scale)
            case _:
                raise TypeError(f"Unsupported command type {type(command).__name__}")
        if singularity_scale is None:
            return self._abort()

        total_scale = collision_scale * singularity_scale
        if total_scale <= 0.0:
            warn_throttled(
                logger,
                "hard_stop",
                "Close to a %s. Halting.",
                "collision" if collision_scale <= 0.0 else "singularity",
            )
            return self._halt(now, True, is_cartesian)

        self._enforce_velocity_limits()
        if not self._within_position_bounds():
            return self._halt(now, True, is_cartesian)

        self._filter_outputs()
        self._publish(now, decelerating=total_scale < 1.0)
        return TickOutcome.PUBLISH

    # ------------------------------------------------------------------
    # Command paths
    # ------------------------------------------------------------------

    def _cartesian_delta(
        self, command: CartesianCommand, collision_scale: float
    ) -> float | None:
        """Fill the joint increment for a twist. Returns the singularity scale."""
        p = self.params
        if not command.is_finite():
            warn_throttled(logger, "nan", "nan in incoming command. Skipping this datapoint.")
            return None

        dx = command.as_vector()
        if p.command_in_type == "unitless":
            if np.any(np.abs(dx) > 1.0):
                warn_throttled(
                    logger, "unitless", "Component of incoming command is >1. Skipping."
                )
                return None
            dx[:3] *= p.linear_scale * p.publish_period
            dx[3:] *= p.rotational_scale * p.publish_period
        else:
            dx *= p.publish_period
        dx *= collision_scale

        jacobian = self.kinematics.jacobian(self._q)
        frame = command.frame or p.command_frame
        if frame != p.planning_frame:
            try:
                rotation = self.kinematics.frame_transform(self._q, frame)[:3, :3]
            except KeyError as e:
                warn_throttled(logger, "frame", "Unknown command frame %s. Skipping.", e)
                return None
            jacobian = express_in_frame(jacobian, rotation)

        svd = np.linalg.svd(jacobian, full_matrices=False)
        np.matmul(pseudo_inverse_from_svd(*svd), dx, out=self._delta)

        check = decelerate_for_singularity(
            self.kinematics,
            self._q,
            svd,
            dx,
            p.lower_singularity_threshold,
            p.hard_stop_singularity_threshold,
        )
        self.sigma_min = check.sigma_min
        self._near_singularity = check.scale < 1.0
        if check.scale < 1.0:
            self._delta *= check.scale
            logger.log(
                TRACE,
                "singularity sigma_min=%.4f scale=%.3f",
                check.sigma_min,
                check.scale,
            )
        return check.scale

    def _joint_delta(self, command: JointCommand, collision_scale: float) -> float | None:
        """Fill the joint increment for per-joint velocities. No singularity scaling."""
        p = self.params
        if not command.is_finite():
            warn_throttled(logger, "nan", "nan in incoming command. Skipping this datapoint.")
            return None

        self._delta[:] = 0.0
        for name, value in command.velocities.items():
            i = self._index.get(name)
            if i is None:
                warn_throttled(logger, "unknown_joint", "Ignoring unknown joint %s", name)
                continue
            self._delta[i] = value

        if p.command_in_type == "unitless":
            if np.any(np.abs(self._delta) > 1.0):
                warn_throttled(
                    logger, "unitless", "Component of incoming command is >1. Skipping."
                )
                return None
            self._delta *= p.joint_scale * p.publish_period
        else:
            self._delta *= p.publish_period
        self._delta *= collision_scale
        return 1.0

    # ------------------------------------------------------------------
    # Limits
    # ------------------------------------------------------------------

    def _enforce_velocity_limits(self) -> None:
        if np.any(np.abs(self._delta) > self._max_step):
            warn_throttled(logger, "vel_limit", "Close to a velocity limit. Enforcing limit.")
            np.clip(self._delta, -self._max_step, self._max_step, out=self._delta)

    def _within_position_bounds(self) -> bool:
        """
        False if any joint would end up inside its limit margin while moving
        further toward the limit. Moving back out of the margin is allowed.
        """
        margin = self.params.joint_limit_margin
        projected = self._q + self._delta
        outward = ((projected < self._lower + margin) & (self._delta < 0.0)) | (
            (projected > self._upper - margin) & (self._delta > 0.0)
        )
        if not outward.any():
            return True
        for i in np.flatnonzero(outward):
            warn_throttled(
                logger,
                f"pos_limit:{self.joint_names[i]}",
                "%s close to a position limit. Halting.",
                self.joint_names[i],
            )
        return False

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def _filter_outputs(self) -> None:
        p = self.params
        np.add(self._q, self._delta, out=self._positions)
        np.divide(self._delta, p.publish_period, out=self._velocities)
        if p.publish_joint_positions:
            self._position_filters.filter(self._positions, self._positions)
        if p.publish_joint_velocities:
            self._velocity_filters.filter(self._velocities, self._velocities)

        bad = ~(np.isfinite(self._positions) & np.isfinite(self._velocities))
        if bad.any():
            warn_throttled(logger, "filter_nan", "nan in filter output")
            self._positions[bad] = self._q[bad]
            self._velocities[bad] = 0.0

    def _compose(self, now: float) -> JointTrajectory:
        p = self.params
        positions = tuple(self._positions.tolist()) if p.publish_joint_positions else None
        velocities = tuple(self._velocities.tolist()) if p.publish_joint_velocities else None
        # Nobody takes acceleration commands, but some controllers require the field
        accelerations = self._zeros if p.publish_joint_accelerations else None
        points = tuple(
            TrajectoryPoint(positions, velocities, accelerations, (i + 1) * p.publish_period)
            for i in range(p.num_redundant_points)
        )
        return JointTrajectory(
            joint_names=self.joint_names,
            points=points,
            stamp=now + p.publish_delay,
            frame_id=p.planning_frame,
        )

    def _publish(self, now: float, decelerating: bool) -> None:
        if self.motion_state is MotionState.HALTED:
            logger.info("Resuming jogging")
        self.motion_state = (
            MotionState.DECELERATING if decelerating else MotionState.TRACKING
        )
        self._halt_count = 0
        if self.params.publish_joint_positions:
            if self._last_positions is None:
                self._last_positions = self._positions.copy()
            else:
                self._last_positions[:] = self._positions

        self.shared.set_trajectory(self._compose(now))
        self.shared.set_warning(decelerating)
        self.shared.set_ok_to_publish(True)

    def _halt(self, now: float, warning: bool, is_cartesian: bool) -> TickOutcome:
        """Zero velocity, hold the last published position and re-prime the filters."""
        if is_cartesian:
            self.shared.set_zero_cartesian_cmd(True)
        else:
            self.shared.set_zero_joint_cmd(True)
        hold = self._last_positions if self._last_positions is not None else self._q
        self._positions[:] = hold
        self._velocities[:] = 0.0
        self._delta[:] = 0.0
        self._reset_filters(self._positions)

        if self.motion_state is not MotionState.HALTED:
            logger.info("Halting")
            self.motion_state = MotionState.HALTED

        self._halt_count += 1
        limit = self.params.num_halt_msgs_to_publish
        self.shared.set_trajectory(self._compose(now))
        self.shared.set_warning(warning)
        self.shared.set_ok_to_publish(limit == 0 or self._halt_count <= limit)
        return TickOutcome.HALT

    def _abort(self) -> TickOutcome:
        self.shared.set_ok_to_publish(False)
        return TickOutcome.ABORT

    def _reset_filters(self, positions: np.ndarray) -> None:
        self._velocity_filters.reset(0.0)
        self._position_filters.reset(positions)

    def _update_validity(self, stale: bool) -> None:
        if stale and self.validity is CommandValidity.FRESH:
            self.validity = CommandValidity.STALE
            warn_throttled(
                logger,
                "stale",
                "Stale command. Try a larger 'incoming_command_timeout' parameter?",
            )
        elif not stale and self.validity is CommandValidity.STALE:
            self.validity = CommandValidity.FRESH
            logger.debug("Fresh command received")

    # ------------------------------------------------------------------
    # Task loop
    # ------------------------------------------------------------------

    def run(self, stop_event: threading.Event) -> None:
        """Tick at ``publish_period`` until ``stop_event`` is set."""
        timer = LoopTimer(self.params.publish_period, stop_event)
        m = timer.metrics
        logger.info("Jog calculator started at %.1f Hz", self.params.control_rate_hz)
        timer.start()
        while not stop_event.is_set():
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Error in jog calculation: {e}", exc_info=True)
                self._abort()

            now = time.perf_counter()
            should_warn, pct = m.check_degraded(now, 0.25, 3.0)
            if should_warn:
                logger.warning(
                    "jog loop overbudget by +%.0f%% (%s)", pct, format_hz_summary(m)
                )
            elif m.should_log(now, 3.0):
                logger.debug("jog loop: %s ov=%d", format_hz_summary(m), m.overrun_count)

            if not timer.wait_for_next_tick():
                break
        logger.debug("Jog calculator stopped")
