"""
Collision-proximity velocity scaling.

The CollisionMonitor runs on its own period, asks a collision oracle for the
minimum clearance of the current configuration, and publishes a velocity
scale in [0, 1] that the jog calculator multiplies into every command.
"""

import logging
import math
import threading
from typing import Protocol

from jogarm.config import TRACE, JogParameters
from jogarm.protocol.types import JointState
from jogarm.server.loop_timer import LoopTimer, format_hz_summary
from jogarm.server.state import SharedState
from jogarm.utils.throttle import log_throttled

logger = logging.getLogger(__name__)


class CollisionOracle(Protocol):
    def min_clearance(self, joint_state: JointState) -> float:
        """Distance to the nearest obstacle or self-collision; <= 0 means in contact."""
        ...


class UnboundedClearance:
    """Oracle for a robot with no obstacle model; never scales velocity."""

    def min_clearance(self, joint_state: JointState) -> float:
        return math.inf


def collision_velocity_scale(distance: float, lower: float, hard_stop: float) -> float:
    """1 at or above ``lower``, 0 at or below ``hard_stop``, linear in between."""
    if distance >= lower:
        return 1.0
    if distance <= hard_stop:
        return 0.0
    return (distance - hard_stop) / (lower - hard_stop)


class CollisionMonitor:
    """Periodic task that owns SharedState's collision scale."""

    def __init__(
        self,
        params: JogParameters,
        shared: SharedState,
        oracle: CollisionOracle,
    ):
        self.params = params
        self.shared = shared
        self.oracle = oracle
        self.last_clearance: float | None = None

    def tick(self) -> float | None:
        """Run one check. Returns the scale written, or None if there is no feedback yet."""
        joint_state = self.shared.get_joint_state()
        if joint_state is None:
            return None

        try:
            clearance = float(self.oracle.min_clearance(joint_state))
        except Exception as e:
            log_throttled(
                logger, logging.ERROR, "oracle", "Collision query failed, halting: %s", e
            )
            self.shared.set_collision_scale(0.0)
            return 0.0

        self.last_clearance = clearance
        if not math.isfinite(clearance):
            if clearance == math.inf:
                scale = 1.0
            else:
                log_throttled(
                    logger,
                    logging.ERROR,
                    "nonfinite",
                    "Collision oracle returned %s, halting",
                    clearance,
                )
                scale = 0.0
        else:
            scale = collision_velocity_scale(
                clearance,
                self.params.lower_collision_proximity_threshold,
                self.params.hard_stop_collision_proximity_threshold,
            )
            if scale == 0.0:
                log_throttled(
                    logger,
                    logging.WARNING,
                    "halt",
                    "Very close to collision (%.4f m). Halting.",
                    clearance,
                )

        self.shared.set_collision_scale(scale)
        logger.log(TRACE, "collision clearance=%.4f scale=%.3f", clearance, scale)
        return scale

    def run(self, stop_event: threading.Event) -> None:
        """Loop at ``collision_check_period`` until ``stop_event`` is set."""
        timer = LoopTimer(self.params.collision_check_period, stop_event)
        logger.info(
            "Collision monitor started at %.1f Hz", 1.0 / self.params.collision_check_period
        )
        timer.start()
        while not stop_event.is_set():
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Error in collision monitor: {e}", exc_info=True)
                self.shared.set_collision_scale(0.0)
            if not timer.wait_for_next_tick():
                break
        logger.debug("Collision monitor stopped (%s)", format_hz_summary(timer.metrics))
