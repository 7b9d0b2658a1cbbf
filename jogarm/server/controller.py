"""
Jogging controller: wires the shared state, the periodic tasks and the
publisher together.
"""

import logging
import sys
import threading
import time
from collections.abc import Callable

import numpy as np
import psutil  # type: ignore[import-untyped]

import jogarm.config as cfg
from jogarm.config import JogParameters
from jogarm.errors import ConfigError, ModelError
from jogarm.motion.collision import CollisionMonitor, CollisionOracle
from jogarm.motion.jog_calcs import JogCalculator
from jogarm.motion.kinematics import JointLimits, KinematicsOracle
from jogarm.protocol.types import CartesianCommand, JointCommand, JointState, JointTrajectory
from jogarm.server.async_logging import AsyncLogHandler
from jogarm.server.loop_timer import LoopTimer, format_hz_summary
from jogarm.server.state import SharedState

logger = logging.getLogger(__name__)

TrajectorySink = Callable[[JointTrajectory | list[float]], None]
WarningSink = Callable[[bool], None]


class JogController:
    """
    Owns the SharedState and runs the JogCalculator and CollisionMonitor on
    their own threads. The thread that calls ``spin()`` publishes.

    The robot model is validated at construction; a misconfigured group,
    frame or joint raises ModelError before any thread starts.
    """

    def __init__(
        self,
        params: JogParameters,
        kinematics: KinematicsOracle,
        collision_oracle: CollisionOracle | None,
        trajectory_sink: TrajectorySink,
        warning_sink: WarningSink | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.params = params
        self.kinematics = kinematics
        self.trajectory_sink = trajectory_sink
        self.warning_sink = warning_sink
        self.shared = SharedState()
        self.shutdown_event = threading.Event()
        self.running = False

        self.joint_names, limits = self._validate_model()

        self.calculator = JogCalculator(
            params, self.shared, kinematics, self.joint_names, limits, clock=clock
        )
        self.collision_monitor: CollisionMonitor | None = None
        if params.collision_check:
            if collision_oracle is None:
                raise ConfigError("collision_check is enabled but no collision oracle was given")
            self.collision_monitor = CollisionMonitor(params, self.shared, collision_oracle)

        self._threads: list[threading.Thread] = []
        self._last_warning = False
        self._async_log = AsyncLogHandler()
        self._publish_count = 0

        logger.info(
            "Jogging group %r (%d joints) in %s",
            params.move_group_name,
            len(self.joint_names),
            params.planning_frame,
        )

    def _validate_model(self) -> tuple[tuple[str, ...], list[JointLimits]]:
        p = self.params
        try:
            names = tuple(self.kinematics.group_joint_names(p.move_group_name))
        except KeyError:
            raise ModelError(f"Unknown move group {p.move_group_name!r}") from None
        if not names:
            raise ModelError(f"Move group {p.move_group_name!r} has no joints")

        q = np.zeros(len(names))
        for frame in (p.planning_frame, p.command_frame):
            try:
                self.kinematics.frame_transform(q, frame)
            except KeyError:
                raise ModelError(f"Unknown frame {frame!r}") from None

        jacobian = np.asarray(self.kinematics.jacobian(q))
        if jacobian.shape != (6, len(names)):
            raise ModelError(
                f"Jacobian has shape {jacobian.shape}, expected (6, {len(names)})"
            )

        limits = []
        for name in names:
            try:
                limits.append(self.kinematics.joint_limits(name))
            except KeyError:
                raise ModelError(f"No joint limits for {name!r}") from None
        return names, limits

    # ------------------------------------------------------------------
    # Ingestion (any thread)
    # ------------------------------------------------------------------

    def on_cartesian_command(self, command: CartesianCommand) -> None:
        self.shared.set_command(command)

    def on_joint_command(self, command: JointCommand) -> None:
        self.shared.set_command(command)

    def on_joint_state(self, joint_state: JointState) -> None:
        self.shared.set_joint_state(joint_state)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the periodic task threads."""
        if self.running:
            logger.warning("Controller already running")
            return

        if self.params.realtime_priority:
            self._set_high_priority()

        self.shutdown_event.clear()
        self._async_log.start()
        self.running = True

        tasks: list[tuple[str, Callable[[threading.Event], None]]] = [
            ("jog-calcs", self.calculator.run)
        ]
        if self.collision_monitor is not None:
            tasks.append(("collision-monitor", self.collision_monitor.run))
        else:
            logger.info("Collision checking disabled")

        for name, target in tasks:
            thread = threading.Thread(
                target=target, args=(self.shutdown_event,), name=name, daemon=True
            )
            thread.start()
            self._threads.append(thread)

    def spin(self) -> None:
        """Publish at ``publish_period`` until stop() is called. Starts tasks if needed."""
        if not self.running:
            self.start()

        timer = LoopTimer(self.params.publish_period, self.shutdown_event)
        m = timer.metrics
        logger.info("Starting publish loop")
        timer.start()
        while not self.shutdown_event.is_set():
            try:
                self.publish_once()
            except Exception as e:
                logger.error(f"Error in publish loop: {e}", exc_info=True)

            if m.should_log(time.perf_counter(), 3.0):
                logger.debug(
                    "publish: %s published=%d", format_hz_summary(m), self._publish_count
                )
            if not timer.wait_for_next_tick():
                break

    def publish_once(self) -> bool:
        """
        Forward the warning flag on change and publish the current trajectory.

        Returns True if something was handed to the trajectory sink.
        """
        warning = self.shared.get_warning()
        if warning != self._last_warning:
            self._last_warning = warning
            if self.warning_sink is not None:
                self.warning_sink(warning)

        if not self.shared.get_ok_to_publish():
            return False
        trajectory = self.shared.get_trajectory()
        if trajectory is None:
            return False

        if self.params.command_out_type == "array":
            field_name = "positions" if self.params.publish_joint_positions else "velocities"
            self.trajectory_sink(trajectory.to_array(field_name))
        else:
            self.trajectory_sink(trajectory)
        self._publish_count += 1
        return True

    def stop(self) -> None:
        """Signal every task to stop and wait for them to exit."""
        logger.info("Stopping controller...")
        self.shutdown_event.set()

        for thread in self._threads:
            thread.join(timeout=cfg.TASK_JOIN_TIMEOUT_S)
            if thread.is_alive():
                logger.warning(f"Task {thread.name} did not stop within timeout")
        self._threads = []
        self.running = False

        # Flushes queued messages
        self._async_log.stop()
        logger.info("Controller stopped")

    def _set_high_priority(self) -> None:
        """Set highest non-privileged process priority and pin to CPU core."""
        try:
            p = psutil.Process()

            if sys.platform == "win32":
                p.nice(psutil.HIGH_PRIORITY_CLASS)
                logger.info("Set process priority to HIGH_PRIORITY_CLASS")
            else:
                try:
                    p.nice(-10)
                    logger.info("Set process nice value to -10")
                except psutil.AccessDenied:
                    logger.debug("Cannot set negative nice value without privileges")

            # Last core usually sees the least system load
            try:
                cpus = p.cpu_affinity()
                if cpus and len(cpus) > 1:
                    target_core = cpus[-1]
                    p.cpu_affinity([target_core])
                    logger.info(f"Pinned process to CPU core {target_core}")
            except (AttributeError, NotImplementedError):
                logger.debug("CPU affinity not supported on this platform")
            except psutil.AccessDenied:
                logger.debug("Cannot set CPU affinity without privileges")

        except Exception as e:
            logger.warning(f"Failed to set process priority/affinity: {e}")
