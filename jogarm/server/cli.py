"""Command-line interface for the jogarm server."""

import argparse
import logging
import signal

import numpy as np

import jogarm.config as cfg
from jogarm.config import TRACE, JogParameters, load_parameters
from jogarm.errors import JogArmError
from jogarm.motion.collision import UnboundedClearance
from jogarm.motion.kinematics import RoboticsToolboxKinematics
from jogarm.protocol.types import CartesianCommand, JointState, JointTrajectory
from jogarm.server.controller import JogController

logger = logging.getLogger("jogarm.server.cli")


class SimulatedArm:
    """
    Feedback loop for running without hardware: every published trajectory
    becomes the next joint state, and an optional constant twist is re-sent
    so it never goes stale while the arm keeps moving.
    """

    def __init__(
        self,
        params: JogParameters,
        joint_names: tuple[str, ...],
        q0: np.ndarray,
        twist: list[float] | None,
    ):
        self.params = params
        self.joint_names = joint_names
        self.q = np.array(q0, dtype=np.float64)
        self.twist = twist
        self.controller: JogController | None = None

    def attach(self, controller: JogController) -> None:
        self.controller = controller
        controller.on_joint_state(JointState.from_arrays(self.joint_names, self.q))
        self._send_twist()

    def on_trajectory(self, output: JointTrajectory | list[float]) -> None:
        if isinstance(output, JointTrajectory):
            point = output.points[0]
            if point.positions is not None:
                self.q[:] = point.positions
            elif point.velocities is not None:
                self.q += np.asarray(point.velocities) * self.params.publish_period
        elif self.params.publish_joint_positions:
            self.q[:] = output
        else:
            self.q += np.asarray(output) * self.params.publish_period

        logger.log(TRACE, "q=%s", np.array2string(self.q, precision=4))
        if self.controller is not None:
            self.controller.on_joint_state(JointState.from_arrays(self.joint_names, self.q))
        self._send_twist()

    def _send_twist(self) -> None:
        if self.twist is None or self.controller is None:
            return
        self.controller.on_cartesian_command(
            CartesianCommand(linear=tuple(self.twist[:3]), angular=tuple(self.twist[3:]))
        )


def _on_warning(active: bool) -> None:
    if active:
        logger.warning("Approaching a singularity or collision; velocity is being reduced")
    else:
        logger.info("Warning cleared")


def main() -> int:
    """Main entry point for the jogarm server."""
    parser = argparse.ArgumentParser(description="jogarm teleoperation jogging server")
    parser.add_argument(
        "--params",
        default=cfg.PARAMS_FILE,
        help="Jogging parameter file (.toml or .json); env JOGARM_PARAMS",
    )
    parser.add_argument(
        "--model", default="Puma560", help="Robotics Toolbox model name (default: Puma560)"
    )
    parser.add_argument(
        "--twist",
        type=float,
        nargs=6,
        metavar=("VX", "VY", "VZ", "WX", "WY", "WZ"),
        help="Jog a simulated arm with this constant command",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity; -v=INFO, -vv=DEBUG, -vvv=TRACE",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Enable quiet logging (WARNING level)",
    )
    parser.add_argument(
        "--log-level",
        choices=["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set specific log level",
    )
    args = parser.parse_args()

    # Precedence: --log-level, then -v/-q, then JOGARM_TRACE, then INFO
    if args.log_level:
        if args.log_level == "TRACE":
            log_level = TRACE
            cfg.TRACE_ENABLED = True
        else:
            log_level = getattr(logging, args.log_level)
    elif args.verbose >= 3:
        log_level = TRACE
        cfg.TRACE_ENABLED = True
    elif args.verbose >= 2:
        log_level = logging.DEBUG
    elif args.verbose == 1:
        log_level = logging.INFO
    elif args.quiet:
        log_level = logging.WARNING
    elif cfg.TRACE_ENABLED:
        log_level = TRACE
    else:
        log_level = getattr(logging, cfg.LOG_LEVEL_DEFAULT)

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    third_party_log_level = log_level if log_level >= logging.INFO else logging.INFO
    logging.getLogger("numba").setLevel(third_party_log_level)

    from jogarm.utils.warmup import warmup_jit

    warmup_jit()

    try:
        params = load_parameters(args.params) if args.params else JogParameters()
        kinematics = RoboticsToolboxKinematics.from_model(
            args.model,
            group_name=params.move_group_name,
            planning_frame=params.planning_frame,
        )
    except (JogArmError, KeyError) as e:
        logger.error(f"Failed to load configuration: {e}")
        return 1

    joint_names = tuple(kinematics.group_joint_names(params.move_group_name))
    q0 = getattr(kinematics.robot, "qn", np.zeros(len(joint_names)))
    arm = SimulatedArm(params, joint_names, q0, args.twist)

    controller = None

    def handle_sigterm(signum, frame):
        logger.info("Received SIGTERM, shutting down...")
        if controller:
            controller.stop()
        raise SystemExit(0)

    signal.signal(signal.SIGTERM, handle_sigterm)

    try:
        controller = JogController(
            params,
            kinematics,
            UnboundedClearance(),
            arm.on_trajectory,
            warning_sink=_on_warning,
        )
    except JogArmError as e:
        logger.error(f"Failed to create controller: {e}")
        return 1

    arm.attach(controller)
    try:
        controller.spin()
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    finally:
        controller.stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
