"""
jogarm Python Package

Real-time teleoperation jogging for robot arms: turns a stream of Cartesian
or joint velocity commands into a smooth, singularity- and collision-aware
joint trajectory.

Key components:
- JogController: validates the robot model, runs the periodic tasks, publishes
- JogParameters / load_parameters: jogging configuration
- CartesianCommand, JointCommand, JointState: inputs
- JointTrajectory: output
"""

from ._version import __version__
from .config import JogParameters, load_parameters
from .errors import ConfigError, JogArmError, ModelError
from .protocol.types import (
    CartesianCommand,
    JointCommand,
    JointState,
    JointTrajectory,
    TrajectoryPoint,
)
from .server.controller import JogController

__all__ = [
    "__version__",
    "JogController",
    "JogParameters",
    "load_parameters",
    "CartesianCommand",
    "JointCommand",
    "JointState",
    "JointTrajectory",
    "TrajectoryPoint",
    "JogArmError",
    "ConfigError",
    "ModelError",
]
