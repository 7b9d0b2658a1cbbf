"""
Jogging motion pipeline.

Commands are converted to joint increments through the Jacobian
pseudoinverse, scaled near singularities and collisions, limited, and
low-pass filtered before publication.
"""

from jogarm.motion.collision import (
    CollisionMonitor,
    CollisionOracle,
    UnboundedClearance,
    collision_velocity_scale,
)
from jogarm.motion.filters import FilterBank, LowPassFilter
from jogarm.motion.jog_calcs import JogCalculator, TickOutcome
from jogarm.motion.kinematics import (
    JointLimits,
    KinematicsOracle,
    RoboticsToolboxKinematics,
    pseudo_inverse,
    singularity_velocity_scale,
)

__all__ = [
    # Jogging task
    "JogCalculator",
    "TickOutcome",
    # Collision scaling
    "CollisionMonitor",
    "CollisionOracle",
    "UnboundedClearance",
    "collision_velocity_scale",
    # Filtering
    "LowPassFilter",
    "FilterBank",
    # Kinematics
    "JointLimits",
    "KinematicsOracle",
    "RoboticsToolboxKinematics",
    "pseudo_inverse",
    "singularity_velocity_scale",
]
