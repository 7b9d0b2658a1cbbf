"""
Differential kinematics for jogging.

Provides the kinematics oracle interface the jog calculator depends on, the
SVD-based Jacobian pseudoinverse, and singularity-proximity velocity scaling.
A concrete oracle backed by Robotics Toolbox is included for real robot models.
"""

import logging
import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

import numpy as np
import roboticstoolbox as rtb
from numpy.typing import ArrayLike, NDArray

logger = logging.getLogger(__name__)

# Step used for the singularity look-ahead, as a fraction of the singular vector
_LOOKAHEAD_FRACTION = 0.01


@dataclass(frozen=True, slots=True)
class JointLimits:
    """Position (rad or m) and velocity limits of one joint; inf = unbounded."""

    lower: float = -math.inf
    upper: float = math.inf
    max_velocity: float = math.inf


class KinematicsOracle(Protocol):
    """Robot model queries needed by the jog calculator."""

    def group_joint_names(self, group: str) -> Sequence[str]:
        """Ordered joints of a motion group. Raises KeyError if unknown."""
        ...

    def jacobian(self, q: NDArray[np.float64]) -> NDArray[np.float64]:
        """6xN Jacobian in the planning frame, rows [v; w]."""
        ...

    def frame_transform(self, q: NDArray[np.float64], frame: str) -> NDArray[np.float64]:
        """4x4 pose of ``frame`` in the planning frame. Raises KeyError if unknown."""
        ...

    def joint_limits(self, name: str) -> JointLimits:
        """Raises KeyError if the joint is unknown."""
        ...


@dataclass(frozen=True, slots=True)
class SingularityCheck:
    scale: float
    sigma_min: float
    approaching: bool


def pseudo_inverse_from_svd(
    u: NDArray[np.float64],
    s: NDArray[np.float64],
    vt: NDArray[np.float64],
    rcond: float = 1e-12,
) -> NDArray[np.float64]:
    """V * S^-1 * U^T from a thin SVD, dropping singular values below rcond * s_max."""
    if s.size == 0:
        return np.zeros((vt.shape[1], u.shape[0]))
    cutoff = rcond * s[0]
    s_inv = np.zeros_like(s)
    np.divide(1.0, s, out=s_inv, where=s > cutoff)
    return (vt.T * s_inv) @ u.T


def pseudo_inverse(jacobian: ArrayLike, rcond: float = 1e-12) -> NDArray[np.float64]:
    """
    Pseudoinverse of a Jacobian via singular value decomposition.

    More stable near singular configurations than the normal-equations form
    J^T (J J^T)^-1, which squares the condition number.
    """
    u, s, vt = np.linalg.svd(np.asarray(jacobian, dtype=np.float64), full_matrices=False)
    return pseudo_inverse_from_svd(u, s, vt, rcond)


def express_in_frame(
    jacobian: NDArray[np.float64], rotation: NDArray[np.float64]
) -> NDArray[np.float64]:
    """Rotate a planning-frame Jacobian into a frame with the given orientation."""
    rt = rotation.T
    out = np.empty_like(jacobian)
    out[:3] = rt @ jacobian[:3]
    out[3:] = rt @ jacobian[3:]
    return out


def singularity_velocity_scale(sigma_min: float, lower: float, hard_stop: float) -> float:
    """
    Map the smallest singular value to a velocity scale.

    1 at or above ``lower``, 0 at or below ``hard_stop``, linear in between.
    """
    if sigma_min >= lower:
        return 1.0
    if sigma_min <= hard_stop:
        return 0.0
    return (sigma_min - hard_stop) / (lower - hard_stop)


def decelerate_for_singularity(
    kinematics: KinematicsOracle,
    q: NDArray[np.float64],
    svd: tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]],
    commanded: NDArray[np.float64],
    lower: float,
    hard_stop: float,
) -> SingularityCheck:
    """
    Velocity scale for moving near a singularity.

    The last left singular vector points along the direction that loses rank,
    but its sign is arbitrary. A small look-ahead step resolves it: if the
    smallest singular value does not shrink along the vector, it is flipped.
    Motion is only slowed when the command has a component toward the
    singularity, so the arm can always back out.
    """
    u, s, vt = svd
    sigma_min = float(s[-1])
    if sigma_min >= lower:
        return SingularityCheck(1.0, sigma_min, False)

    toward = u[:, -1].copy()
    q_ahead = q + pseudo_inverse_from_svd(u, s, vt) @ (toward * _LOOKAHEAD_FRACTION)
    # Singular values are invariant to the frame rotation, so the planning
    # frame Jacobian is enough here.
    s_ahead = np.linalg.svd(kinematics.jacobian(q_ahead), compute_uv=False)
    if float(s_ahead[-1]) >= sigma_min:
        toward *= -1.0

    if float(toward @ commanded) <= 0.0:
        return SingularityCheck(1.0, sigma_min, False)
    return SingularityCheck(
        singularity_velocity_scale(sigma_min, lower, hard_stop), sigma_min, True
    )


class RoboticsToolboxKinematics:
    """
    KinematicsOracle over a Robotics Toolbox robot.

    The whole arm is a single motion group. Known frames are the base
    (planning) frame and the end-effector frame.
    """

    def __init__(
        self,
        robot: "rtb.DHRobot | rtb.Robot",
        group_name: str = "manipulator",
        joint_names: Sequence[str] | None = None,
        planning_frame: str = "base_link",
        ee_frame: str = "ee_link",
        velocity_limits: ArrayLike | None = None,
    ):
        self.robot = robot
        n = int(robot.n)
        self.group_name = group_name
        self.planning_frame = planning_frame
        self.ee_frame = ee_frame

        names = tuple(joint_names) if joint_names else tuple(f"joint_{i + 1}" for i in range(n))
        if len(names) != n:
            raise ValueError(f"{robot.name} has {n} joints, got {len(names)} names")
        self._joint_names = names

        qlim = np.asarray(robot.qlim, dtype=np.float64)
        # Joints without limits are reported as nan by some models
        lower = np.where(np.isnan(qlim[0]), -np.inf, qlim[0])
        upper = np.where(np.isnan(qlim[1]), np.inf, qlim[1])
        if velocity_limits is None:
            vmax = np.full(n, np.inf)
        else:
            vmax = np.broadcast_to(np.asarray(velocity_limits, dtype=np.float64), (n,))
        self._limits = {
            name: JointLimits(float(lower[i]), float(upper[i]), float(vmax[i]))
            for i, name in enumerate(names)
        }

    @classmethod
    def from_model(cls, model_name: str, **kwargs) -> "RoboticsToolboxKinematics":
        """Build from a bundled model name, e.g. ``Puma560`` or ``Panda``."""
        factory = getattr(rtb.models.DH, model_name, None) or getattr(
            rtb.models, model_name, None
        )
        if factory is None:
            raise KeyError(f"Unknown Robotics Toolbox model: {model_name}")
        robot = factory()
        logger.info(f"Loaded robot model {robot.name} with {robot.n} joints")
        return cls(robot, **kwargs)

    def group_joint_names(self, group: str) -> Sequence[str]:
        if group != self.group_name:
            raise KeyError(group)
        return self._joint_names

    def jacobian(self, q: NDArray[np.float64]) -> NDArray[np.float64]:
        return np.asarray(self.robot.jacob0(q), dtype=np.float64)

    def frame_transform(self, q: NDArray[np.float64], frame: str) -> NDArray[np.float64]:
        if frame == self.planning_frame:
            return np.eye(4)
        if frame == self.ee_frame:
            return np.asarray(self.robot.fkine(q).A, dtype=np.float64)
        raise KeyError(frame)

    def joint_limits(self, name: str) -> JointLimits:
        return self._limits[name]
