"""Fake collaborators shared by the unit and integration tests."""

from collections.abc import Callable

import numpy as np

from jogarm.motion.kinematics import JointLimits
from jogarm.protocol.types import CartesianCommand, JointState

JOINTS = tuple(f"joint_{i + 1}" for i in range(6))


class FakeKinematics:
    """
    KinematicsOracle with a configurable Jacobian.

    Defaults to a 6-joint arm whose Jacobian is the identity, so a twist maps
    one-to-one onto joint velocities.
    """

    def __init__(
        self,
        jacobian_fn: Callable[[np.ndarray], np.ndarray] | None = None,
        frames: dict[str, np.ndarray] | None = None,
        limits: dict[str, JointLimits] | None = None,
        group: str = "manipulator",
        joint_names: tuple[str, ...] = JOINTS,
    ):
        self.group = group
        self.joint_names = joint_names
        self.jacobian_fn = jacobian_fn or (lambda q: np.eye(6, len(joint_names)))
        self.frames = {"base_link": np.eye(4), **(frames or {})}
        self.limits = (
            limits
            if limits is not None
            else {name: JointLimits(-3.0, 3.0) for name in joint_names}
        )
        self.jacobian_calls = 0

    def group_joint_names(self, group):
        if group != self.group:
            raise KeyError(group)
        return self.joint_names

    def jacobian(self, q):
        self.jacobian_calls += 1
        return np.asarray(self.jacobian_fn(q), dtype=np.float64)

    def frame_transform(self, q, frame):
        return self.frames[frame]

    def joint_limits(self, name):
        return self.limits[name]


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, dt: float) -> None:
        self.now += dt


class ConstantClearance:
    """CollisionOracle returning a fixed (mutable) distance."""

    def __init__(self, distance: float = 1.0):
        self.distance = distance
        self.calls = 0

    def min_clearance(self, joint_state):
        self.calls += 1
        return self.distance


def rot_z(angle: float) -> np.ndarray:
    c, s = np.cos(angle), np.sin(angle)
    t = np.eye(4)
    t[:2, :2] = [[c, -s], [s, c]]
    return t


def feed(shared, clock, linear=(0.0, 0.0, 0.0), angular=(0.0, 0.0, 0.0), q=None, frame=""):
    """Write a freshly stamped twist, and optionally joint feedback, into shared state."""
    shared.set_command(
        CartesianCommand(linear=linear, angular=angular, frame=frame, stamp=clock.now)
    )
    if q is not None:
        shared.set_joint_state(JointState.from_arrays(JOINTS, q, stamp=clock.now))
