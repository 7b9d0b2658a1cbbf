"""Unit tests for jogarm.protocol.types."""

import math

import numpy as np
import pytest

from jogarm.protocol.types import (
    CartesianCommand,
    JointCommand,
    JointState,
    JointTrajectory,
    TrajectoryPoint,
)


class TestCartesianCommand:
    def test_vector_layout(self):
        cmd = CartesianCommand(linear=(1, 2, 3), angular=(4, 5, 6))
        assert np.array_equal(cmd.as_vector(), [1.0, 2.0, 3.0, 4.0, 5.0, 6.0])

    def test_wrong_length_rejected(self):
        with pytest.raises(ValueError):
            CartesianCommand(linear=(1.0, 2.0))

    def test_zero_and_finite(self):
        assert CartesianCommand().is_zero()
        assert not CartesianCommand(angular=(0.0, 0.0, 0.1)).is_zero()
        assert not CartesianCommand(linear=(math.nan, 0.0, 0.0)).is_finite()

    def test_immutable(self):
        cmd = CartesianCommand()
        with pytest.raises(AttributeError):
            cmd.frame = "tool"  # type: ignore[misc]


class TestJointCommand:
    def test_velocities_frozen(self):
        source = {"joint_1": 1}
        cmd = JointCommand(source)
        source["joint_1"] = 5
        assert cmd.velocities["joint_1"] == 1.0
        with pytest.raises(TypeError):
            cmd.velocities["joint_1"] = 2.0  # type: ignore[index]

    def test_zero(self):
        assert JointCommand({}).is_zero()
        assert JointCommand({"a": 0.0}).is_zero()
        assert not JointCommand({"a": 0.1}).is_zero()


class TestJointState:
    def test_positions_for(self):
        state = JointState.from_arrays(["a", "b", "c"], [1.0, 2.0, 3.0], stamp=1.0)
        out = np.zeros(2)
        assert state.positions_for(("c", "a"), out)
        assert out.tolist() == [3.0, 1.0]
        assert state.stamp == 1.0

    def test_positions_for_missing(self):
        state = JointState(positions={"a": 0.0})
        assert not state.positions_for(("a", "b"), np.zeros(2))


class TestJointTrajectory:
    def test_to_array(self):
        point = TrajectoryPoint((1.0, 2.0), None, None, 0.008)
        traj = JointTrajectory(("a", "b"), (point,), stamp=0.0)
        assert traj.to_array("positions") == [1.0, 2.0]
        with pytest.raises(ValueError):
            traj.to_array("velocities")
