"""Unit tests for the collision monitor."""

import math
import threading

import numpy as np
import pytest

from fakes import JOINTS, ConstantClearance

from jogarm.config import JogParameters
from jogarm.motion.collision import CollisionMonitor, UnboundedClearance, collision_velocity_scale
from jogarm.protocol.types import JointState


@pytest.fixture
def params():
    # lower 0.03, hard stop 0.005
    return JogParameters()


def with_feedback(shared):
    shared.set_joint_state(JointState.from_arrays(JOINTS, np.zeros(6)))
    return shared


class TestCollisionVelocityScale:
    @pytest.mark.parametrize(
        "distance, expected",
        [(1.0, 1.0), (0.03, 1.0), (0.0175, 0.5), (0.005, 0.0), (-0.01, 0.0)],
    )
    def test_linear_ramp(self, distance, expected):
        assert collision_velocity_scale(distance, 0.03, 0.005) == pytest.approx(expected)


class TestCollisionMonitor:
    def test_no_feedback_yet(self, params, shared):
        oracle = ConstantClearance(0.0)
        monitor = CollisionMonitor(params, shared, oracle)
        assert monitor.tick() is None
        assert oracle.calls == 0
        assert shared.get_collision_scale() == 1.0

    def test_clear(self, params, shared):
        monitor = CollisionMonitor(params, with_feedback(shared), ConstantClearance(1.0))
        assert monitor.tick() == 1.0
        assert monitor.last_clearance == 1.0

    def test_slowing_zone(self, params, shared):
        monitor = CollisionMonitor(params, with_feedback(shared), ConstantClearance(0.0175))
        monitor.tick()
        assert shared.get_collision_scale() == pytest.approx(0.5)

    def test_hard_stop(self, params, shared, caplog):
        monitor = CollisionMonitor(params, with_feedback(shared), ConstantClearance(0.001))
        monitor.tick()
        assert shared.get_collision_scale() == 0.0
        assert "Halting" in caplog.text

    def test_oracle_failure_halts(self, params, shared):
        class Broken:
            def min_clearance(self, joint_state):
                raise RuntimeError("scene unavailable")

        monitor = CollisionMonitor(params, with_feedback(shared), Broken())
        assert monitor.tick() == 0.0
        assert shared.get_collision_scale() == 0.0

    def test_nan_clearance_halts(self, params, shared):
        monitor = CollisionMonitor(params, with_feedback(shared), ConstantClearance(math.nan))
        assert monitor.tick() == 0.0

    def test_unbounded_clearance(self, params, shared):
        monitor = CollisionMonitor(params, with_feedback(shared), UnboundedClearance())
        assert monitor.tick() == 1.0

    def test_recovers_when_clear_again(self, params, shared):
        oracle = ConstantClearance(0.0)
        monitor = CollisionMonitor(params, with_feedback(shared), oracle)
        monitor.tick()
        oracle.distance = 0.5
        monitor.tick()
        assert shared.get_collision_scale() == 1.0

    def test_run_stops_on_event(self, params, shared):
        oracle = ConstantClearance(0.0175)
        monitor = CollisionMonitor(params, with_feedback(shared), oracle)
        stop = threading.Event()
        thread = threading.Thread(target=monitor.run, args=(stop,))
        thread.start()
        try:
            deadline = 50
            while oracle.calls < 3 and deadline:
                stop.wait(0.02)
                deadline -= 1
        finally:
            stop.set()
            thread.join(timeout=2.0)
        assert not thread.is_alive()
        assert oracle.calls >= 3
        assert shared.get_collision_scale() == pytest.approx(0.5)
