"""Shared fixtures for jogarm tests."""

import pytest

from fakes import FakeClock, FakeKinematics

from jogarm.config import JogParameters
from jogarm.motion.jog_calcs import JogCalculator
from jogarm.server.state import SharedState
from jogarm.utils.throttle import reset_throttle


@pytest.fixture(autouse=True)
def _reset_throttle():
    reset_throttle()
    yield
    reset_throttle()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kinematics():
    return FakeKinematics()


@pytest.fixture
def shared():
    return SharedState()


@pytest.fixture
def speed_params():
    """Parameters taking commands in m/s and rad/s."""
    return JogParameters(command_in_type="speed_units")


@pytest.fixture
def make_calculator(shared, clock):
    """Build a JogCalculator against the shared fixtures."""

    def _make(params=None, kinematics=None):
        params = params or JogParameters(command_in_type="speed_units")
        kinematics = kinematics or FakeKinematics()
        names = tuple(kinematics.group_joint_names(params.move_group_name))
        limits = [kinematics.joint_limits(n) for n in names]
        return JogCalculator(params, shared, kinematics, names, limits, clock=clock)

    return _make
