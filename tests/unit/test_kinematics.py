"""Unit tests for jogarm.motion.kinematics."""

import math

import numpy as np
import pytest

from fakes import FakeKinematics, rot_z

from jogarm.motion.kinematics import (
    RoboticsToolboxKinematics,
    decelerate_for_singularity,
    express_in_frame,
    pseudo_inverse,
    singularity_velocity_scale,
)


class TestPseudoInverse:
    def test_matches_numpy_full_rank(self):
        rng = np.random.default_rng(0)
        j = rng.normal(size=(6, 6))
        assert np.allclose(pseudo_inverse(j), np.linalg.pinv(j))

    def test_redundant_arm(self):
        """A 7-joint arm gets the minimum-norm solution."""
        rng = np.random.default_rng(1)
        j = rng.normal(size=(6, 7))
        pinv = pseudo_inverse(j)
        assert pinv.shape == (7, 6)
        assert np.allclose(j @ pinv, np.eye(6))

    def test_rank_deficient_drops_null_directions(self):
        j = np.diag([1.0, 2.0, 0.0, 1.0, 1.0, 1.0])
        pinv = pseudo_inverse(j)
        assert np.all(np.isfinite(pinv))
        assert np.allclose(pinv, np.linalg.pinv(j))


class TestExpressInFrame:
    def test_identity_rotation(self):
        j = np.arange(36, dtype=float).reshape(6, 6)
        assert np.allclose(express_in_frame(j, np.eye(3)), j)

    def test_rotates_linear_and_angular_blocks(self):
        r = rot_z(math.pi / 2)[:3, :3]
        out = express_in_frame(np.eye(6), r)
        assert np.allclose(out[:3, :3], r.T)
        assert np.allclose(out[3:, 3:], r.T)
        assert np.allclose(out[:3, 3:], 0.0)


class TestSingularityScale:
    @pytest.mark.parametrize(
        "sigma, expected",
        [(0.5, 1.0), (0.04, 1.0), (0.025, 0.5), (0.01, 0.0), (0.0, 0.0)],
    )
    def test_linear_ramp(self, sigma, expected):
        assert singularity_velocity_scale(sigma, 0.04, 0.01) == pytest.approx(expected)


class TestDecelerateForSingularity:
    @staticmethod
    def _kinematics():
        return FakeKinematics(
            jacobian_fn=lambda q: np.diag([1.0, 1.0, 1.0, 1.0, 1.0, 0.02 + 0.01 * q[5]])
        )

    def _check(self, commanded):
        kin = self._kinematics()
        q = np.zeros(6)
        svd = np.linalg.svd(kin.jacobian(q), full_matrices=False)
        return decelerate_for_singularity(kin, q, svd, commanded, 0.04, 0.01)

    def test_far_from_singularity(self):
        kin = FakeKinematics()
        q = np.zeros(6)
        svd = np.linalg.svd(kin.jacobian(q), full_matrices=False)
        check = decelerate_for_singularity(kin, q, svd, np.ones(6), 0.04, 0.01)
        assert check.scale == 1.0
        assert check.approaching is False

    def test_toward_is_scaled(self):
        check = self._check(np.array([0, 0, 0, 0, 0, -0.01]))
        assert check.approaching is True
        assert check.scale == pytest.approx(1.0 / 3.0)
        assert check.sigma_min == pytest.approx(0.02)

    def test_away_is_free(self):
        check = self._check(np.array([0, 0, 0, 0, 0, 0.01]))
        assert check.approaching is False
        assert check.scale == 1.0

    def test_orthogonal_is_free(self):
        check = self._check(np.array([0.01, 0, 0, 0, 0, 0]))
        assert check.scale == 1.0


class TestRoboticsToolboxKinematics:
    @pytest.fixture(scope="class")
    def puma(self):
        return RoboticsToolboxKinematics.from_model("Puma560")

    def test_group(self, puma):
        names = puma.group_joint_names("manipulator")
        assert names == tuple(f"joint_{i}" for i in range(1, 7))
        with pytest.raises(KeyError):
            puma.group_joint_names("gripper")

    def test_jacobian_shape(self, puma):
        j = puma.jacobian(np.zeros(6))
        assert j.shape == (6, 6)
        assert np.all(np.isfinite(j))

    def test_frames(self, puma):
        q = np.zeros(6)
        assert np.allclose(puma.frame_transform(q, "base_link"), np.eye(4))
        ee = puma.frame_transform(q, "ee_link")
        assert ee.shape == (4, 4)
        assert np.allclose(ee[3], [0, 0, 0, 1])
        with pytest.raises(KeyError):
            puma.frame_transform(q, "camera")

    def test_limits(self, puma):
        lim = puma.joint_limits("joint_1")
        assert lim.lower < 0.0 < lim.upper
        assert lim.max_velocity == math.inf
        with pytest.raises(KeyError):
            puma.joint_limits("joint_9")

    def test_velocity_limits_broadcast(self):
        kin = RoboticsToolboxKinematics.from_model("Puma560", velocity_limits=2.0)
        assert kin.joint_limits("joint_3").max_velocity == 2.0

    def test_joint_name_count_checked(self, puma):
        with pytest.raises(ValueError):
            RoboticsToolboxKinematics(puma.robot, joint_names=["a", "b"])

    def test_unknown_model(self):
        with pytest.raises(KeyError):
            RoboticsToolboxKinematics.from_model("NoSuchRobot")
