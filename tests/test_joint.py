import math
import numpy as np
import pytest

from ik_solver.model import (
    FixedJoint,
    JointLimits,
    JointType,
    MimicRelation,
    PrismaticJoint,
    RevoluteJoint
)
from ik_solver.utils import axis_angle_to_matrix, quaternion_to_rotation_matrix


def test_revolute_local_matrix_rotates_about_axis():
    joint = RevoluteJoint("j", "a", "b", [1.0, 0.0, 0.0], [0, 0, 2])
    matrix = joint.get_local_matrix(math.pi / 2)

    np.testing.assert_allclose(joint.axis, [0, 0, 1])
    np.testing.assert_allclose(matrix[:3, 3], [1.0, 0.0, 0.0])
    np.testing.assert_allclose(matrix[:3, :3] @ [1, 0, 0], [0, 1, 0], atol=1e-12)
    assert joint.joint_type == JointType.REVOLUTE
    assert joint.get_dof() == 1


def test_prismatic_motion_translates_along_axis():
    joint = PrismaticJoint("slide", "a", "b", [0, 0, 0], [0, 1, 0])
    matrix = joint.get_local_matrix(0.25)

    np.testing.assert_allclose(matrix[:3, 3], [0, 0.25, 0])
    np.testing.assert_allclose(matrix[:3, :3], np.identity(3))
    assert joint.limits == JointLimits(-1.0, 1.0)


def test_origin_rotation_is_applied_before_motion():
    # 原点绕 z 旋转 90 度，关节沿局部 x 平移
    quat = [math.cos(math.pi / 4), 0, 0, math.sin(math.pi / 4)]
    joint = PrismaticJoint("slide", "a", "b", [0, 0, 0], [1, 0, 0], quaternion=quat)

    np.testing.assert_allclose(joint.get_local_matrix(1.0)[:3, 3], [0, 1, 0], atol=1e-12)


def test_fixed_joint_has_no_variables():
    joint = FixedJoint("tool_mount", "hand", "tool", [0.05, 0, 0])
    variables = []
    joint.append_variables(variables)

    assert variables == []
    assert joint.get_dof() == 0
    np.testing.assert_allclose(joint.get_local_matrix()[:3, 3], [0.05, 0, 0])


def test_zero_axis_is_rejected_with_joint_name():
    with pytest.raises(ValueError, match="elbow"):
        RevoluteJoint("elbow", "a", "b", [0, 0, 0], [0, 0, 0])


def test_zero_quaternion_is_rejected():
    with pytest.raises(ValueError):
        FixedJoint("j", "a", "b", [0, 0, 0], quaternion=[0, 0, 0, 0])


def test_limits_clamp_and_contains():
    limits = JointLimits(-0.5, 1.5, max_velocity=2.0)

    assert limits.clamp(2.0) == 1.5
    assert limits.clamp(-3.0) == -0.5
    assert limits.clamp(0.3) == 0.3
    assert limits.contains(1.5)
    assert not limits.contains(1.6)
    assert limits.contains(1.6, tolerance=0.2)


def test_invalid_limits():
    with pytest.raises(ValueError):
        JointLimits(1.0, -1.0)
    with pytest.raises(ValueError):
        JointLimits(math.nan, 1.0)


def test_default_position_is_midpoint_when_zero_is_outside_limits():
    joint = RevoluteJoint("j", "a", "b", [0, 0, 0], [0, 0, 1], limits=JointLimits(0.5, 1.5))
    assert joint.default_position() == 1.0

    joint = RevoluteJoint("j", "a", "b", [0, 0, 0], [0, 0, 1])
    assert joint.default_position() == 0.0


def test_mimic_relation_apply_and_invert():
    relation = MimicRelation("master", factor=-2.0, offset=0.1)

    assert relation.apply(0.5) == pytest.approx(-0.9)
    assert relation.invert(-0.9) == pytest.approx(0.5)


def test_axis_angle_matches_quaternion_matrix():
    axis = np.array([1.0, 2.0, 3.0])
    angle = 0.7
    half = angle / 2
    unit = axis / np.linalg.norm(axis)
    quat = np.concatenate([[math.cos(half)], math.sin(half) * unit])

    np.testing.assert_allclose(axis_angle_to_matrix(axis, angle),
                               quaternion_to_rotation_matrix(quat), atol=1e-12)
