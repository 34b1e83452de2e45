import numpy as np
import pytest

from ik_solver.solver import MimicPropagator


def test_propagate_updates_direct_mimics(gripper_chain):
    propagator = MimicPropagator(gripper_chain)
    state = np.zeros(gripper_chain.joint_count)
    gripper = gripper_chain.get_joint("gripper")

    updated = propagator.propagate(gripper, 0.5, state)

    assert [joint.name for joint in updated] == ["finger_left", "finger_right"]
    assert state[gripper_chain.joint_index["finger_left"]] == pytest.approx(0.02)
    assert state[gripper_chain.joint_index["finger_right"]] == pytest.approx(0.02)
    # 主关节本身不由 propagate 写入
    assert state[gripper_chain.joint_index["gripper"]] == 0.0


def test_propagate_clamps_to_slave_limits(gripper_chain):
    propagator = MimicPropagator(gripper_chain)
    state = np.zeros(gripper_chain.joint_count)

    propagator.propagate(gripper_chain.shoulder, -2.0, state)

    # -1 * -2.0 + 0.1 = 2.1，parallel_link 上限 1.0
    assert state[gripper_chain.joint_index["parallel_link"]] == 1.0


def test_propagate_without_mimics(gripper_chain):
    propagator = MimicPropagator(gripper_chain)
    state = np.zeros(gripper_chain.joint_count)

    assert propagator.propagate(gripper_chain.elbow, 1.0, state) == []
    np.testing.assert_array_equal(state, np.zeros(gripper_chain.joint_count))


def test_affine_law_over_master_range(gripper_chain):
    propagator = MimicPropagator(gripper_chain)
    parallel = gripper_chain.get_joint("parallel_link")

    for master_state in np.linspace(-np.pi, np.pi, 41):
        state = np.zeros(gripper_chain.joint_count)
        propagator.propagate(gripper_chain.shoulder, master_state, state)
        expected = float(np.clip(-1.0 * master_state + 0.1, -1.0, 1.0))
        assert state[gripper_chain.joint_index[parallel.name]] == expected


def test_resolve_master(gripper_chain):
    propagator = MimicPropagator(gripper_chain)
    finger = gripper_chain.get_joint("finger_left")

    master, master_state = propagator.resolve_master(finger, 0.01)
    assert master.name == "gripper"
    assert master_state == pytest.approx(0.25)

    # 反求结果截断到主关节限位 [0, 1]
    _, master_state = propagator.resolve_master(finger, 0.08)
    assert master_state == 1.0


def test_propagate_all(gripper_chain):
    propagator = MimicPropagator(gripper_chain)
    state = np.zeros(gripper_chain.joint_count)
    state[gripper_chain.joint_index["gripper"]] = 1.0
    state[gripper_chain.joint_index["shoulder"]] = 0.3

    propagator.propagate_all(state)

    assert state[gripper_chain.joint_index["finger_left"]] == pytest.approx(0.04)
    assert state[gripper_chain.joint_index["finger_right"]] == pytest.approx(0.04)
    assert state[gripper_chain.joint_index["parallel_link"]] == pytest.approx(-0.2)
