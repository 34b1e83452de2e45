import numpy as np
import pytest

from ik_solver.exceptions import ConfigurationError
from ik_solver.model import ChainDescription, JointChain, JointType, RevoluteJoint

from conftest import arm_joint_data, gripper_joint_data, make_chain, make_description


def test_arm_joints_are_identified_by_position(arm_chain):
    assert arm_chain.mount.name == "mount"
    assert arm_chain.shoulder.name == "shoulder"
    assert arm_chain.elbow.name == "elbow"
    assert arm_chain.wrist.name == "wrist"
    assert arm_chain.tip_link == "tool"
    assert arm_chain.tip_frames == ["tool"]
    assert [joint.name for joint in arm_chain.path] == [
        "mount", "shoulder", "elbow", "wrist", "tool_mount"]


def test_variables_skip_fixed_joints(gripper_chain):
    assert gripper_chain.joint_names == [
        "mount", "shoulder", "elbow", "wrist",
        "gripper", "finger_left", "finger_right", "parallel_link"]
    assert gripper_chain.joint_count == 8
    assert gripper_chain.joint_index["finger_right"] == 6
    assert "tool" in gripper_chain.link_names
    assert gripper_chain.link_names[0] == "world"


def test_mimic_targets(gripper_chain):
    targets = {master: [joint.name for joint in slaves]
               for master, slaves in gripper_chain.mimic_targets.items()}
    assert targets == {
        "gripper": ["finger_left", "finger_right"],
        "shoulder": ["parallel_link"],
    }


def test_find_joint(arm_chain):
    assert arm_chain.find_joint(JointType.REVOLUTE) is arm_chain.mount
    assert arm_chain.find_joint(JointType.REVOLUTE, arm_chain.elbow) is arm_chain.wrist
    assert arm_chain.find_joint(JointType.PRISMATIC) is None
    assert arm_chain.find_joint(JointType.REVOLUTE, arm_chain.wrist) is None


def test_joint_axis(arm_chain):
    axis = arm_chain.joint_axis(arm_chain.shoulder)
    np.testing.assert_allclose(axis, [0, -1, 0])
    # 返回副本
    axis[:] = 0
    np.testing.assert_allclose(arm_chain.shoulder.axis, [0, -1, 0])

    with pytest.raises(ValueError):
        arm_chain.joint_axis(arm_chain.get_joint("tool_mount"))


def test_queries(arm_chain):
    assert arm_chain.has_link("world")
    assert arm_chain.has_link("hand")
    assert not arm_chain.has_link("nowhere")
    assert arm_chain.parent_joint_of_link("forearm") is arm_chain.elbow
    assert arm_chain.parent_joint_of_link("world") is None
    assert arm_chain.supports_single_dof()
    with pytest.raises(KeyError):
        arm_chain.get_joint("nowhere")


def test_chain_defaults_from_tip_frames():
    description = make_description(arm_joint_data())
    description.chains = []
    chain = JointChain(description)

    assert chain.chains == [("world", "tool")]


def test_tip_frame_defaults_to_chain_tip():
    description = make_description(arm_joint_data())
    description.tip_frames = []
    chain = JointChain(description)

    assert chain.tip_frames == ["tool"]


def test_rejects_more_than_one_chain():
    description = make_description(arm_joint_data())
    description.chains = [("world", "tool"), ("world", "hand")]

    with pytest.raises(ConfigurationError, match="one chain"):
        JointChain(description)


def test_rejects_no_chain():
    description = ChainDescription(base_link="world", joints=make_description(arm_joint_data()).joints)

    with pytest.raises(ConfigurationError, match="one chain"):
        JointChain(description)


def test_rejects_more_than_one_tip_frame():
    description = make_description(arm_joint_data())
    description.tip_frames = ["tool", "hand"]

    with pytest.raises(ConfigurationError, match="tip frame"):
        JointChain(description)


def test_rejects_unknown_chain_link():
    with pytest.raises(ConfigurationError, match="not found"):
        make_chain(arm_joint_data(), tip="nowhere")


def test_rejects_duplicate_joint_names():
    joints = arm_joint_data()
    joints[4]["name"] = "wrist"

    with pytest.raises(ConfigurationError, match="Duplicate"):
        make_chain(joints)


def test_rejects_link_with_two_parents():
    joints = arm_joint_data()
    joints.append({"name": "extra", "type": "fixed", "parent": "world", "child": "hand"})

    with pytest.raises(ConfigurationError, match="more than one parent"):
        make_chain(joints)


def test_rejects_unknown_parent_link():
    joints = arm_joint_data()
    joints.append({"name": "extra", "type": "fixed", "parent": "nowhere", "child": "extra_link"})

    with pytest.raises(ConfigurationError, match="Parent link 'nowhere'"):
        make_chain(joints)


def test_rejects_cycle():
    joints = arm_joint_data()
    joints += [
        {"name": "loop_a", "type": "fixed", "parent": "loop_b_link", "child": "loop_a_link"},
        {"name": "loop_b", "type": "fixed", "parent": "loop_a_link", "child": "loop_b_link"},
    ]

    with pytest.raises(ConfigurationError, match="cycle"):
        make_chain(joints)


def test_rejects_base_link_as_child():
    joints = arm_joint_data()
    joints.append({"name": "back", "type": "fixed", "parent": "tool", "child": "world"})

    with pytest.raises(ConfigurationError, match="base link"):
        make_chain(joints)


def test_rejects_too_few_revolute_joints():
    joints = arm_joint_data()
    joints[3]["type"] = "fixed"

    with pytest.raises(ConfigurationError, match="4 revolute joints"):
        make_chain(joints)


def test_rejects_prismatic_joint_on_chain():
    joints = arm_joint_data()
    joints[2]["type"] = "prismatic"

    with pytest.raises(ConfigurationError, match="elbow \\(prismatic\\)"):
        make_chain(joints)


def test_rejects_five_revolute_joints():
    joints = arm_joint_data()
    joints[4] = {"name": "wrist_roll", "type": "revolute", "parent": "hand", "child": "tool",
                 "origin": [0.05, 0, 0], "axis": [1, 0, 0]}

    with pytest.raises(ConfigurationError, match="4 revolute joints"):
        make_chain(joints)


def test_rejects_shoulder_off_the_chain():
    # 链外的旋转关节排在 shoulder 前面，按结构位置会被识别为 shoulder
    joints = arm_joint_data()
    joints.insert(1, {"name": "antenna", "type": "revolute", "parent": "turntable",
                      "child": "antenna_link", "axis": [0, 0, 1]})

    with pytest.raises(ConfigurationError, match="Shoulder joint 'antenna'"):
        make_chain(joints)


def test_rejects_mimic_of_missing_master():
    joints = arm_joint_data() + gripper_joint_data()
    joints[-1]["mimic"]["joint"] = "nowhere"

    with pytest.raises(ConfigurationError, match="missing master"):
        make_chain(joints)


def test_rejects_mimic_of_fixed_joint():
    joints = arm_joint_data() + gripper_joint_data()
    joints[-1]["mimic"]["joint"] = "tool_mount"

    with pytest.raises(ConfigurationError, match="missing master"):
        make_chain(joints)


def test_rejects_mimic_of_mimic():
    joints = arm_joint_data() + gripper_joint_data()
    joints[7]["mimic"]["joint"] = "finger_left"

    with pytest.raises(ConfigurationError, match="itself a mimic"):
        make_chain(joints)


def test_rejects_zero_mimic_factor():
    joints = arm_joint_data() + gripper_joint_data()
    joints[-1]["mimic"]["factor"] = 0.0

    with pytest.raises(ConfigurationError, match="zero mimic factor"):
        make_chain(joints)


def test_configuration_error_is_value_error():
    assert issubclass(ConfigurationError, ValueError)


def test_joint_objects_are_linked():
    chain = make_chain(arm_joint_data())
    elbow = chain.get_joint("elbow")

    assert isinstance(elbow, RevoluteJoint)
    assert elbow.parent is chain.shoulder
    assert elbow.children == [chain.wrist]
    assert chain.root_joints == [chain.mount]
