import math
import numpy as np
import pytest

from ik_solver.data_io import parse_chain_description
from ik_solver.model import JointChain
from ik_solver.solver import create_solver

UPPER_ARM = 0.3
FOREARM = 0.25
WRIST_OFFSET = 0.05
MOUNT_HEIGHT = 0.1


def arm_joint_data(limits=None, lateral=0.0, wrist_offset=WRIST_OFFSET,
                   wrist_axis=(0, -1, 0), elbow_axis=(0, -1, 0), shoulder_axis=(0, -1, 0)):
    """
    mount(z) -> shoulder -> elbow -> wrist -> tool_mount(fixed)，静止位姿沿 +x 伸直

    :param limits: {关节名: (min, max)}，未给出的关节使用默认 ±pi
    :param lateral: shoulder 相对 mount 沿 y 的侧向偏移
    """
    limits = limits or {}

    def revolute(name, parent, child, origin, axis):
        joint = {"name": name, "type": "revolute", "parent": parent, "child": child,
                 "origin": list(origin), "axis": list(axis)}
        if name in limits:
            joint["limits"] = list(limits[name])
        return joint

    return [
        revolute("mount", "world", "turntable", (0, 0, MOUNT_HEIGHT), (0, 0, 1)),
        revolute("shoulder", "turntable", "upper_arm", (0, lateral, 0), shoulder_axis),
        revolute("elbow", "upper_arm", "forearm", (UPPER_ARM, 0, 0), elbow_axis),
        revolute("wrist", "forearm", "hand", (FOREARM, 0, 0), wrist_axis),
        {"name": "tool_mount", "type": "fixed", "parent": "hand", "child": "tool",
         "origin": [wrist_offset, 0, 0]},
    ]


def gripper_joint_data():
    """链外关节：夹爪主关节 + 两个 mimic 手指，以及 mimic shoulder 的平行连杆"""
    return [
        {"name": "gripper", "type": "revolute", "parent": "tool", "child": "gripper_body",
         "origin": [0, 0, 0], "axis": [1, 0, 0], "limits": [0.0, 1.0]},
        {"name": "finger_left", "type": "prismatic", "parent": "gripper_body",
         "child": "finger_left_link", "origin": [0.02, 0.01, 0], "axis": [0, 1, 0],
         "limits": [0.0, 0.04], "mimic": {"joint": "gripper", "factor": 0.04}},
        {"name": "finger_right", "type": "prismatic", "parent": "gripper_body",
         "child": "finger_right_link", "origin": [0.02, -0.01, 0], "axis": [0, -1, 0],
         "limits": [0.0, 0.04], "mimic": {"joint": "gripper", "factor": 0.04}},
        {"name": "parallel_link", "type": "revolute", "parent": "turntable",
         "child": "parallel_bar", "origin": [-0.03, 0, 0], "axis": [0, -1, 0],
         "limits": [-1.0, 1.0], "mimic": {"joint": "shoulder", "factor": -1.0, "offset": 0.1}},
    ]


def make_description(joints, base_link="world", tip="tool"):
    return parse_chain_description({
        "base_link": base_link,
        "chains": [[base_link, tip]],
        "tip_frames": [tip],
        "joints": joints,
    })


def make_chain(joints, **kwargs) -> JointChain:
    return JointChain(make_description(joints, **kwargs))


def fk_tip(solver, positions) -> np.ndarray:
    return solver.get_position_fk(positions)[0][:3, 3]


def in_plane_distance(point, lateral=0.0) -> float:
    """目标到 shoulder 原点在手臂平面内的距离（mount 轴为世界 z）"""
    radial_sq = point[0] ** 2 + point[1] ** 2 - lateral ** 2
    return math.sqrt(max(radial_sq, 0.0) + (point[2] - MOUNT_HEIGHT) ** 2)


@pytest.fixture
def arm_chain():
    return make_chain(arm_joint_data())


@pytest.fixture
def arm_solver(arm_chain):
    return create_solver(arm_chain, log_level="WARNING")


@pytest.fixture
def gripper_chain():
    return make_chain(arm_joint_data() + gripper_joint_data())


@pytest.fixture
def gripper_solver(gripper_chain):
    return create_solver(gripper_chain, log_level="WARNING")


@pytest.fixture
def rng():
    return np.random.default_rng(20240611)
