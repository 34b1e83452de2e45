"""
数据交换功能实现
"""
import json
import os
import numpy as np
from typing import Dict, List, Optional
from scipy.spatial.transform import Rotation as R, Slerp

from ik_solver.model import (
    ChainDescription,
    FixedJoint,
    JointChain,
    JointLimits,
    JointNode,
    MimicRelation,
    PrismaticJoint,
    RevoluteJoint
)
from ik_solver.solver.result import IKErrorCode


def _parse_limits(joint_data: Dict) -> Optional[JointLimits]:
    limits = joint_data.get('limits')
    if limits is None:
        return None
    if len(limits) != 2:
        raise ValueError(f"Joint '{joint_data['name']}' limits must be [min, max], got {limits}")
    try:
        return JointLimits(float(limits[0]), float(limits[1]),
                           float(joint_data.get('max_velocity', 0.0)))
    except ValueError as e:
        raise ValueError(f"Joint '{joint_data['name']}': {e}") from e


def _parse_mimic(joint_data: Dict) -> Optional[MimicRelation]:
    mimic = joint_data.get('mimic')
    if mimic is None:
        return None
    return MimicRelation(
        joint=mimic['joint'],
        factor=float(mimic.get('factor', 1.0)),
        offset=float(mimic.get('offset', 0.0)))


def parse_joint(joint_data: Dict) -> JointNode:
    """
    由一条 JSON 关节定义创建关节对象

    :param joint_data: {"name", "type", "parent", "child", "origin", "quaternion", "axis",
                        "limits", "max_velocity", "mimic"}
    :return: 关节对象
    """
    name = joint_data['name']
    joint_type = joint_data['type']
    parent = joint_data['parent']
    child = joint_data['child']
    origin = np.array(joint_data.get('origin', [0.0, 0.0, 0.0]), dtype=np.float64)

    quat = None
    if joint_data.get('quaternion') is not None:
        quat = np.array(joint_data['quaternion'], dtype=np.float64)

    if joint_type == 'fixed':
        return FixedJoint(name, parent, child, origin, quat)

    if joint_type in ('revolute', 'prismatic'):
        if 'axis' not in joint_data:
            raise ValueError(f"Joint '{name}' of type {joint_type} requires an axis")
        axis = np.array(joint_data['axis'], dtype=np.float64)
        joint_class = RevoluteJoint if joint_type == 'revolute' else PrismaticJoint
        return joint_class(name, parent, child, origin, axis,
                           limits=_parse_limits(joint_data),
                           mimic=_parse_mimic(joint_data),
                           quaternion=quat)

    raise ValueError(f"Unknown joint type: {joint_type}")


def parse_chain_description(data: Dict) -> ChainDescription:
    """
    由 JSON 字典构建链描述（只解析，不校验拓扑；拓扑由 JointChain 校验）
    """
    return ChainDescription(
        base_link=data['base_link'],
        joints=[parse_joint(joint_data) for joint_data in data['joints']],
        chains=[tuple(chain) for chain in data.get('chains', [])],
        tip_frames=list(data.get('tip_frames', [])))


def load_chain_description(json_path: str) -> ChainDescription:
    """
    从链描述文件加载

    :param json_path: 链描述 JSON 文件路径
    """
    with open(json_path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    return parse_chain_description(data)


def load_chain(json_path: str) -> JointChain:
    """
    加载并校验运动链

    :raises ConfigurationError: 链配置非法
    """
    return JointChain(load_chain_description(json_path))


def load_targets(json_path: str) -> List[Dict]:
    """
    从targets.json加载目标轨迹

    :param json_path: targets.json文件路径
    :return: 关键帧列表，每个元素为 {"frame": int, "pos": [x,y,z], "euler": [x,y,z]}
    """
    with open(json_path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    keyframes = []
    for item in data:
        keyframes.append({
            'frame': int(item['frame']),
            'pos': np.array(item['pos'], dtype=np.float64),
            'euler': np.array(item.get('euler', [0.0, 0.0, 0.0]), dtype=np.float64)  # 度
        })

    if not keyframes:
        raise ValueError(f"No keyframes in {json_path}")

    # 按帧号排序
    keyframes.sort(key=lambda kf: kf['frame'])

    return keyframes


def euler_to_transform(pos: np.ndarray, euler_deg: np.ndarray) -> np.ndarray:
    """
    将位置和欧拉角（度，XYZ顺序）转换为4x4变换矩阵

    :param pos: 位置 [x, y, z]（米）
    :param euler_deg: 欧拉角 [x, y, z]（度，内旋XYZ顺序）
    :return: 4x4变换矩阵
    """
    transform = np.identity(4, dtype=np.float64)
    transform[:3, :3] = R.from_euler('XYZ', euler_deg, degrees=True).as_matrix()
    transform[:3, 3] = pos
    return transform


def _keyframe_interval(frames: List[int], frame: int):
    for i in range(len(frames) - 1):
        if frames[i] <= frame < frames[i + 1]:
            return i, i + 1
    return len(frames) - 1, len(frames) - 1


def interpolate_targets(keyframes: List[Dict], frame: int) -> np.ndarray:
    """
    在关键帧之间插值目标：位置线性插值，姿态 SLERP

    :param keyframes: 关键帧列表（已按帧号排序）
    :param frame: 当前帧号
    :return: 4x4插值变换矩阵
    """
    if frame <= keyframes[0]['frame']:
        kf = keyframes[0]
        return euler_to_transform(kf['pos'], kf['euler'])

    if frame >= keyframes[-1]['frame']:
        kf = keyframes[-1]
        return euler_to_transform(kf['pos'], kf['euler'])

    start, end = _keyframe_interval([kf['frame'] for kf in keyframes], frame)
    start_kf = keyframes[start]
    end_kf = keyframes[end]

    span = end_kf['frame'] - start_kf['frame']
    alpha = 0.0 if span == 0 else (frame - start_kf['frame']) / span

    interp_pos = (1.0 - alpha) * start_kf['pos'] + alpha * end_kf['pos']

    rotations = R.from_euler('XYZ', np.vstack([start_kf['euler'], end_kf['euler']]), degrees=True)
    interp_rot = Slerp([0, 1], rotations)(alpha)

    transform = np.identity(4, dtype=np.float64)
    transform[:3, :3] = interp_rot.as_matrix()
    transform[:3, 3] = interp_pos
    return transform


def interpolate_joint_states(start_frame_data: Dict,
                             end_frame_data: Dict,
                             frame: int) -> Dict:
    """
    在关键帧之间对关节状态向量线性插值

    :param start_frame_data: 起始关键帧数据 {'frame': int, 'error_code': IKErrorCode, 'positions': ndarray}
    :param end_frame_data: 结束关键帧数据
    :param frame: 当前帧号
    :return: 插值后的帧数据；两端都成功时 error_code 为 SUCCESS
    """
    start_frame = start_frame_data['frame']
    end_frame = end_frame_data['frame']

    if end_frame == start_frame:
        alpha = 0.0
    else:
        alpha = (frame - start_frame) / (end_frame - start_frame)
    alpha = max(0.0, min(1.0, alpha))  # 限制在[0, 1]范围内

    positions = (1.0 - alpha) * start_frame_data['positions'] + alpha * end_frame_data['positions']
    both_solved = (start_frame_data['error_code'] == IKErrorCode.SUCCESS
                   and end_frame_data['error_code'] == IKErrorCode.SUCCESS)

    return {
        'frame': frame,
        'error_code': IKErrorCode.SUCCESS if both_solved else IKErrorCode.NO_IK_SOLUTION,
        'positions': positions
    }


def export_solutions(chain: JointChain, solved_frames: List[Dict], output_path: str):
    """
    导出逐帧关节解到 JSON

    输出格式: {"frames": [{"frame", "error_code", "joints": {name: {"type", "position"}}}]}

    :param chain: 运动链（决定关节名称与类型）
    :param solved_frames: [{'frame': int, 'error_code': IKErrorCode, 'positions': ndarray}]
    :param output_path: 输出文件路径
    """
    os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)

    frames_output = []
    for frame_data in solved_frames:
        frame_out = {
            'frame': int(frame_data['frame']),
            'error_code': frame_data['error_code'].name,
            'joints': {}
        }
        for joint, position in zip(chain.variables, frame_data['positions']):
            frame_out['joints'][joint.name] = {
                'type': joint.joint_type.value,
                'position': float(position)
            }
        frames_output.append(frame_out)

    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump({'frames': frames_output}, f, indent=2, ensure_ascii=False)
