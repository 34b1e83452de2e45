"""
IK核心算法实现

几何约定：
- mount 轴 a（世界坐标系），shoulder 轴 h 必须与 a 垂直；elbow、wrist 轴与 h 平行（可反向）
- 手臂平面由 g = a x h 与 a 张成，绕 +h 旋转在 (g, a) 坐标下为逆时针
- 所有平面坐标以 shoulder 原点为原点
"""
import math
import numpy as np
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple
from scipy.spatial.transform import Rotation as R

from ik_solver.exceptions import ConfigurationError
from ik_solver.model import JointChain, JointLimits, KinematicState, SingleDofJoint
from ik_solver.utils import axis_angle_to_matrix

AXIS_TOLERANCE = 1e-6
LENGTH_EPSILON = 1e-9


def get_angle(x: float, y: float) -> float:
    return math.atan2(y, x)


def normalize_angle(angle: float) -> float:
    """将角度归一化到 (-pi, pi]；NaN/inf 返回 NaN"""
    if not math.isfinite(angle):
        return math.nan
    wrapped = math.remainder(angle, 2.0 * math.pi)
    if wrapped <= -math.pi:
        wrapped += 2.0 * math.pi
    return wrapped


def law_of_cosines(a: float, b: float, c: float) -> float:
    """
    余弦定理：三角形三边为 a, b, c，返回 c 的对角（弧度）

    浮点误差可能使 acos 的参数略超出 [-1, 1]，先截断再求 acos。
    a 或 b 为 0 时三角形退化，返回 NaN。
    """
    denominator = 2.0 * a * b
    if not denominator > 0.0:
        return math.nan
    cosine = (a * a + b * b - c * c) / denominator
    return math.acos(float(np.clip(cosine, -1.0, 1.0)))


def fit_angle_to_limits(angle: float, limits: JointLimits) -> Optional[float]:
    """
    在 angle + 2k*pi 中找一个落在限位内的等价角（优先 angle 本身）

    :return: 限位内的等价角；不存在时返回 None
    """
    if not math.isfinite(angle):
        return None
    for turns in (0, -1, 1, -2, 2):
        candidate = angle + 2.0 * math.pi * turns
        if limits.contains(candidate):
            return candidate
    return None


class ReachStatus(Enum):
    WITHIN = "within"
    BEYOND_MAX = "beyond_max"
    BELOW_MIN = "below_min"


@dataclass(frozen=True)
class ArmGeometry:
    """
    由静止位姿（mount/shoulder/elbow/wrist 均为 0）一次性导出的手臂几何，之后只读

    upper_arm / forearm / wrist_offset 为手臂平面内的 2D 向量，
    它们在静止位姿下的方向即固定的机械偏置角。
    """
    mount_origin: np.ndarray
    mount_axis: np.ndarray
    shoulder_origin: np.ndarray
    shoulder_axis: np.ndarray
    plane_x: np.ndarray
    reference_x: np.ndarray
    reference_y: np.ndarray
    lateral_offset: float
    front_sign: float
    upper_arm: np.ndarray
    forearm: np.ndarray
    wrist_offset: np.ndarray
    elbow_sign: float
    wrist_sign: float

    @property
    def plane_y(self) -> np.ndarray:
        return self.mount_axis

    @property
    def upper_arm_length(self) -> float:
        return float(np.linalg.norm(self.upper_arm))

    @property
    def forearm_length(self) -> float:
        return float(np.linalg.norm(self.forearm))

    @property
    def wrist_offset_length(self) -> float:
        return float(np.linalg.norm(self.wrist_offset))

    @property
    def reach_max(self) -> float:
        return self.upper_arm_length + self.forearm_length - self.wrist_offset_length

    @property
    def reach_min(self) -> float:
        return abs(self.upper_arm_length - self.forearm_length) + self.wrist_offset_length

    @property
    def upper_arm_angle(self) -> float:
        return get_angle(self.upper_arm[0], self.upper_arm[1])

    @property
    def forearm_angle(self) -> float:
        return get_angle(self.forearm[0], self.forearm[1])

    @property
    def wrist_offset_angle(self) -> float:
        return get_angle(self.wrist_offset[0], self.wrist_offset[1])

    def to_plane(self, point: np.ndarray) -> np.ndarray:
        """世界坐标（静止位姿下）-> 手臂平面 2D 坐标"""
        rel = np.asarray(point, dtype=np.float64) - self.shoulder_origin
        return np.array([rel @ self.plane_x, rel @ self.plane_y])


def _world_axis(state: KinematicState, joint: SingleDofJoint) -> np.ndarray:
    rotation = state.global_link_transform(joint.child_link)[:3, :3]
    axis = rotation @ joint.axis
    return axis / np.linalg.norm(axis)


def _parallel_sign(axis: np.ndarray, reference: np.ndarray, name: str) -> float:
    if np.linalg.norm(np.cross(axis, reference)) > AXIS_TOLERANCE:
        raise ConfigurationError(
            f"Joint '{name}' axis must be parallel to the shoulder axis")
    return 1.0 if axis @ reference > 0.0 else -1.0


def build_arm_geometry(chain: JointChain, rest_state: KinematicState) -> ArmGeometry:
    """
    从静止位姿导出手臂几何并校验机械拓扑

    :param chain: 运动链
    :param rest_state: 默认状态（不会被修改）
    :return: ArmGeometry
    """
    state = rest_state.copy()
    for joint in (chain.mount, chain.shoulder, chain.elbow, chain.wrist):
        state.set_joint_position(joint, 0.0)

    mount_axis = _world_axis(state, chain.mount)
    shoulder_axis = _world_axis(state, chain.shoulder)
    if abs(mount_axis @ shoulder_axis) > AXIS_TOLERANCE:
        raise ConfigurationError(
            f"Shoulder joint '{chain.shoulder.name}' axis must be perpendicular "
            f"to mount joint '{chain.mount.name}' axis")
    elbow_sign = _parallel_sign(_world_axis(state, chain.elbow), shoulder_axis, chain.elbow.name)
    wrist_sign = _parallel_sign(_world_axis(state, chain.wrist), shoulder_axis, chain.wrist.name)

    def origin(link: str) -> np.ndarray:
        return state.global_link_transform(link)[:3, 3]

    mount_origin = origin(chain.mount.child_link)
    shoulder_origin = origin(chain.shoulder.child_link)
    tip_origin = origin(chain.tip_link)
    plane_x = np.cross(mount_axis, shoulder_axis)
    plane_x = plane_x / np.linalg.norm(plane_x)

    # mount 极角参考基：世界 X 在 mount 平面上的投影（mount 轴为 Z 时即 atan2(y, x)）
    reference_x = np.array([1.0, 0.0, 0.0]) - mount_axis[0] * mount_axis
    if np.linalg.norm(reference_x) < AXIS_TOLERANCE:
        reference_x = np.array([0.0, 1.0, 0.0]) - mount_axis[1] * mount_axis
    reference_x = reference_x / np.linalg.norm(reference_x)
    reference_y = np.cross(mount_axis, reference_x)

    tip_from_mount = tip_origin - mount_origin
    front = tip_from_mount @ plane_x

    def planar(point: np.ndarray) -> np.ndarray:
        rel = point - shoulder_origin
        return np.array([rel @ plane_x, rel @ mount_axis])

    elbow_2d = planar(origin(chain.elbow.child_link))
    wrist_2d = planar(origin(chain.wrist.child_link))
    tip_2d = planar(tip_origin)

    geometry = ArmGeometry(
        mount_origin=mount_origin,
        mount_axis=mount_axis,
        shoulder_origin=shoulder_origin,
        shoulder_axis=shoulder_axis,
        plane_x=plane_x,
        reference_x=reference_x,
        reference_y=reference_y,
        lateral_offset=float(tip_from_mount @ shoulder_axis),
        front_sign=1.0 if front >= 0.0 else -1.0,
        upper_arm=elbow_2d,
        forearm=wrist_2d - elbow_2d,
        wrist_offset=tip_2d - wrist_2d,
        elbow_sign=elbow_sign,
        wrist_sign=wrist_sign,
    )

    if geometry.upper_arm_length < LENGTH_EPSILON:
        raise ConfigurationError("Upper arm (shoulder -> elbow) has zero length")
    if geometry.forearm_length < LENGTH_EPSILON:
        raise ConfigurationError("Forearm (elbow -> wrist) has zero length")
    if geometry.reach_max <= geometry.reach_min:
        raise ConfigurationError(
            f"Empty reach envelope: min {geometry.reach_min:g} >= max {geometry.reach_max:g}")

    return geometry


def solve_mount_angle(geometry: ArmGeometry, target: np.ndarray) -> float:
    """
    mount 角 = 目标在 mount 平面上的极角 - 固定机械偏置

    机械偏置是静止手臂到达同一半径时末端所在的极角（包含末端沿 shoulder 轴的侧向偏移）。
    目标位于 mount 轴上时 atan2(0, 0) 无意义，返回 0。
    """
    vector = np.asarray(target, dtype=np.float64) - geometry.mount_origin
    vector = vector - (vector @ geometry.mount_axis) * geometry.mount_axis
    x = vector @ geometry.reference_x
    y = vector @ geometry.reference_y
    radius = math.hypot(x, y)
    if radius < LENGTH_EPSILON:
        return 0.0

    lateral = geometry.lateral_offset
    forward = geometry.front_sign * math.sqrt(max(radius * radius - lateral * lateral, 0.0))
    reference = lateral * geometry.shoulder_axis + forward * geometry.plane_x
    mechanical_offset = get_angle(reference @ geometry.reference_x, reference @ geometry.reference_y)

    return normalize_angle(get_angle(x, y) - mechanical_offset)


def arm_plane_target(geometry: ArmGeometry, target: np.ndarray, mount_angle: float) -> np.ndarray:
    """
    将目标绕 mount 轴反转 mount_angle，回到静止位姿的手臂平面，返回 2D 坐标
    """
    rotation = axis_angle_to_matrix(geometry.mount_axis, -mount_angle)
    local = geometry.mount_origin + rotation @ (np.asarray(target, dtype=np.float64) - geometry.mount_origin)
    return geometry.to_plane(local)


@dataclass(frozen=True)
class PlanarSolution:
    """
    手臂平面内的解；shoulder/elbow 已换算为关节值（WITHIN 以外的情况为 NaN，由限位决定）

    :param shoulder: elbow-up 分支的 shoulder 值
    :param elbow: elbow-up 分支的 elbow 值
    :param direction: shoulder -> 目标射线的平面极角
    :param distance: shoulder 到目标的平面距离
    :param mirrored_shoulder: 关于目标射线镜像的 elbow-down 分支
    :param mirrored_elbow: 同上
    """
    shoulder: float
    elbow: float
    direction: float
    distance: float
    reach: ReachStatus
    mirrored_shoulder: float = math.nan
    mirrored_elbow: float = math.nan

    @property
    def branches(self) -> List[Tuple[float, float]]:
        """(shoulder, elbow) 候选，elbow-up 在前"""
        return [(self.shoulder, self.elbow), (self.mirrored_shoulder, self.mirrored_elbow)]


def solve_planar(geometry: ArmGeometry, planar_target: np.ndarray) -> PlanarSolution:
    """
    余弦定理分解 shoulder-elbow-wrist 三角形

    wrist 点位于 shoulder -> 目标射线上、距 shoulder (distance - wrist_offset) 处，
    三角形三边为 (|upperArm|, |forearm|, distance - wrist_offset)。
    同时给出 elbow-up 分支和它关于目标射线的镜像（elbow-down），由调用方按限位选择。
    """
    distance = math.hypot(planar_target[0], planar_target[1])
    direction = get_angle(planar_target[0], planar_target[1])
    wrist_distance = distance - geometry.wrist_offset_length

    if distance > geometry.reach_max:
        return PlanarSolution(math.nan, math.nan, direction, distance, ReachStatus.BEYOND_MAX)
    if distance < geometry.reach_min or wrist_distance <= LENGTH_EPSILON:
        return PlanarSolution(math.nan, math.nan, direction, distance, ReachStatus.BELOW_MIN)

    upper = geometry.upper_arm_length
    forearm = geometry.forearm_length
    shoulder_inner = law_of_cosines(upper, wrist_distance, forearm)
    elbow_inner = law_of_cosines(upper, forearm, wrist_distance)
    segment_offset = geometry.upper_arm_angle - geometry.forearm_angle

    shoulder = normalize_angle(direction + shoulder_inner - geometry.upper_arm_angle)
    elbow = geometry.elbow_sign * normalize_angle(elbow_inner - math.pi + segment_offset)
    mirrored_shoulder = normalize_angle(direction - shoulder_inner - geometry.upper_arm_angle)
    mirrored_elbow = geometry.elbow_sign * normalize_angle(math.pi - elbow_inner + segment_offset)

    return PlanarSolution(shoulder, elbow, direction, distance, ReachStatus.WITHIN,
                          mirrored_shoulder, mirrored_elbow)


def solve_wrist_angle(geometry: ArmGeometry, direction: float,
                      shoulder: float, elbow: float) -> float:
    """
    wrist 角：使 wrist -> 末端 线段沿 shoulder -> 目标 射线方向

    没有 wrist 偏移时方向无定义，返回 NaN（保持当前值）。
    """
    if geometry.wrist_offset_length < LENGTH_EPSILON:
        return math.nan
    return geometry.wrist_sign * normalize_angle(
        direction - geometry.wrist_offset_angle - shoulder - geometry.elbow_sign * elbow)


def compute_error_vector(current_transform: np.ndarray,
                         target_transform: np.ndarray) -> np.ndarray:
    """
    计算当前末端姿态和目标姿态之间的 6x1 误差向量 (delta_x)

    :param current_transform: 末端执行器当前的 4x4 全局变换矩阵
    :param target_transform: 目标 4x4 全局变换矩阵
    :return: 6x1 的误差向量 [delta_p (3x1), delta_r (3x1)]
    """
    delta_p = target_transform[:3, 3] - current_transform[:3, 3]

    # R_error = R_target * R_current^(-1)，转为轴-角向量
    R_error_mat = target_transform[:3, :3] @ current_transform[:3, :3].T
    delta_r = R.from_matrix(R_error_mat).as_rotvec()

    return np.concatenate([delta_p, delta_r])
