"""
关节类层次结构实现

关节只描述静态结构（原点、轴、限位、mimic 关系），不保存关节变量。
关节变量由 KinematicState 持有，因此同一组关节对象可以被多个求解调用并发共享。
"""
import math
import numpy as np
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing_extensions import override
from typing import Optional, List

from ik_solver.utils import (
    quaternion_to_rotation_matrix,
    normalize_axis,
    axis_angle_to_matrix,
    make_transform
)


class JointType(Enum):
    FIXED = "fixed"
    REVOLUTE = "revolute"
    PRISMATIC = "prismatic"


@dataclass(frozen=True)
class JointLimits:
    """
    关节限位

    :param min_position: 位置下限（弧度或米）
    :param max_position: 位置上限（弧度或米）
    :param max_velocity: 速度上限，0 表示未指定
    """
    min_position: float
    max_position: float
    max_velocity: float = 0.0

    def __post_init__(self):
        if math.isnan(self.min_position) or math.isnan(self.max_position):
            raise ValueError("Joint limits must not be NaN")
        if self.min_position > self.max_position:
            raise ValueError(
                f"Invalid joint limits: min {self.min_position} > max {self.max_position}")

    def clamp(self, value: float) -> float:
        return float(np.clip(value, self.min_position, self.max_position))

    def contains(self, value: float, tolerance: float = 0.0) -> bool:
        return self.min_position - tolerance <= value <= self.max_position + tolerance


@dataclass(frozen=True)
class MimicRelation:
    """
    mimic 关系：mimicked_position = factor * master_position + offset

    :param joint: 主关节名称
    """
    joint: str
    factor: float = 1.0
    offset: float = 0.0

    def apply(self, master_position: float) -> float:
        return self.factor * master_position + self.offset

    def invert(self, mimic_position: float) -> float:
        """由从关节位置反求主关节位置（factor 不能为 0，链构建时已校验）"""
        return (mimic_position - self.offset) / self.factor


class JointNode(ABC):
    """
    所有关节类型的抽象基类。

    关节连接 parent_link 与 child_link：
    child_link 的全局变换 = parent_link 的全局变换 @ 原点变换 @ 运动变换(q)
    """

    def __init__(self, name: str, parent_link: str, child_link: str,
                 origin: np.ndarray, quaternion: Optional[np.ndarray] = None):
        """
        初始化关节节点

        :param name: 关节名称
        :param parent_link: 父连杆名称
        :param child_link: 子连杆名称
        :param origin: 子连杆原点相对父连杆的静态位移 (Vec3)
        :param quaternion: 子连杆相对父连杆的静态旋转（[w, x, y, z]），None 表示无旋转
        """
        self.name = name
        self.parent_link = parent_link
        self.child_link = child_link
        self.parent: Optional['JointNode'] = None
        self.children: List['JointNode'] = []

        self.local_offset: np.ndarray = np.asarray(origin, dtype=np.float64)
        if self.local_offset.shape != (3,):
            raise ValueError(f"Joint '{name}' origin must be a 3-element vector")

        if quaternion is None:
            self.quaternion = np.array([1.0, 0.0, 0.0, 0.0], dtype=np.float64)
        else:
            self.quaternion = np.array(quaternion, dtype=np.float64)
            norm = np.linalg.norm(self.quaternion)
            if norm > 1e-6:
                self.quaternion /= norm
            else:
                raise ValueError(f"Quaternion norm too small: {self.quaternion}")

        # 原点变换不随关节变量变化，构造时算好
        self.origin_transform: np.ndarray = make_transform(
            quaternion_to_rotation_matrix(self.quaternion), self.local_offset)

    def add_child(self, child: 'JointNode'):
        child.parent = self
        self.children.append(child)

    @property
    @abstractmethod
    def joint_type(self) -> JointType:
        pass

    @abstractmethod
    def get_motion_matrix(self, q: float) -> np.ndarray:
        """
        关节变量 q 产生的 4x4 运动变换（在原点变换之后施加）
        """
        pass

    @abstractmethod
    def get_dof(self) -> int:
        """
        返回自由度数量 (0 或 1)。
        """
        pass

    @abstractmethod
    def append_variables(self, variables: List['JointNode']):
        """
        将有变量的关节追加到关节变量列表末尾（决定关节状态向量的顺序）

        :param variables: 关节变量列表（引用传递，直接修改）
        """
        pass

    def get_local_matrix(self, q: float = 0.0) -> np.ndarray:
        return self.origin_transform @ self.get_motion_matrix(q)

    def __repr__(self):
        return f"<{self.__class__.__name__}: {self.name}>"


class SingleDofJoint(JointNode):
    """
    单自由度关节的公共部分：轴、限位、mimic 关系。
    轴在构造时按关节类型确定，之后不再按类型分派。
    """

    def __init__(self, name: str, parent_link: str, child_link: str,
                 origin: np.ndarray, axis: np.ndarray,
                 limits: Optional[JointLimits] = None,
                 mimic: Optional[MimicRelation] = None,
                 quaternion: Optional[np.ndarray] = None):
        """
        :param axis: 运动轴（局部坐标系，不能为零向量。程序自动归一化）
        :param limits: 限位，None 时使用各关节类型的默认限位
        :param mimic: mimic 关系，None 表示主动关节
        """
        super().__init__(name, parent_link, child_link, origin, quaternion)
        try:
            self.axis: np.ndarray = normalize_axis(axis)
        except ValueError as e:
            raise ValueError(f"Joint '{name}': {e}") from e
        self.limits: JointLimits = limits if limits is not None else self.default_limits()
        self.mimic: Optional[MimicRelation] = mimic

    @abstractmethod
    def default_limits(self) -> JointLimits:
        pass

    @property
    def is_mimic(self) -> bool:
        return self.mimic is not None

    def default_position(self) -> float:
        """默认关节值：0 在限位内取 0，否则取限位中点"""
        if self.limits.contains(0.0):
            return 0.0
        return 0.5 * (self.limits.min_position + self.limits.max_position)

    def clamp(self, value: float) -> float:
        return self.limits.clamp(value)

    @override
    def get_dof(self) -> int:
        return 1

    @override
    def append_variables(self, variables: List[JointNode]):
        variables.append(self)


class RevoluteJoint(SingleDofJoint):
    """
    旋转关节 - 绕固定轴旋转的铰链
    """

    @property
    @override
    def joint_type(self) -> JointType:
        return JointType.REVOLUTE

    @override
    def default_limits(self) -> JointLimits:
        return JointLimits(-math.pi, math.pi)

    @override
    def get_motion_matrix(self, q: float) -> np.ndarray:
        """生成绕 axis 旋转 q 的矩阵"""
        motion = np.identity(4, dtype=np.float64)
        motion[:3, :3] = axis_angle_to_matrix(self.axis, q)
        return motion


class PrismaticJoint(SingleDofJoint):
    """
    移动关节 - 沿固定轴滑动的滑块
    """

    @property
    @override
    def joint_type(self) -> JointType:
        return JointType.PRISMATIC

    @override
    def default_limits(self) -> JointLimits:
        return JointLimits(-1.0, 1.0)

    @override
    def get_motion_matrix(self, q: float) -> np.ndarray:
        """生成沿 axis 平移 q 的矩阵: T = [I | q * axis]"""
        motion = np.identity(4, dtype=np.float64)
        motion[:3, 3] = q * self.axis
        return motion


class FixedJoint(JointNode):
    """
    固定关节 - 无变量的结构连接或末端执行器
    用于表示固定的偏移(包括位置和姿态)
    """

    @property
    @override
    def joint_type(self) -> JointType:
        return JointType.FIXED

    @override
    def get_motion_matrix(self, q: float) -> np.ndarray:
        return np.identity(4, dtype=np.float64)

    @override
    def get_dof(self) -> int:
        return 0

    @override
    def append_variables(self, variables: List[JointNode]):
        """FixedJoint跳过，不添加到变量列表"""
        pass
