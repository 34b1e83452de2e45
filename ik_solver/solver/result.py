"""
求解请求与结果的数据类型
"""
import numpy as np
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterator, List, Optional, Tuple, Union

from scipy.spatial.transform import Rotation as R


class IKErrorCode(Enum):
    SUCCESS = 1
    NO_IK_SOLUTION = -31


@dataclass
class TargetPose:
    """
    目标末端位姿（世界/基座坐标系）

    :param position: 目标位置 [x, y, z]
    :param orientation: 目标姿态四元数 [w, x, y, z]，None 表示只给位置
    """
    position: np.ndarray
    orientation: Optional[np.ndarray] = None

    def __post_init__(self):
        self.position = np.asarray(self.position, dtype=np.float64)
        if self.position.shape != (3,):
            raise ValueError(f"Target position must be a 3-element vector, got shape {self.position.shape}")
        if not np.all(np.isfinite(self.position)):
            raise ValueError(f"Target position must be finite, got {self.position}")
        if self.orientation is not None:
            self.orientation = np.asarray(self.orientation, dtype=np.float64)
            if self.orientation.shape != (4,):
                raise ValueError(
                    f"Target orientation must be a [w, x, y, z] quaternion, got shape {self.orientation.shape}")
            if not np.all(np.isfinite(self.orientation)):
                raise ValueError(f"Target orientation must be finite, got {self.orientation}")

    @classmethod
    def from_transform(cls, transform: np.ndarray) -> 'TargetPose':
        transform = np.asarray(transform, dtype=np.float64)
        if transform.shape != (4, 4):
            raise ValueError(f"Target transform must be 4x4, got shape {transform.shape}")
        quat = R.from_matrix(transform[:3, :3]).as_quat()  # [x, y, z, w]
        return cls(transform[:3, 3].copy(), np.array([quat[3], quat[0], quat[1], quat[2]]))

    def to_transform(self) -> np.ndarray:
        transform = np.identity(4, dtype=np.float64)
        if self.orientation is not None:
            w, x, y, z = self.orientation
            transform[:3, :3] = R.from_quat([x, y, z, w]).as_matrix()
        transform[:3, 3] = self.position
        return transform


TargetLike = Union[TargetPose, np.ndarray, list, tuple]


def as_target_pose(target: TargetLike) -> TargetPose:
    """
    接受 TargetPose、4x4 变换矩阵或 3 维位置
    """
    if isinstance(target, TargetPose):
        return target
    array = np.asarray(target, dtype=np.float64)
    if array.shape == (4, 4):
        return TargetPose.from_transform(array)
    return TargetPose(array)


@dataclass
class QueryOptions:
    """宿主的查询选项；当前算法只关心它是否存在"""
    return_approximate_solution: bool = False
    lock_redundant_joints: bool = False


@dataclass
class DebugSegment:
    """
    调试线段（世界坐标系），交给宿主可视化，求解器不会读回

    :param color: (r, g, b)，取值 0~1
    :param kind: 'target_ray' / 'upper_arm' / 'forearm' / 'wrist_offset'
    """
    start: np.ndarray
    end: np.ndarray
    color: Tuple[float, float, float]
    kind: str


@dataclass
class IKResult:
    """
    求解结果；可以直接解包为 (solution, error_code)
    """
    solution: np.ndarray
    error_code: IKErrorCode
    debug_segments: List[DebugSegment] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.error_code == IKErrorCode.SUCCESS

    def __iter__(self) -> Iterator:
        yield self.solution
        yield self.error_code


SolutionCallback = Callable[[TargetPose, np.ndarray, IKErrorCode], None]
