"""
四元数与轴角工具函数
"""
import numpy as np
from typing import Union


def quaternion_to_rotation_matrix(quaternion: Union[np.ndarray, list, tuple]) -> np.ndarray:
    """
    将四元数转换为旋转矩阵

    :param quaternion: 四元数，格式为 [w, x, y, z] 或 (w, x, y, z)
    :return: 3x3 旋转矩阵
    """
    quaternion = np.asarray(quaternion, dtype=np.float64)

    if quaternion.shape != (4,):
        raise ValueError(f"Quaternion must be a 4-element array, got shape {quaternion.shape}")

    norm = np.linalg.norm(quaternion)
    if norm < 1e-10:
        raise ValueError(f"Quaternion norm too small: {norm}, cannot normalize")
    quaternion = quaternion / norm

    w, x, y, z = quaternion[0], quaternion[1], quaternion[2], quaternion[3]

    R = np.array([
        [1 - 2 * (y * y + z * z),     2 * (x * y - w * z),     2 * (x * z + w * y)],
        [    2 * (x * y + w * z), 1 - 2 * (x * x + z * z),     2 * (y * z - w * x)],
        [    2 * (x * z - w * y),     2 * (y * z + w * x), 1 - 2 * (x * x + y * y)]
    ], dtype=np.float64)

    return R


def normalize_axis(axis: Union[np.ndarray, list, tuple]) -> np.ndarray:
    """
    归一化轴向量；零向量无法表示方向，直接报错

    :param axis: 3维向量
    :return: 单位向量
    """
    axis = np.asarray(axis, dtype=np.float64)
    if axis.shape != (3,):
        raise ValueError(f"Axis must be a 3-element vector, got shape {axis.shape}")
    axis_norm = np.linalg.norm(axis)
    if axis_norm <= 1e-6:
        raise ValueError(f"Axis vector is not a unit vector and too small to be normalized: {axis}")
    return axis / axis_norm


def axis_angle_to_quaternion(axis: np.ndarray, angle: float) -> np.ndarray:
    """
    轴角 -> 四元数 [w, x, y, z]

    :param axis: 旋转轴（自动归一化）
    :param angle: 旋转角（弧度）
    """
    axis = normalize_axis(axis)
    half_theta = angle / 2.0
    xyz = axis * np.sin(half_theta)
    return np.array([np.cos(half_theta), xyz[0], xyz[1], xyz[2]], dtype=np.float64)


def axis_angle_to_matrix(axis: np.ndarray, angle: float) -> np.ndarray:
    """绕 axis 旋转 angle 弧度的 3x3 旋转矩阵"""
    return quaternion_to_rotation_matrix(axis_angle_to_quaternion(axis, angle))


def make_transform(rotation: np.ndarray, translation: np.ndarray) -> np.ndarray:
    """
    组装 4x4 齐次变换矩阵

    :param rotation: 3x3 旋转矩阵
    :param translation: 平移向量 (Vec3)
    """
    transform = np.identity(4, dtype=np.float64)
    transform[:3, :3] = rotation
    transform[:3, 3] = translation
    return transform
