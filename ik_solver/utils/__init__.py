"""
工具函数
"""

from .quaternion_utils import (
    quaternion_to_rotation_matrix,
    normalize_axis,
    axis_angle_to_quaternion,
    axis_angle_to_matrix,
    make_transform
)

__all__ = [
    'quaternion_to_rotation_matrix',
    'normalize_axis',
    'axis_angle_to_quaternion',
    'axis_angle_to_matrix',
    'make_transform'
]
